# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Effective-sample-size gated resampling.

The policy resamples only when the weights have degenerated enough that
the effective sample size

.. math::

    M_\mathrm{eff} = \frac{1}{\sum_i w_i^2}

falls below a threshold (default :math:`J / 3`).  Skipping unnecessary
resampling steps avoids the extra Monte Carlo variance that every
resampling step adds.
"""

from collections.abc import Callable
from typing import Optional

import jax.numpy as jnp
from jax import lax
from jaxtyping import Array, Bool, Float, Int

from smcpath.resampling import systematic
from smcpath.types import PRNGKeyT, Scalar


def default_threshold(num_particles: int) -> float:
    """Default resampling threshold :math:`J / 3`."""
    return num_particles / 3.0


def effective_sample_size(
    log_weights: Float[Array, ' num_particles'],
) -> Scalar:
    r"""Compute the ESS from *normalized* log weights.

    Unlike the log-sum-exp form used by Blackjax this assumes
    ``sum(exp(log_weights)) == 1``, which the filters maintain after
    every normalization.  NaN weights give a NaN ESS rather than an
    error.

    Args:
        log_weights: Normalized log importance weights.

    Returns:
        :math:`1 / \sum_i \exp(lw_i)^2`.
    """
    w = jnp.exp(log_weights)
    return 1.0 / jnp.sum(w**2)


def resample_ess(
    key: PRNGKeyT,
    log_weights: Float[Array, ' num_particles'],
    threshold: Optional[float] = None,
    resampling_fn: Callable = systematic,
) -> tuple[
    Int[Array, ' num_particles'],
    Float[Array, ' num_particles'],
    Bool[Array, ''],
]:
    """Conditionally resample based on the effective sample size.

    Args:
        key: JAX PRNG key, consumed only by *resampling_fn*.
        log_weights: Normalized log importance weights.
        threshold: Resample when the ESS is below this value.  ``None``
            means ``J / 3``.  A threshold of at least ``J`` resamples
            unconditionally (even exactly uniform weights, whose ESS
            equals ``J``); a threshold of zero never resamples.
        resampling_fn: Resampling algorithm with the signature
            ``(key, weights, num_samples) -> indices``.

    Returns:
        A tuple ``(ancestors, log_weights, resampled)``.  When
        resampling, *log_weights* is reset to ``log(1/J)`` for every
        particle; otherwise *ancestors* is the identity and the input
        log weights are returned unchanged.
    """
    num_particles = log_weights.shape[0]
    if threshold is None:
        threshold = default_threshold(num_particles)

    identity = jnp.arange(num_particles, dtype=jnp.int32)
    uniform = jnp.full_like(log_weights, -jnp.log(num_particles))

    resampled = jnp.logical_or(
        effective_sample_size(log_weights) < threshold,
        threshold >= num_particles,
    )
    ancestors = lax.cond(
        resampled,
        lambda: resampling_fn(
            key, jnp.exp(log_weights), num_particles
        ).astype(jnp.int32),
        lambda: identity,
    )
    new_log_weights = jnp.where(resampled, uniform, log_weights)
    return ancestors, new_log_weights, resampled
