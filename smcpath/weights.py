# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Log-space weight normalization utilities."""

import logging
import warnings

import jax
import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Bool, Float

from smcpath.errors import DegenerateWeightsWarning
from smcpath.types import IntScalar

logger = logging.getLogger(__name__)


def shift_normalize(
    log_weights: Float[Array, ' num_particles'],
) -> tuple[Float[Array, ' num_particles'], Float[Array, ' num_particles']]:
    """Normalize log weights by shifting to a zero maximum first.

    Computes ``lw - max(lw)``, exponentiates, divides by the sum and
    takes the log again.  The shift keeps ``exp`` from overflowing or
    underflowing to an all-zero vector.  If every entry is ``-inf`` (or
    any entry is NaN) the result is NaN, which callers report as weight
    degeneracy rather than hide.

    Args:
        log_weights: Unnormalized log importance weights.

    Returns:
        A tuple ``(log_normalized, weights)`` with
        ``sum(weights) == 1`` and ``log_normalized == log(weights)``.
    """
    shifted = log_weights - jnp.max(log_weights)
    w = jnp.exp(shifted)
    w = w / jnp.sum(w)
    return jnp.log(w), w


def is_degenerate(
    weights: Float[Array, ' num_particles'],
) -> Bool[Array, '']:
    """Return ``True`` if any normalized weight is NaN or infinite."""
    return jnp.any(~jnp.isfinite(weights))


def check_degeneracy(
    step: IntScalar,
    weights: Float[Array, ' num_particles'],
) -> Bool[Array, '']:
    """Flag degenerate weights and warn the caller from inside a scan.

    The warning is emitted through :func:`jax.debug.callback`, so it
    also fires under ``jax.jit``.  Call :func:`jax.effects_barrier` to
    make sure pending warnings have been delivered.

    Args:
        step: Time step the weights belong to.
        weights: Normalized weights.

    Returns:
        The degeneracy flag.
    """
    degenerate = is_degenerate(weights)
    jax.debug.callback(_warn_degenerate, step, degenerate)
    return degenerate


def _warn_degenerate(step: np.ndarray, degenerate: np.ndarray) -> None:
    if not np.any(degenerate):
        return
    step = int(np.ravel(step)[0])
    message = f'NaN and/or Inf in particle weights at step {step}.'
    logger.warning(message)
    warnings.warn(message, DegenerateWeightsWarning)
