# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Particle resampling schemes.

All resampling functions share the signature
``(rng_key, weights, num_samples) -> indices`` where *weights* are
**normalized** (i.e. sum to one), the same convention used by
Blackjax (``blackjax.smc.resampling``).  Any function with that
signature can be injected into the filters; Blackjax's multinomial,
stratified and residual schemes are re-exported here for that purpose.
"""

import jax.numpy as jnp
import jax.random as jr
from blackjax.smc.resampling import multinomial, residual, stratified
from jaxtyping import Array, Float, Int

from smcpath.types import PRNGKeyT, Scalar

__all__ = [
    'multinomial',
    'residual',
    'stratified',
    'systematic',
    'systematic_from_offset',
]


def systematic(
    rng_key: PRNGKeyT,
    weights: Float[Array, ' num_particles'],
    num_samples: int,
) -> Int[Array, ' num_samples']:
    """Systematic resampling.

    Draws a single offset ``u ~ U[0, 1)`` and delegates to
    :func:`systematic_from_offset`.

    Args:
        rng_key: JAX PRNG key.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices to draw.

    Returns:
        Resampled ancestor indices.
    """
    u = jr.uniform(rng_key, ())
    return systematic_from_offset(u, weights, num_samples)


def systematic_from_offset(
    offset: Scalar,
    weights: Float[Array, ' num_particles'],
    num_samples: int,
) -> Int[Array, ' num_samples']:
    r"""Deterministic core of systematic resampling.

    With :math:`M` = *num_samples* the strata thresholds are

    .. math::

        t_k = \frac{k + u}{M}, \quad k = 0, \dots, M - 1,

    and ancestor :math:`k` is the smallest :math:`i` with
    :math:`C_i = \sum_{j \le i} w_j > t_k`.  Thresholds and
    cumulative sums are both increasing, so ``searchsorted`` resolves
    every stratum in one merge pass and equal inputs always give equal
    outputs.  Any particle with :math:`w_i \ge 1/M` covers a full
    stratum and is selected at least once.  A threshold equal to
    :math:`C_i` goes to the next particle, so zero-weight particles are
    skipped even at :math:`u = 0`.

    Args:
        offset: Stratum offset :math:`u \in [0, 1)`.  Equivalent to an
            offset of :math:`u / M` on the cumulative weight scale.
        weights: Normalized importance weights (sum to 1).
        num_samples: Number of indices to draw.

    Returns:
        Resampled ancestor indices in ``[0, num_particles)``.
    """
    n = weights.shape[0]
    cumsum = jnp.cumsum(weights)
    thresholds = (
        jnp.arange(num_samples, dtype=weights.dtype) + offset
    ) / num_samples
    idx = jnp.searchsorted(cumsum, thresholds, side='right')
    # Rounding can leave cumsum[-1] slightly below the last threshold.
    return jnp.clip(idx, 0, n - 1)
