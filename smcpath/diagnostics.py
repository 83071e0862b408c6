# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Diagnostic utilities for particle system traces.

Posterior summaries:

- :func:`weighted_mean` -- weighted filtering mean at each step
- :func:`weighted_variance` -- weighted filtering variance
- :func:`weighted_quantile` -- weighted quantiles for credible
  intervals

Degeneracy:

- :func:`particle_diversity` -- fraction of distinct ancestors per step
- :func:`surviving_ancestors` -- how many step-:math:`n` particles
  still have descendants at the final step (path degeneracy)

All functions are pure, operate on a
:class:`~smcpath.containers.ParticleSystemTrace`, and are
JIT-compatible.
"""

import jax.numpy as jnp
from jax import vmap
from jaxtyping import Array, Float, Int

from smcpath.containers import ParticleSystemTrace
from smcpath.lineage import lineage_indices
from smcpath.types import IntScalar


def weighted_mean(
    trace: ParticleSystemTrace,
) -> Float[Array, 'ntime_plus_one state_dim']:
    r"""Compute the weighted mean of particles at each time step.

    Row :math:`n \geq 1` equals ``filtered_means[n - 1]`` of the
    corresponding filter output; row 0 is the prior sample mean.

    Args:
        trace: Particle system trace.

    Returns:
        Weighted means, shape ``(ntime + 1, state_dim)``.
    """
    return jnp.einsum('tn,tnd->td', trace.weights, trace.particles)


def weighted_variance(
    trace: ParticleSystemTrace,
) -> Float[Array, 'ntime_plus_one state_dim']:
    r"""Compute the weighted variance of particles at each time step.

    Uses the formula :math:`V = \sum_i w_i (x_i - \mu)^2` where
    :math:`\mu` is the weighted mean.

    Args:
        trace: Particle system trace.

    Returns:
        Weighted variances, shape ``(ntime + 1, state_dim)``.
    """
    means = weighted_mean(trace)
    deviations = trace.particles - means[:, None, :]
    return jnp.einsum('tn,tnd->td', trace.weights, deviations**2)


def weighted_quantile(
    trace: ParticleSystemTrace,
    q: Float[Array, ' num_quantiles'],
) -> Float[Array, 'ntime_plus_one num_quantiles state_dim']:
    r"""Compute weighted quantiles of particles at each time step.

    Sorts particles, accumulates their weights and interpolates.

    Args:
        trace: Particle system trace.
        q: Quantile levels in [0, 1], e.g. ``jnp.array([0.025, 0.975])``
            for a 95% credible interval.

    Returns:
        Weighted quantiles, shape ``(ntime + 1, num_quantiles,
        state_dim)``.
    """

    def _quantile_one_time_dim(
        p: Float[Array, ' num_particles'],
        w: Float[Array, ' num_particles'],
    ) -> Float[Array, ' num_quantiles']:
        sort_idx = jnp.argsort(p)
        cum_w = jnp.cumsum(w[sort_idx])
        return jnp.interp(q, cum_w, p[sort_idx])

    def _quantile_one_time(
        particles_t: Float[Array, 'num_particles state_dim'],
        weights_t: Float[Array, ' num_particles'],
    ) -> Float[Array, 'num_quantiles state_dim']:
        return vmap(_quantile_one_time_dim, in_axes=(1, None))(
            particles_t, weights_t
        ).T

    return vmap(_quantile_one_time)(trace.particles, trace.weights)


def particle_diversity(
    trace: ParticleSystemTrace,
) -> Float[Array, ' ntime_plus_one']:
    r"""Compute the fraction of distinct ancestors at each time step.

    A value near 1 means most particles descend from different parents,
    while a value near 0 means heavy duplication after resampling.
    Steps without resampling have identity ancestors and score 1.

    Args:
        trace: Particle system trace.

    Returns:
        Diversity fraction in (0, 1] at each time step,
        shape ``(ntime + 1,)``.
    """
    return vmap(_count_unique)(trace.ancestors) / trace.num_particles


def surviving_ancestors(
    trace: ParticleSystemTrace,
    step: IntScalar = 0,
) -> Int[Array, '']:
    r"""Count distinct step-*step* ancestors of all terminal particles.

    Tracing every terminal particle back to step :math:`n` and counting
    the distinct indices reached measures genealogical coalescence: the
    count is at most :math:`J` and, after many resampling steps,
    typically collapses to a handful.

    Args:
        trace: Particle system trace.
        step: Ancestral step :math:`n` to count at.

    Returns:
        Number of distinct ancestors at *step*.
    """
    terminal = jnp.arange(trace.num_particles, dtype=jnp.int32)
    lineages = vmap(lambda j: lineage_indices(trace, j))(terminal)
    return _count_unique(lineages[:, step])


def _count_unique(indices: Int[Array, ' num_particles']) -> Int[Array, '']:
    """Count distinct entries without ``jnp.unique`` (JIT-compatible)."""
    sorted_idx = jnp.sort(indices)
    is_new = jnp.concatenate(
        [jnp.array([True]), sorted_idx[1:] != sorted_idx[:-1]]
    )
    return jnp.sum(is_new)
