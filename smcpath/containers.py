# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Containers for particle ensembles, traces and filter outputs.

All containers are :class:`~typing.NamedTuple` subclasses so they are
registered as JAX PyTrees by default, and are immutable once a filter
returns them.
"""

from typing import Any, NamedTuple, Optional

import jax.numpy as jnp
from jaxtyping import Array, Bool, Float, Int

from smcpath.types import IntScalar, Scalar


class ParticleEnsemble(NamedTuple):
    r"""Particle cloud at a single time step.

    Attributes:
        particles: Particle values, shape ``(num_particles, state_dim)``.
        log_weights: Normalized log importance weights,
            shape ``(num_particles,)``.
        ancestors: Index of each particle's parent in the previous
            ensemble, shape ``(num_particles,)``.  The identity at
            :math:`n = 0`.
        resampled: Whether resampling preceded this step.
    """

    particles: Float[Array, 'num_particles state_dim']
    log_weights: Float[Array, ' num_particles']
    ancestors: Int[Array, ' num_particles']
    resampled: Bool[Array, '']

    @property
    def weights(self) -> Float[Array, ' num_particles']:
        """Normalized weights ``exp(log_weights)``."""
        return jnp.exp(self.log_weights)


class ParticleSystemTrace(NamedTuple):
    r"""Every ensemble of a run, stacked along a leading time axis.

    Index :math:`n = 0` holds the initial (prior) ensemble and index
    :math:`n \geq 1` the ensemble after processing observation
    :math:`y_n`, so each array has ``ntime + 1`` rows.  Ancestor indices
    at step :math:`n` point into row :math:`n - 1`; following them
    backwards recovers particle lineages (see :mod:`smcpath.lineage`).

    Attributes:
        particles: Shape ``(ntime + 1, num_particles, state_dim)``.
        log_weights: Normalized log weights,
            shape ``(ntime + 1, num_particles)``.
        ancestors: Shape ``(ntime + 1, num_particles)``.
        resampled: Resampling indicator per step, shape ``(ntime + 1,)``.
        ess: Effective sample size after normalization,
            shape ``(ntime + 1,)``.
        degenerate: Whether the normalized weights contained NaN or
            infinite values, shape ``(ntime + 1,)``.
    """

    particles: Float[Array, 'ntime_plus_one num_particles state_dim']
    log_weights: Float[Array, 'ntime_plus_one num_particles']
    ancestors: Int[Array, 'ntime_plus_one num_particles']
    resampled: Bool[Array, ' ntime_plus_one']
    ess: Float[Array, ' ntime_plus_one']
    degenerate: Bool[Array, ' ntime_plus_one']

    @property
    def weights(self) -> Float[Array, 'ntime_plus_one num_particles']:
        """Normalized weights ``exp(log_weights)``."""
        return jnp.exp(self.log_weights)

    @property
    def num_timesteps(self) -> int:
        """Number of filtering steps :math:`N` (excluding step 0)."""
        return self.particles.shape[0] - 1

    @property
    def num_particles(self) -> int:
        """Number of particles :math:`J`."""
        return self.particles.shape[1]

    def ensemble(self, n: IntScalar) -> ParticleEnsemble:
        """Return the ensemble recorded at step *n*."""
        return ParticleEnsemble(
            particles=self.particles[n],
            log_weights=self.log_weights[n],
            ancestors=self.ancestors[n],
            resampled=self.resampled[n],
        )


class FilterPosterior(NamedTuple):
    r"""Output of :func:`smcpath.filter.particle_filter`.

    Attributes:
        filtered_means: Weighted particle mean
            :math:`\hat{x}_n = \sum_i w_n^i x_n^i` for
            :math:`n = 1, \dots, N`, stored at index :math:`n - 1`,
            shape ``(ntime, state_dim)``.
        trace: Full particle system, or ``None`` unless trace
            collection was requested.
    """

    filtered_means: Float[Array, 'ntime state_dim']
    trace: Optional[ParticleSystemTrace]


class ConditionalPosterior(NamedTuple):
    r"""Output of :func:`smcpath.ancestor.conditional_filter`.

    Attributes:
        trajectory: Newly sampled trajectory
            :math:`x_{0:N}`, shape ``(ntime + 1, state_dim)``.  Can be
            fed back as the reference of the next CPF-AS sweep.
        index: Terminal particle index the trajectory was traced from.
        trace: Full particle system of the sweep.
        ancestor_states: Auxiliary state returned by the ancestor
            sampler at every step :math:`n = 1, \dots, N` (stacked
            along a leading axis), or ``None`` for stateless samplers.
        filtered_means: Weighted particle means, as in
            :class:`FilterPosterior`.
    """

    trajectory: Float[Array, 'ntime_plus_one state_dim']
    index: IntScalar
    trace: ParticleSystemTrace
    ancestor_states: Any
    filtered_means: Float[Array, 'ntime state_dim']


class StepSummary(NamedTuple):
    """Per-step outputs stacked by ``lax.scan`` inside the filters."""

    mean: Float[Array, ' state_dim']
    ess: Scalar
    degenerate: Bool[Array, '']
