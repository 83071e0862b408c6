# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Lineage reconstruction from recorded ancestor indices.

The ancestor indices of a :class:`~smcpath.containers.ParticleSystemTrace`
form one parent-pointer array per step.  The lineage of terminal
particle :math:`j` is recovered by walking them backwards,

.. math::

    i_N = j, \quad i_{n-1} = a_n^{i_n}, \quad
    x_{0:N}^{(j)} = (x_0^{i_0}, \dots, x_N^{i_N}).

Distinct terminal particles routinely share ancestors after a
resampling step (coalescence), so lineages are always recomputed from
the parent pointers rather than stored as a tree.
"""

import jax.numpy as jnp
from jax import lax, vmap
from jaxtyping import Array, Float, Int

from smcpath.containers import ParticleSystemTrace
from smcpath.types import IntScalar


def lineage_indices(
    trace: ParticleSystemTrace,
    index: IntScalar,
) -> Int[Array, ' ntime_plus_one']:
    r"""Particle index of every ancestor of terminal particle *index*.

    Args:
        trace: Particle system trace.
        index: Terminal particle index at step :math:`N`.

    Returns:
        Indices :math:`i_0, \dots, i_N` in forward time order.
    """

    def _back(
        current: Int[Array, ''], n: Int[Array, '']
    ) -> tuple[Int[Array, ''], Int[Array, '']]:
        return trace.ancestors[n, current], current

    steps = jnp.arange(trace.num_timesteps + 1)
    _, indices = lax.scan(
        _back, jnp.asarray(index, dtype=jnp.int32), steps, reverse=True
    )
    return indices


def reconstruct_trajectory(
    trace: ParticleSystemTrace,
    index: IntScalar,
) -> Float[Array, 'ntime_plus_one state_dim']:
    r"""Reconstruct the full ancestral path of one terminal particle.

    Args:
        trace: Particle system trace.
        index: Terminal particle index at step :math:`N`.

    Returns:
        States :math:`x_0, \dots, x_N` along the lineage.
    """
    indices = lineage_indices(trace, index)
    steps = jnp.arange(trace.num_timesteps + 1)
    return trace.particles[steps, indices]


def reconstruct_all_trajectories(
    trace: ParticleSystemTrace,
) -> Float[Array, 'num_particles ntime_plus_one state_dim']:
    """Reconstruct the lineage of every terminal particle.

    Each backward walk is independent, so the walks are batched with
    :func:`jax.vmap` for a total cost of :math:`O(NJ)`.
    """
    terminal = jnp.arange(trace.num_particles, dtype=jnp.int32)
    return vmap(lambda j: reconstruct_trajectory(trace, j))(terminal)


def smoothed_means(
    trace: ParticleSystemTrace,
) -> Float[Array, 'ntime_plus_one state_dim']:
    r"""Genealogy smoother estimate of :math:`E[x_n \mid y_{1:N}]`.

    Averages the reconstructed lineages with the final-step weights.
    Cheap, but only as good as the number of surviving lineages at each
    step.
    """
    paths = reconstruct_all_trajectories(trace)
    return jnp.einsum('j,jtd->td', trace.weights[-1], paths)
