# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Conditional particle filter with ancestor sampling (CPF-AS).

CPF-AS (Lindsten, Jordan & Schön, 2014) is the Markov kernel behind
particle Gibbs with ancestor sampling.  Given a reference trajectory
:math:`\tilde{x}_{0:N}` it runs a particle filter in which the last
slot, :math:`J - 1`, always carries :math:`\tilde{x}_n`.  At every step:

1. All slots are resampled unconditionally.
2. The ancestor of the reference slot is redrawn with probability

   .. math::

       P(a_n^{J-1} = i) \propto w_{n-1}^i \,
           c(x_{0:n-1}^i, \tilde{x}_{n:N}),

   where the compatibility :math:`c` defaults to the transition density
   :math:`p(\tilde{x}_n \mid x_{n-1}^i)` but may depend on the full
   particle history and the whole remaining reference, which is what
   non-Markovian models need.
3. New particles are proposed for every slot and slot :math:`J - 1` is
   overwritten with :math:`\tilde{x}_n`.
4. Weighting and normalization proceed as in
   :func:`~smcpath.filter.particle_filter`.

After the last step one particle is drawn from the final weights and
its lineage is the output trajectory, which becomes the reference of
the next sweep.

The implementation uses :func:`jax.lax.scan` so the full time-loop is
compiled into a single XLA program.  Particle histories live in a
fixed ``(ntime + 1, num_particles, state_dim)`` buffer that is
re-indexed by the ancestors at every step, so the ancestor sampler
always sees each particle's full path.
"""

import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any, Optional, Union

import jax.numpy as jnp
import jax.random as jr
from jax import lax, vmap
from jaxtyping import Array, Float, Int

from smcpath.config import FilterConfig, resolve_config
from smcpath.containers import (
    ConditionalPosterior,
    ParticleSystemTrace,
    StepSummary,
)
from smcpath.errors import DimensionMismatchError
from smcpath.filter import particle_filter
from smcpath.lineage import reconstruct_trajectory
from smcpath.model import (
    StateSpaceModel,
    check_emissions,
    check_particles,
    expand_params,
    log_transition,
)
from smcpath.policy import effective_sample_size
from smcpath.proposals import bootstrap_log_weight_increment
from smcpath.types import IntScalar, ParticleMap, PRNGKeyT
from smcpath.weights import check_degeneracy, shift_normalize

logger = logging.getLogger(__name__)


def sample_ancestor_index(
    key: PRNGKeyT,
    model: StateSpaceModel,
    n: Int[Array, ''],
    emissions: Float[Array, 'ntime emission_dim'],
    reference: Float[Array, 'ntime_plus_one state_dim'],
    paths: Float[Array, 'ntime_plus_one num_particles state_dim'],
    log_weights: Float[Array, ' num_particles'],
    params: Float[Array, 'ntime param_dim'],
    state: Any,
    particle_map: ParticleMap = vmap,
) -> tuple[Int[Array, ''], Any]:
    r"""Default ancestor sampler for Markovian models.

    Draws the reference ancestor from

    .. math::

        P(a = i) \propto w_{n-1}^i \, p(\tilde{x}_n \mid x_{n-1}^i,
            \theta_n).

    Every ancestor sampler has this signature, less *particle_map*.
    Arrays are passed whole together with the step index *n*, so shapes
    stay static under ``jit``: the particle histories are ``paths[:n]``
    (column ``i`` is the path of particle ``i``), the future reference
    is ``reference[n:]`` and the future observations are
    ``emissions[n - 1:]``.

    Args:
        key: PRNG key.
        model: State-space model.
        n: Current step, :math:`1 \le n \le N`.
        emissions: All observations.
        reference: Reference trajectory :math:`\tilde{x}_{0:N}`.
        paths: Particle history buffer; rows ``>= n`` are not yet
            filled.
        log_weights: Normalized log weights at step :math:`n - 1`.
        params: Per-step parameters, row ``n - 1`` belongs to step *n*.
        state: Auxiliary state carried between calls; returned as is.
        particle_map: Map over the particle axis used to evaluate the
            transition density when the model has no batched form.

    Returns:
        A tuple ``(index, state)``.
    """
    del emissions
    previous = paths[n - 1]
    target = jnp.broadcast_to(reference[n], previous.shape)
    log_compat = log_transition(
        model, target, previous, params[n - 1], particle_map
    )
    index = jr.categorical(key, log_weights + log_compat)
    return index.astype(jnp.int32), state


def ancestor_sampler(
    log_compatibility_fn: Callable,
    particle_map: ParticleMap = vmap,
) -> Callable:
    r"""Build an ancestor sampler from a per-particle compatibility.

    Args:
        log_compatibility_fn: ``(model, n, path, reference, emissions,
            params) -> log_c`` scoring how well one particle history
            ``path`` (shape ``(ntime + 1, state_dim)``, valid rows
            ``< n``) continues into ``reference[n:]``.  For a Markovian
            model this is :math:`\log p(\tilde{x}_n \mid x_{n-1})`; for
            non-Markovian models it may use the whole history and the
            whole remaining reference.
        particle_map: Map over the particle axis.

    Returns:
        A stateless sampler with the signature of
        :func:`sample_ancestor_index`.
    """

    def sample(
        key: PRNGKeyT,
        model: StateSpaceModel,
        n: Int[Array, ''],
        emissions: Float[Array, 'ntime emission_dim'],
        reference: Float[Array, 'ntime_plus_one state_dim'],
        paths: Float[Array, 'ntime_plus_one num_particles state_dim'],
        log_weights: Float[Array, ' num_particles'],
        params: Float[Array, 'ntime param_dim'],
        state: Any,
    ) -> tuple[Int[Array, ''], Any]:
        log_compat = particle_map(
            lambda path: log_compatibility_fn(
                model, n, path, reference, emissions, params
            )
        )(jnp.swapaxes(paths, 0, 1))
        index = jr.categorical(key, log_weights + log_compat)
        return index.astype(jnp.int32), state

    return sample


def conditional_filter(
    key: PRNGKeyT,
    model: StateSpaceModel,
    emissions: Float[Array, 'ntime emission_dim'],
    reference: Optional[Float[Array, 'ntime_plus_one state_dim']] = None,
    num_particles: int = 100,
    params: Optional[Float[Array, '...']] = None,
    config: Union[FilterConfig, Mapping[str, Any], None] = None,
) -> ConditionalPosterior:
    r"""Run one sweep of the conditional PF with ancestor sampling.

    Args:
        key: JAX PRNG key.
        model: State-space model.
        emissions: Observations :math:`y_{1:N}`, shape ``(N, D)``.
        reference: Reference trajectory :math:`\tilde{x}_{0:N}`, shape
            ``(N + 1, state_dim)``.  If ``None``, a seed trajectory is
            drawn from a bootstrap particle filter run on the same
            data.
        num_particles: Number of particles :math:`J \geq 2`, including
            the reference slot.
        params: Optional parameters :math:`\theta` (see
            :func:`~smcpath.model.expand_params`).
        config: :class:`~smcpath.config.FilterConfig` or a mapping of
            options.  ``threshold`` is ignored since every step
            resamples.

    Returns:
        :class:`~smcpath.containers.ConditionalPosterior` with the new
        trajectory and the particle system trace.

    Raises:
        ValueError: If ``num_particles < 2``.
        DimensionMismatchError: If *emissions*, *params*, *reference*
            or the initial particles have inconsistent shapes.
    """
    if num_particles < 2:
        raise ValueError(
            f'CPF-AS needs at least two particles, got {num_particles}.'
        )
    config = resolve_config(config)
    emissions = check_emissions(emissions)
    num_timesteps = emissions.shape[0]
    params = expand_params(params, num_timesteps)
    pinned = num_particles - 1

    sampler = config.importance_sampler
    increment_fn = (
        bootstrap_log_weight_increment
        if config.bootstrap_shortcut
        else sampler.log_weight_increment
    )
    ancestor_fn = config.sample_ancestor_index or functools.partial(
        sample_ancestor_index, particle_map=config.particle_map
    )

    key, seed_key, init_key, final_key = jr.split(key, 4)
    if reference is None:
        logger.debug('No reference given; seeding from a bootstrap PF.')
        reference = _seed_reference(
            seed_key, model, emissions, num_particles, params, config
        )
    reference = jnp.asarray(reference)

    # --- Initialise at n=0 -------------------------------------------------
    free_0 = model.initial_sampler(init_key, num_particles - 1)
    check_particles(free_0, num_particles - 1)
    _check_reference(reference, num_timesteps, free_0.shape[1])
    reference = reference.astype(free_0.dtype)
    particles_0 = jnp.concatenate([free_0, reference[:1]], axis=0)
    log_w_0 = jnp.full(
        (num_particles,), -jnp.log(num_particles), dtype=free_0.dtype
    )
    paths_0 = jnp.zeros(
        (num_timesteps + 1, *particles_0.shape), dtype=free_0.dtype
    ).at[0].set(particles_0)
    identity_ancestors = jnp.arange(num_particles, dtype=jnp.int32)

    logger.debug(
        'CPF-AS: %d particles, %d steps.', num_particles, num_timesteps
    )

    # --- Scan body for n = 1, ..., N ---------------------------------------
    def _step(carry: tuple, args: tuple) -> tuple[tuple, tuple]:
        particles, log_weights, paths, aux = carry
        step_key, y_n, theta_n, n = args
        k1, k2, k3 = jr.split(step_key, 3)

        # 1. Resample every slot, then redraw the reference ancestor
        ancestors = config.resampling_fn(
            k1, jnp.exp(log_weights), num_particles
        ).astype(jnp.int32)
        ancestor_ref, aux = ancestor_fn(
            k2, model, n, emissions, reference, paths, log_weights,
            params, aux,
        )
        ancestors = ancestors.at[pinned].set(ancestor_ref)
        paths = paths[:, ancestors]
        previous = particles[ancestors]

        # 2. Propose, then pin the reference slot
        proposed = sampler.propose(
            k3, model, y_n, previous, theta_n, config.particle_map
        )
        proposed = proposed.at[pinned].set(reference[n])
        paths = paths.at[n].set(proposed)

        # 3. Weight; the resampled weights are uniform
        log_v = increment_fn(
            model, y_n, proposed, previous, theta_n, config.particle_map
        )
        log_w, w = shift_normalize(log_v.astype(log_weights.dtype))

        summary = StepSummary(
            mean=w @ proposed,
            ess=effective_sample_size(log_w),
            degenerate=check_degeneracy(n, w),
        )
        return (proposed, log_w, paths, aux), (
            summary,
            (proposed, log_w, ancestors),
            aux,
        )

    step_keys = jr.split(key, num_timesteps)
    steps = jnp.arange(1, num_timesteps + 1)
    (_, log_w_final, _, _), (summaries, records, aux_states) = lax.scan(
        _step,
        (particles_0, log_w_0, paths_0, config.ancestor_state),
        (step_keys, emissions, params, steps),
    )

    particles_rest, log_w_rest, ancestors_rest = records
    trace = ParticleSystemTrace(
        particles=_prepend(particles_0, particles_rest),
        log_weights=_prepend(log_w_0, log_w_rest),
        ancestors=_prepend(identity_ancestors, ancestors_rest),
        resampled=_prepend(
            jnp.asarray(False), jnp.ones(num_timesteps, dtype=bool)
        ),
        ess=_prepend(
            jnp.asarray(num_particles, dtype=summaries.ess.dtype),
            summaries.ess,
        ),
        degenerate=_prepend(jnp.asarray(False), summaries.degenerate),
    )

    # --- Draw the output trajectory ----------------------------------------
    index = _draw_terminal_index(
        final_key, jnp.exp(log_w_final), config.resampling_fn
    )
    return ConditionalPosterior(
        trajectory=reconstruct_trajectory(trace, index),
        index=index,
        trace=trace,
        ancestor_states=aux_states,
        filtered_means=summaries.mean,
    )


def _draw_terminal_index(
    key: PRNGKeyT,
    weights: Float[Array, ' num_particles'],
    resampling_fn: Callable,
) -> IntScalar:
    """Pick one resampled index uniformly at random."""
    k1, k2 = jr.split(key)
    num_particles = weights.shape[0]
    beta = resampling_fn(k1, weights, num_particles)
    return beta[jr.randint(k2, (), 0, num_particles)].astype(jnp.int32)


def _seed_reference(
    key: PRNGKeyT,
    model: StateSpaceModel,
    emissions: Float[Array, 'ntime emission_dim'],
    num_particles: int,
    params: Float[Array, 'ntime param_dim'],
    config: FilterConfig,
) -> Float[Array, 'ntime_plus_one state_dim']:
    """Draw a seed trajectory from a bootstrap particle filter."""
    k1, k2 = jr.split(key)
    posterior = particle_filter(
        k1,
        model,
        emissions,
        num_particles=num_particles,
        params=params,
        config=config._replace(collect_trace=True),
    )
    trace = posterior.trace
    index = _draw_terminal_index(k2, trace.weights[-1], config.resampling_fn)
    return reconstruct_trajectory(trace, index)


def _check_reference(
    reference: Array,
    num_timesteps: int,
    state_dim: int,
) -> None:
    expected = (num_timesteps + 1, state_dim)
    if reference.shape != expected:
        raise DimensionMismatchError(
            'reference must have shape (ntime + 1, state_dim) = '
            f'{expected}, got {reference.shape}.'
        )


def _prepend(first: Array, rest: Array) -> Array:
    return jnp.concatenate([jnp.expand_dims(first, 0), rest], axis=0)
