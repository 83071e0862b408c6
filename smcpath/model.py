# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""State-space model interface.

A :class:`StateSpaceModel` bundles the callables that define

.. math::

    x_0 \sim p(x_0), \quad
    x_n \mid x_{n-1} \sim p(x_n \mid x_{n-1}, \theta_n), \quad
    y_n \mid x_n \sim p(y_n \mid x_n, \theta_n).

Densities and samplers are written for a *single* particle and mapped
over the ensemble by the filters.  A model may additionally supply
batched ("fast") forms that operate on the whole ensemble at once; the
helpers in this module use them when present and fall back to mapping
the per-particle form otherwise.  Both paths receive the same
per-particle PRNG keys, so they produce identical results.
"""

from collections.abc import Callable
from typing import NamedTuple, Optional

import jax.numpy as jnp
import jax.random as jr
from jax import vmap
from jaxtyping import Array, Float

from smcpath.errors import DimensionMismatchError
from smcpath.types import ParticleMap, PRNGKeyT


class StateSpaceModel(NamedTuple):
    r"""Callables defining a state-space model.

    Attributes:
        initial_sampler: ``(key, num_particles) -> particles`` drawing
            from :math:`p(x_0)`, shape ``(num_particles, state_dim)``.
        transition_sampler: ``(key, state, params) -> state`` drawing
            from :math:`p(x_n \mid x_{n-1}, \theta_n)`.
        log_observation_fn: ``(emission, state, params) -> log_prob``
            evaluating :math:`\log p(y_n \mid x_n, \theta_n)`.
        log_transition_fn: ``(next_state, state, params) -> log_prob``
            evaluating :math:`\log p(x_n \mid x_{n-1}, \theta_n)`.
            Needed by non-bootstrap proposals and by the default
            CPF-AS ancestor sampler.
        emission_sampler: ``(key, state, params) -> emission``.  Only
            used by :func:`smcpath.simulate.simulate`.
        batched_transition_sampler: Optional
            ``(keys, states, params) -> states``.
        batched_log_transition_fn: Optional
            ``(next_states, states, params) -> log_probs``.
        batched_log_observation_fn: Optional
            ``(emission, states, params) -> log_probs``.
    """

    initial_sampler: Callable
    transition_sampler: Callable
    log_observation_fn: Callable
    log_transition_fn: Optional[Callable] = None
    emission_sampler: Optional[Callable] = None
    batched_transition_sampler: Optional[Callable] = None
    batched_log_transition_fn: Optional[Callable] = None
    batched_log_observation_fn: Optional[Callable] = None


def sample_transition(
    model: StateSpaceModel,
    key: PRNGKeyT,
    particles: Float[Array, 'num_particles state_dim'],
    params: Float[Array, ' param_dim'],
    particle_map: ParticleMap = vmap,
) -> Float[Array, 'num_particles state_dim']:
    r"""Propagate every particle through the transition density.

    Args:
        model: State-space model.
        key: PRNG key for this step; split into one key per particle.
        particles: Ancestor particles.
        params: Parameters :math:`\theta_n` for this step.
        particle_map: Map used when no batched sampler is available.

    Returns:
        Propagated particles, same shape as *particles*.
    """
    keys = jr.split(key, particles.shape[0])
    if model.batched_transition_sampler is not None:
        return model.batched_transition_sampler(keys, particles, params)
    return particle_map(
        lambda k, x: model.transition_sampler(k, x, params)
    )(keys, particles)


def log_transition(
    model: StateSpaceModel,
    next_particles: Float[Array, 'num_particles state_dim'],
    particles: Float[Array, 'num_particles state_dim'],
    params: Float[Array, ' param_dim'],
    particle_map: ParticleMap = vmap,
) -> Float[Array, ' num_particles']:
    """Evaluate the transition log-density pairwise over particles."""
    if model.batched_log_transition_fn is not None:
        return model.batched_log_transition_fn(
            next_particles, particles, params
        )
    if model.log_transition_fn is None:
        raise ValueError(
            'This strategy needs the transition density but the model '
            'defines neither log_transition_fn nor '
            'batched_log_transition_fn.'
        )
    return particle_map(
        lambda xn, x: model.log_transition_fn(xn, x, params)
    )(next_particles, particles)


def log_observation(
    model: StateSpaceModel,
    emission: Float[Array, ' emission_dim'],
    particles: Float[Array, 'num_particles state_dim'],
    params: Float[Array, ' param_dim'],
    particle_map: ParticleMap = vmap,
) -> Float[Array, ' num_particles']:
    """Evaluate the observation log-likelihood of every particle."""
    if model.batched_log_observation_fn is not None:
        return model.batched_log_observation_fn(emission, particles, params)
    return particle_map(
        lambda x: model.log_observation_fn(emission, x, params)
    )(particles)


def check_emissions(
    emissions: Float[Array, 'ntime emission_dim'],
) -> Float[Array, 'ntime emission_dim']:
    """Validate the observation sequence.

    Raises:
        DimensionMismatchError: If *emissions* is not a non-empty
            ``(ntime, emission_dim)`` array.
    """
    emissions = jnp.asarray(emissions)
    if emissions.ndim != 2 or emissions.shape[0] < 1:
        raise DimensionMismatchError(
            'emissions must have shape (ntime, emission_dim) with '
            f'ntime >= 1, got {emissions.shape}.'
        )
    return emissions


def expand_params(
    params: Optional[Float[Array, '...']],
    num_timesteps: int,
) -> Float[Array, 'ntime param_dim']:
    """Expand per-step parameters to shape ``(ntime, param_dim)``.

    Args:
        params: ``None`` (no parameters), a static vector of shape
            ``(param_dim,)`` broadcast to every step, or one vector per
            step with shape ``(ntime, param_dim)``.
        num_timesteps: Number of observations :math:`N`.

    Returns:
        Parameter array with one row per step.  Without parameters the
        rows are empty, so ``params[n]`` is always valid.

    Raises:
        DimensionMismatchError: For any other shape.
    """
    if params is None:
        return jnp.zeros((num_timesteps, 0))
    params = jnp.asarray(params)
    if params.ndim == 1:
        return jnp.broadcast_to(params, (num_timesteps, params.shape[0]))
    if params.ndim == 2 and params.shape[0] == num_timesteps:
        return params
    raise DimensionMismatchError(
        'params must be a static vector (param_dim,) or have one row per '
        f'observation ({num_timesteps}, param_dim), got {params.shape}.'
    )


def check_particles(
    particles: Float[Array, 'num_particles state_dim'],
    num_particles: int,
) -> None:
    """Validate the output of ``initial_sampler``.

    Raises:
        DimensionMismatchError: If the sampler did not return
            ``(num_particles, state_dim)``.
    """
    if particles.ndim != 2 or particles.shape[0] != num_particles:
        raise DimensionMismatchError(
            'initial_sampler must return shape (num_particles, state_dim) '
            f'= ({num_particles}, state_dim), got {particles.shape}.'
        )
