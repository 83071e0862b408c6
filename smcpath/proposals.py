# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Importance sampling strategies.

A strategy pairs a proposal :math:`q(x_n \mid y_n, x_{n-1})` with the
incremental log-weight that corrects for it:

.. math::

    \log v_n^i = \log p(y_n \mid x_n^i)
               + \log p(x_n^i \mid x_{n-1}^{a_i})
               - \log q(x_n^i \mid y_n, x_{n-1}^{a_i}).

For the bootstrap proposal :math:`q = p(x_n \mid x_{n-1})` the last two
terms cancel and only the observation log-likelihood remains.  The
``bootstrap`` tag on :class:`ImportanceSampler` records whether that
cancellation is valid, so the filters can refuse a bootstrap shortcut
for proposals that do not sample from the transition density.
"""

from collections.abc import Callable
from typing import NamedTuple

import jax.random as jr
from jax import vmap
from jaxtyping import Array, Float

from smcpath.model import (
    StateSpaceModel,
    log_observation,
    log_transition,
    sample_transition,
)
from smcpath.types import ParticleMap, PRNGKeyT


class ImportanceSampler(NamedTuple):
    """A proposal together with its matching weight increment.

    Attributes:
        propose: ``(key, model, emission, particles, params,
            particle_map) -> proposed`` drawing one new particle per
            (resampled) ancestor.
        log_weight_increment: ``(model, emission, proposed, previous,
            params, particle_map) -> log_v`` returning the incremental
            log-weight of every particle.  *previous* holds the ancestor
            each proposal was drawn from.
        bootstrap: ``True`` only if *propose* samples from the
            transition density.
    """

    propose: Callable
    log_weight_increment: Callable
    bootstrap: bool = False


def bootstrap_propose(
    key: PRNGKeyT,
    model: StateSpaceModel,
    emission: Float[Array, ' emission_dim'],
    particles: Float[Array, 'num_particles state_dim'],
    params: Float[Array, ' param_dim'],
    particle_map: ParticleMap = vmap,
) -> Float[Array, 'num_particles state_dim']:
    """Propose from the transition density, ignoring the observation."""
    del emission
    return sample_transition(model, key, particles, params, particle_map)


def bootstrap_log_weight_increment(
    model: StateSpaceModel,
    emission: Float[Array, ' emission_dim'],
    proposed: Float[Array, 'num_particles state_dim'],
    previous: Float[Array, 'num_particles state_dim'],
    params: Float[Array, ' param_dim'],
    particle_map: ParticleMap = vmap,
) -> Float[Array, ' num_particles']:
    """Observation log-likelihood of the proposed particles."""
    del previous
    return log_observation(model, emission, proposed, params, particle_map)


def general_log_weight_increment(
    log_proposal_fn: Callable,
) -> Callable:
    r"""Build the full importance weight increment for a proposal.

    Args:
        log_proposal_fn: Per-particle proposal log-density
            ``(next_state, emission, state, params) -> log_prob``.

    Returns:
        A ``log_weight_increment`` callable computing
        :math:`\log p(y|x') + \log p(x'|x) - \log q(x'|y, x)`.
    """

    def log_weight_increment(
        model: StateSpaceModel,
        emission: Float[Array, ' emission_dim'],
        proposed: Float[Array, 'num_particles state_dim'],
        previous: Float[Array, 'num_particles state_dim'],
        params: Float[Array, ' param_dim'],
        particle_map: ParticleMap = vmap,
    ) -> Float[Array, ' num_particles']:
        log_obs = log_observation(
            model, emission, proposed, params, particle_map
        )
        log_trans = log_transition(
            model, proposed, previous, params, particle_map
        )
        log_q = particle_map(
            lambda xn, x: log_proposal_fn(xn, emission, x, params)
        )(proposed, previous)
        return log_obs + log_trans - log_q

    return log_weight_increment


def bootstrap_sampler() -> ImportanceSampler:
    """Return the bootstrap (transition-density) strategy."""
    return ImportanceSampler(
        propose=bootstrap_propose,
        log_weight_increment=bootstrap_log_weight_increment,
        bootstrap=True,
    )


def proposal_sampler(
    sample_fn: Callable,
    log_proposal_fn: Callable,
) -> ImportanceSampler:
    r"""Build a strategy from a per-particle proposal distribution.

    Args:
        sample_fn: ``(key, emission, state, params) -> next_state``
            drawing from :math:`q(x_n \mid y_n, x_{n-1})`.
        log_proposal_fn: ``(next_state, emission, state, params) ->
            log_prob`` evaluating the same density.

    Returns:
        :class:`ImportanceSampler` with the general weight increment.
    """

    def propose(
        key: PRNGKeyT,
        model: StateSpaceModel,
        emission: Float[Array, ' emission_dim'],
        particles: Float[Array, 'num_particles state_dim'],
        params: Float[Array, ' param_dim'],
        particle_map: ParticleMap = vmap,
    ) -> Float[Array, 'num_particles state_dim']:
        del model
        keys = jr.split(key, particles.shape[0])
        return particle_map(
            lambda k, x: sample_fn(k, emission, x, params)
        )(keys, particles)

    return ImportanceSampler(
        propose=propose,
        log_weight_increment=general_log_weight_increment(log_proposal_fn),
        bootstrap=False,
    )
