# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Forward simulation from a state-space model.

Generates one trajectory of latent states and observations by drawing
from the initial, transition and emission distributions in turn.  The
time convention matches the filters: :math:`x_0` has no observation and
:math:`y_n` is emitted from :math:`x_n` for :math:`n = 1, \dots, N`.

The implementation uses :func:`jax.lax.scan` so the full time-loop is
compiled into a single XLA program.
"""

from typing import Optional

import jax.numpy as jnp
import jax.random as jr
from jax import lax
from jaxtyping import Array, Float

from smcpath.model import StateSpaceModel, expand_params
from smcpath.types import PRNGKeyT


def simulate(
    key: PRNGKeyT,
    model: StateSpaceModel,
    num_timesteps: int,
    params: Optional[Float[Array, '...']] = None,
) -> tuple[
    Float[Array, 'ntime_plus_one state_dim'],
    Float[Array, 'ntime emission_dim'],
]:
    r"""Simulate a single trajectory from a state-space model.

    Args:
        key: JAX PRNG key.
        model: State-space model with an ``emission_sampler``.
        num_timesteps: Number of observations :math:`N`.
        params: Optional parameters :math:`\theta` (see
            :func:`~smcpath.model.expand_params`).

    Returns:
        A tuple ``(states, emissions)`` where *states* has shape
        ``(N + 1, state_dim)`` and *emissions* has shape
        ``(N, emission_dim)``.

    Raises:
        ValueError: If the model has no ``emission_sampler``.
    """
    if model.emission_sampler is None:
        raise ValueError('simulate requires model.emission_sampler.')
    params = expand_params(params, num_timesteps)
    k_init, k_rest = jr.split(key)
    x_0 = model.initial_sampler(k_init, 1)[0]

    def _step(
        x_prev: Array,
        args: tuple[PRNGKeyT, Array],
    ) -> tuple[Array, tuple[Array, Array]]:
        step_key, theta_n = args
        k_x, k_y = jr.split(step_key)
        x_n = model.transition_sampler(k_x, x_prev, theta_n)
        y_n = model.emission_sampler(k_y, x_n, theta_n)
        return x_n, (x_n, y_n)

    step_keys = jr.split(k_rest, num_timesteps)
    _, (states_rest, emissions) = lax.scan(_step, x_0, (step_keys, params))
    states = jnp.concatenate([x_0[None], states_rest], axis=0)
    return states, emissions
