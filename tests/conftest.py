# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Shared test fixtures for smcpath."""

import jax
import jax.numpy as jnp
import jax.random as jr
import pytest
from tensorflow_probability.substrates.jax import distributions as tfd

import smcpath
from smcpath.model import StateSpaceModel
from smcpath.simulate import simulate


def make_lgssm_model(lgssm_params):
    """Build a :class:`StateSpaceModel` for a linear Gaussian SSM.

    All densities use ``MultivariateNormalTriL`` from TFP so that
    samplers and log-densities agree exactly.
    """
    m0 = lgssm_params['initial_mean']
    L0 = jnp.linalg.cholesky(lgssm_params['initial_cov'])
    F = lgssm_params['dynamics_weights']
    LQ = jnp.linalg.cholesky(lgssm_params['dynamics_cov'])
    H = lgssm_params['emissions_weights']
    LR = jnp.linalg.cholesky(lgssm_params['emissions_cov'])

    def initial_sampler(key, n):
        return tfd.MultivariateNormalTriL(m0, L0).sample(n, seed=key)

    def transition_sampler(key, state, params):
        return tfd.MultivariateNormalTriL(F @ state, LQ).sample(seed=key)

    def log_transition_fn(next_state, state, params):
        return tfd.MultivariateNormalTriL(F @ state, LQ).log_prob(next_state)

    def log_observation_fn(emission, state, params):
        return tfd.MultivariateNormalTriL(H @ state, LR).log_prob(emission)

    def emission_sampler(key, state, params):
        return tfd.MultivariateNormalTriL(H @ state, LR).sample(seed=key)

    return StateSpaceModel(
        initial_sampler=initial_sampler,
        transition_sampler=transition_sampler,
        log_observation_fn=log_observation_fn,
        log_transition_fn=log_transition_fn,
        emission_sampler=emission_sampler,
    )


@pytest.fixture
def package():
    """Return the top-level package module for introspection."""
    return smcpath


@pytest.fixture
def key():
    """Fixed JAX PRNG key for reproducibility."""
    return jr.PRNGKey(42)


@pytest.fixture
def lgssm_params():
    """1-D Gaussian random walk observed in noise.

    Model:
        x_0  ~ N(0, 1)
        x_n  = x_{n-1} + w,  w ~ N(0, 0.5^2)
        y_n  = x_n + v,      v ~ N(0, 1.0^2)

    Keys match Dynamax ``make_lgssm_params``.
    """
    return dict(
        initial_mean=jnp.array([0.0]),
        initial_cov=jnp.array([[1.0]]),
        dynamics_weights=jnp.array([[1.0]]),
        dynamics_cov=jnp.array([[0.25]]),  # 0.5^2
        emissions_weights=jnp.array([[1.0]]),
        emissions_cov=jnp.array([[1.0]]),
    )


@pytest.fixture
def lgssm_model(lgssm_params):
    """The random-walk model as a :class:`StateSpaceModel`."""
    return make_lgssm_model(lgssm_params)


@pytest.fixture
def lgssm_data(key, lgssm_model):
    """Simulate N=50 observations from the random-walk model.

    Returns (states, emissions) with shapes (51, 1) and (50, 1).
    """
    return simulate(key, lgssm_model, num_timesteps=50)


# Configure JAX to use 64-bit floats for higher precision in tests.
jax.config.update('jax_enable_x64', True)
