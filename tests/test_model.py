# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for smcpath.model -- shape validation and particle mapping."""

import jax.numpy as jnp
import jax.random as jr
import pytest

from smcpath.config import sequential_map
from smcpath.errors import DimensionMismatchError
from smcpath.model import (
    StateSpaceModel,
    check_emissions,
    check_particles,
    expand_params,
    log_observation,
    log_transition,
    sample_transition,
)


def _batched(model):
    """Add batched forms equivalent to the per-particle callables."""

    def batched_transition_sampler(keys, states, params):
        return jnp.stack(
            [
                model.transition_sampler(k, x, params)
                for k, x in zip(keys, states)
            ]
        )

    def batched_log_transition_fn(next_states, states, params):
        return jnp.stack(
            [
                model.log_transition_fn(xn, x, params)
                for xn, x in zip(next_states, states)
            ]
        )

    def batched_log_observation_fn(emission, states, params):
        return jnp.stack(
            [model.log_observation_fn(emission, x, params) for x in states]
        )

    return model._replace(
        batched_transition_sampler=batched_transition_sampler,
        batched_log_transition_fn=batched_log_transition_fn,
        batched_log_observation_fn=batched_log_observation_fn,
    )


class TestExpandParams:
    """Per-step parameter broadcasting."""

    def test_none(self):
        params = expand_params(None, 5)
        assert params.shape == (5, 0)

    def test_static_vector(self):
        params = expand_params(jnp.array([1.0, 2.0]), 4)
        assert params.shape == (4, 2)
        assert jnp.all(params[3] == jnp.array([1.0, 2.0]))

    def test_per_step(self):
        theta = jnp.arange(6.0).reshape(3, 2)
        assert jnp.array_equal(expand_params(theta, 3), theta)

    def test_wrong_number_of_rows(self):
        with pytest.raises(DimensionMismatchError):
            expand_params(jnp.zeros((4, 2)), 3)

    def test_too_many_dims(self):
        with pytest.raises(DimensionMismatchError):
            expand_params(jnp.zeros((3, 2, 1)), 3)


class TestShapeChecks:
    """Validation of emissions and initial particles."""

    def test_valid_emissions(self):
        y = check_emissions(jnp.zeros((10, 2)))
        assert y.shape == (10, 2)

    @pytest.mark.parametrize(
        'emissions', [jnp.zeros(10), jnp.zeros((0, 1)), jnp.zeros((2, 2, 2))]
    )
    def test_invalid_emissions(self, emissions):
        with pytest.raises(DimensionMismatchError):
            check_emissions(emissions)

    def test_dimension_mismatch_is_value_error(self):
        with pytest.raises(ValueError):
            check_emissions(jnp.zeros(3))

    def test_particles(self):
        check_particles(jnp.zeros((5, 1)), 5)
        with pytest.raises(DimensionMismatchError):
            check_particles(jnp.zeros((4, 1)), 5)
        with pytest.raises(DimensionMismatchError):
            check_particles(jnp.zeros(5), 5)


class TestParticleMapping:
    """Per-particle, batched and sequential forms agree exactly."""

    def test_sequential_map_matches_vmap(self, key, lgssm_model):
        particles = jr.normal(jr.PRNGKey(1), (8, 1))
        theta = jnp.zeros(0)
        vmapped = sample_transition(lgssm_model, key, particles, theta)
        looped = sample_transition(
            lgssm_model, key, particles, theta, sequential_map
        )
        assert jnp.allclose(vmapped, looped, atol=1e-12)

    def test_batched_sampler_matches_per_particle(self, key, lgssm_model):
        particles = jr.normal(jr.PRNGKey(2), (6, 1))
        theta = jnp.zeros(0)
        fast = _batched(lgssm_model)
        assert jnp.allclose(
            sample_transition(lgssm_model, key, particles, theta),
            sample_transition(fast, key, particles, theta),
            atol=1e-12,
        )

    def test_batched_densities_match_per_particle(self, lgssm_model):
        x = jr.normal(jr.PRNGKey(3), (6, 1))
        xn = jr.normal(jr.PRNGKey(4), (6, 1))
        y = jnp.array([0.3])
        theta = jnp.zeros(0)
        fast = _batched(lgssm_model)
        assert jnp.allclose(
            log_transition(lgssm_model, xn, x, theta),
            log_transition(fast, xn, x, theta),
            atol=1e-12,
        )
        assert jnp.allclose(
            log_observation(lgssm_model, y, x, theta),
            log_observation(fast, y, x, theta),
            atol=1e-12,
        )

    def test_missing_transition_density(self, lgssm_model):
        model = lgssm_model._replace(log_transition_fn=None)
        x = jnp.zeros((3, 1))
        with pytest.raises(ValueError, match='log_transition_fn'):
            log_transition(model, x, x, jnp.zeros(0))

    def test_model_is_named_tuple(self, lgssm_model):
        assert isinstance(lgssm_model, StateSpaceModel)
        assert lgssm_model.batched_transition_sampler is None
