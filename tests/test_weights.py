# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for smcpath.weights -- validated against hand-computed values."""

import logging
import warnings

import jax
import jax.numpy as jnp
import pytest

from smcpath.errors import DegenerateWeightsWarning
from smcpath.weights import (
    check_degeneracy,
    is_degenerate,
    shift_normalize,
)


class TestShiftNormalize:
    """Tests for shift_normalize."""

    def test_uniform_weights(self):
        """Uniform log-weights [0, 0, 0] -> log(1/3) each."""
        log_w, w = shift_normalize(jnp.array([0.0, 0.0, 0.0]))
        assert jnp.allclose(log_w, jnp.log(1.0 / 3.0), atol=1e-12)
        assert jnp.allclose(w, 1.0 / 3.0, atol=1e-12)

    @pytest.mark.parametrize(
        'log_weights',
        [
            jnp.array([1.0, 2.0, 3.0, 4.0]),
            jnp.array([1000.0, 1000.0, 999.0]),
            jnp.array([-1000.0, -1000.0, -1001.0]),
            jnp.array([0.0, -jnp.inf, -5.0]),
        ],
    )
    def test_sums_to_one(self, log_weights):
        """exp(log_w) sums to one even for extreme magnitudes."""
        log_w, w = shift_normalize(log_weights)
        assert jnp.allclose(jnp.sum(jnp.exp(log_w)), 1.0, atol=1e-12)
        assert jnp.allclose(jnp.sum(w), 1.0, atol=1e-12)
        assert jnp.all(w >= 0.0)

    def test_matches_logsumexp(self):
        """Shift-then-renormalize agrees with logsumexp normalization."""
        lw = jnp.array([-3.0, 0.5, 2.0, 2.0])
        log_w, _ = shift_normalize(lw)
        expected = lw - jax.nn.logsumexp(lw)
        assert jnp.allclose(log_w, expected, atol=1e-12)

    def test_all_minus_inf_is_nan(self):
        """No particle supports the data -> NaN weights, no exception."""
        log_w, w = shift_normalize(jnp.full(4, -jnp.inf))
        assert jnp.all(jnp.isnan(w))
        assert jnp.all(jnp.isnan(log_w))


class TestDegeneracy:
    """Tests for is_degenerate and check_degeneracy."""

    def test_is_degenerate(self):
        assert not is_degenerate(jnp.array([0.5, 0.5]))
        assert is_degenerate(jnp.array([jnp.nan, 0.5]))
        assert is_degenerate(jnp.array([jnp.inf, 0.0]))

    def test_check_degeneracy_warns(self):
        """A degenerate weight vector emits DegenerateWeightsWarning."""
        with pytest.warns(DegenerateWeightsWarning, match='step 7'):
            flag = check_degeneracy(7, jnp.array([jnp.nan, jnp.nan]))
            jax.effects_barrier()
        assert flag

    def test_check_degeneracy_silent(self):
        """Healthy weights do not warn."""
        with warnings.catch_warnings():
            warnings.simplefilter('error', DegenerateWeightsWarning)
            flag = check_degeneracy(1, jnp.array([0.25, 0.75]))
            jax.effects_barrier()
        assert not flag

    def test_warning_points_at_weights_module(self):
        """The warning is attributed to this package, not JAX internals."""
        with pytest.warns(DegenerateWeightsWarning) as record:
            check_degeneracy(2, jnp.array([jnp.inf, 0.0]))
            jax.effects_barrier()
        assert record[0].filename.endswith('weights.py')

    def test_degeneracy_is_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger='smcpath.weights'):
            with pytest.warns(DegenerateWeightsWarning):
                check_degeneracy(4, jnp.array([jnp.nan, 1.0]))
                jax.effects_barrier()
        assert 'step 4' in caplog.text
