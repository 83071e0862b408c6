# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Tests for the package-level API."""

from importlib.metadata import PackageNotFoundError
from unittest.mock import patch

from smcpath import __version__


def test_version_is_accessible():
    """Test that __version__ is a non-empty string."""
    assert isinstance(__version__, str)
    assert __version__ != ''


def test_public_api_exports_all_expected_names(package):
    """Test that __all__ contains exactly the expected public API."""
    expected = [
        'ConditionalPosterior',
        'ConfigurationWarning',
        'DegenerateWeightsWarning',
        'DimensionMismatchError',
        'FilterConfig',
        'FilterPosterior',
        'ImportanceSampler',
        'ParticleEnsemble',
        'ParticleSystemTrace',
        'StateSpaceModel',
        '__version__',
        'ancestor_sampler',
        'bootstrap_sampler',
        'conditional_filter',
        'effective_sample_size',
        'lineage_indices',
        'make_config',
        'multinomial',
        'particle_diversity',
        'particle_filter',
        'proposal_sampler',
        'reconstruct_all_trajectories',
        'reconstruct_trajectory',
        'resample_ess',
        'residual',
        'sample_ancestor_index',
        'sequential_map',
        'shift_normalize',
        'simulate',
        'smoothed_means',
        'stratified',
        'surviving_ancestors',
        'systematic',
        'systematic_from_offset',
        'weighted_mean',
        'weighted_quantile',
        'weighted_variance',
    ]
    assert sorted(package.__all__) == sorted(expected)


def test_public_names_resolve(package):
    for name in package.__all__:
        assert hasattr(package, name), name


def test_version_fallback_when_package_not_found():
    """Test that __version__ falls back to '0.0.0' when not installed."""
    import importlib

    import smcpath

    with patch(
        'importlib.metadata.version',
        side_effect=PackageNotFoundError,
    ):
        importlib.reload(smcpath)
        assert smcpath.__version__ == '0.0.0'

    # Restore the real version
    importlib.reload(smcpath)
