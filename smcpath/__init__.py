# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Particle filtering, CPF-AS and lineage reconstruction in JAX."""

from importlib.metadata import PackageNotFoundError as _PackageNotFoundError
from importlib.metadata import version as _version

from smcpath.ancestor import (
    ancestor_sampler,
    conditional_filter,
    sample_ancestor_index,
)
from smcpath.config import FilterConfig, make_config, sequential_map
from smcpath.containers import (
    ConditionalPosterior,
    FilterPosterior,
    ParticleEnsemble,
    ParticleSystemTrace,
)
from smcpath.diagnostics import (
    particle_diversity,
    surviving_ancestors,
    weighted_mean,
    weighted_quantile,
    weighted_variance,
)
from smcpath.errors import (
    ConfigurationWarning,
    DegenerateWeightsWarning,
    DimensionMismatchError,
)
from smcpath.filter import particle_filter
from smcpath.lineage import (
    lineage_indices,
    reconstruct_all_trajectories,
    reconstruct_trajectory,
    smoothed_means,
)
from smcpath.model import StateSpaceModel
from smcpath.policy import effective_sample_size, resample_ess
from smcpath.proposals import (
    ImportanceSampler,
    bootstrap_sampler,
    proposal_sampler,
)
from smcpath.resampling import (
    multinomial,
    residual,
    stratified,
    systematic,
    systematic_from_offset,
)
from smcpath.simulate import simulate
from smcpath.weights import shift_normalize

try:
    __version__ = _version('smcpath')
except _PackageNotFoundError:
    __version__ = '0.0.0'

__all__ = [
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
