# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Filter configuration.

:class:`FilterConfig` is an immutable record of the pluggable
strategies and scalar options shared by
:func:`~smcpath.filter.particle_filter` and
:func:`~smcpath.ancestor.conditional_filter`.  Build it with
:func:`make_config`, which validates the options once: unknown keys and
inconsistent strategy combinations are discarded with a
:class:`~smcpath.errors.ConfigurationWarning` instead of failing the
run.
"""

import logging
import warnings
from collections.abc import Callable, Mapping
from typing import Any, NamedTuple, Optional, Union

from jax import lax, vmap

from smcpath.errors import ConfigurationWarning
from smcpath.proposals import (
    ImportanceSampler,
    bootstrap_propose,
    bootstrap_sampler,
)
from smcpath.resampling import systematic
from smcpath.types import ParticleMap

logger = logging.getLogger(__name__)


def sequential_map(fn: Callable) -> Callable:
    """Drop-in replacement for ``jax.vmap`` that loops over particles.

    Uses :func:`jax.lax.map`, so memory stays at one particle's worth of
    intermediates.  Useful for densities too large to vectorize.  Given
    the same per-particle keys it returns exactly what ``vmap`` returns.
    """

    def mapped(*args: Any) -> Any:
        return lax.map(lambda a: fn(*a), args)

    return mapped


class FilterConfig(NamedTuple):
    """Options for the particle filters.

    Attributes:
        threshold: ESS below which the conditional resampling policy
            resamples.  ``None`` means ``num_particles / 3``.  Ignored by
            CPF-AS, which resamples every step.
        resampling_fn: ``(key, weights, num_samples) -> indices``.
        importance_sampler: Proposal and matching weight increment.
        sample_ancestor_index: CPF-AS ancestor sampler, see
            :func:`smcpath.ancestor.sample_ancestor_index`.  ``None``
            selects that default.
        ancestor_state: Initial auxiliary state threaded through
            *sample_ancestor_index*.
        bootstrap_shortcut: Weight by the observation likelihood only.
            Only honoured for bootstrap importance samplers.
        collect_trace: Return the full particle system trace from
            :func:`~smcpath.filter.particle_filter`.
        particle_map: Map over the particle axis used for per-particle
            callables (``jax.vmap`` or :func:`sequential_map`).
    """

    threshold: Optional[float] = None
    resampling_fn: Callable = systematic
    importance_sampler: ImportanceSampler = bootstrap_sampler()
    sample_ancestor_index: Optional[Callable] = None
    ancestor_state: Any = None
    bootstrap_shortcut: bool = False
    collect_trace: bool = False
    particle_map: ParticleMap = vmap


_STRATEGY_KEYS = ('propose', 'log_weight_increment')


def make_config(**options: Any) -> FilterConfig:
    """Validate user options and build a :class:`FilterConfig`.

    Accepts every :class:`FilterConfig` field plus ``propose`` and
    ``log_weight_increment``, which replace the corresponding members
    of the importance sampler.

    Args:
        **options: Configuration options.

    Returns:
        The validated configuration.  Unknown keys are dropped and a
        :class:`~smcpath.errors.ConfigurationWarning` is emitted for
        each of them.
    """
    known = {}
    for name, value in options.items():
        if name in FilterConfig._fields or name in _STRATEGY_KEYS:
            known[name] = value
        else:
            _warn(f'Discarding unknown configuration option {name!r}.')

    propose = known.pop('propose', None)
    increment = known.pop('log_weight_increment', None)
    sampler = known.get('importance_sampler', bootstrap_sampler())
    if propose is not None or increment is not None:
        sampler = _assemble_sampler(sampler, propose, increment)
        known['importance_sampler'] = sampler

    if known.get('bootstrap_shortcut', False) and not sampler.bootstrap:
        _warn(
            'bootstrap_shortcut requires a proposal that samples from the '
            'transition density; using the full weight increment instead.'
        )
        known['bootstrap_shortcut'] = False

    return FilterConfig(**known)


def resolve_config(
    config: Union[FilterConfig, Mapping[str, Any], None],
) -> FilterConfig:
    """Return *config* as a :class:`FilterConfig`.

    Mappings are validated through :func:`make_config`; ``None`` gives
    the defaults.
    """
    if config is None:
        return FilterConfig()
    if isinstance(config, FilterConfig):
        return config
    return make_config(**config)


def _assemble_sampler(
    sampler: ImportanceSampler,
    propose: Optional[Callable],
    increment: Optional[Callable],
) -> ImportanceSampler:
    if propose is not None and increment is None:
        if propose is not bootstrap_propose:
            _warn(
                'A custom propose was given without a matching '
                'log_weight_increment; weights keep assuming that the '
                'proposal cancels the transition density.'
            )
        increment = sampler.log_weight_increment
    if propose is None or propose is sampler.propose:
        propose, bootstrap = sampler.propose, sampler.bootstrap
    else:
        bootstrap = propose is bootstrap_propose
    if increment is None:
        increment = sampler.log_weight_increment
    return ImportanceSampler(propose, increment, bootstrap)


def _warn(message: str) -> None:
    logger.warning(message)
    warnings.warn(message, ConfigurationWarning, stacklevel=3)
