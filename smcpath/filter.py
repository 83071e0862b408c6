# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
r"""Sequential importance sampling with resampling (SISR) particle filter.

Starting from :math:`J` particles drawn from :math:`p(x_0)` with
uniform weights, every time step :math:`n = 1, \dots, N`:

1. **Resamples** conditionally on the effective sample size
   (:func:`~smcpath.policy.resample_ess`).
2. **Proposes** new particles from the resampled ancestors.
3. **Weights** them by the incremental importance weight.
4. **Normalizes** the log weights (shift to a zero maximum, then
   renormalize).
5. **Estimates** the filtered mean :math:`\hat{x}_n = \sum_i w_n^i x_n^i`.

Resampling happens *before* sampling, so with the default bootstrap
strategy this is the classic bootstrap filter of Gordon *et al.*
(1993) and with a custom strategy anything up to an auxiliary-style
filter.

The implementation uses :func:`jax.lax.scan` so the full time-loop is
compiled into a single XLA program.
"""

import logging
from collections.abc import Mapping
from typing import Any, Optional, Union

import jax.numpy as jnp
import jax.random as jr
from jax import lax
from jaxtyping import Array, Float, Int

from smcpath.config import FilterConfig, resolve_config
from smcpath.containers import (
    FilterPosterior,
    ParticleSystemTrace,
    StepSummary,
)
from smcpath.model import (
    StateSpaceModel,
    check_emissions,
    check_particles,
    expand_params,
)
from smcpath.policy import (
    default_threshold,
    effective_sample_size,
    resample_ess,
)
from smcpath.proposals import bootstrap_log_weight_increment
from smcpath.types import PRNGKeyT
from smcpath.weights import check_degeneracy, shift_normalize

logger = logging.getLogger(__name__)


def particle_filter(
    key: PRNGKeyT,
    model: StateSpaceModel,
    emissions: Float[Array, 'ntime emission_dim'],
    num_particles: int = 100,
    params: Optional[Float[Array, '...']] = None,
    config: Union[FilterConfig, Mapping[str, Any], None] = None,
) -> FilterPosterior:
    r"""Run a SISR particle filter.

    Args:
        key: JAX PRNG key.
        model: State-space model.
        emissions: Observations :math:`y_{1:N}`, shape ``(N, D)``.
        num_particles: Number of particles :math:`J`.
        params: Optional parameters :math:`\theta`, either a static
            vector or one row per observation (see
            :func:`~smcpath.model.expand_params`).
        config: :class:`~smcpath.config.FilterConfig`, or a mapping of
            options validated by :func:`~smcpath.config.make_config`.

    Returns:
        :class:`~smcpath.containers.FilterPosterior` with the filtered
        means and, if ``config.collect_trace`` is set, the particle
        system trace.

    Raises:
        DimensionMismatchError: If *emissions*, *params* or the initial
            particles have inconsistent shapes.  Raised before any
            time step runs.
    """
    config = resolve_config(config)
    emissions = check_emissions(emissions)
    num_timesteps = emissions.shape[0]
    params = expand_params(params, num_timesteps)
    threshold = config.threshold
    if threshold is None:
        threshold = default_threshold(num_particles)

    sampler = config.importance_sampler
    increment_fn = (
        bootstrap_log_weight_increment
        if config.bootstrap_shortcut
        else sampler.log_weight_increment
    )
    logger.debug(
        'Particle filter: %d particles, %d steps, ESS threshold %s.',
        num_particles,
        num_timesteps,
        threshold,
    )

    # --- Initialise at n=0 -------------------------------------------------
    key, init_key = jr.split(key)
    particles_0 = model.initial_sampler(init_key, num_particles)
    check_particles(particles_0, num_particles)
    log_w_0 = jnp.full(
        (num_particles,), -jnp.log(num_particles), dtype=particles_0.dtype
    )
    identity_ancestors = jnp.arange(num_particles, dtype=jnp.int32)

    # --- Scan body for n = 1, ..., N ---------------------------------------
    def _step(
        carry: tuple[Array, Array],
        args: tuple[PRNGKeyT, Array, Array, Int[Array, '']],
    ) -> tuple[tuple[Array, Array], tuple[StepSummary, Any]]:
        (particles, log_weights), (step_key, y_n, theta_n, n) = carry, args
        k1, k2 = jr.split(step_key)

        # 1. Conditionally resample
        ancestors, log_weights, resampled = resample_ess(
            k1, log_weights, threshold, config.resampling_fn
        )
        previous = particles[ancestors]

        # 2. Propose
        proposed = sampler.propose(
            k2, model, y_n, previous, theta_n, config.particle_map
        )

        # 3. Weight
        log_v = increment_fn(
            model, y_n, proposed, previous, theta_n, config.particle_map
        )

        # 4. Normalize
        log_w, w = shift_normalize(
            log_weights + log_v.astype(log_weights.dtype)
        )

        # 5. Point estimate
        summary = StepSummary(
            mean=w @ proposed,
            ess=effective_sample_size(log_w),
            degenerate=check_degeneracy(n, w),
        )

        record = None
        if config.collect_trace:
            record = (proposed, log_w, ancestors, resampled)
        return (proposed, log_w), (summary, record)

    step_keys = jr.split(key, num_timesteps)
    steps = jnp.arange(1, num_timesteps + 1)
    _, (summaries, records) = lax.scan(
        _step,
        (particles_0, log_w_0),
        (step_keys, emissions, params, steps),
    )

    trace = None
    if config.collect_trace:
        particles_rest, log_w_rest, ancestors_rest, resampled_rest = records
        trace = ParticleSystemTrace(
            particles=_prepend(particles_0, particles_rest),
            log_weights=_prepend(log_w_0, log_w_rest),
            ancestors=_prepend(identity_ancestors, ancestors_rest),
            resampled=_prepend(jnp.asarray(False), resampled_rest),
            ess=_prepend(
                jnp.asarray(num_particles, dtype=summaries.ess.dtype),
                summaries.ess,
            ),
            degenerate=_prepend(jnp.asarray(False), summaries.degenerate),
        )

    return FilterPosterior(filtered_means=summaries.mean, trace=trace)


def _prepend(first: Array, rest: Array) -> Array:
    """Stack the step-0 value in front of the scanned steps."""
    return jnp.concatenate([jnp.expand_dims(first, 0), rest], axis=0)
