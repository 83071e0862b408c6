# Copyright 2026 Michael Ellis
# SPDX-License-Identifier: Apache-2.0
"""Warnings and exceptions raised by smcpath.

Setup problems are exceptions and abort before any time step runs.
Problems the filters can live with (discarded options, transient
weight degeneracy) are :mod:`warnings`, so callers can escalate them
with a warnings filter if they prefer a hard failure.
"""


class DimensionMismatchError(ValueError):
    """Observation, parameter or reference shapes disagree with the model."""


class ConfigurationWarning(UserWarning):
    """A configuration option was discarded or overridden."""


class DegenerateWeightsWarning(RuntimeWarning):
    """Normalized particle weights contain NaN or infinite values.

    Estimates from the affected step onwards are unreliable until the
    weights recover or the run ends.
    """
