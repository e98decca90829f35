# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Cross-field validators for harness configuration.

This module provides additional validation beyond Pydantic schema validation,
including semantic checks on the connector matrix and runner environment.
"""

from __future__ import annotations

import re
from collections import Counter
from typing import TYPE_CHECKING

from sanity_runner.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sanity_runner.config.schema import HarnessConfig, MatrixConfig, RunnerConfig

# Connector ids as used by the test binaries: lowercase words, digits, underscores
CONNECTOR_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_]*$")

# Environment variable names accepted by POSIX shells
ENV_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_harness_config(config: HarnessConfig) -> list[str]:
    """Perform semantic validation of a harness configuration.

    Args:
        config: The HarnessConfig to validate.

    Returns:
        A list of warning messages (non-fatal issues).

    Raises:
        ConfigurationError: If any validation errors are found.
    """
    errors: list[str] = []
    warnings: list[str] = []

    matrix_errors, matrix_warnings = _validate_matrix(config.matrix)
    errors.extend(matrix_errors)
    warnings.extend(matrix_warnings)

    errors.extend(_validate_runner_env(config.runner))

    if not config.services:
        warnings.append("No services are gated; lanes will start without a readiness check")

    if errors:
        raise ConfigurationError(
            "Harness configuration validation failed:\n  - " + "\n  - ".join(errors),
            suggestion="Fix the validation errors listed above and try again.",
        )

    return warnings


def _validate_matrix(matrix: MatrixConfig) -> tuple[list[str], list[str]]:
    """Validate connector ids, duplicates, weights and lane counts.

    Args:
        matrix: The matrix section of the harness.

    Returns:
        Tuple of (error messages, warning messages).
    """
    errors: list[str] = []
    warnings: list[str] = []

    connectors = matrix.all_connectors()
    known = set(connectors)

    duplicates = sorted(name for name, count in Counter(connectors).items() if count > 1)
    if duplicates:
        errors.append(f"Duplicate connectors in matrix: {', '.join(duplicates)}")

    for name in connectors:
        if not CONNECTOR_ID_PATTERN.match(name):
            errors.append(
                f"Invalid connector id '{name}'. Use lowercase letters, digits and underscores"
            )

    if matrix.groups is not None:
        for i, row in enumerate(matrix.groups):
            if not row:
                errors.append(f"Matrix group {i} is empty")
        if matrix.weights:
            warnings.append("matrix.weights is ignored when explicit groups are given")
    else:
        if not connectors:
            warnings.append("Matrix has no connectors; the run will execute no lanes")
        elif matrix.lanes > len(connectors):
            warnings.append(
                f"matrix.lanes ({matrix.lanes}) exceeds the number of connectors "
                f"({len(connectors)}); {len(connectors)} lane(s) will be used"
            )
        if matrix.weights and matrix.strategy == "contiguous":
            warnings.append("matrix.weights only affects the 'balanced' strategy")

    unknown = sorted(set(matrix.weights) - known)
    if unknown:
        errors.append(f"matrix.weights references unknown connectors: {', '.join(unknown)}")

    return errors, warnings


def _validate_runner_env(runner: RunnerConfig) -> list[str]:
    """Validate environment variable names used by the runner."""
    errors: list[str] = []

    if not ENV_NAME_PATTERN.match(runner.connector_env):
        errors.append(f"runner.connector_env '{runner.connector_env}' is not a valid variable name")

    for name in runner.env:
        if not ENV_NAME_PATTERN.match(name):
            errors.append(f"runner.env key '{name}' is not a valid variable name")

    if runner.connector_env in runner.env:
        errors.append(
            f"runner.env must not set '{runner.connector_env}'; it is filled per lane"
        )

    return errors
