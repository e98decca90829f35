# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Configuration module for Sanity Runner.

This module handles YAML parsing, Pydantic schema validation,
and environment variable resolution.
"""

from sanity_runner.config.loader import (
    ConfigLoader,
    load_config,
    load_config_string,
    resolve_env_vars,
)
from sanity_runner.config.schema import (
    DEFAULT_FAILURE_MARKER,
    HarnessConfig,
    HarnessDef,
    LimitsConfig,
    MatrixConfig,
    ProbeDef,
    ResultsConfig,
    RunnerConfig,
    ServiceDef,
    TriggerConfig,
)
from sanity_runner.config.validator import validate_harness_config

__all__ = [
    # Loader
    "ConfigLoader",
    "load_config",
    "load_config_string",
    "resolve_env_vars",
    # Schema models
    "DEFAULT_FAILURE_MARKER",
    "HarnessConfig",
    "HarnessDef",
    "LimitsConfig",
    "MatrixConfig",
    "ProbeDef",
    "ResultsConfig",
    "RunnerConfig",
    "ServiceDef",
    "TriggerConfig",
    # Validator
    "validate_harness_config",
]
