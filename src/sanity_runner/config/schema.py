# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Pydantic models for harness configuration.

This module defines all Pydantic models for validating and parsing
harness YAML configuration files.
"""

from __future__ import annotations

import shlex
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_FAILURE_MARKER = "test result: FAILED"
"""Marker written by the test command for every failing test binary."""


def _split_connectors(value: Any) -> Any:
    """Accept a comma-separated connector string wherever a list is expected."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class TriggerConfig(BaseModel):
    """Which events are allowed to start a run."""

    run_on: list[str] = Field(
        default_factory=lambda: ["workflow_dispatch", "pull_request_review"]
    )
    """Events that start a run."""

    skip_on: list[str] = Field(default_factory=lambda: ["pull_request", "merge_group"])
    """Events acknowledged with a successful no-op exit."""

    review_events: list[str] = Field(default_factory=lambda: ["pull_request_review"])
    """Events that additionally require an approving review state."""

    required_review_state: str = "approved"
    """Review state that review events must carry to run."""

    @model_validator(mode="after")
    def validate_disjoint(self) -> TriggerConfig:
        """Ensure no event is both run and skipped."""
        overlap = set(self.run_on) & set(self.skip_on)
        if overlap:
            raise ValueError(
                f"Events cannot be in both run_on and skip_on: {', '.join(sorted(overlap))}"
            )
        return self


class LimitsConfig(BaseModel):
    """Safety limits for a harness run."""

    timeout_seconds: int | None = Field(default=None, ge=1)
    """Maximum wall-clock time for the lane phase. None means unlimited."""


class ProbeDef(BaseModel):
    """How to check whether a service is healthy.

    Exactly one of ``command`` or ``port`` must be given. A command probe
    passes when it exits with code 0; a TCP probe passes when a connection
    to ``host:port`` can be opened.
    """

    command: list[str] | None = None
    """Probe command (e.g. ``["redis-cli", "ping"]``). Strings are shell-split."""

    host: str = "localhost"
    """Host for TCP probes."""

    port: int | None = Field(default=None, ge=1, le=65535)
    """Port for TCP probes."""

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, v: Any) -> Any:
        """Split a string command the way a shell would."""
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @model_validator(mode="after")
    def validate_kind(self) -> ProbeDef:
        """Ensure exactly one probe kind is configured."""
        if self.command is not None and self.port is not None:
            raise ValueError("probe must set either 'command' or 'port', not both")
        if self.command is None and self.port is None:
            raise ValueError("probe requires 'command' or 'port'")
        if self.command is not None and not self.command:
            raise ValueError("probe 'command' cannot be empty")
        return self

    @property
    def kind(self) -> Literal["command", "tcp"]:
        """Return the probe kind."""
        return "command" if self.command is not None else "tcp"


class ServiceDef(BaseModel):
    """An auxiliary service that must be healthy before tests run."""

    name: str
    """Service identifier (e.g. 'redis', 'postgres')."""

    description: str | None = None
    """Human-readable description."""

    probe: ProbeDef
    """Health probe for the service."""

    interval_seconds: float = Field(default=10.0, ge=0)
    """Delay between consecutive probes."""

    timeout_seconds: float = Field(default=5.0, gt=0)
    """Time a single probe may take before it counts as failed."""

    max_retries: int = Field(default=5, ge=1)
    """Maximum number of probes before the service is declared unavailable."""

    start_period_seconds: float = Field(default=0.0, ge=0)
    """Grace period before the first probe."""


class MatrixConfig(BaseModel):
    """How connectors are split into parallel lanes.

    Either ``connectors`` (partitioned automatically into ``lanes``) or
    ``groups`` (explicit, pre-grouped lanes) must be given.
    """

    connectors: list[str] | None = None
    """Connector identifiers. A comma-separated string is also accepted."""

    groups: list[list[str]] | None = None
    """Explicit lane contents; each entry is one lane."""

    lanes: int = Field(default=2, ge=1)
    """Number of lanes to partition ``connectors`` into."""

    strategy: Literal["contiguous", "balanced"] = "contiguous"
    """
    Partitioning strategy:
    - contiguous: consecutive slices of the connector list (default)
    - balanced: greedy assignment by weight, heaviest connectors first
    """

    weights: dict[str, float] = Field(default_factory=dict)
    """Relative run time per connector for the balanced strategy (default 1.0)."""

    max_parallel: int | None = Field(default=None, ge=1)
    """Maximum number of lanes running at once. None means all lanes."""

    @field_validator("connectors", mode="before")
    @classmethod
    def split_connectors(cls, v: Any) -> Any:
        """Accept comma-separated connector strings."""
        return _split_connectors(v)

    @field_validator("groups", mode="before")
    @classmethod
    def split_groups(cls, v: Any) -> Any:
        """Accept comma-separated strings as group rows."""
        if isinstance(v, list):
            return [_split_connectors(row) for row in v]
        return v

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: dict[str, float]) -> dict[str, float]:
        """Ensure weights are positive."""
        for name, weight in v.items():
            if weight <= 0:
                raise ValueError(f"weight for '{name}' must be positive, got {weight}")
        return v

    @model_validator(mode="after")
    def validate_source(self) -> MatrixConfig:
        """Ensure exactly one connector source is configured."""
        if self.connectors is not None and self.groups is not None:
            raise ValueError("matrix must set either 'connectors' or 'groups', not both")
        if self.connectors is None and self.groups is None:
            raise ValueError("matrix requires 'connectors' or 'groups'")
        return self

    def all_connectors(self) -> list[str]:
        """Return every configured connector in declaration order."""
        if self.groups is not None:
            return [c for row in self.groups for c in row]
        return list(self.connectors or [])


class RunnerConfig(BaseModel):
    """The external test command invoked once per lane."""

    command: list[str]
    """Command to run (e.g. ``["sh", ".github/scripts/run_ui_tests.sh"]``)."""

    connector_env: str = "INPUT"
    """Environment variable that receives the lane's comma-joined connectors."""

    env: dict[str, str] = Field(default_factory=dict)
    """Extra environment for the command (credentials path, feature flags...)."""

    inherit_env: bool = True
    """Whether the command inherits the harness process environment."""

    cwd: str | None = None
    """Working directory for the command. None means the current directory."""

    log_dir: str = "tests/lanes"
    """Directory holding one log file per lane."""

    @field_validator("command", mode="before")
    @classmethod
    def split_command(cls, v: Any) -> Any:
        """Split a string command the way a shell would."""
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("command")
    @classmethod
    def validate_command(cls, v: list[str]) -> list[str]:
        """Ensure the command is not empty."""
        if not v:
            raise ValueError("runner command cannot be empty")
        return v

    @field_validator("env", mode="before")
    @classmethod
    def stringify_env(cls, v: Any) -> Any:
        """Coerce scalar env values (true, 1) to strings."""
        if isinstance(v, dict):
            return {
                str(k): (str(val).lower() if isinstance(val, bool) else str(val))
                for k, val in v.items()
            }
        return v


class ResultsConfig(BaseModel):
    """Where results are collected and how they are judged."""

    log: str = "tests/test_results.log"
    """Combined results log; lane logs are appended to it in lane order."""

    failure_marker: str = DEFAULT_FAILURE_MARKER
    """Text whose presence in the results log fails the run."""

    reset: bool = True
    """Delete a combined log left by an earlier run before lanes start."""

    @field_validator("failure_marker")
    @classmethod
    def validate_marker(cls, v: str) -> str:
        """Ensure the marker is not empty."""
        if not v:
            raise ValueError("failure_marker cannot be empty")
        return v


class HarnessDef(BaseModel):
    """Harness-level settings."""

    name: str
    """Unique harness identifier."""

    description: str | None = None
    """Human-readable harness description."""

    version: str | None = None
    """Semantic version string."""

    triggers: TriggerConfig = Field(default_factory=TriggerConfig)
    """Events that start or skip a run."""

    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    """Execution safety limits."""


class HarnessConfig(BaseModel):
    """Complete harness configuration file."""

    harness: HarnessDef
    """Harness-level settings."""

    services: list[ServiceDef] = Field(default_factory=list)
    """Services gated before any lane starts, in order."""

    matrix: MatrixConfig
    """Connector matrix."""

    runner: RunnerConfig
    """Per-lane test command."""

    results: ResultsConfig = Field(default_factory=ResultsConfig)
    """Results log and failure marker."""

    @model_validator(mode="after")
    def validate_service_names(self) -> HarnessConfig:
        """Ensure service names are unique."""
        seen: set[str] = set()
        for service in self.services:
            if service.name in seen:
                raise ValueError(f"Duplicate service name '{service.name}'")
            seen.add(service.name)
        return self
