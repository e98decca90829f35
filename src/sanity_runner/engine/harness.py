# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Harness engine for Sanity Runner.

This module provides the HarnessEngine class, which sequences a complete
run: trigger check, readiness gate, matrix, lanes, and aggregation.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from sanity_runner.engine.invoker import LineCallback, TestRunnerInvoker, resolve_executable
from sanity_runner.engine.limits import LimitEnforcer
from sanity_runner.engine.matrix import ConnectorGroup, build_matrix
from sanity_runner.engine.readiness import ProbeFn, ReadinessGate, SleepFn
from sanity_runner.engine.results import (
    LaneResult,
    RunResult,
    count_failure_markers,
    merge_lane_logs,
)
from sanity_runner.engine.triggers import TriggerDecision, TriggerEvent, evaluate_trigger
from sanity_runner.exceptions import (
    ScriptInvocationError,
    TestFailureError,
)
from sanity_runner.exceptions import (
    TimeoutError as RunnerTimeoutError,
)

if TYPE_CHECKING:
    from sanity_runner.config.schema import HarnessConfig

logger = logging.getLogger(__name__)


def _verbose_log(message: str, style: str = "dim") -> None:
    """Lazy import wrapper for verbose_log to avoid circular imports."""
    from sanity_runner.cli.run import verbose_log

    verbose_log(message, style)


def _verbose_log_timing(operation: str, elapsed: float) -> None:
    """Lazy import wrapper for verbose_log_timing to avoid circular imports."""
    from sanity_runner.cli.run import verbose_log_timing

    verbose_log_timing(operation, elapsed)


@dataclass
class ExecutionPlan:
    """What a run would do, without doing it.

    Used by the ``plan`` command and ``run --dry-run``.
    """

    harness_name: str
    """Name of the harness."""

    groups: list[ConnectorGroup] = field(default_factory=list)
    """Lanes and their connectors."""

    services: list[str] = field(default_factory=list)
    """Services gated before the lanes start, in order."""

    command: list[str] = field(default_factory=list)
    """Test command run once per lane."""

    connector_env: str = "INPUT"
    """Variable carrying each lane's connectors."""

    results_log: str = ""
    """Combined results log."""

    failure_marker: str = ""
    """Marker that fails the run."""

    max_parallel: int | None = None
    """Maximum lanes running at once. None means all."""

    timeout_seconds: int | None = None
    """Lane-phase timeout. None means unlimited."""


class HarnessEngine:
    """Orchestrates a harness run.

    The HarnessEngine manages the complete lifecycle of a run:
    1. Decide from the trigger event whether to run at all
    2. Block on the readiness gate until every service is healthy
    3. Partition connectors into lanes
    4. Run every lane in parallel, fail-slow
    5. Merge lane logs into the combined results log and judge it

    Example:
        >>> from sanity_runner.config.loader import load_config
        >>> config = load_config("harness.yaml")
        >>> engine = HarnessEngine(config)
        >>> result = await engine.run(TriggerEvent(name="workflow_dispatch"))
        >>> engine.ensure_passed(result)
    """

    def __init__(
        self,
        config: HarnessConfig,
        probe: ProbeFn | None = None,
        sleep: SleepFn | None = None,
        on_line: LineCallback | None = None,
    ) -> None:
        """Initialize the HarnessEngine.

        Args:
            config: The harness configuration.
            probe: Optional probe override for the readiness gate.
            sleep: Optional sleep override for the readiness gate.
            on_line: Optional callback receiving every lane output line.
        """
        self.config = config
        self.gate = ReadinessGate(config.services, probe=probe, sleep=sleep)
        self.invoker = TestRunnerInvoker(config.runner, on_line=on_line)
        self.limits = LimitEnforcer(timeout_seconds=config.harness.limits.timeout_seconds)

    def decide(self, event: TriggerEvent | None = None) -> TriggerDecision:
        """Decide whether the event starts a run."""
        return evaluate_trigger(event or TriggerEvent(), self.config.harness.triggers)

    def build_execution_plan(self) -> ExecutionPlan:
        """Describe the run without probing services or starting lanes."""
        return ExecutionPlan(
            harness_name=self.config.harness.name,
            groups=build_matrix(self.config.matrix),
            services=[s.name for s in self.config.services],
            command=list(self.config.runner.command),
            connector_env=self.config.runner.connector_env,
            results_log=self.config.results.log,
            failure_marker=self.config.results.failure_marker,
            max_parallel=self.config.matrix.max_parallel,
            timeout_seconds=self.limits.timeout_seconds,
        )

    async def run(self, event: TriggerEvent | None = None) -> RunResult:
        """Execute the harness.

        Args:
            event: The invoking event. None means a manual run.

        Returns:
            RunResult with per-lane results and the marker count. Test
            failures are recorded on the result, not raised.

        Raises:
            DependencyUnavailableError: If a service never became healthy.
            ScriptInvocationError: If the test command cannot be started.
            TimeoutError: If the lane phase exceeds its timeout.
        """
        results_log = Path(self.config.results.log)

        decision = self.decide(event)
        if not decision.run:
            _verbose_log(f"Skipping run: {decision.reason}", style="yellow")
            return RunResult(skipped=True, skip_reason=decision.reason, results_log=results_log)
        _verbose_log(f"Running: {decision.reason}")

        if self.config.services:
            gate_start = time.monotonic()
            _verbose_log(f"Waiting for services: {', '.join(s.name for s in self.config.services)}")
            await self.gate.wait()
            _verbose_log_timing("Services ready", time.monotonic() - gate_start)

        groups = build_matrix(self.config.matrix)
        if groups:
            resolve_executable(list(self.config.runner.command), self.config.runner.cwd)

        if self.config.results.reset and results_log.exists():
            results_log.unlink()

        lanes = await self._run_lanes(groups)

        merge_lane_logs([lane.log_path for lane in lanes if lane.log_path], results_log)
        marker_count = (
            count_failure_markers(results_log, self.config.results.failure_marker)
            if results_log.exists()
            else 0
        )

        result = RunResult(lanes=lanes, marker_count=marker_count, results_log=results_log)
        _verbose_log(
            f"Run {'passed' if result.passed else 'failed'}: {len(lanes)} lane(s), "
            f"{len(result.failed_tests)} failed test(s), {marker_count} failure marker(s)",
            style="green" if result.passed else "red",
        )
        return result

    async def _run_lanes(self, groups: list[ConnectorGroup]) -> list[LaneResult]:
        """Run every lane; a failing lane never stops its siblings.

        A lane that breaks for any reason other than an unstartable command
        is recorded as a LaneResult carrying the error, so the remaining
        lanes are still merged and judged.
        """
        if not groups:
            return []

        limit = self.config.matrix.max_parallel or len(groups)
        semaphore = asyncio.Semaphore(limit)
        started: list[ConnectorGroup] = []

        async def run_one(group: ConnectorGroup) -> LaneResult:
            async with semaphore:
                started.append(group)
                self.invoker.lane_log_path(group.lane).unlink(missing_ok=True)
                _verbose_log(f"Lane {group.lane} started: {group.selection}", style="cyan")
                lane = await self.invoker.run_lane(group)
                _verbose_log_timing(f"Lane {group.lane} finished", lane.elapsed_seconds)
                return lane

        self.limits.start()
        try:
            async with self.limits.timeout_context():
                outcomes: list[Any] = await asyncio.gather(
                    *(run_one(group) for group in groups), return_exceptions=True
                )
        except RunnerTimeoutError:
            # Only lanes that started wrote a log during this run
            started.sort(key=lambda g: g.lane)
            merge_lane_logs(
                [self.invoker.lane_log_path(g.lane) for g in started],
                Path(self.config.results.log),
            )
            raise

        # Invocation errors are fatal; surface them ahead of anything else
        for outcome in outcomes:
            if isinstance(outcome, ScriptInvocationError):
                raise outcome

        lanes: list[LaneResult] = []
        for group, outcome in zip(groups, outcomes):
            if isinstance(outcome, LaneResult):
                lanes.append(outcome)
                continue
            if not isinstance(outcome, Exception):
                raise outcome
            logger.error(f"Lane {group.lane} failed: {outcome}")
            _verbose_log(f"Lane {group.lane} failed: {outcome}", style="red")
            log_path = self.invoker.lane_log_path(group.lane)
            lanes.append(
                LaneResult(
                    lane=group.lane,
                    connectors=group.connectors,
                    log_path=log_path if log_path.exists() else None,
                    error=f"{type(outcome).__name__}: {outcome}",
                )
            )
        return lanes

    def ensure_passed(self, result: RunResult) -> None:
        """Raise if the run verdict is failure.

        Raises:
            TestFailureError: If any lane failed or the log holds a failure marker.
        """
        if result.passed:
            return

        failing_lanes = [lane.lane for lane in result.lanes if not lane.passed]
        raise TestFailureError(
            f"Sanity run failed: {len(result.failed_tests)} failed test(s), "
            f"{result.marker_count} failure marker(s), failing lanes: "
            f"{', '.join(str(n) for n in failing_lanes) or 'none'}",
            failed_tests=result.failed_tests,
            marker_count=result.marker_count,
            results_log=str(result.results_log) if result.results_log else None,
        )
