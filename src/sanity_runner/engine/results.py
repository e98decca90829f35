# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Test outcomes, lane results, and result aggregation.

This module parses per-test lines from lane output, merges lane logs
into the combined results log, and decides the run verdict. The verdict
needs both views to be clean: the structured per-lane outcomes and a
textual scan of the combined log for the failure marker.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from sanity_runner.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Matches cargo/libtest lines like "test connectors::stripe::pay ... ok <1.204s>"
TEST_LINE_PATTERN = re.compile(
    r"^test (?P<name>.+?) \.\.\. (?P<status>ok|FAILED|ignored)"
    r"(?:, [^<]*?)?(?:\s+<(?P<duration>\d+(?:\.\d+)?)s>)?\s*$"
)


class TestStatus(str, Enum):
    """Status of a single test case."""

    __test__ = False

    PASSED = "passed"
    FAILED = "failed"


@dataclass(frozen=True)
class TestOutcome:
    """Result of one test case.

    Attributes:
        name: Fully qualified test name.
        status: Passed or failed.
        duration: Seconds the test took, when the runner reported it.
    """

    __test__ = False

    name: str
    status: TestStatus
    duration: float | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON output."""
        return {"name": self.name, "status": self.status.value, "duration": self.duration}


def parse_test_line(line: str) -> TestOutcome | None:
    """Parse one line of test runner output.

    Ignored tests and non-test lines return None.

    Example:
        >>> parse_test_line("test stripe::pay ... FAILED")
        TestOutcome(name='stripe::pay', status=<TestStatus.FAILED: 'failed'>, duration=None)
    """
    match = TEST_LINE_PATTERN.match(line.strip())
    if match is None or match.group("status") == "ignored":
        return None
    status = TestStatus.PASSED if match.group("status") == "ok" else TestStatus.FAILED
    duration = match.group("duration")
    return TestOutcome(
        name=match.group("name"),
        status=status,
        duration=float(duration) if duration is not None else None,
    )


@dataclass
class LaneResult:
    """Everything one lane produced.

    Attributes:
        lane: Zero-based lane index.
        connectors: Connectors the lane tested.
        outcomes: Parsed per-test outcomes in output order.
        exit_code: Exit code of the test command, None if it never ran.
        log_path: Path of the lane's own log file.
        elapsed_seconds: Wall-clock time of the lane.
        error: Why the lane broke before producing a verdict, if it did.
    """

    lane: int
    connectors: tuple[str, ...]
    outcomes: list[TestOutcome] = field(default_factory=list)
    exit_code: int | None = None
    log_path: Path | None = None
    elapsed_seconds: float = 0.0
    error: str | None = None

    @property
    def failed_tests(self) -> list[str]:
        """Names of failed tests in this lane."""
        return [o.name for o in self.outcomes if o.status is TestStatus.FAILED]

    @property
    def passed_count(self) -> int:
        """Number of passed tests in this lane."""
        return sum(1 for o in self.outcomes if o.status is TestStatus.PASSED)

    @property
    def passed(self) -> bool:
        """True when the command ran, exited 0 and no test failed."""
        return self.error is None and self.exit_code == 0 and not self.failed_tests

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON output."""
        return {
            "lane": self.lane,
            "connectors": list(self.connectors),
            "passed": self.passed,
            "exit_code": self.exit_code,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "log": str(self.log_path) if self.log_path else None,
            "error": self.error,
            "tests": [o.to_dict() for o in self.outcomes],
        }


@dataclass
class RunResult:
    """Aggregated result of a harness run.

    Attributes:
        lanes: Results of every lane, ordered by lane index.
        marker_count: Failure markers found in the combined log.
        results_log: Path of the combined results log.
        skipped: True when the trigger filter skipped the run.
        skip_reason: Why the run was skipped.
    """

    lanes: list[LaneResult] = field(default_factory=list)
    marker_count: int = 0
    results_log: Path | None = None
    skipped: bool = False
    skip_reason: str | None = None

    @property
    def failed_tests(self) -> list[str]:
        """Failed test names across all lanes, in lane order."""
        return [name for lane in self.lanes for name in lane.failed_tests]

    @property
    def passed(self) -> bool:
        """The run verdict. Skipped runs pass."""
        if self.skipped:
            return True
        return self.marker_count == 0 and all(lane.passed for lane in self.lanes)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a dictionary for JSON output."""
        return {
            "passed": self.passed,
            "skipped": self.skipped,
            "skip_reason": self.skip_reason,
            "marker_count": self.marker_count,
            "results_log": str(self.results_log) if self.results_log else None,
            "failed_tests": self.failed_tests,
            "lanes": [lane.to_dict() for lane in self.lanes],
        }


def merge_lane_logs(lane_logs: list[Path], results_log: Path) -> Path:
    """Append lane logs to the combined results log, in the given order.

    Lanes never write the combined log directly; it is built here once
    every lane has finished, so lane output is never interleaved.
    Missing lane logs are skipped.

    Returns:
        The path of the combined results log.
    """
    results_log.parent.mkdir(parents=True, exist_ok=True)
    with results_log.open("a", encoding="utf-8") as out:
        for lane_log in lane_logs:
            if not lane_log.exists():
                logger.warning(f"Lane log {lane_log} is missing, skipping")
                continue
            with lane_log.open(encoding="utf-8", errors="replace") as src:
                for line in src:
                    out.write(line if line.endswith("\n") else line + "\n")
            logger.debug(f"Merged {lane_log} into {results_log}")
    return results_log


def count_failure_markers(path: Path, marker: str) -> int:
    """Count lines of ``path`` that contain ``marker``.

    Raises:
        ConfigurationError: If the log does not exist.
    """
    if not path.is_file():
        raise ConfigurationError(
            f"Results log not found: {path}",
            suggestion="Run the harness first, or pass the path of an existing log",
            file_path=str(path),
        )
    with path.open(encoding="utf-8", errors="replace") as f:
        return sum(1 for line in f if marker in line)


def check_results_log(path: Path, marker: str) -> bool:
    """Return True iff the results log contains no failure marker."""
    return count_failure_markers(path, marker) == 0
