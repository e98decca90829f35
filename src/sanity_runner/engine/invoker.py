# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Per-lane invocation of the external test command.

Each lane runs the configured command exactly once, with the lane's
connectors in a dedicated environment variable. Output is streamed line
by line into the lane's own log file and parsed into TestOutcome records
as it arrives. Failing tests are recorded, never retried.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import time
from collections.abc import AsyncIterator, Callable
from pathlib import Path
from typing import TYPE_CHECKING

from sanity_runner.engine.results import LaneResult, parse_test_line
from sanity_runner.exceptions import ScriptInvocationError

if TYPE_CHECKING:
    from sanity_runner.config.schema import RunnerConfig
    from sanity_runner.engine.matrix import ConnectorGroup

logger = logging.getLogger(__name__)

LANE_ENV = "SANITY_LANE"
"""Environment variable carrying the zero-based lane index."""

OUTPUT_CHUNK_SIZE = 64 * 1024
"""Bytes read from a lane's output per read. Lines may be any length."""

LineCallback = Callable[[int, str], None]


def resolve_executable(command: list[str], cwd: str | None = None) -> str:
    """Locate the program a command would start.

    Bare names are looked up on PATH; names containing a path separator
    are resolved against ``cwd``.

    Returns:
        The resolved path of the program.

    Raises:
        ScriptInvocationError: If the program is missing or not executable.
    """
    program = command[0]

    if os.sep in program or (os.altsep and os.altsep in program):
        path = Path(program)
        if not path.is_absolute():
            path = Path(cwd or ".") / path
        if not path.is_file():
            raise ScriptInvocationError(f"Test command not found: {path}", command=command)
        if not os.access(path, os.X_OK):
            raise ScriptInvocationError(f"Test command is not executable: {path}", command=command)
        return str(path)

    found = shutil.which(program)
    if found is None:
        raise ScriptInvocationError(f"Test command '{program}' not found on PATH", command=command)
    return found


async def read_lines(
    stream: asyncio.StreamReader,
    chunk_size: int = OUTPUT_CHUNK_SIZE,
) -> AsyncIterator[str]:
    """Yield decoded lines from a stream, without a line-length limit.

    A final line without a trailing newline is still yielded.
    """
    pending = b""
    while True:
        chunk = await stream.read(chunk_size)
        if not chunk:
            break
        pending += chunk
        *complete, pending = pending.split(b"\n")
        for raw in complete:
            yield raw.decode(errors="replace").rstrip("\r")
    if pending:
        yield pending.decode(errors="replace").rstrip("\r")


class TestRunnerInvoker:
    """Runs the test command for one lane at a time.

    Example:
        >>> invoker = TestRunnerInvoker(config.runner)
        >>> result = await invoker.run_lane(group)
        >>> result.failed_tests
        ['connectors::stripe::test_3ds_payment']
    """

    __test__ = False

    def __init__(
        self,
        runner: RunnerConfig,
        on_line: LineCallback | None = None,
    ) -> None:
        """Initialize the TestRunnerInvoker.

        Args:
            runner: Runner configuration (command, env, log directory).
            on_line: Optional callback receiving (lane, line) for every output line.
        """
        self.runner = runner
        self.on_line = on_line
        self.log_dir = Path(runner.log_dir)

    def lane_log_path(self, lane: int) -> Path:
        """Return the log file used by a lane."""
        return self.log_dir / f"lane-{lane}.log"

    def build_env(self, group: ConnectorGroup) -> dict[str, str]:
        """Build the environment for a lane's command."""
        env: dict[str, str] = dict(os.environ) if self.runner.inherit_env else {}
        env.update(self.runner.env)
        env[self.runner.connector_env] = group.selection
        env[LANE_ENV] = str(group.lane)
        return env

    async def run_lane(self, group: ConnectorGroup) -> LaneResult:
        """Run the test command once for a lane.

        Args:
            group: The lane's connectors.

        Returns:
            LaneResult with parsed outcomes and the command's exit code.

        Raises:
            ScriptInvocationError: If the command cannot be started.
        """
        command = list(self.runner.command)
        log_path = self.lane_log_path(group.lane)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        result = LaneResult(lane=group.lane, connectors=group.connectors, log_path=log_path)

        logger.info(f"Lane {group.lane}: starting {command[0]} for {group.selection}")
        start = time.monotonic()

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                env=self.build_env(group),
                cwd=self.runner.cwd,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ScriptInvocationError(
                f"Lane {group.lane} could not start '{command[0]}': {e}",
                command=command,
                lane=group.lane,
            ) from e

        try:
            with log_path.open("w", encoding="utf-8") as log:
                if proc.stdout is not None:
                    async for line in read_lines(proc.stdout):
                        log.write(line + "\n")
                        outcome = parse_test_line(line)
                        if outcome is not None:
                            result.outcomes.append(outcome)
                        if self.on_line is not None:
                            self.on_line(group.lane, line)
            result.exit_code = await proc.wait()
        finally:
            if proc.returncode is None:
                logger.warning(f"Lane {group.lane}: killing test command")
                proc.kill()
                await proc.wait()
            result.elapsed_seconds = time.monotonic() - start

        logger.info(
            f"Lane {group.lane}: exit {result.exit_code}, "
            f"{result.passed_count} passed, {len(result.failed_tests)} failed "
            f"in {result.elapsed_seconds:.2f}s"
        )
        return result
