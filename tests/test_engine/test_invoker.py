"""Tests for the per-lane test command invoker.

Tests cover:
- Environment passed to the command
- Streaming output into the lane log and outcomes, including very long lines
- Exit codes and failed tests
- Invocation errors
"""

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from sanity_runner.config.schema import RunnerConfig
from sanity_runner.engine.invoker import (
    LANE_ENV,
    TestRunnerInvoker,
    read_lines,
    resolve_executable,
)
from sanity_runner.engine.matrix import ConnectorGroup
from sanity_runner.engine.results import TestStatus
from sanity_runner.exceptions import ScriptInvocationError

LANE_SCRIPT = """\
echo "running for $INPUT"
for c in $(echo "$INPUT" | tr ',' ' '); do
  echo "test connectors::$c::should_pay ... ok <0.5s>"
done
echo "test result: ok. 2 passed; 0 failed"
"""


@pytest.fixture
def group() -> ConnectorGroup:
    """A two-connector lane."""
    return ConnectorGroup(lane=1, connectors=("stripe", "paypal"))


def _runner(script: Path, tmp_path: Path, **kwargs) -> RunnerConfig:
    return RunnerConfig(
        command=["sh", str(script)],
        log_dir=str(tmp_path / "lanes"),
        **kwargs,
    )


class TestBuildEnv:
    """Tests for TestRunnerInvoker.build_env."""

    def test_connector_selection(
        self, group: ConnectorGroup, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that the lane selection and index are exported."""
        monkeypatch.setenv("SANITY_PARENT", "kept")
        invoker = TestRunnerInvoker(
            RunnerConfig(command=["true"], env={"IGNORE_BROWSER_PROFILE": "true"})
        )
        env = invoker.build_env(group)
        assert env["INPUT"] == "stripe,paypal"
        assert env[LANE_ENV] == "1"
        assert env["IGNORE_BROWSER_PROFILE"] == "true"
        assert env["SANITY_PARENT"] == "kept"

    def test_custom_connector_env(self, group: ConnectorGroup) -> None:
        """Test a renamed selection variable."""
        invoker = TestRunnerInvoker(RunnerConfig(command=["true"], connector_env="CONNECTORS"))
        env = invoker.build_env(group)
        assert env["CONNECTORS"] == "stripe,paypal"

    def test_without_inherited_env(
        self, group: ConnectorGroup, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that inherit_env=False starts from an empty environment."""
        monkeypatch.setenv("SANITY_PARENT", "dropped")
        invoker = TestRunnerInvoker(RunnerConfig(command=["true"], inherit_env=False))
        env = invoker.build_env(group)
        assert env == {"INPUT": "stripe,paypal", LANE_ENV: "1"}


class TestRunLane:
    """Tests for TestRunnerInvoker.run_lane."""

    @pytest.mark.asyncio
    async def test_passing_lane(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test a lane where every test passes."""
        script = write_script("run_ui_tests.sh", LANE_SCRIPT)
        invoker = TestRunnerInvoker(_runner(script, tmp_path))

        result = await invoker.run_lane(group)

        assert result.exit_code == 0
        assert result.passed
        assert [o.name for o in result.outcomes] == [
            "connectors::stripe::should_pay",
            "connectors::paypal::should_pay",
        ]
        assert all(o.duration == 0.5 for o in result.outcomes)
        assert result.log_path == tmp_path / "lanes" / "lane-1.log"
        log = result.log_path.read_text(encoding="utf-8")
        assert log.splitlines()[0] == "running for stripe,paypal"
        assert result.elapsed_seconds >= 0

    @pytest.mark.asyncio
    async def test_very_long_output_line(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test that a line of several megabytes is logged whole and parsing continues."""
        script = write_script(
            "dump.sh",
            "head -c 2000000 /dev/zero | tr '\\0' a\n"
            "echo\n"
            'echo "test connectors::stripe::should_pay ... ok"\n',
        )
        invoker = TestRunnerInvoker(_runner(script, tmp_path))

        result = await invoker.run_lane(group)

        assert result.exit_code == 0
        assert result.passed
        assert [o.name for o in result.outcomes] == ["connectors::stripe::should_pay"]
        lines = result.log_path.read_text(encoding="utf-8").splitlines()
        assert lines[0] == "a" * 2_000_000
        assert lines[1] == "test connectors::stripe::should_pay ... ok"

    @pytest.mark.asyncio
    async def test_failing_test_recorded(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test that a failed test and non-zero exit are captured, not raised."""
        script = write_script(
            "run_ui_tests.sh",
            'echo "test connectors::stripe::should_pay ... ok"\n'
            'echo "test connectors::paypal::should_pay ... FAILED"\n'
            'echo "test result: FAILED. 1 passed; 1 failed"\n'
            "exit 101\n",
        )
        invoker = TestRunnerInvoker(_runner(script, tmp_path))

        result = await invoker.run_lane(group)

        assert result.exit_code == 101
        assert not result.passed
        assert result.failed_tests == ["connectors::paypal::should_pay"]
        assert result.outcomes[0].status is TestStatus.PASSED

    @pytest.mark.asyncio
    async def test_stderr_is_captured(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test that stderr lands in the lane log too."""
        script = write_script("run_ui_tests.sh", 'echo "browser crashed" >&2\n')
        invoker = TestRunnerInvoker(_runner(script, tmp_path))

        result = await invoker.run_lane(group)

        assert "browser crashed" in result.log_path.read_text(encoding="utf-8")

    @pytest.mark.asyncio
    async def test_on_line_callback(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test that every output line is forwarded with its lane."""
        script = write_script("run_ui_tests.sh", "echo one\necho two\n")
        seen: list[tuple[int, str]] = []
        invoker = TestRunnerInvoker(
            _runner(script, tmp_path), on_line=lambda lane, line: seen.append((lane, line))
        )

        await invoker.run_lane(group)

        assert seen == [(1, "one"), (1, "two")]

    @pytest.mark.asyncio
    async def test_runs_in_cwd(
        self,
        group: ConnectorGroup,
        tmp_path: Path,
        write_script: Callable[[str, str], Path],
    ) -> None:
        """Test that relative commands resolve against the configured cwd."""
        write_script("run_ui_tests.sh", "pwd -P\n")
        runner = RunnerConfig(
            command=["sh", "run_ui_tests.sh"],
            cwd=str(tmp_path),
            log_dir=str(tmp_path / "lanes"),
        )
        result = await TestRunnerInvoker(runner).run_lane(group)

        assert result.exit_code == 0
        logged = result.log_path.read_text(encoding="utf-8").strip()
        assert Path(logged) == tmp_path.resolve()

    @pytest.mark.asyncio
    async def test_missing_command(self, group: ConnectorGroup, tmp_path: Path) -> None:
        """Test that an unstartable command raises ScriptInvocationError."""
        runner = RunnerConfig(
            command=[str(tmp_path / "missing.sh")],
            log_dir=str(tmp_path / "lanes"),
        )
        with pytest.raises(ScriptInvocationError) as exc_info:
            await TestRunnerInvoker(runner).run_lane(group)
        assert exc_info.value.lane == 1
        assert exc_info.value.command == [str(tmp_path / "missing.sh")]


class TestResolveExecutable:
    """Tests for resolve_executable."""

    def test_bare_name_on_path(self) -> None:
        """Test that bare names are found on PATH."""
        assert resolve_executable(["sh", "script.sh"]).endswith("sh")

    def test_bare_name_missing(self) -> None:
        """Test a program that is not installed."""
        with pytest.raises(ScriptInvocationError, match="not found on PATH"):
            resolve_executable(["definitely-not-a-real-test-runner"])

    def test_relative_path_against_cwd(
        self, tmp_path: Path, write_script: Callable[[str, str], Path]
    ) -> None:
        """Test that relative paths resolve against cwd."""
        write_script("run.sh", "exit 0\n")
        assert resolve_executable(["./run.sh"], cwd=str(tmp_path)) == str(tmp_path / "run.sh")

    def test_path_missing(self, tmp_path: Path) -> None:
        """Test a path that does not exist."""
        with pytest.raises(ScriptInvocationError, match="Test command not found"):
            resolve_executable([str(tmp_path / "nope.sh")])

    def test_path_not_executable(self, tmp_path: Path) -> None:
        """Test a script without the executable bit."""
        script = tmp_path / "plain.sh"
        script.write_text("exit 0\n")
        script.chmod(0o644)
        with pytest.raises(ScriptInvocationError, match="not executable"):
            resolve_executable([str(script)])


class TestReadLines:
    """Tests for read_lines."""

    @staticmethod
    async def _collect(data: bytes, chunk_size: int) -> list[str]:
        stream = asyncio.StreamReader()
        stream.feed_data(data)
        stream.feed_eof()
        return [line async for line in read_lines(stream, chunk_size=chunk_size)]

    @pytest.mark.asyncio
    async def test_lines_split_across_chunks(self) -> None:
        """Test that lines are reassembled when a read ends mid-line."""
        lines = await self._collect(b"first\r\nsecond\nthird", chunk_size=4)
        assert lines == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_blank_lines_kept(self) -> None:
        """Test that empty lines survive and a trailing newline adds nothing."""
        lines = await self._collect(b"a\n\nb\n", chunk_size=64)
        assert lines == ["a", "", "b"]

    @pytest.mark.asyncio
    async def test_invalid_utf8_replaced(self) -> None:
        """Test that undecodable bytes do not stop the stream."""
        lines = await self._collect(b"ok \xff\n", chunk_size=64)
        assert lines == ["ok \ufffd"]
