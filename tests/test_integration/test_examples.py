"""Integration tests for the example harness files.

These tests load every harness under ``examples/`` and drive the
connector UI sanity harness through a full run with stand-in services
and a stand-in test script.
"""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from typer.testing import CliRunner

from sanity_runner.cli.app import app
from sanity_runner.config.loader import load_config
from sanity_runner.config.validator import validate_harness_config
from sanity_runner.engine.harness import HarnessEngine
from sanity_runner.engine.matrix import build_matrix
from sanity_runner.engine.readiness import ProbeResult
from sanity_runner.engine.triggers import TriggerEvent

EXAMPLES_DIR = Path(__file__).parent.parent.parent / "examples"
UI_SANITY = EXAMPLES_DIR / "connector-ui-sanity.yaml"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _example_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Provide the variables the example harness references."""
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv("UI_TESTCASES_PATH", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("GITHUB_EVENT_NAME", raising=False)
    monkeypatch.delenv("GITHUB_EVENT_PATH", raising=False)


@pytest.mark.parametrize("harness", sorted(EXAMPLES_DIR.glob("*.yaml")), ids=lambda p: p.name)
def test_example_validates(harness: Path) -> None:
    """Test that every example harness loads and validates."""
    config = load_config(harness)
    validate_harness_config(config)
    assert build_matrix(config.matrix)


class TestConnectorUiSanityExample:
    """Tests for examples/connector-ui-sanity.yaml."""

    def test_environment(self, tmp_path: Path) -> None:
        """Test the runner environment after variable resolution."""
        config = load_config(UI_SANITY)
        env = config.runner.env
        assert env["CONNECTOR_AUTH_FILE_PATH"] == f"{tmp_path}/target/test/connector_auth.toml"
        assert env["UI_TESTCASES_PATH"] == ""
        assert env["IGNORE_BROWSER_PROFILE"] == "true"
        assert env["DATABASE_URL"].startswith("postgres://")

    def test_two_disjoint_lanes(self) -> None:
        """Test the hand-grouped matrix."""
        groups = build_matrix(load_config(UI_SANITY).matrix)
        assert len(groups) == 2
        first, second = (set(g.connectors) for g in groups)
        assert not first & second
        assert "stripe" in first
        assert "paypal" in second

    def test_services_gate_in_order(self) -> None:
        """Test the gated services and their retry budget."""
        config = load_config(UI_SANITY)
        assert [s.name for s in config.services] == ["redis", "postgres"]
        assert all(s.max_retries == 5 for s in config.services)
        assert all(s.interval_seconds == 10 for s in config.services)

    def test_pull_request_is_noop(self) -> None:
        """Test that pull request events do not run the example."""
        result = runner.invoke(app, ["run", str(UI_SANITY), "--event", "pull_request"])
        assert result.exit_code == 0
        assert "Run Skipped" in result.output

    def test_dry_run(self) -> None:
        """Test the plan for the example."""
        result = runner.invoke(app, ["plan", str(UI_SANITY)])
        assert result.exit_code == 0
        assert "Total lanes: 2" in result.output

    @pytest.mark.asyncio
    async def test_full_run_with_stand_ins(
        self, tmp_path: Path, write_script: Callable[[str, str], Path]
    ) -> None:
        """Test a whole run with healthy services and a scripted lane."""
        script = write_script(
            "run_ui_tests.sh",
            'test "$IGNORE_BROWSER_PROFILE" = true || exit 3\n'
            'for c in $(echo "$INPUT" | tr \',\' \' \'); do\n'
            '  echo "test connectors::$c::should_pay ... ok"\n'
            "done\n"
            'echo "test result: ok."\n',
        )
        config = load_config(UI_SANITY)
        config.runner.command = ["sh", str(script)]
        config.runner.log_dir = str(tmp_path / "lanes")
        config.results.log = str(tmp_path / "test_results.log")

        probe = AsyncMock(return_value=ProbeResult(ok=True))
        engine = HarnessEngine(config, probe=probe, sleep=AsyncMock())

        result = await engine.run(
            TriggerEvent(name="pull_request_review", review_state="approved")
        )

        assert result.passed
        assert probe.await_count == 2
        assert sum(lane.passed_count for lane in result.lanes) == 16
        assert result.marker_count == 0
