"""Tests for the validate command.

This module tests:
- Validating well-formed harness files
- Reporting schema and semantic errors
"""

from pathlib import Path

from rich.console import Console
from typer.testing import CliRunner

from sanity_runner.cli.app import app
from sanity_runner.cli.validate import validate_harness

runner = CliRunner()


class TestValidateCommand:
    """Tests for the validate command."""

    def test_valid_simple(self, fixtures_dir: Path) -> None:
        """Test validating the simple fixture."""
        result = runner.invoke(app, ["validate", str(fixtures_dir / "valid_simple.yaml")])
        assert result.exit_code == 0
        assert "Validation Successful" in result.output
        assert "simple-harness" in result.output

    def test_valid_full_lists_services(self, fixtures_dir: Path) -> None:
        """Test that services are summarized."""
        result = runner.invoke(app, ["validate", str(fixtures_dir / "valid_full.yaml")])
        assert result.exit_code == 0
        assert "redis" in result.output
        assert "postgres" in result.output
        assert "balanced" in result.output

    def test_warnings_shown(self, fixtures_dir: Path) -> None:
        """Test that semantic warnings are printed without failing."""
        result = runner.invoke(app, ["validate", str(fixtures_dir / "valid_simple.yaml")])
        assert result.exit_code == 0
        assert "No services are gated" in result.output

    def test_malformed_yaml(self, fixtures_dir: Path) -> None:
        """Test a file with broken YAML syntax."""
        result = runner.invoke(app, ["validate", str(fixtures_dir / "invalid_malformed.yaml")])
        assert result.exit_code == 1
        assert "Validation Failed" in result.output

    def test_missing_runner(self, fixtures_dir: Path) -> None:
        """Test a file missing a required section."""
        result = runner.invoke(
            app, ["validate", str(fixtures_dir / "invalid_missing_runner.yaml")]
        )
        assert result.exit_code == 1
        assert "runner" in result.output

    def test_duplicate_connector(self, fixtures_dir: Path) -> None:
        """Test a connector listed in two groups."""
        result = runner.invoke(
            app, ["validate", str(fixtures_dir / "invalid_duplicate_connector.yaml")]
        )
        assert result.exit_code == 1
        assert "paypal" in result.output


class TestValidateHarness:
    """Tests for validate_harness."""

    def test_returns_config_and_warnings(self, fixtures_dir: Path) -> None:
        """Test the success tuple."""
        console = Console(record=True)
        ok, config, warnings = validate_harness(fixtures_dir / "valid_simple.yaml", console)
        assert ok
        assert config is not None
        assert config.harness.name == "simple-harness"
        assert any("No services" in w for w in warnings)

    def test_returns_failure(self, fixtures_dir: Path) -> None:
        """Test the failure tuple."""
        console = Console(record=True)
        ok, config, warnings = validate_harness(
            fixtures_dir / "invalid_unknown_weight.yaml", console
        )
        assert not ok
        assert config is None
        assert warnings == []
        assert "Validation Failed" in console.export_text()
