"""Pytest configuration and shared fixtures for Sanity Runner tests.

This module contains fixtures used across multiple test modules.
"""

from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def sample_harness_yaml() -> str:
    """Return a minimal valid harness YAML for testing."""
    return """\
harness:
  name: test-harness
  description: A test harness

matrix:
  connectors: [stripe, paypal, adyen_uk]
  lanes: 2

runner:
  command: ["true"]
"""


@pytest.fixture
def tmp_harness_file(tmp_path: Path, sample_harness_yaml: str) -> Path:
    """Create a temporary harness YAML file."""
    harness_file = tmp_path / "test-harness.yaml"
    harness_file.write_text(sample_harness_yaml)
    return harness_file


@pytest.fixture
def write_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes an ``sh`` script into tmp_path."""

    def _write(name: str, body: str) -> Path:
        script = tmp_path / name
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(0o755)
        return script

    return _write
