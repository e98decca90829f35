"""Tests for trigger filtering."""

import json
from pathlib import Path

import pytest

from sanity_runner.config.schema import TriggerConfig
from sanity_runner.engine.triggers import (
    TriggerEvent,
    evaluate_trigger,
    read_review_state,
)
from sanity_runner.exceptions import ConfigurationError


@pytest.fixture
def triggers() -> TriggerConfig:
    """Default trigger rules."""
    return TriggerConfig()


class TestEvaluateTrigger:
    """Tests for evaluate_trigger with the default rules."""

    def test_manual_invocation_runs(self, triggers: TriggerConfig) -> None:
        """Test that a local run without an event always runs."""
        decision = evaluate_trigger(TriggerEvent(), triggers)
        assert decision.run
        assert decision.reason == "manual invocation"

    def test_workflow_dispatch_runs(self, triggers: TriggerConfig) -> None:
        """Test the manual dispatch event."""
        assert evaluate_trigger(TriggerEvent(name="workflow_dispatch"), triggers).run

    @pytest.mark.parametrize("event", ["pull_request", "merge_group"])
    def test_skip_events(self, triggers: TriggerConfig, event: str) -> None:
        """Test that pull request and merge queue events are no-ops."""
        decision = evaluate_trigger(TriggerEvent(name=event), triggers)
        assert not decision.run
        assert event in decision.reason

    def test_unknown_event_skips(self, triggers: TriggerConfig) -> None:
        """Test that events outside run_on do not run."""
        decision = evaluate_trigger(TriggerEvent(name="push"), triggers)
        assert not decision.run
        assert "not a run trigger" in decision.reason

    @pytest.mark.parametrize("state", ["approved", "APPROVED"])
    def test_approved_review_runs(self, triggers: TriggerConfig, state: str) -> None:
        """Test that an approving review runs, case-insensitively."""
        event = TriggerEvent(name="pull_request_review", review_state=state)
        assert evaluate_trigger(event, triggers).run

    @pytest.mark.parametrize("state", ["commented", "changes_requested", None])
    def test_other_reviews_skip(self, triggers: TriggerConfig, state: str | None) -> None:
        """Test that non-approving reviews do not run."""
        event = TriggerEvent(name="pull_request_review", review_state=state)
        decision = evaluate_trigger(event, triggers)
        assert not decision.run
        assert "'approved' required" in decision.reason

    def test_custom_rules(self) -> None:
        """Test rules taken from a harness."""
        triggers = TriggerConfig(run_on=["schedule"], skip_on=[], review_events=[])
        assert evaluate_trigger(TriggerEvent(name="schedule"), triggers).run
        assert not evaluate_trigger(TriggerEvent(name="workflow_dispatch"), triggers).run


class TestTriggerEventFromEnvironment:
    """Tests for reading the event from CI variables."""

    def test_no_event(self) -> None:
        """Test an environment without CI variables."""
        assert TriggerEvent.from_environment({}) == TriggerEvent()

    def test_event_with_payload(self, tmp_path: Path) -> None:
        """Test reading the review state from the event payload."""
        payload = tmp_path / "event.json"
        payload.write_text(json.dumps({"review": {"state": "approved"}}))
        event = TriggerEvent.from_environment(
            {"GITHUB_EVENT_NAME": "pull_request_review", "GITHUB_EVENT_PATH": str(payload)}
        )
        assert event == TriggerEvent(name="pull_request_review", review_state="approved")

    def test_missing_payload(self, tmp_path: Path) -> None:
        """Test that a missing payload file means no review state."""
        event = TriggerEvent.from_environment(
            {"GITHUB_EVENT_NAME": "pull_request", "GITHUB_EVENT_PATH": str(tmp_path / "x")}
        )
        assert event.review_state is None


class TestReadReviewState:
    """Tests for read_review_state."""

    def test_payload_without_review(self, tmp_path: Path) -> None:
        """Test a payload from a non-review event."""
        payload = tmp_path / "event.json"
        payload.write_text(json.dumps({"pull_request": {"number": 1}}))
        assert read_review_state(payload) is None

    def test_invalid_json(self, tmp_path: Path) -> None:
        """Test that a corrupt payload is reported."""
        payload = tmp_path / "event.json"
        payload.write_text("{not json")
        with pytest.raises(ConfigurationError, match="not valid JSON"):
            read_review_state(payload)
