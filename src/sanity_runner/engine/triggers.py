# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Trigger filtering for harness runs.

Decides whether the event that invoked the harness should start a run.
Manual dispatches always run, review events run only when the review
approves, and pull request or merge queue events exit as a no-op.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from sanity_runner.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sanity_runner.config.schema import TriggerConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TriggerEvent:
    """The event that invoked the harness."""

    name: str | None = None
    """Event name (e.g. 'workflow_dispatch'). None means a manual local run."""

    review_state: str | None = None
    """Review state for review events (e.g. 'approved')."""

    @classmethod
    def from_environment(cls, environ: Mapping[str, str] | None = None) -> TriggerEvent:
        """Read the event from CI environment variables.

        Uses GITHUB_EVENT_NAME for the name and ``review.state`` from the
        JSON payload at GITHUB_EVENT_PATH for the review state.

        Raises:
            ConfigurationError: If the event payload is not valid JSON.
        """
        environ = os.environ if environ is None else environ
        name = environ.get("GITHUB_EVENT_NAME") or None
        review_state = None

        event_path = environ.get("GITHUB_EVENT_PATH")
        if event_path:
            review_state = read_review_state(Path(event_path))

        return cls(name=name, review_state=review_state)


def read_review_state(path: Path) -> str | None:
    """Extract ``review.state`` from an event payload file."""
    if not path.is_file():
        logger.warning(f"Event payload {path} not found; assuming no review state")
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Event payload {path} is not valid JSON: {e}",
            file_path=str(path),
        ) from e
    review = payload.get("review") if isinstance(payload, dict) else None
    if isinstance(review, dict) and isinstance(review.get("state"), str):
        return review["state"]
    return None


@dataclass(frozen=True)
class TriggerDecision:
    """Whether to run, and why."""

    run: bool
    reason: str


def evaluate_trigger(event: TriggerEvent, triggers: TriggerConfig) -> TriggerDecision:
    """Decide whether an event starts a run.

    Args:
        event: The invoking event.
        triggers: Trigger rules from the harness.

    Returns:
        TriggerDecision; ``run`` is False for no-op exits.
    """
    if event.name is None:
        return TriggerDecision(run=True, reason="manual invocation")

    if event.name in triggers.skip_on:
        return TriggerDecision(run=False, reason=f"tests are skipped for '{event.name}' events")

    if event.name not in triggers.run_on:
        return TriggerDecision(run=False, reason=f"'{event.name}' is not a run trigger")

    if event.name in triggers.review_events:
        state = (event.review_state or "").lower()
        if state != triggers.required_review_state.lower():
            return TriggerDecision(
                run=False,
                reason=(
                    f"review state is '{event.review_state or 'unknown'}', "
                    f"'{triggers.required_review_state}' required"
                ),
            )
        return TriggerDecision(run=True, reason=f"'{event.name}' with {state} review")

    return TriggerDecision(run=True, reason=f"'{event.name}' event")
