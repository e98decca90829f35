# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Connector matrix partitioning.

This module splits the connector list into lanes. Every connector lands in
exactly one lane, lane contents are deterministic for a given input order,
and no lane is ever empty.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from sanity_runner.exceptions import ConfigurationError

if TYPE_CHECKING:
    from sanity_runner.config.schema import MatrixConfig

Strategy = Literal["contiguous", "balanced"]


@dataclass(frozen=True)
class ConnectorGroup:
    """The connectors assigned to one execution lane.

    Attributes:
        lane: Zero-based lane index.
        connectors: Connector ids in the order they will be tested.
    """

    lane: int
    connectors: tuple[str, ...]

    @property
    def selection(self) -> str:
        """Comma-joined connectors, as the test command expects them."""
        return ",".join(self.connectors)

    def __len__(self) -> int:
        return len(self.connectors)


def parse_connector_list(value: str) -> list[str]:
    """Split a comma-separated connector selection.

    Example:
        >>> parse_connector_list("stripe, adyen_uk,,paypal")
        ['stripe', 'adyen_uk', 'paypal']
    """
    return [part.strip() for part in value.split(",") if part.strip()]


def _check_unique(connectors: Sequence[str]) -> None:
    duplicates = sorted(name for name, count in Counter(connectors).items() if count > 1)
    if duplicates:
        raise ConfigurationError(
            f"Duplicate connectors in matrix: {', '.join(duplicates)}",
            field_path="matrix.connectors",
        )


def partition(
    connectors: Sequence[str],
    lanes: int,
    strategy: Strategy = "contiguous",
    weights: dict[str, float] | None = None,
) -> list[ConnectorGroup]:
    """Partition connectors into lanes.

    Args:
        connectors: Connector ids in input order.
        lanes: Desired number of lanes. Reduced to ``len(connectors)`` when
            there are fewer connectors than lanes.
        strategy: 'contiguous' for consecutive slices, 'balanced' for greedy
            assignment by weight.
        weights: Relative cost per connector for the balanced strategy.
            Missing connectors weigh 1.0.

    Returns:
        One ConnectorGroup per non-empty lane, ordered by lane index.

    Raises:
        ConfigurationError: If ``lanes`` is below 1, the strategy is unknown,
            or a connector appears twice.
    """
    if lanes < 1:
        raise ConfigurationError(
            f"Lane count must be at least 1, got {lanes}",
            field_path="matrix.lanes",
        )
    _check_unique(connectors)

    if not connectors:
        return []

    lanes = min(lanes, len(connectors))

    if strategy == "contiguous":
        rows = _contiguous(connectors, lanes)
    elif strategy == "balanced":
        rows = _balanced(connectors, lanes, weights or {})
    else:
        raise ConfigurationError(
            f"Unknown matrix strategy '{strategy}'",
            suggestion="Use 'contiguous' or 'balanced'",
            field_path="matrix.strategy",
        )

    return [ConnectorGroup(lane=i, connectors=tuple(row)) for i, row in enumerate(rows)]


def _contiguous(connectors: Sequence[str], lanes: int) -> list[list[str]]:
    """Consecutive slices; the first ``len % lanes`` lanes get one extra."""
    size, extra = divmod(len(connectors), lanes)
    rows: list[list[str]] = []
    start = 0
    for i in range(lanes):
        end = start + size + (1 if i < extra else 0)
        rows.append(list(connectors[start:end]))
        start = end
    return rows


def _balanced(
    connectors: Sequence[str],
    lanes: int,
    weights: dict[str, float],
) -> list[list[str]]:
    """Longest-processing-time assignment.

    Connectors are visited heaviest first (input order breaks ties) and
    each goes to the currently lightest lane (lowest index breaks ties).
    Each lane then lists its connectors in input order.
    """
    position = {name: i for i, name in enumerate(connectors)}
    order = sorted(connectors, key=lambda name: (-weights.get(name, 1.0), position[name]))

    loads = [0.0] * lanes
    assigned: list[list[str]] = [[] for _ in range(lanes)]

    # The first `lanes` picks seed every lane so none can stay empty
    for i, name in enumerate(order):
        if i < lanes:
            target = i
        else:
            target = min(range(lanes), key=lambda lane: (loads[lane], lane))
        assigned[target].append(name)
        loads[target] += weights.get(name, 1.0)

    return [sorted(row, key=position.__getitem__) for row in assigned]


def groups_from_rows(rows: Iterable[Sequence[str] | str]) -> list[ConnectorGroup]:
    """Build lanes from explicit, hand-grouped rows.

    Rows may be sequences or comma-separated strings. Empty rows are
    rejected, as are connectors that appear in more than one row.

    Raises:
        ConfigurationError: If a row is empty or a connector repeats.
    """
    groups: list[ConnectorGroup] = []
    seen: list[str] = []
    for i, row in enumerate(rows):
        names = parse_connector_list(row) if isinstance(row, str) else list(row)
        if not names:
            raise ConfigurationError(
                f"Matrix group {i} is empty",
                suggestion="Remove the empty group or add connectors to it",
                field_path=f"matrix.groups.{i}",
            )
        seen.extend(names)
        groups.append(ConnectorGroup(lane=i, connectors=tuple(names)))
    _check_unique(seen)
    return groups


def build_matrix(matrix: MatrixConfig) -> list[ConnectorGroup]:
    """Compute lanes from the matrix section of a harness."""
    if matrix.groups is not None:
        return groups_from_rows(matrix.groups)
    return partition(
        matrix.connectors or [],
        matrix.lanes,
        strategy=matrix.strategy,
        weights=matrix.weights,
    )
