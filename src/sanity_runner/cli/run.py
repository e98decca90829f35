# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Implementation of the 'sanity-runner run', 'plan' and 'probe' commands.

This module provides helper functions for executing harness files and
rendering their plans and results.
"""

from __future__ import annotations

import time
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sanity_runner.config.loader import load_config
from sanity_runner.config.schema import HarnessConfig
from sanity_runner.config.validator import validate_harness_config
from sanity_runner.engine.harness import ExecutionPlan, HarnessEngine
from sanity_runner.engine.matrix import parse_connector_list
from sanity_runner.engine.readiness import ReadinessGate, ServiceStatus
from sanity_runner.engine.results import RunResult
from sanity_runner.engine.triggers import TriggerEvent

# Verbose console for logging (stderr)
_verbose_console = Console(stderr=True, highlight=False)


def verbose_log(message: str, style: str = "dim") -> None:
    """Log a message if verbose mode is enabled.

    Args:
        message: The message to log.
        style: Rich style for the message.
    """
    from sanity_runner.cli.app import is_verbose

    if is_verbose():
        _verbose_console.print(f"[{style}]{escape(message)}[/{style}]")


def verbose_log_timing(operation: str, elapsed: float) -> None:
    """Log timing information if verbose mode is enabled.

    Args:
        operation: Description of the operation.
        elapsed: Elapsed time in seconds.
    """
    from sanity_runner.cli.app import is_verbose

    if is_verbose():
        _verbose_console.print(f"[dim]⏱ {escape(operation)}: {elapsed:.2f}s[/dim]")


def echo_lane_line(lane: int, line: str) -> None:
    """Echo one line of lane output when full verbose mode is on."""
    from sanity_runner.cli.app import is_full

    if is_full():
        text = Text()
        text.append(f"[lane {lane}] ", style="cyan")
        text.append(line)
        _verbose_console.print(text)


def apply_overrides(
    config: HarnessConfig,
    connectors: str | None = None,
    lanes: int | None = None,
) -> HarnessConfig:
    """Apply command-line overrides to a loaded harness.

    A connector selection replaces the matrix (explicit groups included)
    with a flat list partitioned across lanes.

    Args:
        config: The loaded harness.
        connectors: Comma-separated connector selection.
        lanes: Lane count override.

    Returns:
        A new, re-validated HarnessConfig.
    """
    matrix = config.matrix.model_dump()
    if connectors is not None:
        matrix["connectors"] = parse_connector_list(connectors)
        matrix["groups"] = None
    if lanes is not None:
        matrix["lanes"] = lanes

    data = config.model_dump()
    data["matrix"] = matrix
    return HarnessConfig.model_validate(data)


def load_harness(
    harness_path: Path,
    connectors: str | None = None,
    lanes: int | None = None,
) -> HarnessConfig:
    """Load, override and semantically validate a harness file.

    Warnings from semantic validation are logged, errors are raised.

    Raises:
        ConfigurationError: If loading or validation fails.
    """
    verbose_log(f"Loading harness: {harness_path}")
    load_start = time.time()
    config = load_config(harness_path)
    if connectors is not None or lanes is not None:
        config = apply_overrides(config, connectors=connectors, lanes=lanes)
    for warning in validate_harness_config(config):
        verbose_log(f"Warning: {warning}", style="yellow")
    verbose_log_timing("Configuration loaded", time.time() - load_start)
    return config


async def run_harness_async(
    harness_path: Path,
    event: TriggerEvent,
    connectors: str | None = None,
    lanes: int | None = None,
) -> tuple[HarnessEngine, RunResult]:
    """Execute a harness asynchronously.

    Args:
        harness_path: Path to the harness YAML file.
        event: The invoking event.
        connectors: Optional connector selection override.
        lanes: Optional lane count override.

    Returns:
        The engine that ran and its RunResult.

    Raises:
        SanityRunnerError: If the run cannot complete.
    """
    start_time = time.time()
    config = load_harness(harness_path, connectors=connectors, lanes=lanes)

    verbose_log(f"Harness: {config.harness.name}")
    verbose_log(f"Event: {event.name or 'manual'}")

    engine = HarnessEngine(config, on_line=echo_lane_line)
    result = await engine.run(event)

    verbose_log_timing("Total run", time.time() - start_time)
    return engine, result


async def probe_services_async(harness_path: Path) -> dict[str, ServiceStatus]:
    """Run only the readiness gate of a harness.

    Raises:
        DependencyUnavailableError: If a service never became healthy.
    """
    config = load_harness(harness_path)
    gate = ReadinessGate(config.services)
    return await gate.wait()


def build_dry_run_plan(
    harness_path: Path,
    connectors: str | None = None,
    lanes: int | None = None,
) -> ExecutionPlan:
    """Build an execution plan without probing services or starting lanes."""
    config = load_harness(harness_path, connectors=connectors, lanes=lanes)
    return HarnessEngine(config).build_execution_plan()


def display_execution_plan(plan: ExecutionPlan, console: Console | None = None) -> None:
    """Display an execution plan with Rich formatting.

    Args:
        plan: The execution plan to display.
        console: Optional Rich console. Creates one if not provided.
    """
    output_console = console if console is not None else Console()

    timeout_display = f"{plan.timeout_seconds}s" if plan.timeout_seconds else "unlimited"
    parallel_display = str(plan.max_parallel) if plan.max_parallel else "all lanes"
    header_content = (
        f"[bold]Harness:[/bold] {escape(plan.harness_name)}\n"
        f"[bold]Services:[/bold] {escape(', '.join(plan.services)) or 'none'}\n"
        f"[bold]Command:[/bold] {escape(' '.join(plan.command))}\n"
        f"[bold]Parallelism:[/bold] {parallel_display}\n"
        f"[bold]Timeout:[/bold] {timeout_display}\n"
        f"[bold]Results log:[/bold] {escape(plan.results_log)}\n"
        f"[bold]Failure marker:[/bold] {escape(plan.failure_marker)}"
    )
    output_console.print(Panel(header_content, title="[cyan]Execution Plan (Dry Run)[/cyan]"))

    table = Table(title="Lanes", show_lines=True)
    table.add_column("Lane", style="cyan", justify="right", width=6)
    table.add_column("Count", justify="right", width=6)
    table.add_column(plan.connector_env, style="green")

    for group in plan.groups:
        table.add_row(str(group.lane), str(len(group)), Text(group.selection))

    output_console.print(table)
    output_console.print()
    output_console.print(
        f"[dim]Total lanes:[/dim] {len(plan.groups)} | "
        f"[dim]Connectors:[/dim] {sum(len(g) for g in plan.groups)}"
    )


def display_run_result(result: RunResult, console: Console | None = None) -> None:
    """Display a run result as a lane summary table."""
    output_console = console if console is not None else Console()

    if result.skipped:
        output_console.print(
            Panel(
                f"Skipped: {escape(result.skip_reason or '')}",
                title="[yellow]Run Skipped[/yellow]",
                border_style="yellow",
            )
        )
        return

    table = Table(title="Lane Results", show_lines=True)
    table.add_column("Lane", style="cyan", justify="right", width=6)
    table.add_column("Connectors")
    table.add_column("Passed", justify="right", style="green")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Exit", justify="right", width=6)
    table.add_column("Time", justify="right")

    for lane in result.lanes:
        table.add_row(
            str(lane.lane),
            ",".join(lane.connectors),
            str(lane.passed_count),
            str(len(lane.failed_tests)),
            "-" if lane.exit_code is None else str(lane.exit_code),
            f"{lane.elapsed_seconds:.1f}s",
        )
    output_console.print(table)

    if result.failed_tests:
        failed = "\n".join(f"• {escape(name)}" for name in result.failed_tests)
        output_console.print(Panel(failed, title="[red]Failed Tests[/red]", border_style="red"))

    broken = [lane for lane in result.lanes if lane.error]
    if broken:
        errors = "\n".join(f"• Lane {lane.lane}: {escape(lane.error or '')}" for lane in broken)
        output_console.print(Panel(errors, title="[red]Lane Errors[/red]", border_style="red"))

    verdict = "[bold green]PASSED[/bold green]" if result.passed else "[bold red]FAILED[/bold red]"
    output_console.print(
        f"{verdict} [dim]markers:[/dim] {result.marker_count} "
        f"[dim]log:[/dim] {escape(str(result.results_log))}"
    )


def display_service_statuses(
    statuses: dict[str, ServiceStatus], console: Console | None = None
) -> None:
    """Display readiness gate results."""
    output_console = console if console is not None else Console()

    table = Table(title="Services")
    table.add_column("Service", style="cyan")
    table.add_column("Health")
    table.add_column("Probes", justify="right")
    table.add_column("Detail", style="dim")

    for status in statuses.values():
        table.add_row(
            status.name,
            status.health.value,
            str(status.attempts),
            Text((status.last_detail or "")[:60]),
        )
    output_console.print(table)
