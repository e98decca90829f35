# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Implementation of the 'sanity-runner validate' command.

This module provides functionality to validate harness YAML files
without running them, displaying detailed error information.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from sanity_runner.config.loader import load_config
from sanity_runner.config.validator import validate_harness_config
from sanity_runner.engine.matrix import build_matrix
from sanity_runner.exceptions import SanityRunnerError

if TYPE_CHECKING:
    from sanity_runner.config.schema import HarnessConfig


def validate_harness(
    harness_path: Path,
    console: Console | None = None,
) -> tuple[bool, HarnessConfig | None, list[str]]:
    """Validate a harness YAML file.

    Args:
        harness_path: Path to the harness YAML file.
        console: Optional Rich console for output.

    Returns:
        A tuple of (is_valid, config_or_none, warnings).
    """
    output_console = console if console is not None else Console()

    try:
        config = load_config(harness_path)
        warnings = validate_harness_config(config)
        build_matrix(config.matrix)
        return True, config, warnings
    except SanityRunnerError as e:
        display_validation_error(e, harness_path, output_console)
        return False, None, []


def display_validation_error(
    error: SanityRunnerError,
    harness_path: Path,
    console: Console,
) -> None:
    """Display a validation error with Rich formatting.

    Args:
        error: The error that occurred.
        harness_path: Path to the harness file.
        console: Rich console for output.
    """
    error_msg = error.args[0] if error.args else str(error)

    content = f"[bold red]{error.error_type}[/bold red]\n\n"
    content += f"[dim]File:[/dim] {escape(str(harness_path))}"
    if error.line_number:
        content += f"[dim]:{error.line_number}[/dim]"
    content += f"\n\n{escape(str(error_msg))}"

    field_path = getattr(error, "field_path", None)
    if field_path:
        content += f"\n\n[yellow]📋 Field:[/yellow] {escape(field_path)}"

    if error.suggestion:
        content += f"\n\n[yellow]💡 Suggestion:[/yellow] {escape(error.suggestion)}"

    console.print(
        Panel(
            content,
            title="[red]Validation Failed[/red]",
            border_style="red",
        )
    )


def display_validation_success(
    config: HarnessConfig,
    harness_path: Path,
    console: Console,
    warnings: list[str] | None = None,
) -> None:
    """Display validation success with a harness summary.

    Args:
        config: The validated harness configuration.
        harness_path: Path to the harness file.
        console: Rich console for output.
        warnings: Non-fatal issues found during validation.
    """
    groups = build_matrix(config.matrix)
    connector_count = sum(len(g) for g in groups)
    timeout = config.harness.limits.timeout_seconds

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="dim")
    table.add_column("Value")

    table.add_row("Name", config.harness.name)
    if config.harness.description:
        table.add_row("Description", config.harness.description)
    table.add_row("File", str(harness_path))
    table.add_row("Triggers", ", ".join(config.harness.triggers.run_on))
    table.add_row("Services", ", ".join(s.name for s in config.services) or "none")
    table.add_row("Connectors", str(connector_count))
    table.add_row("Lanes", str(len(groups)))
    table.add_row(
        "Strategy",
        "explicit groups" if config.matrix.groups is not None else config.matrix.strategy,
    )
    table.add_row("Timeout", f"{timeout}s" if timeout else "unlimited")

    console.print(
        Panel(
            table,
            title="[green]Validation Successful[/green]",
            border_style="green",
        )
    )

    if config.services:
        service_table = Table(title="Services", show_lines=True)
        service_table.add_column("Name", style="cyan")
        service_table.add_column("Probe")
        service_table.add_column("Interval", justify="right")
        service_table.add_column("Retries", justify="right")

        for service in config.services:
            if service.probe.kind == "command":
                probe = " ".join(service.probe.command or [])
            else:
                probe = f"tcp {service.probe.host}:{service.probe.port}"
            service_table.add_row(
                service.name,
                probe,
                f"{service.interval_seconds:g}s",
                str(service.max_retries),
            )

        console.print(service_table)

    for warning in warnings or []:
        console.print(f"[yellow]⚠ {escape(warning)}[/yellow]")
