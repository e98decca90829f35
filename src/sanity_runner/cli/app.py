# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Typer application definition for the Sanity Runner CLI.

This module defines the main Typer app and global options.
"""

from __future__ import annotations

import contextvars
import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from sanity_runner import __version__
from sanity_runner.config.schema import DEFAULT_FAILURE_MARKER

app = typer.Typer(
    name="sanity-runner",
    help="Sanity Runner - Run connector UI sanity tests in parallel lanes.",
    add_completion=False,
    no_args_is_help=True,
)

# Rich console for formatted output
console = Console(stderr=True)
output_console = Console()

# Progress output on stderr (default True, --quiet turns it off)
verbose_mode: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "verbose_mode", default=True
)

# Full verbose mode (--verbose flag): lane output and debug logs
full_mode: contextvars.ContextVar[bool] = contextvars.ContextVar(
    "full_mode", default=False
)


def is_verbose() -> bool:
    """Check if progress output is enabled (default True)."""
    return verbose_mode.get()


def is_full() -> bool:
    """Check if full verbose mode is enabled (--verbose flag).

    When full mode is enabled, every lane output line is echoed and
    library debug logging is shown.
    """
    return full_mode.get()


def configure_logging(full: bool) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if full else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def format_error(error: Exception) -> Panel:
    """Format an exception for Rich console display.

    Creates a styled Panel with error message, location (if available),
    and suggestion (if available).

    Args:
        error: The exception to format.

    Returns:
        Rich Panel with formatted error content.
    """
    from sanity_runner.exceptions import SanityRunnerError

    content = Text()
    error_message = error.args[0] if error.args else str(error)
    content.append(str(error_message), style="bold red")

    error_type = type(error).__name__
    if isinstance(error, SanityRunnerError):
        error_type = error.error_type

        if error.file_path or error.line_number:
            content.append("\n\n")
            content.append("📍 Location: ", style="yellow")
            if error.file_path:
                content.append(error.file_path, style="cyan")
            if error.line_number:
                if error.file_path:
                    content.append(":", style="yellow")
                content.append(f"line {error.line_number}", style="cyan")

        field_path = getattr(error, "field_path", None)
        if field_path:
            content.append("\n")
            content.append("📋 Field: ", style="yellow")
            content.append(field_path, style="cyan")

        if error.suggestion:
            content.append("\n\n")
            content.append("💡 Suggestion: ", style="green")
            content.append(error.suggestion, style="white")

    return Panel(
        content,
        title=f"[bold red]❌ {error_type}[/bold red]",
        border_style="red",
        padding=(1, 2),
    )


def print_error(error: Exception) -> None:
    """Print a formatted error to stderr."""
    console.print(format_error(error))


def version_callback(value: bool) -> None:
    """Display version information and exit."""
    if value:
        output_console.print(f"Sanity Runner v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-V",
            help="Echo lane output and show debug logging.",
        ),
    ] = False,
    quiet: Annotated[
        bool,
        typer.Option(
            "--quiet",
            "-q",
            help="Hide progress output.",
        ),
    ] = False,
) -> None:
    """Sanity Runner - Run connector UI sanity tests in parallel lanes."""
    full_mode.set(verbose)
    verbose_mode.set(not quiet)
    configure_logging(verbose)


HarnessArg = Annotated[
    Path,
    typer.Argument(
        help="Path to the harness YAML file.",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        resolve_path=True,
    ),
]


@app.command()
def run(
    harness: HarnessArg,
    event: Annotated[
        str | None,
        typer.Option(
            "--event",
            "-e",
            help="Triggering event name. Defaults to $GITHUB_EVENT_NAME, else a manual run.",
        ),
    ] = None,
    review_state: Annotated[
        str | None,
        typer.Option(
            "--review-state",
            help="Review state for review events. Defaults to the $GITHUB_EVENT_PATH payload.",
        ),
    ] = None,
    connectors: Annotated[
        str | None,
        typer.Option(
            "--connectors",
            "-c",
            help="Comma-separated connectors, replacing the harness matrix.",
        ),
    ] = None,
    lanes: Annotated[
        int | None,
        typer.Option(
            "--lanes",
            "-l",
            min=1,
            help="Number of lanes to partition connectors into.",
        ),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run",
            help="Show the lane matrix without probing services or running tests.",
        ),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Print the run result as JSON on stdout.",
        ),
    ] = False,
) -> None:
    """Run a harness: gate on services, run lanes, judge the results log.

    Exits 0 when the run passes or the trigger is skipped, 1 otherwise.

    \b
    Examples:
        sanity-runner run harness.yaml
        sanity-runner run harness.yaml --event pull_request_review --review-state approved
        sanity-runner run harness.yaml --connectors stripe,paypal --lanes 2
        sanity-runner run harness.yaml --dry-run
    """
    import asyncio
    import json

    from sanity_runner.cli.run import (
        build_dry_run_plan,
        display_execution_plan,
        display_run_result,
        run_harness_async,
    )
    from sanity_runner.engine.triggers import TriggerEvent

    if dry_run:
        try:
            plan = build_dry_run_plan(harness, connectors=connectors, lanes=lanes)
            display_execution_plan(plan, output_console)
            return
        except Exception as e:
            print_error(e)
            raise typer.Exit(code=1) from None

    try:
        if event is not None:
            trigger = TriggerEvent(name=event, review_state=review_state)
        else:
            trigger = TriggerEvent.from_environment()
            if review_state is not None:
                trigger = TriggerEvent(name=trigger.name, review_state=review_state)

        engine, result = asyncio.run(
            run_harness_async(harness, trigger, connectors=connectors, lanes=lanes)
        )

        if json_output:
            output_console.print_json(json.dumps(result.to_dict()))
        else:
            display_run_result(result, output_console)

        engine.ensure_passed(result)

    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None


@app.command()
def plan(
    harness: HarnessArg,
    connectors: Annotated[
        str | None,
        typer.Option("--connectors", "-c", help="Comma-separated connectors."),
    ] = None,
    lanes: Annotated[
        int | None,
        typer.Option("--lanes", "-l", min=1, help="Number of lanes."),
    ] = None,
) -> None:
    """Show how connectors are split into lanes.

    \b
    Examples:
        sanity-runner plan harness.yaml
        sanity-runner plan harness.yaml --lanes 4
    """
    from sanity_runner.cli.run import build_dry_run_plan, display_execution_plan

    try:
        display_execution_plan(
            build_dry_run_plan(harness, connectors=connectors, lanes=lanes), output_console
        )
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None


@app.command()
def validate(harness: HarnessArg) -> None:
    """Validate a harness YAML file without running it.

    Checks the harness file for:
    - Valid YAML syntax
    - Valid schema structure
    - Valid connector matrix
    - Valid runner environment

    \b
    Examples:
        sanity-runner validate harness.yaml
    """
    from sanity_runner.cli.validate import display_validation_success, validate_harness

    is_valid, config, warnings = validate_harness(harness, output_console)

    if is_valid and config is not None:
        display_validation_success(config, harness, output_console, warnings)
    else:
        raise typer.Exit(code=1)


@app.command()
def probe(harness: HarnessArg) -> None:
    """Run only the readiness gate of a harness.

    \b
    Examples:
        sanity-runner probe harness.yaml
    """
    import asyncio

    from sanity_runner.cli.run import display_service_statuses, probe_services_async

    try:
        statuses = asyncio.run(probe_services_async(harness))
        display_service_statuses(statuses, output_console)
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None


@app.command()
def check(
    log: Annotated[
        Path,
        typer.Argument(help="Path to a combined results log."),
    ],
    marker: Annotated[
        str,
        typer.Option("--marker", "-m", help="Failure marker to look for."),
    ] = DEFAULT_FAILURE_MARKER,
) -> None:
    """Judge an existing results log by its failure markers.

    Exits 1 if the marker appears at least once, 0 otherwise.

    \b
    Examples:
        sanity-runner check tests/test_results.log
        sanity-runner check run.log --marker "FAILED"
    """
    from sanity_runner.engine.results import count_failure_markers

    try:
        count = count_failure_markers(log, marker)
    except Exception as e:
        print_error(e)
        raise typer.Exit(code=1) from None

    shown_marker, shown_log = escape(marker), escape(str(log))
    if count:
        output_console.print(
            f"[bold red]FAILED[/bold red] {count} line(s) contain '{shown_marker}' in {shown_log}"
        )
        raise typer.Exit(code=1)

    output_console.print(f"[bold green]PASSED[/bold green] no '{shown_marker}' in {shown_log}")
