# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Exception hierarchy for Sanity Runner.

Every error raised by the harness derives from SanityRunnerError. Errors
can carry a suggestion and a source location, which the CLI renders in
its error panel.
"""

from __future__ import annotations


class SanityRunnerError(Exception):
    """Base exception for all Sanity Runner errors.

    Attributes:
        suggestion: What the user can do about the error, if known.
        file_path: File the error refers to (harness file or results log).
        line_number: 1-based line within ``file_path``.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
    ) -> None:
        self.suggestion = suggestion
        self.file_path = file_path
        self.line_number = line_number
        super().__init__(message)

    def _format_location(self) -> str:
        parts = []
        if self.file_path:
            parts.append(f"File: {self.file_path}")
        if self.line_number:
            parts.append(f"Line: {self.line_number}")
        return f"\n\n📍 Location: {', '.join(parts)}" if parts else ""

    def _format_suggestion(self) -> str:
        return f"\n\n💡 Suggestion: {self.suggestion}" if self.suggestion else ""

    def __str__(self) -> str:
        return super().__str__() + self._format_location() + self._format_suggestion()

    @property
    def error_type(self) -> str:
        """Class name shown as the title of error panels."""
        return self.__class__.__name__


class ConfigurationError(SanityRunnerError):
    """Raised when a harness file or matrix input is invalid.

    Covers YAML syntax errors, schema violations, unset environment
    variables, and semantic problems such as duplicate connectors.

    Attributes:
        field_path: Dotted path of the offending field (e.g. 'matrix.lanes').
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        field_path: str | None = None,
    ) -> None:
        self.field_path = field_path
        if suggestion is None:
            suggestion = self._generate_suggestion(message, field_path)
        super().__init__(message, suggestion, file_path, line_number)

    def _generate_suggestion(self, message: str, field_path: str | None) -> str | None:
        """Pick a default suggestion from keywords in the message."""
        msg_lower = message.lower()

        if "duplicate" in msg_lower and "connector" in msg_lower:
            return "List each connector only once in matrix.connectors"
        if "lane" in msg_lower:
            return "Set matrix.lanes (or --lanes) to a positive integer"
        if "required" in msg_lower:
            return f"Add the missing required field{' at ' + field_path if field_path else ''}"
        if "type" in msg_lower or "validation" in msg_lower:
            return "Make the field value match the type the harness schema expects"
        return None

    def __str__(self) -> str:
        msg = self.args[0] if self.args else ""
        if self.field_path:
            msg += f"\n\n📋 Field: {self.field_path}"
        return msg + self._format_location() + self._format_suggestion()


class ExecutionError(SanityRunnerError):
    """Base class for errors raised while a harness is running.

    Attributes:
        lane: Index of the lane the error belongs to, if any.
    """

    def __init__(
        self,
        message: str,
        suggestion: str | None = None,
        file_path: str | None = None,
        line_number: int | None = None,
        lane: int | None = None,
    ) -> None:
        self.lane = lane
        super().__init__(message, suggestion, file_path, line_number)


class DependencyUnavailableError(ExecutionError):
    """Raised when the readiness gate exhausts its retries for a service.

    This is fatal and aborts the run before any test executes.

    Attributes:
        service: Name of the service that never became healthy.
        attempts: Number of probes that were made.
        last_detail: Output or reason from the last failed probe.
    """

    def __init__(
        self,
        message: str,
        *,
        service: str,
        attempts: int,
        last_detail: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.service = service
        self.attempts = attempts
        self.last_detail = last_detail

        if suggestion is None:
            suggestion = (
                f"Check that '{service}' is running and reachable, or increase "
                "its max_retries / interval_seconds"
            )

        super().__init__(message, suggestion)


class ScriptInvocationError(ExecutionError):
    """Raised when an external command is missing or not executable.

    Attributes:
        command: The command line that could not be started.
    """

    def __init__(
        self,
        message: str,
        *,
        command: list[str],
        lane: int | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.command = command

        if suggestion is None and command:
            suggestion = (
                f"Ensure '{command[0]}' exists, is on PATH, and is executable "
                "(chmod +x)"
            )

        super().__init__(message, suggestion, lane=lane)


class TestFailureError(ExecutionError):
    """Raised at the end of a run whose verdict is failure.

    Individual test failures are recorded on lane results and never raised
    mid-run; this error only reports the final outcome.

    Attributes:
        failed_tests: Names of the tests that failed, across all lanes.
        marker_count: Number of failure markers found in the results log.
    """

    __test__ = False

    def __init__(
        self,
        message: str,
        *,
        failed_tests: list[str] | None = None,
        marker_count: int = 0,
        results_log: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.failed_tests = failed_tests or []
        self.marker_count = marker_count

        if suggestion is None and results_log:
            suggestion = f"Inspect {results_log} for the failing test output"

        super().__init__(message, suggestion, file_path=results_log)


class TimeoutError(ExecutionError):
    """Raised when the lane phase exceeds its timeout limit.

    Attributes:
        elapsed_seconds: The time elapsed before the timeout.
        timeout_seconds: The configured timeout limit.
    """

    def __init__(
        self,
        message: str,
        *,
        elapsed_seconds: float,
        timeout_seconds: float,
        suggestion: str | None = None,
    ) -> None:
        self.elapsed_seconds = elapsed_seconds
        self.timeout_seconds = timeout_seconds

        if suggestion is None:
            suggestion = (
                f"Increase harness.limits.timeout_seconds (currently {int(timeout_seconds)}s) "
                "or spread connectors across more lanes"
            )

        super().__init__(message, suggestion)
