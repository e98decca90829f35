# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""YAML harness loader with environment variable resolution.

This module handles loading YAML harness files, resolving environment
variables, and parsing them into typed Pydantic models. Schema errors
are reported with the offending field path and, where ruamel.yaml kept
it, the source line.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.comments import CommentedMap, CommentedSeq
from ruamel.yaml.error import YAMLError

from sanity_runner.config.schema import HarnessConfig
from sanity_runner.exceptions import ConfigurationError

# ${VAR} or ${VAR:-default}
ENV_VAR_PATTERN = re.compile(r"\$\{([^}:]+)(?::-([^}]*))?\}")

MAX_ENV_DEPTH = 10
"""How many rounds of nested references are expanded before giving up."""


def _lookup(match: re.Match[str]) -> str:
    name, default = match.group(1), match.group(2)
    if name in os.environ:
        return os.environ[name]
    if default is not None:
        return default
    raise ConfigurationError(
        f"Required environment variable '{name}' is not set",
        suggestion=f"Export {name} or give it a default: ${{{name}:-value}}",
    )


def resolve_env_vars(value: str, max_depth: int = MAX_ENV_DEPTH) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in a string.

    A variable's value may hold further references, such as a
    DATABASE_URL built from other variables. Expansion repeats until no
    reference is left, for at most ``max_depth`` rounds.

    Raises:
        ConfigurationError: If a variable without default is unset, or
            references are still left after ``max_depth`` rounds.
    """
    for _ in range(max_depth):
        if not ENV_VAR_PATTERN.search(value):
            return value
        value = ENV_VAR_PATTERN.sub(_lookup, value)

    if ENV_VAR_PATTERN.search(value):
        raise ConfigurationError(
            f"Environment variable references nest deeper than {max_depth} levels in: {value}",
            suggestion="Look for a variable that refers to itself, directly or through another.",
        )
    return value


def _resolve_env_vars_recursive(data: Any) -> Any:
    """Resolve environment variables in every string of a parsed document.

    Mappings and sequences are updated in place so ruamel.yaml's line
    information survives for later error reporting.
    """
    if isinstance(data, dict):
        for key in list(data.keys()):
            data[key] = _resolve_env_vars_recursive(data[key])
        return data
    if isinstance(data, list):
        for i, item in enumerate(data):
            data[i] = _resolve_env_vars_recursive(item)
        return data
    if isinstance(data, str):
        return resolve_env_vars(data)
    return data


def _line_for(data: Any, loc: tuple[Any, ...]) -> int | None:
    """Find the 1-based source line of the node at ``loc``.

    Walks the ruamel.yaml round-trip structure as far as the location
    allows and returns the line of the deepest node that was found.
    """
    line: int | None = None
    node = data
    for part in loc:
        if isinstance(node, CommentedMap) and part in node:
            try:
                line = node.lc.key(part)[0] + 1
            except (KeyError, TypeError):
                pass
            node = node[part]
        elif isinstance(node, CommentedSeq) and isinstance(part, int) and part < len(node):
            try:
                line = node.lc.item(part)[0] + 1
            except (KeyError, TypeError):
                pass
            node = node[part]
        else:
            break
    return line


class ConfigLoader:
    """Reads harness files into HarnessConfig models.

    Parsing uses ruamel.yaml in round-trip mode so that schema errors can
    be traced back to a line of the source file. ``${VAR}`` references
    are expanded before validation.
    """

    def __init__(self) -> None:
        self._yaml = YAML()
        self._yaml.preserve_quotes = True

    def load(self, path: str | Path) -> HarnessConfig:
        """Load and validate a harness file.

        Raises:
            ConfigurationError: If the file is missing or unreadable, is not
                valid YAML, or does not match the harness schema.
        """
        path = Path(path)

        if not path.exists():
            raise ConfigurationError(
                f"Harness file not found: {path}",
                suggestion="Pass the path of an existing harness YAML file.",
            )
        if not path.is_file():
            raise ConfigurationError(
                f"Path is not a file: {path}",
                suggestion="Pass a harness YAML file rather than a directory.",
            )

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(
                f"Failed to read harness file '{path}': {e}",
                suggestion="Make sure the file is readable by the current user.",
            ) from e

        return self.load_string(content, source_path=path)

    def load_string(self, content: str, source_path: Path | None = None) -> HarnessConfig:
        """Load and validate harness YAML held in a string.

        Args:
            content: YAML text.
            source_path: File the text came from, used in error messages.

        Raises:
            ConfigurationError: If the text is not valid YAML or does not
                match the harness schema.
        """
        source = str(source_path) if source_path else "<string>"

        try:
            data = self._yaml.load(content)
        except YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            raise ConfigurationError(
                f"Invalid YAML syntax in '{source}': {e}",
                suggestion="Look for bad indentation or an unclosed bracket "
                "near the reported line.",
                file_path=source,
                line_number=mark.line + 1 if mark is not None else None,
            ) from e

        if data is None:
            raise ConfigurationError(
                f"Empty harness file: {source}",
                suggestion="Add harness, matrix and runner sections to the YAML file.",
                file_path=source,
            )
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Invalid harness format in '{source}': "
                f"expected a mapping, got {type(data).__name__}",
                suggestion="The top level of a harness file must be a mapping.",
                file_path=source,
            )

        try:
            _resolve_env_vars_recursive(data)
        except ConfigurationError as e:
            e.file_path = source
            raise

        return self._validate(data, source)

    def _validate(self, data: dict[str, Any], source: str) -> HarnessConfig:
        try:
            return HarnessConfig.model_validate(data)
        except PydanticValidationError as e:
            errors = e.errors()
            lines = [
                f"  - {'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
                for err in errors
            ]
            first_loc = tuple(errors[0]["loc"]) if errors else ()
            raise ConfigurationError(
                f"Configuration validation failed in '{source}':\n" + "\n".join(lines),
                suggestion="Compare the listed fields with the harness schema; "
                "a field may be missing or of the wrong type.",
                file_path=source,
                line_number=_line_for(data, first_loc),
                field_path=".".join(str(part) for part in first_loc) or None,
            ) from e


def load_config(path: str | Path) -> HarnessConfig:
    """Load and validate a harness file."""
    return ConfigLoader().load(path)


def load_config_string(content: str, source_path: Path | None = None) -> HarnessConfig:
    """Load and validate harness YAML held in a string."""
    return ConfigLoader().load_string(content, source_path)
