# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""CLI module for Sanity Runner.

This module provides the command-line interface using Typer.
"""

from sanity_runner.cli.app import app

__all__ = ["app"]
