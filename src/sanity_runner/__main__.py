# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Entry point for running sanity_runner as a module.

Usage:
    python -m sanity_runner
"""

from sanity_runner.cli.app import app


def main() -> None:
    """Main entry point for the sanity-runner CLI."""
    app()


if __name__ == "__main__":
    main()
