# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Sanity Runner - A CLI harness for running connector UI sanity tests.

Sanity Runner orchestrates connector test lanes defined in YAML. It gates
the run on auxiliary service health, partitions the connector list into
parallel lanes, invokes the external test command once per lane, and
decides the overall verdict from the combined results log.

Example:
    Run a harness from the command line::

        $ sanity-runner run harness.yaml --event workflow_dispatch

    Or use the library programmatically::

        from sanity_runner.config.loader import load_config
        from sanity_runner.engine.harness import HarnessEngine

        config = load_config("harness.yaml")
        engine = HarnessEngine(config)
        result = await engine.run()

Modules:
    config: Harness loading, schema validation, and environment variable resolution.
    engine: Matrix partitioning, readiness gate, lane invocation, and aggregation.
    cli: Command-line interface commands.
    exceptions: Custom exception hierarchy.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
