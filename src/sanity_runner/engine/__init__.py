# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Harness engine module for Sanity Runner.

This module contains the matrix partitioner, readiness gate, lane
invoker, result aggregation, trigger filtering, and the engine that
sequences them.
"""

from sanity_runner.engine.harness import ExecutionPlan, HarnessEngine
from sanity_runner.engine.invoker import TestRunnerInvoker
from sanity_runner.engine.limits import LimitEnforcer
from sanity_runner.engine.matrix import ConnectorGroup, build_matrix, partition
from sanity_runner.engine.readiness import ReadinessGate, ServiceHealth
from sanity_runner.engine.results import (
    LaneResult,
    RunResult,
    TestOutcome,
    TestStatus,
    check_results_log,
)
from sanity_runner.engine.triggers import TriggerDecision, TriggerEvent, evaluate_trigger

__all__ = [
    "ConnectorGroup",
    "ExecutionPlan",
    "HarnessEngine",
    "LaneResult",
    "LimitEnforcer",
    "ReadinessGate",
    "RunResult",
    "ServiceHealth",
    "TestOutcome",
    "TestRunnerInvoker",
    "TestStatus",
    "TriggerDecision",
    "TriggerEvent",
    "build_matrix",
    "check_results_log",
    "evaluate_trigger",
    "partition",
]
