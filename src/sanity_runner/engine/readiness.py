# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Dependency readiness gate.

This module polls auxiliary services (cache store, relational database)
until each reports healthy. Services are gated one after another in
configuration order; the first one to exhaust its retries aborts the run
with DependencyUnavailableError before any lane starts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from sanity_runner.exceptions import DependencyUnavailableError

if TYPE_CHECKING:
    from sanity_runner.config.schema import ServiceDef

logger = logging.getLogger(__name__)


class ServiceHealth(str, Enum):
    """Health of one auxiliary service during gating."""

    PENDING = "pending"
    HEALTHY = "healthy"
    FAILED = "failed"


@dataclass
class ProbeResult:
    """Outcome of a single probe attempt."""

    ok: bool
    """Whether the service reported healthy."""

    detail: str = ""
    """Probe output or the reason it failed."""


@dataclass
class ServiceStatus:
    """Gating state of one service.

    Attributes:
        name: Service name.
        health: Current health.
        attempts: Number of probes made so far.
        last_detail: Detail from the most recent probe.
    """

    name: str
    health: ServiceHealth = ServiceHealth.PENDING
    attempts: int = 0
    last_detail: str | None = None


ProbeFn = Callable[["ServiceDef"], Awaitable[ProbeResult]]
SleepFn = Callable[[float], Awaitable[None]]


async def run_command_probe(command: list[str]) -> ProbeResult:
    """Run a probe command; exit code 0 means healthy.

    A command that cannot be started counts as an unhealthy probe, since
    the client tool may simply not be installed on the runner yet.
    """
    try:
        proc = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except (FileNotFoundError, PermissionError) as e:
        logger.warning(f"Probe command '{command[0]}' could not be started: {e}")
        return ProbeResult(ok=False, detail=f"cannot execute {command[0]}: {e}")

    try:
        stdout, _ = await proc.communicate()
    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

    output = stdout.decode(errors="replace").strip()
    if proc.returncode == 0:
        return ProbeResult(ok=True, detail=output)
    return ProbeResult(ok=False, detail=output or f"exit code {proc.returncode}")


async def run_tcp_probe(host: str, port: int) -> ProbeResult:
    """Try to open a TCP connection; success means healthy."""
    try:
        _, writer = await asyncio.open_connection(host, port)
    except OSError as e:
        return ProbeResult(ok=False, detail=f"{host}:{port} unreachable: {e}")
    writer.close()
    await writer.wait_closed()
    return ProbeResult(ok=True, detail=f"{host}:{port} accepted connection")


async def probe_service(service: ServiceDef) -> ProbeResult:
    """Run the probe configured for a service."""
    if service.probe.kind == "command":
        return await run_command_probe(list(service.probe.command or []))
    return await run_tcp_probe(service.probe.host, service.probe.port or 0)


class ReadinessGate:
    """Blocks until every configured service is healthy.

    Each service is probed at most ``max_retries`` times, sleeping
    ``interval_seconds`` between attempts but never after the last one.
    A probe running longer than ``timeout_seconds`` counts as failed.

    Example:
        >>> gate = ReadinessGate(config.services)
        >>> await gate.wait()  # raises DependencyUnavailableError on failure
        >>> gate.statuses["redis"].health
        <ServiceHealth.HEALTHY: 'healthy'>
    """

    def __init__(
        self,
        services: list[ServiceDef],
        probe: ProbeFn | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        """Initialize the ReadinessGate.

        Args:
            services: Services to gate, in order.
            probe: Probe implementation. Defaults to ``probe_service``.
            sleep: Sleep implementation. Defaults to ``asyncio.sleep``.
        """
        self.services = services
        self._probe = probe or probe_service
        self._sleep = sleep or asyncio.sleep
        self.statuses: dict[str, ServiceStatus] = {
            s.name: ServiceStatus(name=s.name) for s in services
        }

    @property
    def all_healthy(self) -> bool:
        """True once every service has reported healthy."""
        return all(s.health is ServiceHealth.HEALTHY for s in self.statuses.values())

    async def wait(self) -> dict[str, ServiceStatus]:
        """Gate every service in order.

        Returns:
            Final status per service name.

        Raises:
            DependencyUnavailableError: If a service exhausts its retries.
        """
        for service in self.services:
            await self.wait_for_service(service)
        return self.statuses

    async def wait_for_service(self, service: ServiceDef) -> ServiceStatus:
        """Poll one service until healthy or out of retries.

        Raises:
            DependencyUnavailableError: After exactly ``max_retries`` failed probes.
        """
        status = self.statuses.setdefault(service.name, ServiceStatus(name=service.name))

        if service.start_period_seconds:
            await self._sleep(service.start_period_seconds)

        for attempt in range(1, service.max_retries + 1):
            status.attempts = attempt
            result = await self._attempt(service)
            status.last_detail = result.detail

            if result.ok:
                status.health = ServiceHealth.HEALTHY
                logger.info(f"Service '{service.name}' healthy after {attempt} probe(s)")
                return status

            logger.debug(
                f"Service '{service.name}' probe {attempt}/{service.max_retries} "
                f"failed: {result.detail}"
            )
            if attempt < service.max_retries:
                await self._sleep(service.interval_seconds)

        status.health = ServiceHealth.FAILED
        raise DependencyUnavailableError(
            f"Service '{service.name}' not healthy after {service.max_retries} probe(s)",
            service=service.name,
            attempts=status.attempts,
            last_detail=status.last_detail,
        )

    async def _attempt(self, service: ServiceDef) -> ProbeResult:
        try:
            return await asyncio.wait_for(self._probe(service), timeout=service.timeout_seconds)
        except asyncio.TimeoutError:
            return ProbeResult(
                ok=False, detail=f"probe timed out after {service.timeout_seconds}s"
            )
