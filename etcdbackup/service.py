# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Service Controller - stop/start the managed cluster service via systemd.

stop() and start() return only once the service has reached the wanted
state, or raise once the bounded wait elapses.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List

import structlog

from etcdbackup.exceptions import ServiceError, ServiceStartTimeout, ServiceStopTimeout
from etcdbackup.models import ServiceState
from etcdbackup.polling import Sleep, poll_until
from etcdbackup.process import CommandResult, CommandRunner, run_command

logger = structlog.get_logger()

# `systemctl is-active` output -> ServiceState
_SYSTEMD_STATES = {
    "active": ServiceState.ACTIVE,
    "reloading": ServiceState.ACTIVE,
    "activating": ServiceState.STARTING,
    "deactivating": ServiceState.STOPPING,
    "inactive": ServiceState.STOPPED,
    "failed": ServiceState.STOPPED,
}


class ServiceController(ABC):
    """Start, stop and probe a named service."""

    @abstractmethod
    async def stop(self, service_name: str, max_wait: float) -> None:
        """Stop and wait until stopped. Raises ServiceStopTimeout."""

    @abstractmethod
    async def start(self, service_name: str, max_wait: float) -> None:
        """Start and wait until active. Raises ServiceStartTimeout."""

    @abstractmethod
    async def is_active(self, service_name: str) -> bool:
        """Single probe, no retry."""


class SystemdServiceController(ServiceController):
    """ServiceController driving systemctl."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        poll_interval: float = 2.0,
        systemctl_path: str = "systemctl",
        sleep: Sleep = asyncio.sleep,
    ):
        self._run = runner
        self.poll_interval = poll_interval
        self.systemctl_path = systemctl_path
        self._sleep = sleep

    async def _systemctl(self, args: List[str]) -> CommandResult:
        try:
            return await self._run([self.systemctl_path, *args])
        except OSError as e:
            raise ServiceError(
                f"Cannot run {self.systemctl_path}: {e}",
                details={"args": args},
            ) from e

    async def state(self, service_name: str) -> ServiceState:
        """Read the current state with one `systemctl is-active` call."""
        result = await self._systemctl(["is-active", service_name])
        return _SYSTEMD_STATES.get(result.stdout.strip(), ServiceState.UNKNOWN)

    async def is_active(self, service_name: str) -> bool:
        result = await self._systemctl(["is-active", "--quiet", service_name])
        return result.ok

    async def stop(self, service_name: str, max_wait: float) -> None:
        logger.info("service_stopping", service=service_name, max_wait=max_wait)

        result = await self._systemctl(["stop", service_name])
        if not result.ok:
            raise ServiceError(
                f"systemctl stop {service_name} exited with status {result.returncode}",
                details={"service": service_name, "stderr": result.stderr.strip()},
            )

        async def stopped() -> bool:
            return await self.state(service_name) is ServiceState.STOPPED

        if not await poll_until(
            stopped,
            interval=self.poll_interval,
            timeout=max_wait,
            sleep=self._sleep,
            label=f"stop:{service_name}",
        ):
            raise ServiceStopTimeout(
                f"{service_name} still running after {max_wait}s",
                details={"service": service_name, "max_wait": max_wait},
            )

        logger.info("service_stopped", service=service_name)

    async def start(self, service_name: str, max_wait: float) -> None:
        logger.info("service_starting", service=service_name, max_wait=max_wait)

        result = await self._systemctl(["start", service_name])
        if not result.ok:
            raise ServiceError(
                f"systemctl start {service_name} exited with status {result.returncode}",
                details={"service": service_name, "stderr": result.stderr.strip()},
            )

        if not await poll_until(
            lambda: self.is_active(service_name),
            interval=self.poll_interval,
            timeout=max_wait,
            sleep=self._sleep,
            label=f"start:{service_name}",
        ):
            raise ServiceStartTimeout(
                f"{service_name} not active after {max_wait}s",
                details={"service": service_name, "max_wait": max_wait},
            )

        logger.info("service_started", service=service_name)
