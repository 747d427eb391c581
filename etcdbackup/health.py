# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Cluster Health - post-restore checks against the Kubernetes API.

Everything here is diagnostic: by the time it runs the restore has already
happened, so a slow or unhealthy API server is reported, never fatal.
"""

import asyncio
from pathlib import Path
from typing import Dict, List

import structlog

from etcdbackup.polling import Sleep, poll_until
from etcdbackup.process import CommandResult, CommandRunner, run_command

logger = structlog.get_logger()


class ClusterHealthChecker:
    """Query node and pod listings through kubectl."""

    def __init__(
        self,
        kubectl_path: str = "kubectl",
        kubeconfig: Path | None = None,
        runner: CommandRunner = run_command,
        sleep: Sleep = asyncio.sleep,
        command_timeout: float = 30.0,
    ):
        self.kubectl_path = kubectl_path
        self.kubeconfig = kubeconfig
        self._run = runner
        self._sleep = sleep
        self.command_timeout = command_timeout

    def _env(self) -> Dict[str, str] | None:
        return {"KUBECONFIG": str(self.kubeconfig)} if self.kubeconfig else None

    async def _kubectl(self, args: List[str]) -> CommandResult:
        try:
            return await self._run(
                [self.kubectl_path, *args],
                env=self._env(),
                timeout=self.command_timeout,
            )
        except OSError as e:
            return CommandResult(127, "", f"cannot run {self.kubectl_path}: {e}")

    async def nodes_responding(self) -> bool:
        """One `kubectl get nodes` probe."""
        result = await self._kubectl(["get", "nodes"])
        return result.ok

    async def wait_until_healthy(self, timeout: float, interval: float) -> bool:
        """
        Poll the node listing until it answers or timeout elapses.

        Returns:
            True if the API server responded within timeout
        """
        logger.info("health_check_started", timeout=timeout, interval=interval)
        healthy = await poll_until(
            self.nodes_responding,
            interval=interval,
            timeout=timeout,
            sleep=self._sleep,
            label="cluster-health",
        )
        if healthy:
            logger.info("api_server_responding")
        else:
            logger.warning("api_server_not_responding", timeout=timeout)
        return healthy

    async def describe(self) -> Dict[str, str]:
        """
        Collect node and kube-system pod listings for the log.

        Returns:
            {"nodes": ..., "pods": ...} raw kubectl output
        """
        listings: Dict[str, str] = {}
        for name, args in (
            ("nodes", ["get", "nodes"]),
            ("pods", ["get", "pods", "-n", "kube-system"]),
        ):
            result = await self._kubectl(args)
            listings[name] = result.stdout if result.ok else result.stderr
            logger.info(f"cluster_{name}", ok=result.ok, output=listings[name].strip())
        return listings
