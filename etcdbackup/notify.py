# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Run notifications: a dead-man's-switch ping and a Slack message on failure.

Notification problems are logged and swallowed; they never change the
outcome of the run they report on.
"""

import httpx
import structlog

from etcdbackup.models import BackupResult

logger = structlog.get_logger()


class Notifier:
    """Report backup outcomes to optional external endpoints."""

    def __init__(
        self,
        slack_webhook_url: str | None = None,
        healthcheck_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.slack_webhook_url = slack_webhook_url
        self.healthcheck_url = healthcheck_url.rstrip("/") if healthcheck_url else None
        self.timeout = timeout
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.slack_webhook_url or self.healthcheck_url)

    async def backup_finished(self, result: BackupResult, hostname: str) -> None:
        """Ping the healthcheck URL and, on failure, post to Slack."""
        if not self.enabled:
            return

        async with httpx.AsyncClient(
            timeout=self.timeout, transport=self._transport
        ) as client:
            if self.healthcheck_url:
                url = self.healthcheck_url if result.succeeded else f"{self.healthcheck_url}/fail"
                await self._send(client, "healthcheck", "GET", url)

            if self.slack_webhook_url and not result.succeeded:
                stage = result.failed_stage.value if result.failed_stage else "unknown"
                text = (
                    f":rotating_light: etcd backup failed on {hostname} "
                    f"at stage {stage}: {result.error}"
                )
                await self._send(
                    client, "slack", "POST", self.slack_webhook_url, json={"text": text}
                )

    async def _send(
        self, client: httpx.AsyncClient, target: str, method: str, url: str, **kwargs
    ) -> None:
        try:
            resp = await client.request(method, url, **kwargs)
            if resp.status_code >= 400:
                logger.error(
                    "notification_failed", target=target, status=resp.status_code
                )
            else:
                logger.debug("notification_sent", target=target)
        except httpx.HTTPError as exc:
            logger.error("notification_error", target=target, error=str(exc))
