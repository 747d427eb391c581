# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Restore Manager - Replace the local data directory from a remote backup.

download -> decompress -> stop service -> safeguard current data ->
replace data dir -> start service -> health check

Nothing destructive happens before the operator confirms. Once the service
has been stopped every later failure aborts the run with the service left
stopped and the safeguard copy (if one was made) logged for manual recovery.
The final health check is diagnostic only.
"""

import asyncio
import shutil
import time
from datetime import datetime, UTC
from pathlib import Path
from typing import Callable, List

import structlog

from etcdbackup.archive.codec import ArchiveCodec, is_compressed
from etcdbackup.config import BackupConfig
from etcdbackup.exceptions import (
    DownloadError,
    EtcdBackupError,
    HealthCheckError,
    RestoreError,
    UsageError,
)
from etcdbackup.health import ClusterHealthChecker
from etcdbackup.models import (
    ObjectInfo,
    RestoreRequest,
    RestoreResult,
    RestoreStage,
    RestoreStep,
)
from etcdbackup.prereq import check_restore_prerequisites
from etcdbackup.service import ServiceController
from etcdbackup.snapshot.base import NodeIdentity, SnapshotEngine
from etcdbackup.storage.base import RemoteStore

logger = structlog.get_logger()

SAFEGUARD_PREFIX = "current-etcd-backup"


def validate_artifact_name(name: str | None) -> str:
    """
    Reject names that are empty or would escape the host prefix.

    Raises:
        UsageError: If no usable artifact name was given
    """
    if not name or not name.strip():
        raise UsageError("No backup file specified")
    if "/" in name or "\\" in name or name in (".", ".."):
        raise UsageError(
            f"Backup name must be a bare file name: {name!r}",
            details={"artifact": name},
        )
    return name


def safeguard_path(backup_dir: Path, now: datetime, date_format: str) -> Path:
    """A fresh `current-etcd-backup-<ts>` path that does not exist yet."""
    base = backup_dir / f"{SAFEGUARD_PREFIX}-{now.strftime(date_format)}"
    candidate = base
    n = 1
    while candidate.exists():
        candidate = base.with_name(f"{base.name}-{n}")
        n += 1
    return candidate


def _chown_tree(root: Path, owner: str | None, group: str | None) -> None:
    shutil.chown(root, user=owner, group=group)
    for path in root.rglob("*"):
        shutil.chown(path, user=owner, group=group)


class RestoreOrchestrator:
    """Drive one restore from artifact selection to the post-restore health check."""

    def __init__(
        self,
        config: BackupConfig,
        engine: SnapshotEngine,
        codec: ArchiveCodec,
        store: RemoteStore,
        services: ServiceController,
        health: ClusterHealthChecker,
        *,
        prerequisites: Callable[[BackupConfig], None] = check_restore_prerequisites,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.config = config
        self.engine = engine
        self.codec = codec
        self.store = store
        self.services = services
        self.health = health
        self.prerequisites = prerequisites
        self.clock = clock

    async def list_backups(self) -> List[ObjectInfo]:
        """
        List this host's remote backups, newest first.

        Raises:
            RemoteStoreError: If the listing fails
        """
        prefix = self.config.host_prefix
        objects = [obj async for obj in self.store.list(prefix)]
        objects.sort(key=lambda obj: obj.last_modified, reverse=True)

        logger.info(
            "stage_transition",
            pipeline="restore",
            stage=RestoreStage.LISTED.value,
            prefix=prefix,
            count=len(objects),
        )
        return objects

    async def run(
        self, request: RestoreRequest, run_id: str | None = None
    ) -> RestoreResult:
        """
        Restore the data directory from request.artifact_name.

        An unconfirmed request ends in CANCELLED before anything is
        downloaded, stopped or written.

        Args:
            request: Artifact selection and confirmation
            run_id: Identifier bound to every log line (ULID when omitted)

        Returns:
            RestoreResult with the final stage, failed step and warnings
        """
        from ulid import ULID

        run_id = run_id or str(ULID())
        log = logger.bind(run_id=run_id, pipeline="restore", hostname=self.config.hostname)
        started = time.monotonic()
        result = RestoreResult(run_id=run_id, stage=RestoreStage.IDLE, request=request)
        step = RestoreStep.USAGE

        try:
            name = validate_artifact_name(request.artifact_name)
            self._advance(log, result, RestoreStage.SELECTED, artifact=name)

            if not request.confirmed:
                self._advance(log, result, RestoreStage.CANCELLED, artifact=name)
                result.duration_seconds = time.monotonic() - started
                return result
            self._advance(log, result, RestoreStage.CONFIRMED)

            step = RestoreStep.PREREQ
            self.prerequisites(self.config)

            step = RestoreStep.DOWNLOAD
            request.resolved_local_path = await self._download(name)
            self._advance(
                log,
                result,
                RestoreStage.DOWNLOADED,
                path=str(request.resolved_local_path),
            )

            step = RestoreStep.STOP_SERVICE
            await self.services.stop(
                self.config.service_name, self.config.service_stop_timeout
            )
            self._advance(
                log, result, RestoreStage.SERVICE_STOPPED, service=self.config.service_name
            )

            step = RestoreStep.SAFEGUARD
            request.pre_restore_snapshot_path = await self._safeguard(log)
            self._advance(
                log,
                result,
                RestoreStage.PRE_SAFEGUARDED,
                path=(
                    str(request.pre_restore_snapshot_path)
                    if request.pre_restore_snapshot_path
                    else None
                ),
            )

            step = RestoreStep.REPLACE_DATA
            await self._replace_data(request.resolved_local_path)
            self._advance(
                log, result, RestoreStage.DATA_REPLACED, data_dir=str(self.config.data_dir)
            )

            step = RestoreStep.START_SERVICE
            await self.services.start(
                self.config.service_name, self.config.service_start_timeout
            )
            self._advance(
                log, result, RestoreStage.SERVICE_STARTED, service=self.config.service_name
            )

        except EtcdBackupError as e:
            result.failed_stage = step
            result.error = e
            log.error(
                "restore_stage_failed",
                stage=step.value,
                reached=result.stage.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            if request.pre_restore_snapshot_path is not None:
                log.warning(
                    "restore_recovery_hint",
                    safeguard=str(request.pre_restore_snapshot_path),
                    data_dir=str(self.config.data_dir),
                )
            result.duration_seconds = time.monotonic() - started
            return result

        result.health_ok = await self.health.wait_until_healthy(
            timeout=self.config.health_timeout,
            interval=self.config.health_interval,
        )
        if result.health_ok:
            await self.health.describe()
        else:
            result.health_error = HealthCheckError(
                f"API server not responding after {self.config.health_timeout:g}s",
                details={"timeout": self.config.health_timeout},
            )
            result.warnings.append(result.health_error.message)
        self._advance(log, result, RestoreStage.HEALTH_CHECKED, healthy=result.health_ok)

        self._advance(log, result, RestoreStage.DONE)
        result.duration_seconds = time.monotonic() - started
        log.info(
            "restore_completed",
            artifact=request.artifact_name,
            duration=result.duration_seconds,
            warnings=result.warnings,
        )
        return result

    async def _download(self, name: str) -> Path:
        key = f"{self.config.host_prefix}{name}"
        local_path = self.config.backup_dir / name

        try:
            self.config.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DownloadError(
                f"Cannot create backup directory {self.config.backup_dir}: {e}",
                details={"path": str(self.config.backup_dir)},
            ) from e

        logger.info(
            "backup_downloading",
            location=f"s3://{self.config.bucket}/{key}",
            destination=str(local_path),
        )
        await self.store.get(key, local_path)

        if is_compressed(local_path):
            local_path = await self.codec.decompress(local_path)

        return local_path

    async def _safeguard(self, log) -> Path | None:
        data_dir = self.config.data_dir
        if not data_dir.is_dir():
            log.warning("data_dir_missing", data_dir=str(data_dir))
            return None

        target = safeguard_path(
            self.config.backup_dir, self.clock(), self.config.date_format
        )
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(
                None, lambda: shutil.copytree(data_dir, target, symlinks=True)
            )
        except (OSError, shutil.Error) as e:
            raise RestoreError(
                f"Failed to copy {data_dir} to {target}: {e}",
                details={"data_dir": str(data_dir), "target": str(target)},
            ) from e
        return target

    async def _replace_data(self, snapshot: Path) -> None:
        data_dir = self.config.data_dir
        loop = asyncio.get_running_loop()

        if data_dir.exists():
            try:
                await loop.run_in_executor(None, shutil.rmtree, data_dir)
            except OSError as e:
                raise RestoreError(
                    f"Failed to remove {data_dir}: {e}",
                    details={"data_dir": str(data_dir)},
                ) from e
            logger.info("data_dir_removed", data_dir=str(data_dir))

        node = NodeIdentity.for_host(
            self.config.hostname, self.config.peer_port, self.config.cluster_token
        )
        await self.engine.restore_into(snapshot, data_dir, node)

        owner, group = self.config.data_owner, self.config.data_group
        if owner or group:
            try:
                await loop.run_in_executor(None, _chown_tree, data_dir, owner, group)
            except (OSError, LookupError) as e:
                raise RestoreError(
                    f"Failed to set ownership {owner}:{group} on {data_dir}: {e}",
                    details={"data_dir": str(data_dir)},
                ) from e
            logger.info("ownership_set", data_dir=str(data_dir), owner=owner, group=group)

    @staticmethod
    def _advance(log, result: RestoreResult, stage: RestoreStage, **context) -> None:
        result.stage = stage
        log.info("stage_transition", stage=stage.value, **context)
