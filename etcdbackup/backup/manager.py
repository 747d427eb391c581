# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Manager - the backup pipeline.

capture -> verify -> compress -> upload -> prune (local) -> prune (remote)

Each step completes before the next starts and the first failing step
aborts the run, except pruning, which keeps going past individual
failures and reports them. Nothing the pipeline created is cleaned up on
failure: an unverified snapshot stays on disk as evidence and a compressed
artifact that failed to upload stays as a local fallback.
"""

import time
from dataclasses import replace
from datetime import datetime, UTC
from typing import Callable

import structlog

from etcdbackup.archive.codec import ArchiveCodec
from etcdbackup.config import BackupConfig
from etcdbackup.exceptions import CaptureError, EtcdBackupError
from etcdbackup.models import BackupArtifact, BackupResult, BackupStage, BackupStep
from etcdbackup.notify import Notifier
from etcdbackup.prereq import check_backup_prerequisites
from etcdbackup.retention import prune_local_backups, prune_remote_backups
from etcdbackup.snapshot.base import SnapshotEngine, TLSMaterial
from etcdbackup.storage.base import RemoteStore

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def artifact_name(config: BackupConfig, created_at: datetime) -> str:
    """`<backup_prefix>-<timestamp>.db` for a capture at created_at."""
    return f"{config.backup_prefix}-{created_at.strftime(config.date_format)}.db"


def upload_metadata(config: BackupConfig, created_at: datetime) -> dict:
    """Object metadata attached to every upload."""
    return {
        "hostname": config.hostname,
        "timestamp": created_at.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "cluster": config.cluster_tag,
    }


class BackupOrchestrator:
    """Drive one backup run from pre-flight checks to remote pruning."""

    def __init__(
        self,
        config: BackupConfig,
        engine: SnapshotEngine,
        codec: ArchiveCodec,
        store: RemoteStore,
        *,
        notifier: Notifier | None = None,
        prerequisites: Callable[[BackupConfig], None] = check_backup_prerequisites,
        clock: Clock = lambda: datetime.now(UTC),
    ):
        self.config = config
        self.engine = engine
        self.codec = codec
        self.store = store
        self.notifier = notifier
        self.prerequisites = prerequisites
        self.clock = clock

    async def run(self, run_id: str | None = None) -> BackupResult:
        """
        Execute the pipeline once.

        Args:
            run_id: Identifier bound to every log line (ULID when omitted)

        Returns:
            BackupResult; on failure `failed_stage` names the step and
            `error` holds the exception. Prune failures are reported in the
            prune reports and do not fail the run.
        """
        from ulid import ULID

        run_id = run_id or str(ULID())
        log = logger.bind(run_id=run_id, pipeline="backup", hostname=self.config.hostname)
        started = time.monotonic()
        result = BackupResult(run_id=run_id, stage=BackupStage.IDLE)
        step = BackupStep.PREREQ

        log.info("backup_started", bucket=self.config.bucket, prefix=self.config.host_prefix)

        try:
            self.prerequisites(self.config)
            self._advance(log, result, BackupStage.PREREQ_CHECKED)

            step = BackupStep.CAPTURE
            artifact = await self._capture()
            result.artifact = artifact
            self._advance(log, result, BackupStage.CAPTURED, path=str(artifact.local_path))

            step = BackupStep.VERIFY
            report = await self.engine.verify(artifact.local_path)
            artifact = replace(artifact, checksum_or_revision=report.checksum_or_revision)
            result.artifact = artifact
            self._advance(log, result, BackupStage.VERIFIED, revision=report.revision)

            step = BackupStep.COMPRESS
            if self.config.compression_enabled:
                compressed_path = await self.codec.compress(artifact.local_path)
                artifact = artifact.with_compression(compressed_path)
                result.artifact = artifact
                self._advance(log, result, BackupStage.COMPRESSED, path=str(compressed_path))
            else:
                self._advance(log, result, BackupStage.COMPRESSED, skipped=True)

            step = BackupStep.UPLOAD
            key = f"{self.config.host_prefix}{artifact.file_name}"
            await self.store.put(
                key,
                artifact.local_path,
                upload_metadata(self.config, artifact.created_at),
            )
            artifact = artifact.with_upload(key)
            result.artifact = artifact
            self._advance(
                log,
                result,
                BackupStage.UPLOADED,
                location=f"s3://{self.config.bucket}/{key}",
            )

            step = BackupStep.PRUNE
            now = self.clock()
            result.local_prune = prune_local_backups(
                self.config.backup_dir,
                self.config.backup_prefix,
                self.config.retention_days,
                now,
            )
            result.remote_prune = await prune_remote_backups(
                self.store,
                self.config.host_prefix,
                self.config.retention_days,
                now,
            )
            for prune_error in result.prune_errors:
                log.warning(
                    "prune_incomplete",
                    stage=BackupStage.PRUNED.value,
                    error=str(prune_error),
                )
            self._advance(log, result, BackupStage.PRUNED)

            self._advance(log, result, BackupStage.DONE)

        except EtcdBackupError as e:
            result.failed_stage = step
            result.error = e
            log.error(
                "backup_stage_failed",
                stage=step.value,
                reached=result.stage.value,
                error=str(e),
                error_type=type(e).__name__,
                local_artifact=(
                    str(result.artifact.local_path) if result.artifact else None
                ),
            )

        result.duration_seconds = time.monotonic() - started

        if result.succeeded:
            log.info(
                "backup_completed",
                location=result.artifact.remote_key if result.artifact else None,
                duration=result.duration_seconds,
            )

        if self.notifier is not None:
            await self.notifier.backup_finished(result, self.config.hostname)

        return result

    async def _capture(self) -> BackupArtifact:
        created_at = self.clock()
        name = artifact_name(self.config, created_at)
        destination = self.config.backup_dir / name

        try:
            self.config.backup_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CaptureError(
                f"Cannot create backup directory {self.config.backup_dir}: {e}",
                details={"path": str(self.config.backup_dir)},
            ) from e

        metadata = await self.engine.capture(
            destination,
            list(self.config.endpoints),
            TLSMaterial.from_cert_dir(self.config.cert_dir),
        )

        return BackupArtifact(
            hostname=self.config.hostname,
            created_at=created_at,
            logical_name=name,
            size_bytes=metadata.size_bytes,
            local_path=metadata.path,
        )

    @staticmethod
    def _advance(log, result: BackupResult, stage: BackupStage, **context) -> None:
        result.stage = stage
        log.info("stage_transition", stage=stage.value, **context)
