# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Models - Artifacts, requests, states and pipeline results.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import List

from etcdbackup.exceptions import EtcdBackupError, HealthCheckError, PruneError


class ServiceState(str, Enum):
    """Observed state of the managed service."""

    STOPPED = "stopped"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"
    UNKNOWN = "unknown"


class BackupStage(str, Enum):
    """Backup pipeline states, in order."""

    IDLE = "idle"
    PREREQ_CHECKED = "prereq_checked"
    CAPTURED = "captured"
    VERIFIED = "verified"
    COMPRESSED = "compressed"
    UPLOADED = "uploaded"
    PRUNED = "pruned"
    DONE = "done"


class RestoreStage(str, Enum):
    """Restore pipeline states, in order."""

    IDLE = "idle"
    LISTED = "listed"
    SELECTED = "selected"
    CONFIRMED = "confirmed"
    DOWNLOADED = "downloaded"
    SERVICE_STOPPED = "service_stopped"
    PRE_SAFEGUARDED = "pre_safeguarded"
    DATA_REPLACED = "data_replaced"
    SERVICE_STARTED = "service_started"
    HEALTH_CHECKED = "health_checked"
    DONE = "done"
    CANCELLED = "cancelled"


class BackupStep(str, Enum):
    """Backup steps; a failed run names the step that failed."""

    PREREQ = "prereq"
    CAPTURE = "capture"
    VERIFY = "verify"
    COMPRESS = "compress"
    UPLOAD = "upload"
    PRUNE = "prune"


class RestoreStep(str, Enum):
    """Restore steps; a failed run names the step that failed."""

    USAGE = "usage"
    PREREQ = "prereq"
    DOWNLOAD = "download"
    STOP_SERVICE = "stop_service"
    SAFEGUARD = "safeguard"
    REPLACE_DATA = "replace_data"
    START_SERVICE = "start_service"


@dataclass(frozen=True)
class BackupArtifact:
    """
    One completed backup.

    Frozen: compression and upload produce new instances through
    with_compression() / with_upload(), so an uploaded artifact is never
    changed afterwards.
    """

    hostname: str
    created_at: datetime
    logical_name: str
    size_bytes: int
    local_path: Path
    compressed: bool = False
    remote_key: str | None = None
    checksum_or_revision: str | None = None

    @property
    def file_name(self) -> str:
        return self.local_path.name

    @property
    def uploaded(self) -> bool:
        return self.remote_key is not None

    def with_compression(self, path: Path) -> "BackupArtifact":
        return replace(
            self, local_path=path, compressed=True, size_bytes=path.stat().st_size
        )

    def with_upload(self, remote_key: str) -> "BackupArtifact":
        return replace(self, remote_key=remote_key)


@dataclass(frozen=True)
class ObjectInfo:
    """A remote object as returned by RemoteStore.list()."""

    key: str
    size: int
    last_modified: datetime

    @property
    def name(self) -> str:
        return self.key.rsplit("/", 1)[-1]


@dataclass(frozen=True)
class RetentionWindow:
    """Age threshold and the instant it is measured from."""

    threshold_days: int
    now: datetime

    def is_expired(self, last_modified: datetime) -> bool:
        """Strictly older than the threshold; exactly at it is retained."""
        return self.now - last_modified > timedelta(days=self.threshold_days)


@dataclass
class RestoreRequest:
    """State of a single restore invocation."""

    artifact_name: str | None
    confirmed: bool = False
    resolved_local_path: Path | None = None
    pre_restore_snapshot_path: Path | None = None


@dataclass
class PruneReport:
    """Outcome of one pruning pass over a storage tier."""

    tier: str
    deleted: List[str] = field(default_factory=list)
    bytes_freed: int = 0
    failures: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_error(self) -> PruneError | None:
        """The accumulated failures as one non-fatal PruneError, if any."""
        if not self.failures:
            return None
        return PruneError(
            f"{len(self.failures)} {self.tier} artifact(s) could not be pruned",
            details={"tier": self.tier, "failures": list(self.failures)},
        )


@dataclass
class BackupResult:
    """Result of a backup pipeline run."""

    run_id: str
    stage: BackupStage
    artifact: BackupArtifact | None = None
    failed_stage: BackupStep | None = None
    error: EtcdBackupError | None = None
    local_prune: PruneReport | None = None
    remote_prune: PruneReport | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @property
    def prune_errors(self) -> List[PruneError]:
        reports = (self.local_prune, self.remote_prune)
        return [e for e in (r.as_error() for r in reports if r is not None) if e]


@dataclass
class RestoreResult:
    """Result of a restore pipeline run."""

    run_id: str
    stage: RestoreStage
    request: RestoreRequest
    failed_stage: RestoreStep | None = None
    error: EtcdBackupError | None = None
    health_ok: bool | None = None
    health_error: HealthCheckError | None = None
    warnings: List[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.stage is RestoreStage.DONE

    @property
    def cancelled(self) -> bool:
        return self.stage is RestoreStage.CANCELLED
