# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Exceptions - Custom exceptions for the etcdbackup package.

Every pipeline stage raises a subclass of EtcdBackupError. The orchestrators
turn these into a failed result that names the stage; only the CLI decides
which exit code a failure maps to.
"""

from enum import Enum


class EtcdBackupError(Exception):
    """Base exception for all etcdbackup errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(EtcdBackupError):
    """Raised when configuration is invalid."""

    pass


class UsageError(EtcdBackupError):
    """Raised when a command is invoked without required arguments."""

    pass


class PrerequisiteError(EtcdBackupError):
    """Raised when a pre-flight check fails (missing tool, cert, permission)."""

    pass


# ============================================================================
# Snapshot engine
# ============================================================================


class SnapshotError(EtcdBackupError):
    """Base class for snapshot engine failures."""

    pass


class CaptureError(SnapshotError):
    """Raised when `snapshot save` fails."""

    pass


class VerifyError(SnapshotError):
    """Raised when a snapshot cannot be verified."""

    pass


class SnapshotCorruptError(VerifyError):
    """The status tool reported the snapshot file invalid."""

    pass


class ToolMissingError(VerifyError):
    """The verification tool is not available."""

    pass


class RestoreError(SnapshotError):
    """Raised when `snapshot restore` fails."""

    pass


class RestoreToolError(RestoreError):
    """The restore tool exited non-zero or could not be executed."""

    pass


class TargetNotEmptyError(RestoreError):
    """The restore target directory still holds data."""

    pass


# ============================================================================
# Archive codec
# ============================================================================


class CodecError(EtcdBackupError):
    """Raised when compression or decompression fails."""

    pass


class CorruptArchiveError(CodecError):
    """The compressed stream is malformed."""

    pass


# ============================================================================
# Remote store
# ============================================================================


class RemoteFailure(str, Enum):
    """Why a remote store call failed."""

    AUTH_FAILURE = "auth_failure"
    NETWORK_FAILURE = "network_failure"
    BUCKET_NOT_FOUND = "bucket_not_found"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"


class RemoteStoreError(EtcdBackupError):
    """Base class for remote object store failures."""

    def __init__(
        self,
        message: str,
        reason: RemoteFailure = RemoteFailure.UNKNOWN,
        details: dict | None = None,
    ):
        self.reason = reason
        super().__init__(message, details)


class UploadError(RemoteStoreError):
    """Raised when an upload fails."""

    pass


class DownloadError(RemoteStoreError):
    """Raised when a download fails."""

    pass


class DeleteError(RemoteStoreError):
    """Raised when a delete fails for a reason other than absence."""

    pass


class PruneError(EtcdBackupError):
    """One or more artifacts could not be pruned. Never fatal."""

    pass


# ============================================================================
# Service control and health
# ============================================================================


class ServiceError(EtcdBackupError):
    """Raised when the managed service does not reach the wanted state."""

    pass


class ServiceStopTimeout(ServiceError):
    """The service was still active when the stop wait elapsed."""

    pass


class ServiceStartTimeout(ServiceError):
    """The service was not active when the start wait elapsed."""

    pass


class HealthCheckError(EtcdBackupError):
    """The cluster did not report healthy in time. Diagnostic only."""

    pass
