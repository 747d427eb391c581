# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Backup Engine - Backup and restore pipelines.
"""

from etcdbackup.backup.manager import (
    BackupOrchestrator,
    artifact_name,
    upload_metadata,
)

from etcdbackup.backup.restore import (
    RestoreOrchestrator,
    safeguard_path,
    validate_artifact_name,
)

__all__ = [
    # Manager
    "BackupOrchestrator",
    "artifact_name",
    "upload_metadata",
    # Restore
    "RestoreOrchestrator",
    "safeguard_path",
    "validate_artifact_name",
]
