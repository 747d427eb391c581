# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot Engine - capture, verify and restore key-value store snapshots.
"""

from etcdbackup.snapshot.base import (
    NodeIdentity,
    SnapshotEngine,
    SnapshotMetadata,
    TLSMaterial,
    VerifyReport,
)
from etcdbackup.snapshot.etcdctl import EtcdctlSnapshotEngine

__all__ = [
    "EtcdctlSnapshotEngine",
    "NodeIdentity",
    "SnapshotEngine",
    "SnapshotMetadata",
    "TLSMaterial",
    "VerifyReport",
]
