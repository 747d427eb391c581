# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd S3 Backup - Snapshot, archive and restore an RKE2 etcd member via S3.

Captures a verified etcd snapshot, compresses it, uploads it under a
per-host prefix, prunes expired copies locally and remotely, and restores
a chosen backup into the node's data directory with the service stopped
and the previous data kept aside. Package name: etcdbackup.
"""

__version__ = "0.1.0"

# Configuration creation (user-facing API)
from etcdbackup.builder import create_config
from etcdbackup.config import BackupConfig, CompressionCodec

# Core functions
from etcdbackup.core import (
    initialize_components,
    run_backup,
    run_restore,
    list_remote_backups,
)

# Environment-based configuration (additional helpers)
from etcdbackup.env import create_config_from_env, load_env_file

__all__ = [
    # Version
    "__version__",
    # Configuration creation (primary user-facing APIs)
    "create_config",
    "create_config_from_env",
    "load_env_file",
    "BackupConfig",
    "CompressionCodec",
    # Core orchestration functions
    "initialize_components",
    "run_backup",
    "run_restore",
    "list_remote_backups",
]
