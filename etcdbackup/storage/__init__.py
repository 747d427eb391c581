# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote Store - durable off-host storage for backup artifacts.
"""

from etcdbackup.storage.base import RemoteStore
from etcdbackup.storage.s3 import S3RemoteStore, classify_error, create_session

__all__ = [
    "RemoteStore",
    "S3RemoteStore",
    "classify_error",
    "create_session",
]
