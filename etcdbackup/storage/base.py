# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Remote store interface for backup artifacts.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, Mapping

from etcdbackup.models import ObjectInfo


class RemoteStore(ABC):
    """Durable object storage keyed by path, with per-object metadata."""

    @abstractmethod
    async def put(self, key: str, local_path: Path, metadata: Mapping[str, str]) -> None:
        """Upload local_path under key. Raises UploadError."""

    @abstractmethod
    def list(self, prefix: str) -> AsyncIterator[ObjectInfo]:
        """Yield objects under prefix. A fresh listing per call."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete key; an absent key is not an error. Raises DeleteError."""

    @abstractmethod
    async def get(self, key: str, destination: Path) -> None:
        """Download key to destination. Raises DownloadError."""
