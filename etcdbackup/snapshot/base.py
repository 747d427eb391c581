# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Snapshot engine interface and the value types it exchanges.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List


@dataclass(frozen=True)
class TLSMaterial:
    """Client TLS files used to reach the etcd endpoints."""

    ca_cert: Path
    client_cert: Path
    client_key: Path

    @classmethod
    def from_cert_dir(cls, cert_dir: Path) -> "TLSMaterial":
        """RKE2 layout: server-ca.crt, server-client.crt, server-client.key."""
        return cls(
            ca_cert=cert_dir / "server-ca.crt",
            client_cert=cert_dir / "server-client.crt",
            client_key=cert_dir / "server-client.key",
        )

    def paths(self) -> List[Path]:
        return [self.ca_cert, self.client_cert, self.client_key]


@dataclass(frozen=True)
class NodeIdentity:
    """Identity a restored data directory is bootstrapped with."""

    name: str
    peer_url: str
    cluster_token: str = "etcd-cluster-1"

    @classmethod
    def for_host(
        cls, hostname: str, peer_port: int = 2380, cluster_token: str = "etcd-cluster-1"
    ) -> "NodeIdentity":
        return cls(
            name=hostname,
            peer_url=f"https://{hostname}:{peer_port}",
            cluster_token=cluster_token,
        )

    @property
    def initial_cluster(self) -> str:
        """Single-member initial cluster descriptor."""
        return f"{self.name}={self.peer_url}"


@dataclass(frozen=True)
class SnapshotMetadata:
    """What `snapshot save` produced."""

    path: Path
    size_bytes: int


@dataclass(frozen=True)
class VerifyReport:
    """Parsed `snapshot status` output."""

    hash: int
    revision: int
    total_keys: int
    total_size: int

    @property
    def checksum_or_revision(self) -> str:
        return f"{self.hash:x}@{self.revision}"


class SnapshotEngine(ABC):
    """Capture, verify and restore snapshots of the key-value store."""

    @abstractmethod
    async def capture(
        self, destination: Path, endpoints: List[str], tls: TLSMaterial
    ) -> SnapshotMetadata:
        """Save a snapshot to destination. Raises CaptureError."""

    @abstractmethod
    async def verify(self, path: Path) -> VerifyReport:
        """Inspect a snapshot file. Raises VerifyError."""

    @abstractmethod
    async def restore_into(
        self, archive: Path, data_dir: Path, node: NodeIdentity
    ) -> None:
        """Materialize a fresh data dir from archive. Raises RestoreError."""
