# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Configuration - Immutable configuration data structures.

All configuration is frozen (immutable) after creation and passed into each
component constructor; nothing reads ambient settings at run time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List
import re
import socket


class CompressionCodec(str, Enum):
    """Codec used to compress snapshot files before upload."""

    GZIP = "gzip"
    ZSTD = "zstd"


DEFAULT_BACKUP_DIR = Path("/var/lib/rancher/rke2/server/db/etcd-backup")
DEFAULT_DATA_DIR = Path("/var/lib/rancher/rke2/server/db/etcd")
DEFAULT_CERT_DIR = Path("/var/lib/rancher/rke2/server/tls/etcd")


def _validate_bucket_name(bucket: str) -> bool:
    """
    Validate S3 bucket name according to AWS rules.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens
    - Must start and end with letter or number
    - No consecutive periods
    - Not formatted as IP address
    """
    if not bucket or len(bucket) < 3 or len(bucket) > 63:
        return False

    if not re.match(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$", bucket):
        return False

    if ".." in bucket:
        return False

    if re.match(r"^\d+\.\d+\.\d+\.\d+$", bucket):
        return False

    return True


def _validate_endpoint(endpoint: str) -> bool:
    """An etcd client endpoint must be an http(s) URL with a host."""
    return bool(re.match(r"^https?://[^/\s]+$", endpoint))


def _validate_date_format(date_format: str) -> bool:
    """The timestamp format must render to a non-empty, path-safe string."""
    if not date_format:
        return False
    try:
        rendered = datetime(2024, 7, 15, 12, 34, 56).strftime(date_format)
    except ValueError:
        return False
    return bool(rendered) and "/" not in rendered and rendered != date_format


@dataclass(frozen=True)
class BackupConfig:
    """
    Immutable configuration for etcd backup and restore runs.

    Constructed once at startup (see env.create_config_from_env or
    builder.create_config) and handed to every collaborator.
    """

    # Required: S3 bucket holding the backups
    bucket: str

    # Key prefix; objects land under <s3_prefix>/<hostname>/
    s3_prefix: str = "etcd-backups"

    # AWS profile and region (default profile when None)
    aws_profile: str | None = None
    region: str = "us-west-2"

    # Custom endpoint for S3-compatible stores
    endpoint_url: str | None = None

    # Storage class hint on upload
    storage_class: str = "STANDARD_IA"

    # Local directory for snapshots, downloads and safeguard copies
    backup_dir: Path = DEFAULT_BACKUP_DIR

    # Age in days after which backups are pruned (local and remote)
    retention_days: int = 7

    # Compress snapshots before upload
    compression_enabled: bool = True
    compression_codec: CompressionCodec = CompressionCodec.GZIP

    # etcd client TLS material and endpoints
    cert_dir: Path = DEFAULT_CERT_DIR
    endpoints: List[str] = field(default_factory=lambda: ["https://127.0.0.1:2379"])

    # Artifact naming: <backup_prefix>-<date_format>.db
    backup_prefix: str = "etcd-backup"
    date_format: str = "%Y%m%d-%H%M%S"

    # Value of the "cluster" metadata tag on uploaded objects
    cluster_tag: str = "rke2"

    # Producer identity; also the etcd member name on restore
    hostname: str = field(default_factory=socket.gethostname)

    # etcd data directory replaced on restore
    data_dir: Path = DEFAULT_DATA_DIR

    # Managed service and its state-transition waits (seconds)
    service_name: str = "rke2-server.service"
    service_stop_timeout: float = 60.0
    service_start_timeout: float = 120.0
    service_poll_interval: float = 2.0

    # Post-restore health polling (seconds)
    health_timeout: float = 300.0
    health_interval: float = 10.0

    # External tools
    etcdctl_path: str = "etcdctl"
    kubectl_path: str = "kubectl"
    kubeconfig: Path | None = None

    # Ownership applied to a restored data directory (skipped when None)
    data_owner: str | None = "rke2"
    data_group: str | None = "rke2"

    # Single-member bootstrap identity
    cluster_token: str = "etcd-cluster-1"
    peer_port: int = 2380

    # Refuse to run unless uid 0
    require_root: bool = True

    # Optional notifications
    slack_webhook_url: str | None = None
    healthcheck_url: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not _validate_bucket_name(self.bucket):
            errors.append(f"Invalid bucket name: {self.bucket}")

        if self.retention_days < 0:
            errors.append(f"retention_days must be >= 0, got {self.retention_days}")

        if not isinstance(self.compression_codec, CompressionCodec):
            errors.append(f"Invalid compression_codec: {self.compression_codec!r}")

        if not self.endpoints:
            errors.append("At least one etcd endpoint is required")
        for endpoint in self.endpoints:
            if not _validate_endpoint(endpoint):
                errors.append(f"Invalid etcd endpoint: {endpoint}")

        if not self.backup_prefix or "/" in self.backup_prefix:
            errors.append(f"Invalid backup_prefix: {self.backup_prefix!r}")

        if not _validate_date_format(self.date_format):
            errors.append(f"Invalid date_format: {self.date_format!r}")

        if not self.hostname:
            errors.append("hostname must not be empty")

        for name in (
            "service_stop_timeout",
            "service_start_timeout",
            "service_poll_interval",
            "health_timeout",
            "health_interval",
        ):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be > 0, got {getattr(self, name)}")

        if not 0 < self.peer_port < 65536:
            errors.append(f"peer_port out of range: {self.peer_port}")

        if errors:
            from etcdbackup.exceptions import ConfigurationError

            raise ConfigurationError(
                "Configuration validation failed",
                details={"errors": errors},
            )

    @property
    def host_prefix(self) -> str:
        """Remote key prefix holding this host's backups (trailing slash)."""
        prefix = self.s3_prefix.strip("/")
        return f"{prefix}/{self.hostname}/" if prefix else f"{self.hostname}/"

    def with_updates(self, **kwargs) -> "BackupConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        from dataclasses import asdict

        current = asdict(self)
        current.update(kwargs)
        return BackupConfig(**current)
