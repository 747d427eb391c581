# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for etcdbackup tests.

Provides temp directories, a config factory, and in-process fakes for the
external collaborators (etcdctl, S3, systemd, kubectl).
"""

import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Mapping

import pytest
import structlog

from etcdbackup.config import BackupConfig
from etcdbackup.exceptions import DownloadError, RemoteFailure
from etcdbackup.models import ObjectInfo
from etcdbackup.process import CommandResult
from etcdbackup.snapshot.base import (
    NodeIdentity,
    SnapshotEngine,
    SnapshotMetadata,
    TLSMaterial,
    VerifyReport,
)
from etcdbackup.storage.base import RemoteStore

FIXED_NOW = datetime(2024, 7, 15, 12, 34, 56, tzinfo=UTC)


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo any structlog configuration a CLI test applied."""
    yield
    structlog.reset_defaults()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def make_config(temp_dir: Path) -> Callable[..., BackupConfig]:
    """
    Factory for a BackupConfig rooted in temp_dir.

    Root and ownership checks are off and every wait is short.
    """

    def factory(**overrides: Any) -> BackupConfig:
        cert_dir = temp_dir / "tls"
        cert_dir.mkdir(exist_ok=True)
        for cert in TLSMaterial.from_cert_dir(cert_dir).paths():
            cert.touch()

        values: Dict[str, Any] = dict(
            bucket="test-bucket",
            hostname="node-1",
            backup_dir=temp_dir / "backups",
            data_dir=temp_dir / "server" / "db" / "etcd",
            cert_dir=cert_dir,
            require_root=False,
            data_owner=None,
            data_group=None,
            service_stop_timeout=0.05,
            service_start_timeout=0.05,
            service_poll_interval=0.01,
            health_timeout=0.05,
            health_interval=0.01,
        )
        values.update(overrides)
        return BackupConfig(**values)

    return factory


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


# ============================================================================
# Process runner
# ============================================================================


class FakeRunner:
    """
    CommandRunner that records calls and replays scripted results.

    `handler(cmd)` may be set to produce side effects (e.g. write the file
    etcdctl would have written) and return a CommandResult.
    """

    def __init__(self, results: List[CommandResult] | None = None):
        self.calls: List[Dict[str, Any]] = []
        self.results = list(results or [])
        self.handler: Callable[[List[str]], CommandResult | None] | None = None

    async def __call__(self, cmd, *, env=None, timeout=None) -> CommandResult:
        self.calls.append({"cmd": list(cmd), "env": env, "timeout": timeout})
        if self.handler is not None:
            result = self.handler(list(cmd))
            if result is not None:
                return result
        if self.results:
            return self.results.pop(0)
        return CommandResult(0)

    @property
    def commands(self) -> List[List[str]]:
        return [call["cmd"] for call in self.calls]


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


# ============================================================================
# Remote store
# ============================================================================


class InMemoryRemoteStore(RemoteStore):
    """RemoteStore keeping objects in a dict."""

    def __init__(self, now: Callable[[], datetime] = lambda: FIXED_NOW):
        self.objects: Dict[str, Dict[str, Any]] = {}
        self.now = now
        self.put_error: Exception | None = None
        self.list_error: Exception | None = None
        self.delete_errors: Dict[str, Exception] = {}
        self.get_calls: List[str] = []
        self.delete_calls: List[str] = []

    def add(self, key: str, body: bytes, last_modified: datetime) -> None:
        self.objects[key] = {
            "body": body,
            "last_modified": last_modified,
            "metadata": {},
        }

    async def put(self, key: str, local_path: Path, metadata: Mapping[str, str]) -> None:
        if self.put_error is not None:
            raise self.put_error
        self.objects[key] = {
            "body": Path(local_path).read_bytes(),
            "last_modified": self.now(),
            "metadata": dict(metadata),
        }

    async def list(self, prefix: str):
        if self.list_error is not None:
            raise self.list_error
        for key in sorted(self.objects):
            if key.startswith(prefix):
                obj = self.objects[key]
                yield ObjectInfo(
                    key=key, size=len(obj["body"]), last_modified=obj["last_modified"]
                )

    async def delete(self, key: str) -> None:
        self.delete_calls.append(key)
        if key in self.delete_errors:
            raise self.delete_errors[key]
        self.objects.pop(key, None)

    async def get(self, key: str, destination: Path) -> None:
        self.get_calls.append(key)
        if key not in self.objects:
            raise DownloadError(
                f"Download of {key} failed", reason=RemoteFailure.NOT_FOUND
            )
        Path(destination).write_bytes(self.objects[key]["body"])


@pytest.fixture
def store() -> InMemoryRemoteStore:
    return InMemoryRemoteStore()


# ============================================================================
# Snapshot engine, service controller, health checker
# ============================================================================


class FakeEngine(SnapshotEngine):
    """SnapshotEngine writing and reading plain files."""

    def __init__(self, payload: bytes = b"etcd-snapshot-payload"):
        self.payload = payload
        self.verify_error: Exception | None = None
        self.capture_error: Exception | None = None
        self.restored: List[Dict[str, Any]] = []

    async def capture(self, destination, endpoints, tls) -> SnapshotMetadata:
        if self.capture_error is not None:
            raise self.capture_error
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_bytes(self.payload)
        return SnapshotMetadata(path=destination, size_bytes=len(self.payload))

    async def verify(self, path) -> VerifyReport:
        if self.verify_error is not None:
            raise self.verify_error
        return VerifyReport(hash=0xBEEF, revision=42, total_keys=7, total_size=1024)

    async def restore_into(self, archive, data_dir, node: NodeIdentity) -> None:
        data_dir = Path(data_dir)
        self.restored.append(
            {
                "archive": Path(archive),
                "content": Path(archive).read_bytes(),
                "data_dir": data_dir,
                "node": node,
                "data_dir_existed": data_dir.exists(),
            }
        )
        (data_dir / "member" / "snap").mkdir(parents=True)
        (data_dir / "member" / "snap" / "db").write_bytes(Path(archive).read_bytes())


class FakeServices:
    """ServiceController recording stop/start calls."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.stop_error: Exception | None = None
        self.start_error: Exception | None = None

    async def stop(self, service_name: str, max_wait: float) -> None:
        self.calls.append(("stop", service_name))
        if self.stop_error is not None:
            raise self.stop_error

    async def start(self, service_name: str, max_wait: float) -> None:
        self.calls.append(("start", service_name))
        if self.start_error is not None:
            raise self.start_error

    async def is_active(self, service_name: str) -> bool:
        self.calls.append(("is_active", service_name))
        return True


class FakeHealth:
    """ClusterHealthChecker stand-in with a fixed answer."""

    def __init__(self, healthy: bool = True):
        self.healthy = healthy
        self.waits: List[tuple] = []
        self.described = 0

    async def wait_until_healthy(self, timeout: float, interval: float) -> bool:
        self.waits.append((timeout, interval))
        return self.healthy

    async def describe(self) -> Dict[str, str]:
        self.described += 1
        return {"nodes": "node-1   Ready", "pods": ""}


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def health() -> FakeHealth:
    return FakeHealth()


def no_prerequisites(config: BackupConfig) -> None:
    return None
