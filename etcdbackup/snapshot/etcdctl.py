# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcdctl Snapshot Engine - snapshot save/status/restore via the etcdctl CLI.

All commands run with ETCDCTL_API=3. The engine never deletes a captured
snapshot: a file that fails verification stays on disk as evidence.
"""

import json
import os
from pathlib import Path
from typing import List

import structlog

from etcdbackup.exceptions import (
    CaptureError,
    RestoreError,
    RestoreToolError,
    SnapshotCorruptError,
    TargetNotEmptyError,
    ToolMissingError,
    VerifyError,
)
from etcdbackup.process import CommandRunner, run_command
from etcdbackup.snapshot.base import (
    NodeIdentity,
    SnapshotEngine,
    SnapshotMetadata,
    TLSMaterial,
    VerifyReport,
)

logger = structlog.get_logger()

ETCDCTL_ENV = {"ETCDCTL_API": "3"}


def _tail(text: str, limit: int = 500) -> str:
    """Last `limit` characters of tool output, for error details."""
    text = text.strip()
    return text if len(text) <= limit else "..." + text[-limit:]


class EtcdctlSnapshotEngine(SnapshotEngine):
    """SnapshotEngine backed by the etcdctl binary."""

    def __init__(
        self,
        etcdctl_path: str = "etcdctl",
        runner: CommandRunner = run_command,
        timeout: float | None = 600.0,
    ):
        self.etcdctl_path = etcdctl_path
        self._run = runner
        self.timeout = timeout

    async def capture(
        self, destination: Path, endpoints: List[str], tls: TLSMaterial
    ) -> SnapshotMetadata:
        destination = Path(destination)

        if destination.exists():
            raise CaptureError(
                f"Snapshot destination already exists: {destination}",
                details={"path": str(destination)},
            )
        if not destination.parent.is_dir() or not os.access(destination.parent, os.W_OK):
            raise CaptureError(
                f"Snapshot destination is not writable: {destination.parent}",
                details={"path": str(destination)},
            )

        cmd = [
            self.etcdctl_path,
            "snapshot",
            "save",
            str(destination),
            f"--endpoints={','.join(endpoints)}",
            f"--cacert={tls.ca_cert}",
            f"--cert={tls.client_cert}",
            f"--key={tls.client_key}",
        ]

        logger.info(
            "snapshot_capture_started",
            path=str(destination),
            endpoints=endpoints,
        )

        try:
            result = await self._run(cmd, env=ETCDCTL_ENV, timeout=self.timeout)
        except OSError as e:
            raise CaptureError(
                f"Cannot run {self.etcdctl_path}: {e}",
                details={"path": str(destination)},
            ) from e

        if not result.ok:
            _remove_partial(destination)
            raise CaptureError(
                f"etcdctl snapshot save exited with status {result.returncode}",
                details={
                    "path": str(destination),
                    "endpoints": endpoints,
                    "stderr": _tail(result.stderr),
                },
            )

        if not destination.is_file():
            raise CaptureError(
                "etcdctl reported success but no snapshot file was written",
                details={"path": str(destination)},
            )

        size = destination.stat().st_size
        logger.info("snapshot_captured", path=str(destination), size=size)
        return SnapshotMetadata(path=destination, size_bytes=size)

    async def verify(self, path: Path) -> VerifyReport:
        path = Path(path)
        if not path.is_file():
            raise VerifyError(
                f"Snapshot file not found: {path}", details={"path": str(path)}
            )

        cmd = [self.etcdctl_path, "snapshot", "status", str(path), "--write-out=json"]

        try:
            result = await self._run(cmd, env=ETCDCTL_ENV, timeout=self.timeout)
        except OSError as e:
            raise ToolMissingError(
                f"Cannot run {self.etcdctl_path}: {e}",
                details={"path": str(path)},
            ) from e

        if not result.ok:
            raise SnapshotCorruptError(
                f"Snapshot failed integrity check (status {result.returncode})",
                details={"path": str(path), "stderr": _tail(result.stderr)},
            )

        try:
            status = json.loads(result.stdout)
            report = VerifyReport(
                hash=int(status["hash"]),
                revision=int(status["revision"]),
                total_keys=int(status["totalKey"]),
                total_size=int(status["totalSize"]),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise SnapshotCorruptError(
                f"Unreadable snapshot status report: {e}",
                details={"path": str(path), "stdout": _tail(result.stdout)},
            ) from e

        logger.info(
            "snapshot_verified",
            path=str(path),
            revision=report.revision,
            total_keys=report.total_keys,
            total_size=report.total_size,
        )
        return report

    async def restore_into(
        self, archive: Path, data_dir: Path, node: NodeIdentity
    ) -> None:
        data_dir = Path(data_dir)

        if data_dir.exists() and any(data_dir.iterdir()):
            raise TargetNotEmptyError(
                f"Restore target is not empty: {data_dir}",
                details={"data_dir": str(data_dir)},
            )

        try:
            if data_dir.exists():
                # etcdctl refuses an existing data dir, even an empty one
                data_dir.rmdir()
            data_dir.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RestoreError(
                f"Cannot prepare restore target {data_dir}: {e}",
                details={"data_dir": str(data_dir)},
            ) from e

        cmd = [
            self.etcdctl_path,
            "snapshot",
            "restore",
            str(archive),
            f"--data-dir={data_dir}",
            f"--name={node.name}",
            f"--initial-cluster={node.initial_cluster}",
            f"--initial-cluster-token={node.cluster_token}",
            f"--initial-advertise-peer-urls={node.peer_url}",
        ]

        logger.info(
            "snapshot_restore_started",
            archive=str(archive),
            data_dir=str(data_dir),
            member=node.name,
        )

        try:
            result = await self._run(cmd, env=ETCDCTL_ENV, timeout=self.timeout)
        except OSError as e:
            raise RestoreToolError(
                f"Cannot run {self.etcdctl_path}: {e}",
                details={"archive": str(archive)},
            ) from e

        if not result.ok:
            raise RestoreToolError(
                f"etcdctl snapshot restore exited with status {result.returncode}",
                details={
                    "archive": str(archive),
                    "data_dir": str(data_dir),
                    "stderr": _tail(result.stderr),
                },
            )

        logger.info("snapshot_restored", data_dir=str(data_dir), member=node.name)


def _remove_partial(destination: Path) -> None:
    """Drop the `.part` file etcdctl leaves behind on a failed save."""
    partial = destination.with_name(destination.name + ".part")
    if partial.exists():
        partial.unlink()
        logger.debug("partial_snapshot_removed", path=str(partial))
