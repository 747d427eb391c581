# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcdctl snapshot engine tests, driven through a fake command runner.
"""

import json

import pytest

from conftest import FakeRunner
from etcdbackup.exceptions import (
    CaptureError,
    RestoreToolError,
    SnapshotCorruptError,
    TargetNotEmptyError,
    ToolMissingError,
    VerifyError,
)
from etcdbackup.process import CommandResult
from etcdbackup.snapshot import EtcdctlSnapshotEngine, NodeIdentity, TLSMaterial

ENDPOINTS = ["https://127.0.0.1:2379"]


@pytest.fixture
def tls(temp_dir):
    return TLSMaterial.from_cert_dir(temp_dir / "tls")


def _writes_snapshot(cmd):
    if cmd[1:3] == ["snapshot", "save"]:
        with open(cmd[3], "wb") as f:
            f.write(b"\x00" * 128)
    return None


@pytest.mark.asyncio
async def test_capture_invokes_snapshot_save(temp_dir, tls, runner: FakeRunner):
    runner.handler = _writes_snapshot
    engine = EtcdctlSnapshotEngine(runner=runner)
    destination = temp_dir / "etcd-backup-20240715-123456.db"

    metadata = await engine.capture(destination, ENDPOINTS, tls)

    assert metadata.path == destination
    assert metadata.size_bytes == 128
    (call,) = runner.calls
    assert call["env"] == {"ETCDCTL_API": "3"}
    assert call["cmd"] == [
        "etcdctl",
        "snapshot",
        "save",
        str(destination),
        "--endpoints=https://127.0.0.1:2379",
        f"--cacert={temp_dir / 'tls' / 'server-ca.crt'}",
        f"--cert={temp_dir / 'tls' / 'server-client.crt'}",
        f"--key={temp_dir / 'tls' / 'server-client.key'}",
    ]


@pytest.mark.asyncio
async def test_capture_joins_multiple_endpoints(temp_dir, tls, runner):
    runner.handler = _writes_snapshot
    engine = EtcdctlSnapshotEngine(runner=runner)

    await engine.capture(
        temp_dir / "snap.db", ["https://10.0.0.1:2379", "https://10.0.0.2:2379"], tls
    )

    assert "--endpoints=https://10.0.0.1:2379,https://10.0.0.2:2379" in runner.commands[0]


@pytest.mark.asyncio
async def test_capture_failure_removes_partial_file(temp_dir, tls, runner):
    destination = temp_dir / "snap.db"

    def fail(cmd):
        (temp_dir / "snap.db.part").write_bytes(b"half")
        return CommandResult(1, "", "context deadline exceeded")

    runner.handler = fail
    engine = EtcdctlSnapshotEngine(runner=runner)

    with pytest.raises(CaptureError) as exc_info:
        await engine.capture(destination, ENDPOINTS, tls)

    assert "context deadline exceeded" in exc_info.value.details["stderr"]
    assert not (temp_dir / "snap.db.part").exists()
    assert not destination.exists()


@pytest.mark.asyncio
async def test_capture_refuses_existing_destination(temp_dir, tls, runner):
    destination = temp_dir / "snap.db"
    destination.write_bytes(b"earlier")

    with pytest.raises(CaptureError):
        await EtcdctlSnapshotEngine(runner=runner).capture(destination, ENDPOINTS, tls)

    assert runner.calls == []
    assert destination.read_bytes() == b"earlier"


@pytest.mark.asyncio
async def test_capture_success_without_file_is_error(temp_dir, tls, runner):
    with pytest.raises(CaptureError):
        await EtcdctlSnapshotEngine(runner=runner).capture(
            temp_dir / "snap.db", ENDPOINTS, tls
        )


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [FileNotFoundError, PermissionError])
async def test_capture_tool_cannot_start(temp_dir, tls, error):
    async def missing(cmd, *, env=None, timeout=None):
        raise error(cmd[0])

    with pytest.raises(CaptureError):
        await EtcdctlSnapshotEngine(runner=missing).capture(
            temp_dir / "snap.db", ENDPOINTS, tls
        )


@pytest.mark.asyncio
async def test_verify_parses_status_report(temp_dir, runner):
    snapshot = temp_dir / "snap.db"
    snapshot.write_bytes(b"data")
    status = {"hash": 3735928559, "revision": 1234, "totalKey": 56, "totalSize": 2048}
    runner.results.append(CommandResult(0, json.dumps(status), ""))

    report = await EtcdctlSnapshotEngine(runner=runner).verify(snapshot)

    assert report.revision == 1234
    assert report.total_keys == 56
    assert report.total_size == 2048
    assert report.checksum_or_revision == "deadbeef@1234"
    assert runner.commands[0] == [
        "etcdctl",
        "snapshot",
        "status",
        str(snapshot),
        "--write-out=json",
    ]


@pytest.mark.asyncio
async def test_verify_non_zero_exit_is_corruption(temp_dir, runner):
    snapshot = temp_dir / "snap.db"
    snapshot.write_bytes(b"garbage")
    runner.results.append(CommandResult(1, "", "snapshot file integrity check failed"))

    with pytest.raises(SnapshotCorruptError):
        await EtcdctlSnapshotEngine(runner=runner).verify(snapshot)

    assert snapshot.exists()


@pytest.mark.asyncio
async def test_verify_unreadable_report_is_corruption(temp_dir, runner):
    snapshot = temp_dir / "snap.db"
    snapshot.write_bytes(b"data")
    runner.results.append(CommandResult(0, "not json", ""))

    with pytest.raises(SnapshotCorruptError):
        await EtcdctlSnapshotEngine(runner=runner).verify(snapshot)


@pytest.mark.asyncio
async def test_verify_missing_file(temp_dir, runner):
    with pytest.raises(VerifyError):
        await EtcdctlSnapshotEngine(runner=runner).verify(temp_dir / "absent.db")
    assert runner.calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [FileNotFoundError, PermissionError])
async def test_verify_tool_cannot_start(temp_dir, error):
    snapshot = temp_dir / "snap.db"
    snapshot.write_bytes(b"data")

    async def missing(cmd, *, env=None, timeout=None):
        raise error(cmd[0])

    with pytest.raises(ToolMissingError):
        await EtcdctlSnapshotEngine(runner=missing).verify(snapshot)


@pytest.mark.asyncio
async def test_restore_into_bootstraps_single_member(temp_dir, runner):
    data_dir = temp_dir / "server" / "db" / "etcd"
    node = NodeIdentity.for_host("node-1")

    await EtcdctlSnapshotEngine(runner=runner).restore_into(
        temp_dir / "snap.db", data_dir, node
    )

    assert runner.commands[0] == [
        "etcdctl",
        "snapshot",
        "restore",
        str(temp_dir / "snap.db"),
        f"--data-dir={data_dir}",
        "--name=node-1",
        "--initial-cluster=node-1=https://node-1:2380",
        "--initial-cluster-token=etcd-cluster-1",
        "--initial-advertise-peer-urls=https://node-1:2380",
    ]
    assert data_dir.parent.is_dir()


@pytest.mark.asyncio
async def test_restore_into_refuses_non_empty_target(temp_dir, runner):
    data_dir = temp_dir / "etcd"
    (data_dir / "member").mkdir(parents=True)

    with pytest.raises(TargetNotEmptyError):
        await EtcdctlSnapshotEngine(runner=runner).restore_into(
            temp_dir / "snap.db", data_dir, NodeIdentity.for_host("node-1")
        )

    assert runner.calls == []


@pytest.mark.asyncio
async def test_restore_into_tool_failure(temp_dir, runner):
    runner.results.append(CommandResult(1, "", "member already exists"))

    with pytest.raises(RestoreToolError):
        await EtcdctlSnapshotEngine(runner=runner).restore_into(
            temp_dir / "snap.db", temp_dir / "etcd", NodeIdentity.for_host("node-1")
        )


@pytest.mark.asyncio
async def test_restore_into_tool_cannot_start(temp_dir):
    async def not_executable(cmd, *, env=None, timeout=None):
        raise PermissionError(13, "Permission denied", cmd[0])

    with pytest.raises(RestoreToolError):
        await EtcdctlSnapshotEngine(runner=not_executable).restore_into(
            temp_dir / "snap.db", temp_dir / "etcd", NodeIdentity.for_host("node-1")
        )
