# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Core - Wiring and entry points.

This module builds the collaborators a pipeline needs from a BackupConfig
and exposes the three operations the command line drives: run a backup,
list remote backups, and restore one of them.
"""

from typing import Any, List, TypedDict

from etcdbackup.config import BackupConfig
from etcdbackup.models import BackupResult, ObjectInfo, RestoreRequest, RestoreResult


class Components(TypedDict):
    """Collaborators shared by the backup and restore pipelines."""

    engine: Any  # SnapshotEngine
    codec: Any  # ArchiveCodec
    store: Any  # RemoteStore
    services: Any  # ServiceController
    health: Any  # ClusterHealthChecker
    notifier: Any  # Notifier


def initialize_components(config: BackupConfig) -> Components:
    """
    Build the production collaborators for config.

    The S3 client itself is created per operation from the session held
    by the store, so nothing here opens a connection.

    Args:
        config: Validated configuration

    Returns:
        Components dictionary
    """
    from etcdbackup.archive import ArchiveCodec
    from etcdbackup.health import ClusterHealthChecker
    from etcdbackup.notify import Notifier
    from etcdbackup.service import SystemdServiceController
    from etcdbackup.snapshot import EtcdctlSnapshotEngine
    from etcdbackup.storage import S3RemoteStore

    return Components(
        engine=EtcdctlSnapshotEngine(etcdctl_path=config.etcdctl_path),
        codec=ArchiveCodec(config.compression_codec),
        store=S3RemoteStore(
            config.bucket,
            region=config.region,
            profile=config.aws_profile,
            endpoint_url=config.endpoint_url,
            storage_class=config.storage_class,
        ),
        services=SystemdServiceController(poll_interval=config.service_poll_interval),
        health=ClusterHealthChecker(
            kubectl_path=config.kubectl_path,
            kubeconfig=config.kubeconfig,
        ),
        notifier=Notifier(
            slack_webhook_url=config.slack_webhook_url,
            healthcheck_url=config.healthcheck_url,
        ),
    )


async def run_backup(
    config: BackupConfig, components: Components | None = None
) -> BackupResult:
    """
    Run one backup: capture, verify, compress, upload and prune.

    Args:
        config: Validated configuration
        components: Collaborators (built from config when omitted)

    Returns:
        BackupResult
    """
    from etcdbackup.backup import BackupOrchestrator

    components = components or initialize_components(config)
    orchestrator = BackupOrchestrator(
        config,
        components["engine"],
        components["codec"],
        components["store"],
        notifier=components["notifier"],
    )
    return await orchestrator.run()


def _restore_orchestrator(config: BackupConfig, components: Components) -> Any:
    from etcdbackup.backup import RestoreOrchestrator

    return RestoreOrchestrator(
        config,
        components["engine"],
        components["codec"],
        components["store"],
        components["services"],
        components["health"],
    )


async def list_remote_backups(
    config: BackupConfig, components: Components | None = None
) -> List[ObjectInfo]:
    """
    List backups stored under this host's prefix, newest first.

    Raises:
        RemoteStoreError: If the bucket cannot be listed
    """
    components = components or initialize_components(config)
    return await _restore_orchestrator(config, components).list_backups()


async def run_restore(
    config: BackupConfig,
    artifact_name: str | None,
    confirmed: bool = False,
    components: Components | None = None,
) -> RestoreResult:
    """
    Restore the local data directory from a named remote backup.

    Args:
        config: Validated configuration
        artifact_name: Bare file name under this host's prefix
        confirmed: Operator confirmation; False cancels with no side effects
        components: Collaborators (built from config when omitted)

    Returns:
        RestoreResult
    """
    components = components or initialize_components(config)
    request = RestoreRequest(artifact_name=artifact_name, confirmed=confirmed)
    return await _restore_orchestrator(config, components).run(request)
