# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Retention - decide and apply age-based pruning.

select_for_deletion() is the whole policy and is pure. The pruning helpers
around it apply it to one storage tier each and keep going past individual
failures.
"""

from datetime import datetime, UTC
from pathlib import Path
from typing import Iterable, List, Set, Tuple

import structlog

from etcdbackup.exceptions import EtcdBackupError
from etcdbackup.models import ObjectInfo, PruneReport, RetentionWindow
from etcdbackup.storage.base import RemoteStore

logger = structlog.get_logger()

# (key, last_modified)
Candidate = Tuple[str, datetime]


def select_for_deletion(
    artifacts: Iterable[Candidate],
    threshold_days: int,
    now: datetime,
) -> Set[str]:
    """
    Select artifacts strictly older than the threshold.

    Args:
        artifacts: (key, last_modified) pairs; timestamps must be comparable
            with `now` (all aware or all naive)
        threshold_days: Retention threshold in days
        now: Reference instant

    Returns:
        Keys whose age exceeds threshold_days. An artifact exactly at the
        threshold is retained.
    """
    window = RetentionWindow(threshold_days=threshold_days, now=now)
    return {key for key, last_modified in artifacts if window.is_expired(last_modified)}


def list_local_artifacts(backup_dir: Path, backup_prefix: str) -> List[Candidate]:
    """
    List local backup files following the naming convention.

    Matches `<backup_prefix>-*.db*` regular files (raw and compressed);
    safeguard directories and partial files are never returned.
    """
    if not backup_dir.is_dir():
        return []

    found: List[Candidate] = []
    for path in sorted(backup_dir.glob(f"{backup_prefix}-*.db*")):
        if not path.is_file() or path.name.endswith((".part", ".tmp")):
            continue
        mtime = datetime.fromtimestamp(path.stat().st_mtime, UTC)
        found.append((str(path), mtime))
    return found


def prune_local_backups(
    backup_dir: Path,
    backup_prefix: str,
    retention_days: int,
    now: datetime | None = None,
) -> PruneReport:
    """
    Delete local backup files older than retention_days.

    Age comes from file modification time, independent of whether an
    artifact was ever uploaded.

    Returns:
        PruneReport for the "local" tier
    """
    now = now or datetime.now(UTC)
    report = PruneReport(tier="local")

    candidates = list_local_artifacts(backup_dir, backup_prefix)
    expired = select_for_deletion(candidates, retention_days, now)

    for key in sorted(expired):
        path = Path(key)
        try:
            size = path.stat().st_size
            path.unlink()
        except FileNotFoundError:
            continue
        except OSError as e:
            report.failures.append(f"{path}: {e}")
            logger.warning("local_prune_failed", path=str(path), error=str(e))
            continue

        report.deleted.append(str(path))
        report.bytes_freed += size
        logger.info("local_backup_pruned", path=str(path))

    logger.info(
        "local_pruning_complete",
        scanned=len(candidates),
        deleted=len(report.deleted),
        bytes_freed=report.bytes_freed,
        failures=len(report.failures),
    )
    return report


async def prune_remote_backups(
    store: RemoteStore,
    prefix: str,
    retention_days: int,
    now: datetime | None = None,
) -> PruneReport:
    """
    Delete remote objects under prefix older than retention_days.

    A failed delete is recorded and the remaining objects are still
    processed. A failed listing is recorded as a single failure.

    Returns:
        PruneReport for the "remote" tier
    """
    now = now or datetime.now(UTC)
    report = PruneReport(tier="remote")

    objects: List[ObjectInfo] = []
    try:
        async for obj in store.list(prefix):
            objects.append(obj)
    except EtcdBackupError as e:
        report.failures.append(f"list {prefix}: {e}")
        logger.error("remote_listing_failed", prefix=prefix, error=str(e))
        return report

    expired = select_for_deletion(
        ((obj.key, obj.last_modified) for obj in objects), retention_days, now
    )
    sizes = {obj.key: obj.size for obj in objects}

    for key in sorted(expired):
        try:
            await store.delete(key)
        except EtcdBackupError as e:
            report.failures.append(f"{key}: {e}")
            logger.warning("remote_prune_failed", key=key, error=str(e))
            continue

        report.deleted.append(key)
        report.bytes_freed += sizes.get(key, 0)
        logger.info("remote_backup_pruned", key=key)

    logger.info(
        "remote_pruning_complete",
        prefix=prefix,
        scanned=len(objects),
        deleted=len(report.deleted),
        failures=len(report.failures),
    )
    return report
