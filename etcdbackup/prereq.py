# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Pre-flight checks run before a pipeline touches anything.

Failures are collected and raised together so an operator can fix every
problem in one pass.
"""

import os
import shutil
from pathlib import Path
from typing import Callable, List

import structlog

from etcdbackup.config import BackupConfig
from etcdbackup.errors import explain_missing_certificate, explain_missing_tool
from etcdbackup.exceptions import PrerequisiteError
from etcdbackup.snapshot.base import TLSMaterial

logger = structlog.get_logger()

Which = Callable[[str], str | None]


def _is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def _check_writable_dir(path: Path, errors: List[str]) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        errors.append(f"Cannot create directory {path}: {e}")
        return
    if not os.access(path, os.W_OK):
        errors.append(f"Directory is not writable: {path}")


def _check_common(
    config: BackupConfig, which: Which, is_root: Callable[[], bool]
) -> List[str]:
    errors: List[str] = []

    if config.require_root and not is_root():
        errors.append("This command must be run as root")

    if which(config.etcdctl_path) is None:
        errors.append(explain_missing_tool(config.etcdctl_path))

    return errors


def check_backup_prerequisites(
    config: BackupConfig,
    which: Which = shutil.which,
    is_root: Callable[[], bool] = _is_root,
) -> None:
    """
    Verify tools, certificates and the backup directory before a backup.

    The backup directory is created if missing.

    Raises:
        PrerequisiteError: With every failed check in details["errors"]
    """
    errors = _check_common(config, which, is_root)

    for cert in TLSMaterial.from_cert_dir(config.cert_dir).paths():
        if not cert.is_file():
            errors.append(explain_missing_certificate(str(cert)))

    if not errors:
        _check_writable_dir(config.backup_dir, errors)

    if errors:
        raise PrerequisiteError(
            "Backup prerequisites not met", details={"errors": errors}
        )

    logger.info("prerequisites_ok", pipeline="backup")


def check_restore_prerequisites(
    config: BackupConfig,
    which: Which = shutil.which,
    is_root: Callable[[], bool] = _is_root,
) -> None:
    """
    Verify tools and the download directory before a restore.

    kubectl is only needed for the diagnostic health check, so its absence
    is logged rather than raised.

    Raises:
        PrerequisiteError: With every failed check in details["errors"]
    """
    errors = _check_common(config, which, is_root)

    if which("systemctl") is None:
        errors.append(explain_missing_tool("systemctl"))

    if not errors:
        _check_writable_dir(config.backup_dir, errors)

    if errors:
        raise PrerequisiteError(
            "Restore prerequisites not met", details={"errors": errors}
        )

    if which(config.kubectl_path) is None:
        logger.warning("kubectl_missing", kubectl=config.kubectl_path)

    logger.info("prerequisites_ok", pipeline="restore")
