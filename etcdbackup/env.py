# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based configuration helpers.

These helpers build a BackupConfig from the same variable names the
backup-config.sh template exports, so an existing config file can be
sourced by cron and read here unchanged:

- Build a configuration from environment variables
- Parse a shell-style `export KEY="value"` config file
"""

from __future__ import annotations

import os
import re
import shlex
from pathlib import Path
from typing import Dict, List, Mapping

from etcdbackup.builder import (
    create_empty_config,
    build_config,
    disable_compression,
    notify_slack,
    ping_healthcheck,
    retain_backups_for,
    use_zstd,
    with_backup_dir,
    with_bucket,
    with_cert_dir,
    with_data_dir,
    with_endpoints,
    with_naming,
    with_profile,
    with_region,
    with_s3_prefix,
)
from etcdbackup.config import BackupConfig, CompressionCodec
from etcdbackup.errors import (
    explain_invalid_bool_env,
    explain_invalid_codec_env,
    explain_invalid_number_env,
    explain_invalid_retention_days_env,
    explain_missing_bucket_env,
)
from etcdbackup.exceptions import ConfigurationError

_TRUE = {"1", "true", "yes", "on", "y"}
_FALSE = {"0", "false", "no", "off", "n"}

_EXPORT_LINE = re.compile(r"^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_]*)=(.*)$")


def _parse_bool(name: str, value: str | None, default: bool) -> bool:
    if value is None or value == "":
        return default
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ConfigurationError(explain_invalid_bool_env(name, value))


def _parse_retention_days(value: str | None) -> int | None:
    if not value:
        return None
    try:
        days = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_retention_days_env(value)) from exc
    if days < 0:
        raise ConfigurationError(explain_invalid_retention_days_env(value))
    return days


def _parse_seconds(name: str, value: str | None) -> float | None:
    if not value:
        return None
    try:
        seconds = float(value)
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_number_env(name, value)) from exc
    if seconds <= 0:
        raise ConfigurationError(explain_invalid_number_env(name, value))
    return seconds


def _parse_endpoints(value: str | None) -> List[str]:
    if not value:
        return []
    return [e.strip() for e in value.split(",") if e.strip()]


def _parse_codec(value: str | None) -> CompressionCodec | None:
    if not value:
        return None
    try:
        return CompressionCodec(value.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(explain_invalid_codec_env(value)) from exc


def load_env_file(path: Path | str) -> Dict[str, str]:
    """
    Parse a backup-config.sh style file into a dict.

    Only `KEY=value` and `export KEY=value` assignments are read; comments,
    blank lines and anything else are ignored. Values are unquoted the way
    a POSIX shell would, without variable expansion.

    Raises:
        ConfigurationError: If the file cannot be read or a value is malformed
    """
    try:
        text = Path(path).read_text()
    except OSError as exc:
        raise ConfigurationError(
            f"Cannot read config file: {exc}", details={"path": str(path)}
        ) from exc

    values: Dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        match = _EXPORT_LINE.match(stripped)
        if not match:
            continue
        key, raw = match.groups()
        try:
            parts = shlex.split(raw, comments=True)
        except ValueError as exc:
            raise ConfigurationError(
                f"Malformed value for {key}",
                details={"path": str(path), "line": lineno},
            ) from exc
        values[key] = parts[0] if parts else ""
    return values


def create_config_from_env(environ: Mapping[str, str] | None = None) -> BackupConfig:
    """
    Create a BackupConfig from environment variables.

    Required:
        - S3_BUCKET: Bucket receiving the backups

    Optional environment variables (names follow backup-config.sh):
        - S3_PREFIX: Key prefix (default: etcd-backups)
        - AWS_PROFILE / AWS_REGION: Credentials profile and region
        - BACKUP_DIR: Local backup directory
        - RETENTION_DAYS: Non-negative integer (default: 7)
        - COMPRESSION_ENABLED: true/false (default: true)
        - COMPRESSION_CODEC: gzip | zstd (default: gzip)
        - ETCD_CERT_DIR: Directory with server-ca.crt, server-client.crt/key
        - ETCD_ENDPOINTS: Comma-separated endpoint URLs
        - BACKUP_PREFIX / DATE_FORMAT: Artifact naming
        - RKE2_DATA_DIR: etcd data directory replaced on restore
        - SLACK_WEBHOOK_URL / HEALTHCHECK_URL: Notifications
        - ETCDBACKUP_SERVICE_NAME, ETCDBACKUP_S3_ENDPOINT_URL,
          ETCDBACKUP_HEALTH_TIMEOUT, ETCDBACKUP_REQUIRE_ROOT,
          ETCDCTL_PATH, KUBECTL_PATH, KUBECONFIG: Extras
    """
    env = os.environ if environ is None else environ

    bucket = env.get("S3_BUCKET")
    if not bucket:
        raise ConfigurationError(explain_missing_bucket_env())

    config = with_bucket(create_empty_config(), bucket)

    if env.get("S3_PREFIX") is not None:
        config = with_s3_prefix(config, env["S3_PREFIX"])
    if env.get("AWS_PROFILE"):
        config = with_profile(config, env["AWS_PROFILE"])
    if env.get("AWS_REGION"):
        config = with_region(config, env["AWS_REGION"])
    if env.get("BACKUP_DIR"):
        config = with_backup_dir(config, env["BACKUP_DIR"])
    if env.get("RKE2_DATA_DIR"):
        config = with_data_dir(config, env["RKE2_DATA_DIR"])
    if env.get("ETCD_CERT_DIR"):
        config = with_cert_dir(config, env["ETCD_CERT_DIR"])

    endpoints = _parse_endpoints(env.get("ETCD_ENDPOINTS"))
    if endpoints:
        config = with_endpoints(config, endpoints)

    retention_days = _parse_retention_days(env.get("RETENTION_DAYS"))
    if retention_days is not None:
        config = retain_backups_for(config, retention_days)

    if not _parse_bool("COMPRESSION_ENABLED", env.get("COMPRESSION_ENABLED"), True):
        config = disable_compression(config)
    elif _parse_codec(env.get("COMPRESSION_CODEC")) is CompressionCodec.ZSTD:
        config = use_zstd(config)

    if env.get("BACKUP_PREFIX"):
        config = with_naming(config, env["BACKUP_PREFIX"], env.get("DATE_FORMAT"))
    elif env.get("DATE_FORMAT"):
        config = {**config, "date_format": env["DATE_FORMAT"]}

    if env.get("SLACK_WEBHOOK_URL"):
        config = notify_slack(config, env["SLACK_WEBHOOK_URL"])
    if env.get("HEALTHCHECK_URL"):
        config = ping_healthcheck(config, env["HEALTHCHECK_URL"])

    extras = {
        "service_name": env.get("ETCDBACKUP_SERVICE_NAME"),
        "endpoint_url": env.get("ETCDBACKUP_S3_ENDPOINT_URL"),
        "cluster_tag": env.get("ETCDBACKUP_CLUSTER_TAG"),
        "etcdctl_path": env.get("ETCDCTL_PATH"),
        "kubectl_path": env.get("KUBECTL_PATH"),
        "hostname": env.get("ETCDBACKUP_HOSTNAME"),
    }
    for key, value in extras.items():
        if value:
            config[key] = value

    if env.get("KUBECONFIG"):
        config["kubeconfig"] = Path(env["KUBECONFIG"])

    health_timeout = _parse_seconds(
        "ETCDBACKUP_HEALTH_TIMEOUT", env.get("ETCDBACKUP_HEALTH_TIMEOUT")
    )
    if health_timeout is not None:
        config["health_timeout"] = health_timeout

    config["require_root"] = _parse_bool(
        "ETCDBACKUP_REQUIRE_ROOT", env.get("ETCDBACKUP_REQUIRE_ROOT"), True
    )

    return build_config(config)
