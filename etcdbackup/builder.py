# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
etcd Backup Builder - Functional builder pattern for configuration.

This module provides pure functions for building BackupConfig objects.
Each function takes a config dict and returns a new dict with the
modification applied (immutable updates).
"""

from dataclasses import MISSING, fields
from pathlib import Path
from typing import Any, Callable, Dict, List

from etcdbackup.config import BackupConfig, CompressionCodec


# Type alias for builder functions
ConfigDict = Dict[str, Any]
BuilderFunc = Callable[[ConfigDict], ConfigDict]

_PATH_FIELDS = {"backup_dir", "data_dir", "cert_dir", "kubeconfig"}


def create_empty_config() -> ConfigDict:
    """
    Create an initial configuration dictionary.

    Returns:
        Dict with the BackupConfig default for every field and an empty bucket
    """
    config: ConfigDict = {"bucket": ""}
    for f in fields(BackupConfig):
        if f.default is not MISSING:
            config[f.name] = f.default
        elif f.default_factory is not MISSING:
            config[f.name] = f.default_factory()
    return config


def with_bucket(config: ConfigDict, bucket_name: str) -> ConfigDict:
    """
    Set the S3 bucket name.

    Args:
        config: Current configuration dictionary
        bucket_name: Name of the bucket receiving backups

    Returns:
        New configuration dictionary with bucket set
    """
    return {**config, "bucket": bucket_name}


def with_region(config: ConfigDict, region: str) -> ConfigDict:
    """
    Set the AWS region.

    Args:
        config: Current configuration dictionary
        region: AWS region (e.g., 'us-west-2', 'eu-west-1')

    Returns:
        New configuration dictionary with region set
    """
    return {**config, "region": region}


def with_profile(config: ConfigDict, profile: str | None) -> ConfigDict:
    """Set the AWS credentials profile (None for the default chain)."""
    return {**config, "aws_profile": profile or None}


def with_s3_prefix(config: ConfigDict, prefix: str) -> ConfigDict:
    """
    Set the object key prefix backups are stored under.

    Leading and trailing slashes are stripped; the hostname is appended
    at upload time.
    """
    return {**config, "s3_prefix": prefix.strip("/")}


def with_backup_dir(config: ConfigDict, backup_dir: Path | str) -> ConfigDict:
    """Set the local directory for snapshots and safeguard copies."""
    return {**config, "backup_dir": Path(backup_dir)}


def with_data_dir(config: ConfigDict, data_dir: Path | str) -> ConfigDict:
    """Set the etcd data directory that a restore replaces."""
    return {**config, "data_dir": Path(data_dir)}


def with_cert_dir(config: ConfigDict, cert_dir: Path | str) -> ConfigDict:
    """Set the directory holding server-ca.crt, server-client.crt/key."""
    return {**config, "cert_dir": Path(cert_dir)}


def with_endpoints(config: ConfigDict, endpoints: List[str]) -> ConfigDict:
    """
    Set the etcd client endpoints.

    Args:
        config: Current configuration dictionary
        endpoints: Endpoint URLs, e.g. ['https://127.0.0.1:2379']

    Returns:
        New configuration dictionary with endpoints replaced
    """
    return {**config, "endpoints": [e.strip() for e in endpoints if e.strip()]}


def retain_backups_for(config: ConfigDict, days: int) -> ConfigDict:
    """
    Set the retention window in days.

    Backups strictly older than this are pruned locally and remotely.

    Args:
        config: Current configuration dictionary
        days: Retention threshold in days

    Returns:
        New configuration dictionary with retention period set
    """
    if days < 0:
        raise ValueError(f"retention days must be >= 0, got {days}")
    return {**config, "retention_days": days}


def disable_compression(config: ConfigDict) -> ConfigDict:
    """Upload raw snapshot files."""
    return {**config, "compression_enabled": False}


def use_zstd(config: ConfigDict) -> ConfigDict:
    """Compress with zstandard (.zst) instead of gzip (.gz)."""
    return {
        **config,
        "compression_enabled": True,
        "compression_codec": CompressionCodec.ZSTD,
    }


def with_naming(
    config: ConfigDict, backup_prefix: str, date_format: str | None = None
) -> ConfigDict:
    """
    Set the artifact naming convention.

    Args:
        config: Current configuration dictionary
        backup_prefix: File name prefix, e.g. 'etcd-backup'
        date_format: strftime format for the timestamp part

    Returns:
        New configuration dictionary with naming set
    """
    updated = {**config, "backup_prefix": backup_prefix}
    if date_format:
        updated["date_format"] = date_format
    return updated


def notify_slack(config: ConfigDict, webhook_url: str) -> ConfigDict:
    """Post a Slack message when a backup run fails."""
    return {**config, "slack_webhook_url": webhook_url}


def ping_healthcheck(config: ConfigDict, url: str) -> ConfigDict:
    """Ping a dead-man's-switch URL after every backup run."""
    return {**config, "healthcheck_url": url.rstrip("/")}


def build_config(config_dict: ConfigDict) -> BackupConfig:
    """
    Validate and build an immutable BackupConfig from a configuration dictionary.

    Args:
        config_dict: Configuration dictionary built using builder functions

    Returns:
        Validated, immutable BackupConfig instance

    Raises:
        ConfigurationError: If validation fails
    """
    if not config_dict.get("bucket"):
        from etcdbackup.exceptions import ConfigurationError

        raise ConfigurationError("bucket is required")

    return BackupConfig(**config_dict)


def pipe(*funcs: BuilderFunc) -> BuilderFunc:
    """
    Compose multiple builder functions into a single function.

    This allows a more readable pipeline style:

        config = pipe(
            lambda c: with_bucket(c, "my-bucket"),
            lambda c: retain_backups_for(c, 14),
            use_zstd,
        )(create_empty_config())

    Args:
        *funcs: Builder functions to compose

    Returns:
        A single function that applies all functions in sequence
    """

    def composed(config: ConfigDict) -> ConfigDict:
        result = config
        for func in funcs:
            result = func(result)
        return result

    return composed


def create_config(
    bucket: str,
    *,
    region: str | None = None,
    s3_prefix: str | None = None,
    retention_days: int | None = None,
    backup_dir: str | Path | None = None,
    cert_dir: str | Path | None = None,
    endpoints: List[str] | None = None,
    compression: bool | str = True,
    **kwargs: Any,
) -> BackupConfig:
    """
    Create a BackupConfig from simple parameters.

    Args:
        bucket: S3 bucket name (required)
        region: AWS region
        s3_prefix: Object key prefix (default: "etcd-backups")
        retention_days: Retention window in days (default: 7)
        backup_dir: Local backup directory
        cert_dir: etcd certificate directory
        endpoints: etcd client endpoints
        compression: True/"gzip", "zstd", or False to upload raw snapshots
        **kwargs: Any other BackupConfig field

    Returns:
        Validated, immutable BackupConfig instance

    Example:
        config = create_config(
            bucket="etcd-backups-prod",
            region="eu-west-1",
            retention_days=14,
            compression="zstd",
        )
    """
    config_dict = with_bucket(create_empty_config(), bucket)

    if region:
        config_dict = with_region(config_dict, region)

    if s3_prefix is not None:
        config_dict = with_s3_prefix(config_dict, s3_prefix)

    if retention_days is not None:
        config_dict = retain_backups_for(config_dict, retention_days)

    if backup_dir:
        config_dict = with_backup_dir(config_dict, backup_dir)

    if cert_dir:
        config_dict = with_cert_dir(config_dict, cert_dir)

    if endpoints:
        config_dict = with_endpoints(config_dict, endpoints)

    if compression is False:
        config_dict = disable_compression(config_dict)
    elif isinstance(compression, str) and compression.lower() == CompressionCodec.ZSTD.value:
        config_dict = use_zstd(config_dict)

    for key, value in kwargs.items():
        if key in _PATH_FIELDS and value is not None:
            value = Path(value)
        if key in config_dict:
            config_dict[key] = value

    return build_config(config_dict)
