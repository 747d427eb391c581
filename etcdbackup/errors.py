# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for etcd Backup.

These helpers centralize wording for common configuration and pre-flight
errors so that all modules present consistent, actionable messages.
"""


def explain_missing_bucket_env() -> str:
    """
    Explain that the S3 bucket environment variable is missing.
    """

    return (
        "S3 bucket is not configured. "
        "Set the S3_BUCKET environment variable or pass bucket=... to create_config()."
    )


def explain_invalid_retention_days_env(value: str | None) -> str:
    """
    Explain that RETENTION_DAYS is invalid.
    """

    return (
        f"Invalid RETENTION_DAYS value: {value!r}. "
        "It must be a non-negative integer number of days."
    )


def explain_invalid_bool_env(name: str, value: str | None) -> str:
    """
    Explain that a boolean environment variable could not be parsed.
    """

    return (
        f"Invalid {name} value: {value!r}. "
        "Expected one of: true, false, yes, no, 1, 0."
    )


def explain_invalid_number_env(name: str, value: str | None) -> str:
    """
    Explain that a numeric environment variable could not be parsed.
    """

    return f"Invalid {name} value: {value!r}. It must be a positive number."


def explain_invalid_codec_env(value: str | None) -> str:
    """
    Explain that COMPRESSION_CODEC is invalid.
    """

    return (
        f"Invalid COMPRESSION_CODEC value: {value!r}. "
        "Expected 'gzip' or 'zstd'."
    )


def explain_missing_tool(tool: str) -> str:
    """
    Explain that a required executable is not on PATH.
    """

    return (
        f"{tool} is not installed or not in PATH. "
        f"Install it or point the configuration at its absolute path."
    )


def explain_missing_certificate(path: str) -> str:
    """
    Explain that an etcd client certificate file is missing.
    """

    return (
        f"etcd certificate not found: {path}. "
        "Check ETCD_CERT_DIR; on RKE2 this is /var/lib/rancher/rke2/server/tls/etcd."
    )
