# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Command line entry points: `etcd-backup` and `etcd-restore`.

Configuration comes from the environment, optionally overlaid with a
backup-config.sh style file given through --config.

Exit codes:
    0  success (health-check and prune warnings included)
    1  a pipeline stage failed
    2  usage error
    3  prerequisite or configuration failure
    4  restore cancelled by the operator
    5  the managed service could not be stopped or started
"""

import asyncio
import logging
import os
import sys
from enum import IntEnum
from typing import Callable

import click
import structlog
from rich.console import Console
from rich.table import Table

from etcdbackup import __version__
from etcdbackup.config import BackupConfig
from etcdbackup.env import create_config_from_env, load_env_file
from etcdbackup.exceptions import (
    ConfigurationError,
    EtcdBackupError,
    PrerequisiteError,
    ServiceError,
    UsageError,
)


class ExitCode(IntEnum):
    SUCCESS = 0
    FAILURE = 1
    USAGE = 2
    PREREQUISITE = 3
    CANCELLED = 4
    SERVICE = 5


def exit_code_for(error: EtcdBackupError | None) -> ExitCode:
    """Map a pipeline error (or its absence) to a process exit code."""
    if error is None:
        return ExitCode.SUCCESS
    if isinstance(error, UsageError):
        return ExitCode.USAGE
    if isinstance(error, (PrerequisiteError, ConfigurationError)):
        return ExitCode.PREREQUISITE
    if isinstance(error, ServiceError):
        return ExitCode.SERVICE
    return ExitCode.FAILURE


def configure_logging(json_logs: bool = False, verbose: bool = False) -> None:
    """Route structlog output to stderr, human-readable or as JSON lines."""
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.DEBUG if verbose else logging.INFO
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def load_config(config_file: str | None) -> BackupConfig:
    """
    Build the configuration from os.environ and an optional env file.

    Values in the file take precedence over the process environment.
    """
    environ = dict(os.environ)
    if config_file:
        environ.update(load_env_file(config_file))
    return create_config_from_env(environ)


def _common_options(f: Callable) -> Callable:
    f = click.option(
        "-c",
        "--config",
        "config_file",
        type=click.Path(exists=True, dir_okay=False),
        default=None,
        help="backup-config.sh style file of KEY=value assignments.",
    )(f)
    f = click.option("--json", "json_logs", is_flag=True, help="Emit JSON log lines.")(f)
    f = click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")(f)
    f = click.version_option(version=__version__)(f)
    return f


def _prepare(config_file: str | None, json_logs: bool, verbose: bool, console: Console) -> BackupConfig:
    configure_logging(json_logs, verbose)
    try:
        return load_config(config_file)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        for problem in e.details.get("errors", []):
            console.print(f"  - {problem}")
        raise SystemExit(ExitCode.PREREQUISITE)


def _human_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    value = float(size)
    for unit in ("KiB", "MiB", "GiB"):
        value /= 1024
        if value < 1024:
            break
    return f"{value:.1f} {unit}"


def _print_error(console: Console, error: EtcdBackupError, stage: str | None) -> None:
    console.print(f"[red]Failed at stage {stage or 'unknown'}:[/red] {error.message}")
    for problem in error.details.get("errors", []):
        console.print(f"  - {problem}")


@click.command()
@_common_options
def backup_main(config_file, json_logs, verbose):
    """Capture, verify, compress and upload an etcd snapshot, then prune old backups."""
    from etcdbackup.core import run_backup

    console = Console(stderr=True)
    config = _prepare(config_file, json_logs, verbose, console)

    result = asyncio.run(run_backup(config))

    if result.succeeded:
        location = result.artifact.remote_key if result.artifact else None
        console.print(f"[green]Backup uploaded:[/green] s3://{config.bucket}/{location}")
        for prune_error in result.prune_errors:
            console.print(f"[yellow]Prune warning:[/yellow] {prune_error.message}")
            for failure in prune_error.details["failures"]:
                console.print(f"  - {failure}")
    else:
        _print_error(
            console,
            result.error,
            result.failed_stage.value if result.failed_stage else None,
        )
        if result.artifact is not None and result.artifact.local_path.exists():
            console.print(f"Local artifact kept at {result.artifact.local_path}")

    raise SystemExit(exit_code_for(result.error))


@click.command()
@click.argument("artifact", required=False)
@click.option("-l", "--list", "list_only", is_flag=True, help="List available backups.")
@click.option("-y", "--yes", is_flag=True, help="Skip the confirmation prompt.")
@_common_options
def restore_main(artifact, list_only, yes, config_file, json_logs, verbose):
    """Restore the local etcd data directory from ARTIFACT.

    ARTIFACT is a bare backup file name under this host's prefix, e.g.
    etcd-backup-20240715-123456.db.gz

    The restore stops the service, keeps a copy of the current data
    directory, replaces it from the backup, starts the service again and
    checks that the API server answers.
    """
    from etcdbackup.backup import validate_artifact_name
    from etcdbackup.core import list_remote_backups, run_restore

    console = Console()
    err_console = Console(stderr=True)
    config = _prepare(config_file, json_logs, verbose, err_console)

    if list_only:
        try:
            objects = asyncio.run(list_remote_backups(config))
        except EtcdBackupError as e:
            err_console.print(f"[red]Listing failed:[/red] {e}")
            raise SystemExit(exit_code_for(e))

        if not objects:
            console.print(f"No backups found under s3://{config.bucket}/{config.host_prefix}")
            raise SystemExit(ExitCode.SUCCESS)

        table = Table(title=f"s3://{config.bucket}/{config.host_prefix}")
        table.add_column("Name", style="bold cyan")
        table.add_column("Size", justify="right")
        table.add_column("Last modified", style="dim")
        for obj in objects:
            table.add_row(
                obj.name,
                _human_size(obj.size),
                obj.last_modified.strftime("%Y-%m-%d %H:%M:%S %Z"),
            )
        console.print(table)
        raise SystemExit(ExitCode.SUCCESS)

    try:
        validate_artifact_name(artifact)
    except UsageError as e:
        raise click.UsageError(e.message)

    confirmed = yes
    if not confirmed:
        try:
            confirmed = click.confirm(
                f"WARNING: This will stop {config.service_name} and replace "
                f"{config.data_dir}. Continue?",
                default=False,
            )
        except click.Abort:
            confirmed = False

    result = asyncio.run(run_restore(config, artifact, confirmed))

    if result.cancelled:
        err_console.print("Restore cancelled by user")
        raise SystemExit(ExitCode.CANCELLED)

    if result.succeeded:
        console.print(f"[green]Restored {artifact} into {config.data_dir}[/green]")
        if result.request.pre_restore_snapshot_path:
            console.print(
                f"Previous data kept at {result.request.pre_restore_snapshot_path}"
            )
        for warning in result.warnings:
            err_console.print(f"[yellow]Warning:[/yellow] {warning}")
    else:
        _print_error(
            err_console,
            result.error,
            result.failed_stage.value if result.failed_stage else None,
        )
        if result.request.pre_restore_snapshot_path:
            err_console.print(
                f"Previous data kept at {result.request.pre_restore_snapshot_path}"
            )

    raise SystemExit(exit_code_for(result.error))
