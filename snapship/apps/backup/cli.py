"""
Backup Command Line Interface

Usage:
    # One-shot backup (password "-" reads FTP_PASS from the environment)
    snapship backup data/app ftp.example.com 21 backup - backups/daily --rows 100

    # Also keep a local SQL dump of the table
    snapship backup data/app ftp.example.com 21 backup - backups/daily --dump-sql data/app.sql

    # Periodic backups configured from the environment / .env
    snapship schedule
    snapship schedule --run-once

Exit codes:
    0  backup and upload completed
    1  invalid arguments
    2  backup or upload failed
    3  configuration error
"""

import asyncio
import os
import sys
from typing import Any, Optional

import click
import typer
from pydantic import ValidationError

from snapship.apps.backup.orchestrator import BackupOrchestrator
from snapship.apps.backup.scheduler import BackupScheduler
from snapship.utils.config import Settings
from snapship.utils.logging import get_logger, setup_logging, shutdown_logging

EXIT_OK = 0
EXIT_INVALID_ARGS = 1
EXIT_UPLOAD_FAILED = 2
EXIT_CONFIG_ERROR = 3

PASSWORD_ENV_VAR = "FTP_PASS"

logger = get_logger(__name__)

app = typer.Typer(
    name="snapship",
    help="Snapshot a SQLite database and upload it over FTP.",
    add_completion=False,
    no_args_is_help=True,
)


def _format_validation_error(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "settings"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)


def _load_settings(**overrides: Any) -> Settings:
    """Build settings from the environment with non-None overrides applied.

    Raises:
        typer.Exit: With EXIT_INVALID_ARGS if validation fails
    """
    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return Settings(**values)
    except ValidationError as e:
        typer.echo(f"Invalid arguments: {_format_validation_error(e)}", err=True)
        raise typer.Exit(code=EXIT_INVALID_ARGS)


def _resolve_password(password_arg: str) -> str:
    """Return the password, reading FTP_PASS when the argument is '-'.

    Raises:
        typer.Exit: With EXIT_CONFIG_ERROR if FTP_PASS is required but unset
    """
    if password_arg != "-":
        return password_arg

    env_password = os.environ.get(PASSWORD_ENV_VAR)
    if env_password is None:
        typer.echo(
            f"Password argument '-' specified but {PASSWORD_ENV_VAR} environment variable is not set.",
            err=True,
        )
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    return env_password


@app.command()
def backup(
    sqlite_prefix: str = typer.Argument(..., help="Prefix for the SQLite database file"),
    ftp_host: str = typer.Argument(..., help="FTP server host"),
    ftp_port: str = typer.Argument(..., help="FTP server port (1-65535)"),
    ftp_user: str = typer.Argument(..., help="FTP user name"),
    ftp_pass: str = typer.Argument(..., help="FTP password, or '-' to read FTP_PASS"),
    ftp_dir: str = typer.Argument(..., help="Remote directory"),
    no_ssl_verify: bool = typer.Option(False, "--no-ssl-verify", help="Disable SSL peer/host verification"),
    no_tls: bool = typer.Option(False, "--no-tls", help="Use plain FTP instead of explicit FTPS"),
    rows: Optional[str] = typer.Option(None, "--rows", help="Rows to insert into the database (default: 100)"),
    retries: Optional[str] = typer.Option(None, "--retries", help="FTP upload attempts (default: 3)"),
    timeout: Optional[str] = typer.Option(None, "--timeout", help="FTP connect/response timeout in seconds (default: 30)"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="debug|info|warn|error (default: info)"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="text|json (default: text)"),
    dump_sql: Optional[str] = typer.Option(None, "--dump-sql", help="Also write the table as SQL INSERT statements to this file"),
) -> None:
    """Insert rows, snapshot the database and upload the snapshot once."""
    password = _resolve_password(ftp_pass)

    settings = _load_settings(
        SQLITE_PREFIX=sqlite_prefix,
        FTP_HOST=ftp_host,
        FTP_PORT=ftp_port,
        FTP_USERNAME=ftp_user,
        FTP_PASSWORD=password,
        FTP_REMOTE_DIR=ftp_dir,
        FTP_SSL_VERIFY=False if no_ssl_verify else None,
        FTP_USE_TLS=False if no_tls else None,
        ROW_COUNT=rows,
        FTP_RETRIES=retries,
        FTP_TIMEOUT=timeout,
        LOG_LEVEL=log_level,
        LOG_FORMAT=log_format,
        SQL_DUMP_PATH=dump_sql,
    )

    setup_logging(
        level=settings.log_level_value,
        format_type=settings.LOG_FORMAT,
        log_dir=settings.LOG_DIR,
        max_bytes=settings.LOG_MAX_BYTES,
    )

    try:
        logger.info(
            "Starting backup. FTP host: %s:%d, user: %s, pass: %s",
            settings.FTP_HOST,
            settings.FTP_PORT,
            settings.FTP_USERNAME,
            settings.masked_password(),
        )

        success = BackupOrchestrator(settings).run()
    finally:
        shutdown_logging()

    if not success:
        typer.echo("Backup and upload failed. See logs for details.", err=True)
        raise typer.Exit(code=EXIT_UPLOAD_FAILED)

    typer.echo("Backup and upload completed successfully.")


@app.command()
def schedule(
    run_once: bool = typer.Option(False, "--run-once", help="Run a single backup and exit"),
) -> None:
    """Run backups on BACKUP_SCHEDULE_CRON using settings from the environment."""
    try:
        settings = Settings()
    except ValidationError as e:
        typer.echo(f"Configuration error: {_format_validation_error(e)}", err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    setup_logging(
        level=settings.log_level_value,
        format_type=settings.LOG_FORMAT,
        log_dir=settings.LOG_DIR,
        max_bytes=settings.LOG_MAX_BYTES,
    )

    try:
        scheduler = BackupScheduler(settings, run_once=run_once or settings.RUN_ONCE)
        ok = asyncio.run(scheduler.start())
    except Exception as e:
        logger.error("Scheduler failed: %s", e, exc_info=True)
        ok = False
    finally:
        shutdown_logging()

    if not ok:
        raise typer.Exit(code=EXIT_UPLOAD_FAILED)


def main() -> None:
    """Console entry point mapping usage errors to EXIT_INVALID_ARGS."""
    try:
        code = app(standalone_mode=False)
    except click.UsageError as e:
        e.show()
        sys.exit(EXIT_INVALID_ARGS)
    except click.Abort:
        sys.exit(EXIT_UPLOAD_FAILED)

    sys.exit(code if isinstance(code, int) else EXIT_OK)
