"""
Backup Orchestrator - Snapshot and Upload

Runs one backup cycle: fills the SQLite store, takes a consistent binary
snapshot and uploads it over FTP. The snapshot file is removed on every exit
path and every failure is converted into a False result.

Usage:
    from snapship.apps.backup.orchestrator import BackupOrchestrator
    from snapship.utils.config import get_settings

    ok = BackupOrchestrator(get_settings()).run()
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from snapship.utils.config import Settings
from snapship.utils.db import SqliteStore, timestamp_suffix
from snapship.utils.ftp import FtpUploader
from snapship.utils.logging import get_logger
from snapship.utils.schemas import TransferConfig

StoreFactory = Callable[[Settings, logging.Logger], SqliteStore]
UploaderFactory = Callable[[TransferConfig, logging.Logger], FtpUploader]


def default_store_factory(settings: Settings, logger: logging.Logger) -> SqliteStore:
    """Open a fresh timestamped database under SQLITE_PREFIX."""
    return SqliteStore.timestamped(
        settings.SQLITE_PREFIX,
        logger=logger,
        seed=settings.ROW_SEED,
        step_pages=settings.BACKUP_STEP_PAGES,
        busy_sleep=settings.BACKUP_BUSY_SLEEP_MS / 1000,
        max_busy_retries=settings.BACKUP_MAX_BUSY_RETRIES,
    )


def default_uploader_factory(config: TransferConfig, logger: logging.Logger) -> FtpUploader:
    return FtpUploader(config, logger=logger)


@contextmanager
def temporary_snapshot(path: Union[str, Path], logger: logging.Logger) -> Iterator[Path]:
    """
    Hand out a snapshot path and delete the file when the block exits.

    Removal failures are logged and never raised.
    """
    snapshot_path = Path(path)
    try:
        yield snapshot_path
    finally:
        try:
            snapshot_path.unlink(missing_ok=True)
            logger.info("Temporary file removed: %s", snapshot_path)
        except OSError as e:
            logger.warning("Failed to remove temporary file %s: %s", snapshot_path, e)


class ProgressLogger:
    """Progress sink that logs upload percentage at DEBUG once per change."""

    def __init__(self, logger: logging.Logger) -> None:
        self.logger = logger
        self._last_percent = -1

    def __call__(self, dl_total: int, dl_now: int, ul_total: int, ul_now: int) -> None:
        if ul_total <= 0:
            return
        percent = int(ul_now * 100 / ul_total)
        if percent != self._last_percent:
            self._last_percent = percent
            self.logger.debug("Upload progress: %d%%", percent)


class BackupOrchestrator:
    """
    Sequences store population, snapshot and upload.

    Handles:
    - Schema creation and synthetic row insertion
    - Consistent binary snapshot next to the database
    - FTP upload with retries
    - Guaranteed removal of the snapshot file
    """

    def __init__(
        self,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        store_factory: Optional[StoreFactory] = None,
        uploader_factory: Optional[UploaderFactory] = None,
    ) -> None:
        self.settings = settings
        self.logger = logger or get_logger(__name__)
        self.store_factory = store_factory or default_store_factory
        self.uploader_factory = uploader_factory or default_uploader_factory
        self.last_snapshot_path: Optional[Path] = None

    def snapshot_path(self) -> Path:
        """Timestamped path for the temporary snapshot file."""
        return Path(f"{self.settings.SQLITE_PREFIX}_backup_{timestamp_suffix()}.sqlite")

    def run(self) -> bool:
        """
        Execute one backup cycle.

        Returns:
            True if the snapshot was uploaded, False on any failure
        """
        try:
            store = self.store_factory(self.settings, self.logger)
            self.logger.info("Opening SQLite database: %s", store.db_path)

            store.ensure_schema()
            store.insert_rows(self.settings.ROW_COUNT)
            self.logger.info("Total rows after insert: %d", store.row_count())

            if self.settings.SQL_DUMP_PATH:
                store.dump_to_file(self.settings.SQL_DUMP_PATH)

            with temporary_snapshot(self.snapshot_path(), self.logger) as dump_file:
                self.last_snapshot_path = dump_file

                snapshot = store.backup(dump_file)
                self.logger.info(
                    "Database binary backup created at: %s",
                    dump_file,
                    extra={"size_bytes": snapshot.size_bytes},
                )

                config = self.settings.transfer_config(progress_sink=ProgressLogger(self.logger))
                uploader = self.uploader_factory(config, self.logger)

                self.logger.info("Starting upload to directory: %s", self.settings.FTP_REMOTE_DIR)
                uploader.upload_file(dump_file, self.settings.FTP_REMOTE_DIR)
                self.logger.info("Upload finished successfully")

        except Exception as e:
            self.logger.error("Exception during backup/upload: %s", e, exc_info=True)
            return False

        return True
