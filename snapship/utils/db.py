"""
Database utilities for SQLite operations.

Provides the snapshot store used by the backup job: schema initialization,
synthetic row generation, row counting, logical dumps and consistent
binary backups through SQLite's online backup API.
"""

import logging
import random
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, Union

from snapship.utils.exceptions import BackupError, QueryError, SchemaError, WriteError
from snapship.utils.schemas import PersonRow, Snapshot

# Result codes reported to the backup progress callback
SQLITE_BUSY = 5
SQLITE_LOCKED = 6

FIRST_NAMES = ("Anna", "David", "Maya", "Liam", "Sophie", "Alex", "Nora", "Arman", "Karen", "Sara")
LAST_NAMES = ("Petrosyan", "Smith", "Johnson", "Grigoryan", "Brown", "Martirosian", "Lee", "Garcia", "Ivanov", "Khan")

RowFactory = Callable[[int, random.Random], PersonRow]


def random_person(index: int, rng: random.Random) -> PersonRow:
    """Default row factory: random names and a derived email."""
    return PersonRow.derive(
        first_name=rng.choice(FIRST_NAMES),
        last_name=rng.choice(LAST_NAMES),
        suffix=rng.randint(0, 9999),
    )


def timestamp_suffix(now: Optional[datetime] = None) -> str:
    """Local time formatted for file names."""
    return (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")


class _BackupStalled(Exception):
    pass


class SqliteStore:
    """SQLite store holding the `people` table.

    A connection is opened per operation, so a single store can be used from
    the scheduler's worker threads.
    """

    def __init__(
        self,
        db_path: Union[str, Path],
        logger: Optional[logging.Logger] = None,
        seed: Optional[int] = None,
        step_pages: int = 1024,
        busy_sleep: float = 0.05,
        max_busy_retries: int = 200,
    ) -> None:
        """
        Initialize store.

        Args:
            db_path: SQLite database file (created on first use)
            logger: Logger receiving store messages
            seed: Seed for deterministic synthetic rows
            step_pages: Pages copied per backup step
            busy_sleep: Seconds to wait after a busy/locked backup step
            max_busy_retries: Consecutive busy/locked steps tolerated before giving up
        """
        self.db_path = Path(db_path)
        self.logger = logger or logging.getLogger(__name__)
        self.step_pages = step_pages
        self.busy_sleep = busy_sleep
        self.max_busy_retries = max_busy_retries
        self._rng = random.Random(seed)

        if seed is not None:
            self.logger.info("Using deterministic row seed: %d", seed)

    @classmethod
    def timestamped(cls, prefix: Union[str, Path], **kwargs) -> "SqliteStore":
        """Create a store at `<prefix>_<YYYY-mm-dd_HH-MM-SS>.sqlite`."""
        return cls(f"{prefix}_{timestamp_suffix()}.sqlite", **kwargs)

    @contextmanager
    def _connect(self, timeout: float = 5.0) -> Iterator[sqlite3.Connection]:
        """
        Open a connection to the store, closing it afterwards.

        Raises:
            sqlite3.Error: If the database cannot be opened
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path, timeout=timeout)
        try:
            yield conn
        finally:
            conn.close()

    def ensure_schema(self) -> None:
        """
        Create the `people` table if it does not exist.

        Raises:
            SchemaError: If the engine rejects the DDL
        """
        self.logger.info("Creating table 'people' if not exists...")
        try:
            with self._connect() as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS people (
                        id INTEGER PRIMARY KEY AUTOINCREMENT,
                        first_name TEXT NOT NULL,
                        last_name TEXT NOT NULL,
                        email TEXT NOT NULL,
                        created_at TEXT NOT NULL
                    )
                """)
                conn.commit()
        except sqlite3.Error as e:
            self.logger.error("Failed to create table: %s", e)
            raise SchemaError(f"Failed to create table: {e}") from e

        self.logger.info("Table 'people' ready")

    def insert_rows(self, count: int, row_factory: Optional[RowFactory] = None) -> None:
        """
        Insert `count` rows in a single transaction.

        Args:
            count: Number of rows to insert
            row_factory: Callable(index, rng) returning a PersonRow; defaults to random_person

        Raises:
            WriteError: If any row fails; nothing from the batch is kept
        """
        if count < 0:
            raise WriteError(f"Row count must be >= 0, got {count}")

        factory = row_factory or random_person
        self.logger.info("Inserting %d random rows...", count)

        try:
            with self._connect() as conn:
                try:
                    conn.execute("BEGIN")
                    for i in range(count):
                        row = factory(i, self._rng)
                        conn.execute(
                            "INSERT INTO people (first_name, last_name, email, created_at) VALUES (?, ?, ?, ?)",
                            (row.first_name, row.last_name, row.email, row.created_at),
                        )
                    conn.commit()
                except Exception:
                    conn.rollback()
                    self.logger.error("Transaction rolled back due to error during insert_rows")
                    raise
        except Exception as e:
            raise WriteError(f"Insert of {count} rows failed: {e}") from e

        self.logger.info("Inserted %d rows successfully", count)

    def row_count(self) -> int:
        """
        Count rows in the `people` table.

        Raises:
            QueryError: On engine failure (a missing table included)
        """
        try:
            with self._connect() as conn:
                (count,) = conn.execute("SELECT COUNT(*) FROM people").fetchone()
        except sqlite3.Error as e:
            raise QueryError(f"Failed to count rows: {e}") from e

        self.logger.info("Current row count: %d", count)
        return count

    def dump_to_file(self, destination: Union[str, Path]) -> int:
        """
        Write the `people` table as SQL INSERT statements.

        Args:
            destination: Path of the .sql file to write

        Returns:
            Number of rows dumped

        Raises:
            QueryError: If the table cannot be read
        """
        dest = Path(destination)
        self.logger.info("Dumping database to SQL file: %s", dest)
        dest.parent.mkdir(parents=True, exist_ok=True)

        rows = 0
        try:
            with self._connect() as conn, open(dest, "w", encoding="utf-8") as out:
                cursor = conn.execute(
                    "SELECT id, first_name, last_name, email, created_at FROM people ORDER BY id"
                )
                for row in cursor:
                    values = ", ".join(_sql_literal(v) for v in row)
                    out.write(
                        f"INSERT INTO people (id, first_name, last_name, email, created_at) VALUES ({values});\n"
                    )
                    rows += 1
        except sqlite3.Error as e:
            raise QueryError(f"Failed to dump database: {e}") from e

        self.logger.info("Dumped %d rows to file successfully", rows)
        return rows

    def backup(self, destination: Union[str, Path]) -> Snapshot:
        """
        Copy the whole database to `destination` with the online backup API.

        Pages are copied in steps; a step that hits a busy/locked source is
        retried after `busy_sleep`, up to `max_busy_retries` consecutive times.
        A destination left behind by a failure must not be used.

        Args:
            destination: Path of the backup file

        Returns:
            Snapshot describing the written file

        Raises:
            BackupError: If the copy does not complete
        """
        dest = Path(destination)
        self.logger.info("Performing binary backup to file: %s", dest)

        busy_steps = 0

        def on_progress(status: int, remaining: int, total: int) -> None:
            nonlocal busy_steps
            if status in (SQLITE_BUSY, SQLITE_LOCKED):
                busy_steps += 1
                self.logger.debug("Backup step busy/locked (%d/%d)", busy_steps, self.max_busy_retries)
                if busy_steps > self.max_busy_retries:
                    raise _BackupStalled(
                        f"source stayed busy/locked for {busy_steps} consecutive steps"
                    )
                return
            busy_steps = 0
            self.logger.debug("Backup progress: %d/%d pages remaining", remaining, total)

        try:
            with self._connect(timeout=0) as source, closing(sqlite3.connect(dest)) as target:
                source.backup(
                    target,
                    pages=self.step_pages,
                    progress=on_progress,
                    sleep=self.busy_sleep,
                )
        except _BackupStalled as e:
            self.logger.error("Backup to %s aborted: %s", dest, e)
            raise BackupError(dest, str(e)) from e
        except sqlite3.Error as e:
            self.logger.error("Backup to %s failed: %s", dest, e)
            raise BackupError(dest, str(e)) from e

        snapshot = Snapshot(
            path=dest,
            created_at=datetime.now(timezone.utc),
            size_bytes=dest.stat().st_size,
        )
        self.logger.info("Binary backup completed successfully to: %s (%d bytes)", dest, snapshot.size_bytes)
        return snapshot


def _sql_literal(value: object) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, (int, float)):
        return str(value)
    return "'" + str(value).replace("'", "''") + "'"
