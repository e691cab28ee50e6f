"""Store: scoped transactions over the entries and settings tables.

One SQLite connection (WAL mode, synchronous=NORMAL, foreign keys on) is
shared by everything holding the Store. Transactions are explicit: the
connection runs in autocommit mode and each ``transaction()`` block issues
its own BEGIN, then commits on normal exit or rolls back on any exception.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterator

from .errors import KeyAlreadyExists, StorageUnavailable, TransactionFailure
from .models import Settings, SpendEntry

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

ENTRIES = "entries"
SETTINGS = "settings"
SCOPES = frozenset({ENTRIES, SETTINGS})

READ_ONLY = "readonly"
READ_WRITE = "readwrite"
MODES = frozenset({READ_ONLY, READ_WRITE})


class _Scope:
    """Operations available while a transaction is active."""

    def __init__(self, conn: sqlite3.Connection, mode: str):
        self._conn = conn
        self.mode = mode
        self.active = True

    def _check_active(self) -> None:
        if not self.active:
            raise TransactionFailure("Transaction is no longer active")

    def _check_writable(self) -> None:
        self._check_active()
        if self.mode != READ_WRITE:
            raise TransactionFailure("Write attempted in a read-only transaction")

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self._conn.execute(sql, params)
        except sqlite3.IntegrityError:
            raise
        except sqlite3.Error as e:
            raise TransactionFailure(str(e)) from e


class EntryStore(_Scope):
    def insert(self, entry: SpendEntry) -> int:
        """Insert an entry and return its store-assigned id.

        Any id already set on ``entry`` is ignored.
        """
        self._check_writable()
        try:
            cur = self._execute(
                "INSERT INTO entries (timestamp, amount, note) VALUES (?, ?, ?)",
                (entry.timestamp.isoformat(), str(entry.amount), entry.note),
            )
        except sqlite3.IntegrityError as e:
            raise TransactionFailure(str(e)) from e
        return cur.lastrowid

    def get(self, entry_id: int) -> SpendEntry | None:
        self._check_active()
        row = self._execute(
            "SELECT * FROM entries WHERE id = ?", (entry_id,)
        ).fetchone()
        return _row_to_entry(row) if row else None

    def get_all(self) -> list[SpendEntry]:
        """Return every entry. No particular order is promised."""
        self._check_active()
        rows = self._execute("SELECT * FROM entries").fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self) -> int:
        self._check_active()
        return self._execute("SELECT COUNT(*) FROM entries").fetchone()[0]

    def delete(self, entry_id: int) -> None:
        """Delete by id. Unknown ids are ignored."""
        self._check_writable()
        self._execute("DELETE FROM entries WHERE id = ?", (entry_id,))


class SettingsStore(_Scope):
    def get(self, key: str) -> Settings | None:
        self._check_active()
        row = self._execute(
            "SELECT * FROM settings WHERE key = ?", (key,)
        ).fetchone()
        return _row_to_settings(row) if row else None

    def put(self, key: str, settings: Settings) -> None:
        """Insert or overwrite the record under ``key``."""
        self._check_writable()
        self._execute(
            "INSERT INTO settings"
            " (key, anonymous_id, daily_budget, start_amount, start_date)"
            " VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT(key) DO UPDATE SET"
            "  anonymous_id = excluded.anonymous_id,"
            "  daily_budget = excluded.daily_budget,"
            "  start_amount = excluded.start_amount,"
            "  start_date = excluded.start_date",
            (key, *_settings_params(settings)),
        )

    def add(self, key: str, settings: Settings) -> None:
        """Insert the record under ``key``.

        Raises:
            KeyAlreadyExists: If a record with this key is already stored.
                Another process may have initialized the store first.
        """
        self._check_writable()
        try:
            self._execute(
                "INSERT INTO settings"
                " (key, anonymous_id, daily_budget, start_amount, start_date)"
                " VALUES (?, ?, ?, ?, ?)",
                (key, *_settings_params(settings)),
            )
        except sqlite3.IntegrityError as e:
            raise KeyAlreadyExists(key) from e


class Store:
    def __init__(self, db_path: str = ":memory:"):
        self.db_path = str(db_path)
        self._conn: sqlite3.Connection | None = None
        self.lock = threading.RLock()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                conn = sqlite3.connect(
                    self.db_path, check_same_thread=False, isolation_level=None,
                )
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
            except sqlite3.Error as e:
                raise StorageUnavailable(self.db_path, str(e)) from e
            self._conn = conn
        return self._conn

    @property
    def is_memory(self) -> bool:
        return self.db_path == ":memory:" or self.db_path.startswith("file::memory:")

    def close(self):
        with self.lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ── Open / create ───────────────────────────────────────

    def open_or_create(self, migrations_dir: Path | None = None) -> Store:
        """Create the entries and settings tables if they are missing.

        Safe to call any number of times against the same database.

        Raises:
            StorageUnavailable: If the database cannot be opened or written.
        """
        try:
            with self.lock:
                self.apply_migrations(migrations_dir or MIGRATIONS_DIR)
        except StorageUnavailable:
            raise
        except (sqlite3.Error, OSError) as e:
            raise StorageUnavailable(self.db_path, str(e)) from e
        return self

    def apply_migrations(self, migrations_dir: Path):
        """Apply all pending SQL migrations in order.

        Each migration runs in a transaction: if the SQL fails, the
        schema_version row is not inserted, allowing retry on next startup.
        """
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS schema_version ("
            "  version INTEGER PRIMARY KEY,"
            "  description TEXT,"
            "  applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP"
            ")"
        )

        row = self.conn.execute(
            "SELECT MAX(version) FROM schema_version"
        ).fetchone()
        current = row[0] or 0

        for sql_file in sorted(migrations_dir.glob("*.sql")):
            version = int(sql_file.name.split("_")[0])
            if version <= current:
                continue
            try:
                self.conn.execute("BEGIN IMMEDIATE")
                # Another process may have applied it while we waited for the lock
                applied = self.conn.execute(
                    "SELECT 1 FROM schema_version WHERE version = ?", (version,)
                ).fetchone()
                if applied is None:
                    for statement in sql_file.read_text().split(";"):
                        statement = statement.strip()
                        if statement:
                            self.conn.execute(statement)
                    self.conn.execute(
                        "INSERT INTO schema_version (version, description) VALUES (?, ?)",
                        (version, sql_file.stem),
                    )
                    logger.info("Applied migration %s", sql_file.stem)
                self.conn.execute("COMMIT")
            except Exception:
                self.conn.rollback()
                raise

    # ── Transactions ────────────────────────────────────────

    @contextmanager
    def transaction(self, scope: str, mode: str = READ_ONLY) -> Iterator[EntryStore | SettingsStore]:
        """Run a block of operations against one collection atomically.

        Usage:
            with store.transaction(ENTRIES, READ_WRITE) as entries:
                entry_id = entries.insert(entry)

        Raises:
            TransactionFailure: If the transaction cannot begin or commit.
        """
        if scope not in SCOPES:
            raise ValueError(f"Unknown transaction scope: {scope}")
        if mode not in MODES:
            raise ValueError(f"Unknown transaction mode: {mode}")

        with self.lock:
            conn = self.conn
            begin = "BEGIN IMMEDIATE" if mode == READ_WRITE else "BEGIN"
            try:
                conn.execute(begin)
            except sqlite3.Error as e:
                raise TransactionFailure(f"Could not begin {mode} transaction: {e}") from e

            handle = EntryStore(conn, mode) if scope == ENTRIES else SettingsStore(conn, mode)
            try:
                yield handle
            except BaseException:
                handle.active = False
                _rollback(conn)
                raise
            handle.active = False
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(conn)
                raise TransactionFailure(f"Commit failed: {e}") from e


def _rollback(conn: sqlite3.Connection) -> None:
    try:
        conn.rollback()
    except sqlite3.Error:
        logger.exception("Rollback failed")


# ── Row Converters ──────────────────────────────────────


def _settings_params(settings: Settings) -> tuple:
    return (
        settings.anonymous_id,
        None if settings.daily_budget is None else str(settings.daily_budget),
        None if settings.start_amount is None else str(settings.start_amount),
        None if settings.start_date is None else settings.start_date.isoformat(),
    )


def _row_to_entry(row: sqlite3.Row) -> SpendEntry:
    return SpendEntry(
        id=row["id"],
        timestamp=datetime.fromisoformat(row["timestamp"]),
        amount=Decimal(row["amount"]),
        note=row["note"],
    )


def _row_to_settings(row: sqlite3.Row) -> Settings:
    return Settings(
        anonymous_id=row["anonymous_id"],
        daily_budget=_decimal_or_none(row["daily_budget"]),
        start_amount=_decimal_or_none(row["start_amount"]),
        start_date=(
            datetime.fromisoformat(row["start_date"]) if row["start_date"] else None
        ),
    )


def _decimal_or_none(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
