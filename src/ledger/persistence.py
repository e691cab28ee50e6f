"""Storage persistence boundary.

"Persisted" means the database survives crashes and cleanup: it lives in a
real file outside the volatile (system temp) directory and SQLite syncs every
commit to disk (synchronous=FULL). The grant is remembered in ``store_meta``
and re-applied by ``restore()`` whenever the store is opened again.

Nothing here raises; a False answer is only a weaker durability state to
report.
"""

from __future__ import annotations

import logging
import sqlite3
import tempfile
from pathlib import Path

from src.database.repository import Store

logger = logging.getLogger(__name__)

PERSISTED_FLAG = "persisted"

# PRAGMA synchronous values: 0=OFF, 1=NORMAL, 2=FULL, 3=EXTRA
_SYNCHRONOUS_FULL = 2


class StoragePersistence:
    def __init__(self, store: Store, volatile_dir: Path | str | None = None):
        self.store = store
        self.volatile_dir = Path(volatile_dir or tempfile.gettempdir()).resolve()

    def _durable_location(self) -> bool:
        if self.store.is_memory:
            return False
        db_file = Path(self.store.db_path).resolve()
        return self.volatile_dir not in db_file.parents

    def _granted(self) -> bool:
        row = self.store.conn.execute(
            "SELECT value FROM store_meta WHERE name = ?", (PERSISTED_FLAG,)
        ).fetchone()
        return row is not None and row[0] == "1"

    def persisted(self) -> bool:
        if not self._durable_location():
            return False
        try:
            with self.store.lock:
                synchronous = self.store.conn.execute("PRAGMA synchronous").fetchone()[0]
                return self._granted() and synchronous >= _SYNCHRONOUS_FULL
        except sqlite3.Error as e:
            logger.warning("Could not read persistence state: %s", e)
            return False

    def persist(self) -> bool:
        """Ask for durable storage. Returns whether it is now in effect."""
        if self.persisted():
            return True
        if not self._durable_location():
            logger.info("Persistence denied for %s", self.store.db_path)
            return False
        try:
            with self.store.lock:
                self.store.conn.execute("PRAGMA synchronous = FULL")
                self.store.conn.execute(
                    "INSERT INTO store_meta (name, value) VALUES (?, '1')"
                    " ON CONFLICT(name) DO UPDATE SET value = excluded.value",
                    (PERSISTED_FLAG,),
                )
        except sqlite3.Error as e:
            logger.warning("Could not enable persistence: %s", e)
            return False
        logger.info("Persistence granted for %s", self.store.db_path)
        return self.persisted()

    def restore(self) -> bool:
        """Re-apply a previous grant to a freshly opened connection."""
        if not self._durable_location():
            return False
        try:
            with self.store.lock:
                if self._granted():
                    self.store.conn.execute("PRAGMA synchronous = FULL")
        except sqlite3.Error as e:
            logger.warning("Could not restore persistence: %s", e)
        return self.persisted()
