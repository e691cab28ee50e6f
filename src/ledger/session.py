"""BudgetSession: the owned handle shared by everything that touches the store.

A session opens the store once, runs the initialization protocol, and keeps
the last successfully loaded entries and settings. Writes go to the store
first; the in-memory view is only refreshed from the store afterwards, so a
failed write leaves it exactly as it was. A write that commits but cannot be
re-read is applied to the last loaded view instead of being reported as failed.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from src.config import Config
from src.database.errors import TransactionFailure
from src.database.models import Settings, SpendEntry
from src.database.repository import ENTRIES, READ_WRITE, Store
from src.ledger.balance import balance_for
from src.ledger.bootstrap import (
    Loading,
    Ready,
    SettingsState,
    bootstrap,
    load_entries,
    settings_of,
)
from src.ledger.clock import Clock, SystemClock, new_anonymous_id
from src.ledger.draft import DraftController
from src.ledger.persistence import StoragePersistence

logger = logging.getLogger(__name__)


class BudgetSession:
    def __init__(
        self,
        store: Store,
        clock: Clock | None = None,
        config: Config | None = None,
        id_factory=new_anonymous_id,
        scheduler=None,
    ):
        self.store = store
        self.clock = clock or SystemClock()
        self.config = config or Config()
        self.id_factory = id_factory
        self.scheduler = scheduler
        self.state: SettingsState = Loading()
        self.persistence = StoragePersistence(store)
        self._entries: list[SpendEntry] = []

    def start(self) -> SettingsState:
        """Initialize settings and load entries.

        An unavailable store yields an Unavailable state instead of raising.
        TransactionFailure during startup propagates.
        """
        self.state = bootstrap(
            self.store, self.clock, self.id_factory, self.config.defaults,
        )
        if isinstance(self.state, Ready):
            self.persistence.restore()
            self.reload_entries()
        return self.state

    @property
    def settings(self) -> Settings:
        return settings_of(self.state)

    # ── Entries ─────────────────────────────────────────────

    def reload_entries(self) -> list[SpendEntry]:
        self._entries = load_entries(self.store)
        return self.entries

    @property
    def entries(self) -> list[SpendEntry]:
        """Entries newest first."""
        return sorted(self._entries, key=lambda e: (e.timestamp, e.id or 0), reverse=True)

    def add_entry(self, amount: Decimal, note: str | None = None) -> SpendEntry:
        """Insert a spend entry and refresh the view.

        Raises:
            TransactionFailure: If the insert fails. Nothing was saved.
        """
        entry = SpendEntry(
            timestamp=self.clock.now(), amount=amount, note=note or None,
        )
        with self.store.transaction(ENTRIES, READ_WRITE) as entries:
            entry_id = entries.insert(entry)
        logger.info("Added entry %d: %s", entry_id, amount)
        saved = SpendEntry(
            id=entry_id, timestamp=entry.timestamp, amount=entry.amount, note=entry.note,
        )
        self._refresh_after_write(lambda view: view + [saved])
        return saved

    def delete_entry(self, entry_id: int) -> None:
        """Delete an entry by id and refresh the view.

        Raises:
            TransactionFailure: If the delete fails. Nothing was removed.
        """
        with self.store.transaction(ENTRIES, READ_WRITE) as entries:
            entries.delete(entry_id)
        logger.info("Deleted entry %d", entry_id)
        self._refresh_after_write(lambda view: [e for e in view if e.id != entry_id])

    def _refresh_after_write(self, apply) -> None:
        # The write has committed; if the re-read fails, apply it to the last view
        try:
            self.reload_entries()
        except TransactionFailure as e:
            logger.warning("Could not reload entries after write: %s", e)
            self._entries = apply(self._entries)

    # ── Balance & settings ──────────────────────────────────

    def balance(self) -> Decimal | None:
        """Remaining balance, or None while settings are not Ready."""
        return balance_for(self.state, self._entries, self.clock.now())

    def _settings_committed(self, settings: Settings) -> None:
        self.state = Ready(settings)

    def editor(self) -> DraftController:
        """A draft controller bound to the current settings.

        Commits flow back into ``self.state``.
        """
        return DraftController(
            self.store,
            self.settings,
            quiescence=self.config.quiescence_seconds,
            saving_window=self.config.saving_window_seconds,
            scheduler=self.scheduler,
            on_commit=self._settings_committed,
        )

    def close(self) -> None:
        self.store.close()
