"""Debounced commits of settings edits.

Edits land in a textual DraftSettings first. Once no edit has arrived for the
quiescence period the draft is normalized and written to the store:

    CLEAN --edit--> DIRTY --quiet for `quiescence`--> COMMITTING
    COMMITTING --saving window over--> CLEAN (or DIRTY if edits arrived meanwhile)

Each edit while DIRTY cancels the pending timer and starts a new one, so a
burst of edits produces a single write. Edits arriving while COMMITTING are
kept and their timer only starts after the saving window, so there is never
more than one write in flight and writes reach the store in edit order.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable

from src.database.errors import TransactionFailure
from src.database.models import SETTINGS_KEY, DraftSettings, Settings
from src.database.repository import READ_ONLY, READ_WRITE, SETTINGS, Store
from src.ledger.clock import start_of_day

logger = logging.getLogger(__name__)

DEFAULT_QUIESCENCE_SECONDS = 2.0
DEFAULT_SAVING_WINDOW_SECONDS = 0.5


class DraftState(str, Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    COMMITTING = "committing"


def thread_scheduler(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Run ``callback`` after ``delay`` seconds on a daemon timer thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class DraftController:
    """Owns the settings draft and is the only writer of Settings after startup.

    Args:
        store: Open Store holding the settings record.
        settings: The currently committed settings.
        quiescence: Seconds without edits before a commit fires.
        saving_window: Seconds the "saving" indicator stays up after a commit.
        scheduler: ``scheduler(delay, callback)`` returning an object with
            ``cancel()``. Defaults to threading.Timer.
        on_commit: Called with the stored Settings after each successful commit.
    """

    def __init__(
        self,
        store: Store,
        settings: Settings,
        quiescence: float = DEFAULT_QUIESCENCE_SECONDS,
        saving_window: float = DEFAULT_SAVING_WINDOW_SECONDS,
        scheduler=None,
        on_commit: Callable[[Settings], None] | None = None,
    ):
        self.store = store
        self.quiescence = quiescence
        self.saving_window = saving_window
        self.committed = settings
        self.draft = DraftSettings.from_settings(settings)
        self.state = DraftState.CLEAN
        self.saving = False
        self.last_error: TransactionFailure | None = None
        self.commit_count = 0

        self._scheduler = scheduler or thread_scheduler
        self._on_commit = on_commit
        self._cond = threading.Condition(threading.RLock())
        self._timer = None
        self._generation = 0
        self._queued_edit = False
        self._in_flight = False

    # ── Editing ─────────────────────────────────────────────

    def edit(
        self,
        *,
        daily_budget: str | None = None,
        start_amount: str | None = None,
        start_date: datetime | None = None,
    ) -> None:
        if daily_budget is None and start_amount is None and start_date is None:
            return
        with self._cond:
            if daily_budget is not None:
                self.draft.daily_budget = daily_budget
            if start_amount is not None:
                self.draft.start_amount = start_amount
            if start_date is not None:
                self.draft.start_date = start_of_day(start_date)

            if self.state is DraftState.COMMITTING:
                self._queued_edit = True
                return
            self.state = DraftState.DIRTY
            self._schedule(self.quiescence, self._on_quiet)

    # ── Timers ──────────────────────────────────────────────

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _schedule(self, delay: float, handler: Callable[[int], None]) -> None:
        self._cancel_timer()
        generation = self._generation
        self._timer = self._scheduler(delay, lambda: handler(generation))

    def _on_quiet(self, generation: int) -> None:
        with self._cond:
            if generation != self._generation or self.state is not DraftState.DIRTY:
                return
            self._timer = None
            record = self._begin_commit()
        self._write(record)
        with self._cond:
            if self.state is DraftState.COMMITTING:
                self._schedule(self.saving_window, self._on_saving_done)

    def _on_saving_done(self, generation: int) -> None:
        with self._cond:
            if generation != self._generation:
                return
            self._timer = None
            self._finish_commit()

    # ── Commit ──────────────────────────────────────────────

    def _begin_commit(self) -> Settings:
        self.state = DraftState.COMMITTING
        self.saving = True
        self._in_flight = True
        return self.draft.normalized()

    def _write(self, record: Settings) -> None:
        try:
            with self.store.transaction(SETTINGS, READ_WRITE) as settings_store:
                settings_store.put(SETTINGS_KEY, record)
            with self.store.transaction(SETTINGS, READ_ONLY) as settings_store:
                stored = settings_store.get(SETTINGS_KEY)
        except TransactionFailure as e:
            logger.error("Settings commit failed: %s", e)
            with self._cond:
                self.last_error = e
                self._in_flight = False
                self._cond.notify_all()
            return

        with self._cond:
            self.committed = stored if stored is not None else record
            self.last_error = None
            self.commit_count += 1
            self._in_flight = False
            self._cond.notify_all()
        logger.info(
            "Committed settings: daily_budget=%s start_amount=%s start_date=%s",
            record.daily_budget, record.start_amount, record.start_date.date(),
        )
        if self._on_commit is not None:
            self._on_commit(self.committed)

    def _finish_commit(self) -> None:
        self.saving = False
        if self._queued_edit:
            self._queued_edit = False
            self.state = DraftState.DIRTY
            self._schedule(self.quiescence, self._on_quiet)
        elif self.last_error is not None:
            # Draft kept as typed; the next edit or flush() tries again
            self.state = DraftState.DIRTY
        else:
            self.state = DraftState.CLEAN
            self.draft = DraftSettings.from_settings(self.committed)

    def flush(self) -> Settings:
        """Commit a dirty draft now instead of waiting for the timer.

        Waits for a commit already in flight. Returns the committed settings.

        Raises:
            TransactionFailure: If the write fails. The draft stays dirty.
        """
        with self._cond:
            while self._in_flight:
                self._cond.wait()
            if self.state is DraftState.COMMITTING:
                self._cancel_timer()
                self._finish_commit()
            if self.state is not DraftState.DIRTY:
                return self.committed
            self._cancel_timer()
            self._queued_edit = False
            record = self._begin_commit()
        self._write(record)
        with self._cond:
            self._finish_commit()
            if self.last_error is not None:
                raise self.last_error
            return self.committed

    def close(self) -> None:
        """Drop any pending timer. A dirty draft is discarded."""
        with self._cond:
            self._cancel_timer()
