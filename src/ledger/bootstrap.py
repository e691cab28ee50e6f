"""First-run initialization of the settings singleton.

Runs once per session against an open Store:
  open/create → read settings → seed defaults or normalize → Ready

A missing record is seeded with ``add`` so that a record written by a
concurrent initializer is never overwritten. When ``add`` loses that race the
record is re-read and normalized like any existing one. Which initializer's
defaults end up stored is not defined.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Union

from src.database.errors import KeyAlreadyExists, StorageUnavailable
from src.database.models import SETTINGS_KEY, Settings, SpendEntry
from src.database.repository import ENTRIES, READ_ONLY, READ_WRITE, SETTINGS, Store
from src.ledger.clock import Clock, new_anonymous_id, start_of_day

logger = logging.getLogger(__name__)

DEFAULT_DAILY_BUDGET = Decimal("40")
DEFAULT_START_AMOUNT = Decimal("0")


class SettingsNotReady(Exception):
    """Raised when settings are read before initialization has finished."""


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Ready:
    value: Settings


@dataclass(frozen=True)
class Unavailable:
    error: Exception


SettingsState = Union[Loading, Ready, Unavailable]


def settings_of(state: SettingsState) -> Settings:
    """Return the settings held by a Ready state.

    Raises:
        SettingsNotReady: If the state is Loading or Unavailable.
    """
    if isinstance(state, Ready):
        return state.value
    if isinstance(state, Unavailable):
        raise SettingsNotReady(f"Settings unavailable: {state.error}") from state.error
    raise SettingsNotReady("Settings are still loading")


@dataclass(frozen=True)
class Defaults:
    daily_budget: Decimal = DEFAULT_DAILY_BUDGET
    start_amount: Decimal = DEFAULT_START_AMOUNT


def default_settings(
    clock: Clock,
    id_factory: Callable[[], str] = new_anonymous_id,
    defaults: Defaults | None = None,
) -> Settings:
    defaults = defaults or Defaults()
    return Settings(
        anonymous_id=id_factory(),
        daily_budget=defaults.daily_budget,
        start_amount=defaults.start_amount,
        start_date=clock.today(),
    )


def normalize_settings(
    stored: Settings,
    clock: Clock,
    id_factory: Callable[[], str] = new_anonymous_id,
    defaults: Defaults | None = None,
) -> Settings:
    """Backfill missing fields and truncate the start date to midnight.

    An existing non-empty anonymous_id is always kept.
    """
    defaults = defaults or Defaults()
    anonymous_id = stored.anonymous_id if stored.anonymous_id else id_factory()
    daily_budget = stored.daily_budget
    if daily_budget is None:
        daily_budget = defaults.daily_budget
    start_amount = stored.start_amount
    if start_amount is None:
        start_amount = defaults.start_amount
    start_date = start_of_day(stored.start_date) if stored.start_date else clock.today()
    return Settings(
        anonymous_id=anonymous_id,
        daily_budget=daily_budget,
        start_amount=start_amount,
        start_date=start_date,
    )


def _seed_or_normalize(store, clock, id_factory, defaults) -> tuple[Settings, bool]:
    with store.transaction(SETTINGS, READ_WRITE) as settings_store:
        stored = settings_store.get(SETTINGS_KEY)
        if stored is None:
            seeded = default_settings(clock, id_factory, defaults)
            settings_store.add(SETTINGS_KEY, seeded)
            return seeded, True
        normalized = normalize_settings(stored, clock, id_factory, defaults)
        settings_store.put(SETTINGS_KEY, normalized)
        return normalized, False


def initialize(
    store: Store,
    clock: Clock,
    id_factory: Callable[[], str] = new_anonymous_id,
    defaults: Defaults | None = None,
) -> Settings:
    """Open the store and make sure exactly one normalized settings record exists.

    Returns the settings now stored.

    Raises:
        StorageUnavailable: If the store cannot be opened or created.
        TransactionFailure: If any read or write fails. Not retried.
    """
    store.open_or_create()

    try:
        settings, created = _seed_or_normalize(store, clock, id_factory, defaults)
    except KeyAlreadyExists:
        logger.info("Settings were created concurrently; re-reading")
        settings, created = _seed_or_normalize(store, clock, id_factory, defaults)

    if created:
        logger.info("Initialized new settings (auid=%s)", settings.anonymous_id)
    else:
        logger.info("Loaded settings (auid=%s)", settings.anonymous_id)
    return settings


def bootstrap(
    store: Store,
    clock: Clock,
    id_factory: Callable[[], str] = new_anonymous_id,
    defaults: Defaults | None = None,
) -> SettingsState:
    """Like initialize(), but an unavailable store becomes an Unavailable state."""
    try:
        return Ready(initialize(store, clock, id_factory, defaults))
    except StorageUnavailable as e:
        logger.error("Storage unavailable: %s", e)
        return Unavailable(e)


def load_entries(store: Store) -> list[SpendEntry]:
    with store.transaction(ENTRIES, READ_ONLY) as entries:
        return entries.get_all()
