"""Dataclass models matching the SQLite schema.

SpendEntry rows live in the ``entries`` table (integer AUTOINCREMENT ids).
Settings is a singleton row in the ``settings`` table keyed by name.
Amounts are Decimal in memory and decimal text on disk.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.ledger.amounts import coerce_amount, format_amount
from src.ledger.clock import start_of_day

SETTINGS_KEY = "settings"


@dataclass(frozen=True)
class SpendEntry:
    timestamp: datetime
    amount: Decimal
    note: str | None = None
    id: int | None = None


@dataclass(frozen=True)
class Settings:
    """The settings singleton.

    Fields are only None on a record read back from an older database;
    the initialization protocol backfills them before anything else sees it.
    """

    anonymous_id: str | None
    daily_budget: Decimal | None
    start_amount: Decimal | None
    start_date: datetime | None


@dataclass
class DraftSettings:
    """In-progress settings edit.

    ``daily_budget`` and ``start_amount`` hold whatever the user typed, so
    they may be empty or half-written ("12.") until the draft is committed.
    """

    anonymous_id: str
    daily_budget: str
    start_amount: str
    start_date: datetime

    @classmethod
    def from_settings(cls, settings: Settings) -> DraftSettings:
        return cls(
            anonymous_id=settings.anonymous_id,
            daily_budget=format_amount(settings.daily_budget),
            start_amount=format_amount(settings.start_amount),
            start_date=settings.start_date,
        )

    def normalized(self) -> Settings:
        """Project the draft onto a storable Settings record."""
        return Settings(
            anonymous_id=self.anonymous_id,
            daily_budget=coerce_amount(self.daily_budget),
            start_amount=coerce_amount(self.start_amount),
            start_date=start_of_day(self.start_date),
        )
