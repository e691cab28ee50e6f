"""Remaining-balance computation.

    balance = start_amount + daily_budget * days_elapsed - sum(entry amounts)

days_elapsed counts calendar days inclusively: the start day itself is
day 1. It is not clamped, so a start date in the future gives zero or a
negative accrual.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable

from src.database.models import Settings, SpendEntry
from src.ledger.bootstrap import Ready, SettingsState


def days_elapsed(settings: Settings, now: datetime) -> int:
    return (now.date() - settings.start_date.date()).days + 1


def total_spent(entries: Iterable[SpendEntry]) -> Decimal:
    return sum((entry.amount for entry in entries), Decimal("0"))


def compute_balance(
    entries: Iterable[SpendEntry], settings: Settings, now: datetime
) -> Decimal:
    accrued = settings.start_amount + settings.daily_budget * days_elapsed(settings, now)
    return accrued - total_spent(entries)


def balance_for(
    state: SettingsState, entries: Iterable[SpendEntry], now: datetime
) -> Decimal | None:
    """Balance for a settings state, or None while settings are not Ready."""
    if not isinstance(state, Ready):
        return None
    return compute_balance(entries, state.value, now)
