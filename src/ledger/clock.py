"""Clock and identifier boundaries.

Anything that depends on "now" takes a Clock so tests can pin time.
Datetimes are naive local time throughout, matching what is stored.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import uuid4

ANONYMOUS_ID_LENGTH = 21


def start_of_day(moment: datetime) -> datetime:
    """Truncate a datetime to local midnight."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def new_anonymous_id() -> str:
    return uuid4().hex[:ANONYMOUS_ID_LENGTH]


class Clock:
    """Source of the current instant."""

    def now(self) -> datetime:
        raise NotImplementedError

    def today(self) -> datetime:
        return start_of_day(self.now())


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now()


class FixedClock(Clock):
    """A clock that only moves when told to."""

    def __init__(self, moment: datetime):
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def advance(self, **delta) -> None:
        self.moment = self.moment + timedelta(**delta)
