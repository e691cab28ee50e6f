"""Currency text parsing and formatting.

Two parsing rules exist on purpose: settings drafts are coerced (anything
unparseable becomes 0 and the commit goes ahead), while new spend entries are
validated and rejected when the amount is not a usable number.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, localcontext

ZERO = Decimal("0")
_CENTS = Decimal("0.01")

# Magnitudes a double cannot hold count as infinite
_MAX_ADJUSTED = 308

# Plain ASCII decimal notation only: no digit separators or non-ASCII digits
_NUMBER = re.compile(r"[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?", re.ASCII)


class InvalidAmount(ValueError):
    """Raised when spend amount text cannot be used for a new entry."""

    def __init__(self, text: str):
        self.text = text
        super().__init__(f"Invalid spend amount: {text!r}")


def _to_decimal(text: str | None) -> Decimal | None:
    if text is None:
        return None
    stripped = str(text).strip()
    if not _NUMBER.fullmatch(stripped):
        return None
    try:
        value = Decimal(stripped)
    except InvalidOperation:
        return None
    if not value.is_finite() or value.adjusted() > _MAX_ADJUSTED:
        return None
    return value


def coerce_amount(text: str | None) -> Decimal:
    """Parse draft text, falling back to 0.

    Empty text counts as 0, and so does anything that is not a finite
    decimal ("abc", "NaN", "Infinity"). Trailing dots ("12.") are fine.
    """
    value = _to_decimal(text)
    return ZERO if value is None else value


def parse_spend_amount(text: str) -> Decimal:
    """Parse the amount for a new spend entry.

    Raises:
        InvalidAmount: If the text is empty, not a finite number, or zero.
    """
    value = _to_decimal(text)
    if value is None or value == ZERO:
        raise InvalidAmount(text)
    return value


def format_amount(value: Decimal | None) -> str:
    """Fixed two-decimal text, e.g. Decimal("40") -> "40.00"."""
    if value is None:
        value = ZERO
    value = Decimal(value)
    with localcontext() as ctx:
        # Room for every integer digit plus the two cents digits
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return str(value.quantize(_CENTS))
