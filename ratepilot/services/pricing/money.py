"""Decimal helpers shared by every pricing stage."""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")


def to_decimal(value) -> Decimal | None:
    """Parse a number-ish value into a finite Decimal, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        parsed = value
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = Decimal(text)
        except (InvalidOperation, ValueError):
            return None
    if not parsed.is_finite():
        return None
    return parsed


def to_positive_rate(value) -> Decimal | None:
    """Parse a rate; anything non-numeric, NaN, zero or negative is None."""
    parsed = to_decimal(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def round_rate(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def finalize_rate(value: Decimal | None) -> Decimal | None:
    """Round to cents; a result that is not strictly positive becomes None, never 0."""
    if value is None or not value.is_finite():
        return None
    rounded = round_rate(value)
    return rounded if rounded > 0 else None


def percent_factor(percent, sign: int = -1) -> Decimal:
    """1 - p/100 for discounts (sign=-1), 1 + p/100 for uplifts (sign=+1)."""
    pct = to_decimal(percent) or Decimal(0)
    return Decimal(1) + sign * pct / Decimal(100)


def as_date(value: date | datetime | str) -> date:
    """Normalize to a calendar date; strings are read as their YYYY-MM-DD prefix."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])
