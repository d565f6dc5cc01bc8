"""Guardrails: freeze window, floors and ceilings applied before a rate is published.

Priority is freeze, then floor, then ceiling. The ceiling is applied last, so a
daily or global maximum below the active minimum wins.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.pricing.config import WEEKDAY_KEYS
from ratepilot.services.pricing.money import as_date, finalize_rate, to_positive_rate

REASON_FROZEN = "FROZEN"
REASON_FROZEN_FALLBACK = "FROZEN_FALLBACK"
REASON_CALCULATED = "CALCULATED"


@dataclass
class GuardrailResult:
    final_rate: Decimal | None
    reason: str
    is_frozen: bool = False
    is_floor_active: bool = False  # last-minute floor raised the rate
    min_applied: Decimal | None = None  # floor value, only when it fired
    max_applied: Decimal | None = None  # ceiling value, only when it fired
    active_min: Decimal = Decimal("0")
    active_max: Decimal | None = None
    days_from_now: int = 0

    def to_dict(self) -> dict:
        return {
            "final_rate": float(self.final_rate) if self.final_rate is not None else None,
            "reason": self.reason,
            "is_frozen": self.is_frozen,
            "is_floor_active": self.is_floor_active,
            "min_applied": float(self.min_applied) if self.min_applied is not None else None,
            "max_applied": float(self.max_applied) if self.max_applied is not None else None,
        }


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def days_between(target: date, today: date) -> int:
    """Whole days between two UTC calendar dates, direction ignored."""
    return abs((target - today).days)


def is_in_freeze_window(config: HotelPricingConfig, days_from_now: int) -> bool:
    freeze_days = config.rate_freeze_period
    return freeze_days > 0 and days_from_now < freeze_days


def is_last_minute_floor_active(
    config: HotelPricingConfig, target: date, days_from_now: int
) -> bool:
    lmf = config.last_minute_floor
    return (
        lmf.enabled
        and lmf.rate > 0
        and days_from_now <= lmf.days
        and WEEKDAY_KEYS[target.weekday()] in lmf.dow
    )


def apply_guardrails(
    suggested_rate,
    live_pms_rate,
    config: HotelPricingConfig,
    stay_date: date | str,
    today: date | None = None,
) -> GuardrailResult:
    target = as_date(stay_date)
    days_from_now = days_between(target, today or utc_today())
    monthly_min = config.monthly_min_for(target)
    suggested = to_positive_rate(suggested_rate)

    # 1. Freeze: hold the live PMS rate, never fall through to zero
    if is_in_freeze_window(config, days_from_now):
        live = to_positive_rate(live_pms_rate)
        if live is not None:
            return GuardrailResult(
                final_rate=finalize_rate(live),
                reason=REASON_FROZEN,
                is_frozen=True,
                active_min=monthly_min,
                days_from_now=days_from_now,
            )
        fallback = monthly_min if monthly_min > 0 else suggested
        return GuardrailResult(
            final_rate=finalize_rate(fallback),
            reason=REASON_FROZEN_FALLBACK,
            is_frozen=True,
            active_min=monthly_min,
            days_from_now=days_from_now,
        )

    # 2. Floor: the last-minute floor replaces the monthly minimum for its days
    lmf_active = is_last_minute_floor_active(config, target, days_from_now)
    active_min = config.last_minute_floor.rate if lmf_active else monthly_min

    effective = suggested
    min_applied = None
    if active_min > 0 and (effective is None or effective < active_min):
        effective = active_min
        min_applied = active_min

    # 3. Ceiling: a daily max outranks the global max
    active_max = config.daily_max_for(target) or config.guardrail_max
    max_applied = None
    if active_max is not None and effective is not None and effective > active_max:
        effective = active_max
        max_applied = active_max

    return GuardrailResult(
        final_rate=finalize_rate(effective),
        reason=REASON_CALCULATED,
        is_floor_active=lmf_active and min_applied is not None,
        min_applied=min_applied,
        max_applied=max_applied,
        active_min=active_min,
        active_max=active_max,
        days_from_now=days_from_now,
    )
