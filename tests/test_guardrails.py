"""Tests for freeze, floor and ceiling enforcement."""

from datetime import date
from decimal import Decimal

from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.pricing.guardrails import (
    REASON_CALCULATED,
    REASON_FROZEN,
    REASON_FROZEN_FALLBACK,
    apply_guardrails,
    days_between,
)

MONDAY = date(2025, 1, 6)
TUESDAY = date(2025, 1, 7)


def config(**kwargs):
    return HotelPricingConfig(hotel_id="h1", **kwargs)


class TestFreeze:

    def test_frozen_day_holds_live_rate(self):
        cfg = config(rate_freeze_period=5)
        result = apply_guardrails(999, 120, cfg, date(2025, 3, 4), today=date(2025, 3, 1))
        assert result.final_rate == Decimal("120")
        assert result.reason == REASON_FROZEN
        assert result.is_frozen

    def test_frozen_without_live_rate_uses_monthly_min(self):
        cfg = config(rate_freeze_period=5, monthly_min_rates={"mar": 80})
        result = apply_guardrails(150, None, cfg, date(2025, 3, 4), today=date(2025, 3, 1))
        assert result.final_rate == Decimal("80.00")
        assert result.reason == REASON_FROZEN_FALLBACK

    def test_frozen_without_live_rate_or_min_uses_suggestion(self):
        cfg = config(rate_freeze_period=5)
        result = apply_guardrails(150, 0, cfg, date(2025, 3, 4), today=date(2025, 3, 1))
        assert result.final_rate == Decimal("150.00")
        assert result.reason == REASON_FROZEN_FALLBACK

    def test_frozen_with_nothing_valid_is_none_not_zero(self):
        cfg = config(rate_freeze_period=5)
        result = apply_guardrails(None, None, cfg, date(2025, 3, 4), today=date(2025, 3, 1))
        assert result.final_rate is None
        assert result.is_frozen

    def test_day_at_freeze_boundary_is_not_frozen(self):
        cfg = config(rate_freeze_period=3)
        result = apply_guardrails(150, 120, cfg, date(2025, 3, 4), today=date(2025, 3, 1))
        assert not result.is_frozen
        assert result.reason == REASON_CALCULATED

    def test_zero_freeze_period_never_freezes(self):
        result = apply_guardrails(150, 120, config(), date(2025, 3, 1), today=date(2025, 3, 1))
        assert not result.is_frozen


class TestFloor:

    def test_monthly_minimum_raises_rate(self):
        cfg = config(monthly_min_rates={"jan": 100})
        result = apply_guardrails(50, None, cfg, TUESDAY, today=date(2024, 12, 1))
        assert result.final_rate == Decimal("100.00")
        assert result.min_applied == Decimal("100")
        assert not result.is_floor_active

    def test_last_minute_floor_replaces_monthly_minimum(self):
        cfg = config(
            monthly_min_rates={"jan": 100},
            last_minute_floor={"enabled": True, "days": 3, "rate": 60, "dow": ["mon"]},
        )
        result = apply_guardrails(50, None, cfg, MONDAY, today=date(2025, 1, 4))
        assert result.final_rate == Decimal("60.00")
        assert result.is_floor_active
        assert result.active_min == Decimal("60")

    def test_last_minute_floor_outside_weekday_set(self):
        cfg = config(
            monthly_min_rates={"jan": 100},
            last_minute_floor={"enabled": True, "days": 3, "rate": 60, "dow": ["mon"]},
        )
        result = apply_guardrails(50, None, cfg, TUESDAY, today=date(2025, 1, 5))
        assert result.final_rate == Decimal("100.00")
        assert not result.is_floor_active

    def test_last_minute_floor_outside_window(self):
        cfg = config(
            monthly_min_rates={"jan": 100},
            last_minute_floor={"enabled": True, "days": 3, "rate": 60, "dow": ["mon"]},
        )
        result = apply_guardrails(50, None, cfg, MONDAY, today=date(2025, 1, 1))
        assert result.final_rate == Decimal("100.00")

    def test_floor_not_reported_when_suggestion_above_it(self):
        cfg = config(last_minute_floor={"enabled": True, "days": 3, "rate": 60, "dow": [1]})
        result = apply_guardrails(75, None, cfg, MONDAY, today=date(2025, 1, 4))
        assert result.final_rate == Decimal("75.00")
        assert result.min_applied is None
        assert not result.is_floor_active

    def test_invalid_suggestion_lifted_to_floor(self):
        cfg = config(monthly_min_rates={"1": 90})
        result = apply_guardrails(None, None, cfg, TUESDAY, today=date(2024, 12, 1))
        assert result.final_rate == Decimal("90.00")


class TestCeiling:

    def test_daily_max_beats_global_max(self):
        cfg = config(guardrail_max=400, daily_max_rates={"2025-12-31": 250})
        result = apply_guardrails(300, None, cfg, date(2025, 12, 31), today=date(2025, 12, 1))
        assert result.final_rate == Decimal("250.00")
        assert result.max_applied == Decimal("250")

    def test_global_max_applies_without_daily_max(self):
        cfg = config(guardrail_max=400, daily_max_rates={"2025-12-31": 250})
        result = apply_guardrails(450, None, cfg, date(2025, 12, 30), today=date(2025, 12, 1))
        assert result.final_rate == Decimal("400.00")

    def test_ceiling_wins_over_floor(self):
        cfg = config(monthly_min_rates={"dec": 300}, daily_max_rates={"2025-12-31": 250})
        result = apply_guardrails(100, None, cfg, date(2025, 12, 31), today=date(2025, 12, 1))
        assert result.final_rate == Decimal("250.00")
        assert result.min_applied == Decimal("300")
        assert result.max_applied == Decimal("250")

    def test_no_ceiling_when_global_max_disabled(self):
        cfg = config(guardrail_max=0)
        result = apply_guardrails(1000, None, cfg, date(2025, 12, 31), today=date(2025, 12, 1))
        assert result.final_rate == Decimal("1000.00")
        assert result.max_applied is None


class TestDaysBetween:

    def test_direction_ignored(self):
        assert days_between(date(2025, 1, 1), date(2025, 1, 4)) == 3
        assert days_between(date(2025, 1, 4), date(2025, 1, 1)) == 3

    def test_across_dst_change(self):
        assert days_between(date(2025, 3, 31), date(2025, 3, 29)) == 2
