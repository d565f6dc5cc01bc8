"""AI bridge: context snapshots out, shadow predictions in, explicit promotion.

Predictions never reach the live calendar on their own. ``promote_predictions``
is the only path from a stored suggestion to an override, and it runs every
suggestion through the freeze window, human locks, guardrails and a deadband
first.
"""

import asyncio
import logging
from collections.abc import Iterable
from datetime import date, datetime, timezone
from decimal import Decimal

from pydantic import ValidationError

from ratepilot.config import settings
from ratepilot.schemas.decisions import RateDecision
from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.config_service import PricingConfigMissingError
from ratepilot.services.outcomes import ItemOutcome, OutcomeStatus, OverrideBatch
from ratepilot.services.pricing.config import WEEKDAY_KEYS, pricing_engine_config
from ratepilot.services.pricing.guardrails import (
    apply_guardrails,
    days_between,
    is_in_freeze_window,
    utc_today,
)
from ratepilot.services.pricing.money import as_date
from ratepilot.services.rate_override_service import RateOverrideService
from ratepilot.services.rate_store import CalendarRow, HistoryMark, OccupancyRow, RateStore

logger = logging.getLogger(__name__)

SOURCES = pricing_engine_config.sources

DEFAULT_CURRENCY = "USD"
DEFAULT_STRATEGY_MODE = "maintain"


def compute_pickup_velocity(
    occupancy: Iterable[OccupancyRow], prior_rooms_sold: dict[date, int]
) -> list[dict]:
    """Rooms sold today minus the last snapshot before today; no snapshot counts as 0."""
    return [
        {
            "stay_date": row.stay_date.isoformat(),
            "rooms_sold": row.rooms_sold,
            "capacity": row.capacity,
            "pickup_24h": row.rooms_sold - prior_rooms_sold.get(row.stay_date, 0),
        }
        for row in occupancy
    ]


def _config_section(config: HotelPricingConfig | None) -> dict:
    if config is None:
        return {
            "min_rates": {},
            "currency": DEFAULT_CURRENCY,
            "seasonality": {},
            "capacity": 0,
            "base_room_type_id": None,
            "last_minute_floor": {},
            "rules": {},
            "strategy_mode": DEFAULT_STRATEGY_MODE,
        }

    lmf = config.last_minute_floor
    return {
        "min_rates": {k: float(v) for k, v in config.monthly_min_rates.items()},
        "currency": DEFAULT_CURRENCY,
        "seasonality": config.seasonality_profile,
        "capacity": config.total_capacity,
        "base_room_type_id": config.base_room_type_id,
        "last_minute_floor": {
            "enabled": lmf.enabled,
            "days": lmf.days,
            "rate": float(lmf.rate),
            "dow": sorted(lmf.dow, key=WEEKDAY_KEYS.index),
        },
        "rules": config.rules,
        "strategy_mode": config.rules.get("strategy_mode") or DEFAULT_STRATEGY_MODE,
    }


def _inventory(hotel_id: str, calendar: list[CalendarRow], history: list[HistoryMark]) -> list[dict]:
    latest = {(h.room_type_id, h.stay_date): h for h in history}
    rows = []
    for entry in calendar:
        mark = latest.get((entry.room_type_id, entry.stay_date))
        rows.append({
            "hotel_id": hotel_id,
            "room_type_id": entry.room_type_id,
            "stay_date": entry.stay_date.isoformat(),
            "rate": float(entry.rate),
            "source": entry.source,
            "last_change_ts": mark.created_at.isoformat() if mark and mark.created_at else None,
            "last_change_val": float(mark.new_price) if mark else None,
        })
    return rows


class DecisionBridgeService:
    def __init__(
        self,
        store: RateStore | None = None,
        override_service: RateOverrideService | None = None,
        deadband: Decimal | float | None = None,
    ):
        self._store = store
        self._override_service = override_service
        self._deadband = Decimal(str(settings.decision_deadband if deadband is None else deadband))

    @property
    def store(self) -> RateStore:
        if self._store is None:
            from ratepilot.services.rate_store import rate_store

            self._store = rate_store
        return self._store

    @property
    def override_service(self) -> RateOverrideService:
        if self._override_service is None:
            from ratepilot.services.rate_override_service import rate_override_service

            self._override_service = rate_override_service
        return self._override_service

    async def get_hotel_context(self, hotel_id: str, today: date | None = None) -> dict:
        """Snapshot of config, forward calendar, constraints and pickup for the AI process."""
        hotel_id = str(hotel_id)
        today = today or utc_today()

        config, calendar, history, max_rates, pace_curves, occupancy, prior = await asyncio.gather(
            self.store.get_config(hotel_id),
            self.store.get_calendar_rows(hotel_id, start=today),
            self.store.get_latest_history(hotel_id, today),
            self.store.get_daily_max_rows(hotel_id, today),
            self.store.get_pace_curves(hotel_id),
            self.store.get_live_occupancy(hotel_id, today),
            self.store.get_prior_rooms_sold(hotel_id, today),
        )
        if config is None:
            logger.warning(f"Hotel {hotel_id}: no pricing config, context carries defaults")

        logger.info(
            f"Hotel {hotel_id}: context assembled ({len(calendar)} calendar rows, {len(occupancy)} pickup rows)"
        )
        return {
            "hotel_id": hotel_id,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "config": _config_section(config),
            "inventory": _inventory(hotel_id, calendar, history),
            "constraints": {
                "max_rates": max_rates,
                "pace_curves": pace_curves,
            },
            "market": {
                "pickup_velocity": compute_pickup_velocity(occupancy, prior),
            },
        }

    async def save_decisions(self, decisions: Iterable[dict | RateDecision]) -> dict:
        """Upsert valid shadow predictions; malformed records are dropped, not fatal."""
        valid: dict[tuple, RateDecision] = {}
        dropped = 0
        for raw in decisions or []:
            if isinstance(raw, RateDecision):
                decision = raw
            else:
                try:
                    decision = RateDecision.model_validate(raw)
                except ValidationError as e:
                    dropped += 1
                    logger.warning(f"Dropping malformed decision: {e.error_count()} errors in {raw!r}")
                    continue
            # One row per key per statement, the last one wins
            valid[(decision.hotel_id, decision.room_type_id, decision.stay_date)] = decision

        saved = await self.store.upsert_predictions(list(valid.values()))
        logger.info(f"Saved {saved} predictions, dropped {dropped}")
        return {"saved": saved, "dropped": dropped}

    async def promote_predictions(
        self,
        hotel_id: str,
        pms_property_id: str | None = None,
        stay_dates: Iterable[date | str] | None = None,
        today: date | None = None,
    ) -> OverrideBatch:
        """Turn unapplied base-room predictions into AI_AUTO overrides.

        Gates, in order: base room only, past night, freeze window, human lock
        (MANUAL / PMS_LOCKED), guardrails, never-zero, deadband against the
        stored rate. Survivors are applied and marked as applied.
        """
        hotel_id = str(hotel_id)
        today = today or utc_today()
        config = await self.override_service.config_service.require_config(hotel_id)
        base_room = config.base_room_type_id
        if not base_room:
            raise PricingConfigMissingError(hotel_id, "no base room type configured")
        pms_property_id = pms_property_id or config.pms_property_id

        dates = [as_date(d) for d in stay_dates] if stay_dates is not None else None
        predictions = await self.store.get_unapplied_predictions(hotel_id, stay_dates=dates)

        batch = OverrideBatch()
        if not predictions:
            return batch

        calendar = {
            row.stay_date: row
            for row in await self.store.get_calendar_rows(
                hotel_id,
                base_room,
                min(p.stay_date for p in predictions),
                max(p.stay_date for p in predictions),
            )
        }

        overrides = []
        for pred in predictions:
            stay_date = pred.stay_date
            if pred.room_type_id != base_room:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, pred.room_type_id, pred.suggested_rate,
                    "derived room follows differentials",
                ))
                continue

            if stay_date < today:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, base_room, pred.suggested_rate, "past"
                ))
                continue

            if is_in_freeze_window(config, days_between(stay_date, today)):
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, base_room, pred.suggested_rate, "frozen"
                ))
                continue

            current = calendar.get(stay_date)
            if current is not None and current.source in SOURCES.human_locked:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, base_room, pred.suggested_rate,
                    f"locked by {current.source}",
                ))
                continue

            final_rate = apply_guardrails(pred.suggested_rate, None, config, stay_date, today=today).final_rate
            if final_rate is None:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.INVALID, stay_date, base_room, pred.suggested_rate, "non-positive rate"
                ))
                continue

            if current is not None and abs(final_rate - current.rate) < self._deadband:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, base_room, final_rate, "within deadband"
                ))
                continue

            overrides.append({"date": stay_date, "rate": final_rate})

        if overrides:
            applied = await self.override_service.apply_overrides(
                hotel_id, pms_property_id, base_room, overrides, source=SOURCES.ai_auto
            )
            batch.payload.extend(applied.payload)
            batch.report.extend(applied.report)
            promoted = [
                o.stay_date for o in applied.report.applied
                if o.room_type_id == base_room
            ]
            await self.store.mark_predictions_applied(hotel_id, base_room, promoted)

        logger.info(
            f"Hotel {hotel_id}: promoted {len(overrides)} of {len(predictions)} predictions "
            f"({len(batch.payload)} push items)"
        )
        return batch


decision_bridge_service = DecisionBridgeService()
