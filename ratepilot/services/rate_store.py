"""Rate store: every read and write of the pricing tables.

Each public method opens its own session from the factory, so callers can run
independent writes concurrently (one AsyncSession is not safe to share across
tasks). Upserts use PostgreSQL ON CONFLICT on the natural keys.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import case, delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ratepilot.models.calendar import PriceHistory, RateCalendarEntry, RatePrediction
from ratepilot.models.occupancy import DailyMetricsSnapshot, PacingSnapshot
from ratepilot.models.pricing import DailyMaxRate, PaceCurve, PricingConfiguration
from ratepilot.schemas.decisions import RateDecision
from ratepilot.schemas.pricing import HotelPricingConfig

logger = logging.getLogger(__name__)


# ---------- Row shapes handed to services ----------

@dataclass
class CalendarRow:
    room_type_id: str
    stay_date: date
    rate: Decimal
    source: str
    last_updated_at: datetime | None = None


@dataclass
class HistoryMark:
    room_type_id: str
    stay_date: date
    created_at: datetime
    old_price: Decimal | None
    new_price: Decimal


@dataclass
class OccupancyRow:
    stay_date: date
    rooms_sold: int
    capacity: int


@dataclass
class PredictionRow:
    hotel_id: str
    room_type_id: str
    stay_date: date
    suggested_rate: Decimal
    confidence_score: Decimal
    model_version: str
    is_applied: bool
    created_at: datetime | None = None


@dataclass
class Catalog:
    room_types: list[dict]
    rate_plans: list[dict]


# ---------- Persistence boundary: typed config <-> JSONB columns ----------

def config_from_row(row: PricingConfiguration, daily_max: dict[date, Decimal]) -> HotelPricingConfig:
    calc = row.calculator_settings or {}
    data = {
        "hotel_id": row.hotel_id,
        "pms_property_id": row.pms_property_id,
        "multiplier": row.multiplier,
        "loyalty_percent": row.loyalty_percent or 0,
        "guardrail_max": row.guardrail_max,
        "rate_freeze_period": row.rate_freeze_period,
        "last_minute_floor": row.last_minute_floor or {},
        "monthly_min_rates": row.monthly_min_rates or {},
        "daily_max_rates": daily_max,
        "base_room_type_id": row.base_room_type_id,
        "room_differentials": row.room_differentials or [],
        "rate_id_map": row.rate_id_map,
        "seasonality_profile": row.seasonality_profile or {},
        "rules": row.rules or {},
        "total_capacity": row.total_capacity or 0,
    }
    for key in ("tax", "campaigns", "mobile", "nonRef", "country"):
        if calc.get(key) is not None:
            data[key] = calc[key]
    return HotelPricingConfig.model_validate(data)


def config_to_values(config: HotelPricingConfig) -> dict:
    return {
        "hotel_id": config.hotel_id,
        "pms_property_id": config.pms_property_id,
        "multiplier": config.multiplier,
        "loyalty_percent": config.loyalty_percent,
        "calculator_settings": {
            "tax": config.tax.model_dump(mode="json"),
            "campaigns": [c.model_dump(mode="json", by_alias=True) for c in config.campaigns],
            "mobile": config.mobile.model_dump(mode="json"),
            "nonRef": config.non_ref.model_dump(mode="json"),
            "country": config.country.model_dump(mode="json"),
        },
        "guardrail_max": config.guardrail_max,
        "rate_freeze_period": config.rate_freeze_period,
        "last_minute_floor": config.last_minute_floor.model_dump(mode="json"),
        "monthly_min_rates": {k: str(v) for k, v in config.monthly_min_rates.items()},
        "base_room_type_id": config.base_room_type_id,
        "room_differentials": [r.model_dump(mode="json", by_alias=True) for r in config.room_differentials],
        "rate_id_map": config.rate_id_map,
        "seasonality_profile": config.seasonality_profile,
        "rules": config.rules,
        "total_capacity": config.total_capacity,
    }


# ---------- Upsert statements ----------

def config_lock_stmt(hotel_id: str):
    """Config row locked until the surrounding transaction ends."""
    return select(PricingConfiguration).where(PricingConfiguration.hotel_id == hotel_id).with_for_update()


def config_upsert_stmt(values: dict):
    stmt = pg_insert(PricingConfiguration).values(**values)
    updatable = {k: getattr(stmt.excluded, k) for k in values if k != "hotel_id"}
    updatable["updated_at"] = func.now()
    return stmt.on_conflict_do_update(index_elements=["hotel_id"], set_=updatable)


def calendar_upsert_stmt(hotel_id: str, room_type_id: str, stay_date: date, rate: Decimal, source: str):
    stmt = pg_insert(RateCalendarEntry).values(
        hotel_id=hotel_id,
        room_type_id=room_type_id,
        stay_date=stay_date,
        rate=rate,
        source=source,
    )
    return stmt.on_conflict_do_update(
        index_elements=["hotel_id", "room_type_id", "stay_date"],
        set_={
            "rate": stmt.excluded.rate,
            "source": stmt.excluded.source,
            "last_updated_at": func.now(),
        },
    )


def calendar_hydrate_stmt(rows: list[dict]):
    """Bulk upsert of PMS-read rates; a row keeps its source when the rate is unchanged."""
    stmt = pg_insert(RateCalendarEntry).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=["hotel_id", "room_type_id", "stay_date"],
        set_={
            "source": case(
                (RateCalendarEntry.rate == stmt.excluded.rate, RateCalendarEntry.source),
                else_=stmt.excluded.source,
            ),
            "rate": stmt.excluded.rate,
            "last_updated_at": func.now(),
        },
    )


def prediction_upsert_stmt(rows: list[dict]):
    """Refreshed suggestions always read as new and unapplied."""
    stmt = pg_insert(RatePrediction).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=["hotel_id", "room_type_id", "stay_date"],
        set_={
            "suggested_rate": stmt.excluded.suggested_rate,
            "confidence_score": stmt.excluded.confidence_score,
            "reasoning": stmt.excluded.reasoning,
            "model_version": stmt.excluded.model_version,
            "created_at": func.now(),
            "is_applied": False,
        },
    )


def daily_max_upsert_stmt(rows: list[dict]):
    stmt = pg_insert(DailyMaxRate).values(rows)
    return stmt.on_conflict_do_update(
        index_elements=["hotel_id", "stay_date"],
        set_={"max_price": stmt.excluded.max_price, "updated_at": func.now()},
    )


# ---------- Store ----------

class RateStore:
    """SQLAlchemy-backed persistence for configs, calendar, history and predictions."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._session_factory = session_factory

    def _session(self) -> AsyncSession:
        if self._session_factory is None:
            from ratepilot.database import async_session_factory

            self._session_factory = async_session_factory
        return self._session_factory()

    # Config

    async def _load_daily_max(self, db: AsyncSession, hotel_id: str) -> dict[date, Decimal]:
        result = await db.execute(
            select(DailyMaxRate.stay_date, DailyMaxRate.max_price).where(DailyMaxRate.hotel_id == hotel_id)
        )
        return {r.stay_date: r.max_price for r in result}

    async def get_config(self, hotel_id: str) -> HotelPricingConfig | None:
        async with self._session() as db:
            row = await db.get(PricingConfiguration, hotel_id)
            if row is None:
                return None
            return config_from_row(row, await self._load_daily_max(db, hotel_id))

    async def mutate_config(
        self,
        hotel_id: str,
        mutate: Callable[[HotelPricingConfig | None, Catalog | None], HotelPricingConfig | None],
        catalog: Catalog | None = None,
    ) -> HotelPricingConfig | None:
        """Read, rebuild and write a hotel's config row under a row lock.

        ``mutate`` receives the stored config and the catalog in effect (the
        given one, else the stored one) and returns the config to write, or
        None to leave the row as it is. A new catalog is written with it.
        Daily ceilings are not touched; they belong to save_daily_max_rates.
        """
        async with self._session() as db, db.begin():
            row = (await db.execute(config_lock_stmt(hotel_id))).scalar_one_or_none()

            existing = None
            effective_catalog = catalog
            if row is not None:
                existing = config_from_row(row, await self._load_daily_max(db, hotel_id))
                if catalog is None and row.pms_room_types is not None and row.pms_rate_plans is not None:
                    effective_catalog = Catalog(list(row.pms_room_types), list(row.pms_rate_plans))

            config = mutate(existing, effective_catalog)
            if config is None:
                return existing

            values = config_to_values(config)
            values["hotel_id"] = hotel_id
            if catalog is not None:
                values["pms_room_types"] = catalog.room_types
                values["pms_rate_plans"] = catalog.rate_plans
                values["last_pms_sync_at"] = func.now()
            await db.execute(config_upsert_stmt(values))
            return config

    async def save_config(self, config: HotelPricingConfig, catalog: Catalog | None = None) -> HotelPricingConfig:
        return await self.mutate_config(config.hotel_id, lambda existing, stored: config, catalog)

    async def save_daily_max_rates(
        self, hotel_id: str, upserts: dict[date, Decimal], deletes: Iterable[date] = ()
    ) -> None:
        deletes = list(deletes)
        async with self._session() as db, db.begin():
            if deletes:
                await db.execute(
                    delete(DailyMaxRate).where(
                        DailyMaxRate.hotel_id == hotel_id,
                        DailyMaxRate.stay_date.in_(deletes),
                    )
                )
            if upserts:
                await db.execute(daily_max_upsert_stmt([
                    {"hotel_id": hotel_id, "stay_date": d, "max_price": v}
                    for d, v in sorted(upserts.items())
                ]))

    async def get_daily_max_rows(self, hotel_id: str, from_date: date) -> list[dict]:
        async with self._session() as db:
            result = await db.execute(
                select(DailyMaxRate.stay_date, DailyMaxRate.max_price)
                .where(DailyMaxRate.hotel_id == hotel_id, DailyMaxRate.stay_date >= from_date)
                .order_by(DailyMaxRate.stay_date)
            )
            return [
                {"stay_date": r.stay_date.isoformat(), "max_price": float(r.max_price)}
                for r in result
            ]

    async def get_pace_curves(self, hotel_id: str) -> list[dict]:
        async with self._session() as db:
            result = await db.execute(
                select(PaceCurve.season_tier, PaceCurve.curve_data).where(PaceCurve.hotel_id == hotel_id)
            )
            return [{"season_tier": r.season_tier, "curve_data": r.curve_data} for r in result]

    # Calendar

    async def get_calendar_rows(
        self,
        hotel_id: str,
        room_type_id: str | None = None,
        start: date | None = None,
        end: date | None = None,
    ) -> list[CalendarRow]:
        query = select(RateCalendarEntry).where(RateCalendarEntry.hotel_id == hotel_id)
        if room_type_id is not None:
            query = query.where(RateCalendarEntry.room_type_id == room_type_id)
        if start is not None:
            query = query.where(RateCalendarEntry.stay_date >= start)
        if end is not None:
            query = query.where(RateCalendarEntry.stay_date <= end)
        query = query.order_by(RateCalendarEntry.stay_date, RateCalendarEntry.room_type_id)

        async with self._session() as db:
            result = await db.execute(query)
            return [
                CalendarRow(
                    room_type_id=e.room_type_id,
                    stay_date=e.stay_date,
                    rate=e.rate,
                    source=e.source,
                    last_updated_at=e.last_updated_at,
                )
                for e in result.scalars().all()
            ]

    async def persist_override(
        self,
        hotel_id: str,
        room_type_id: str,
        stay_date: date,
        rate: Decimal,
        source: str,
    ) -> bool:
        """Write history (only on a real change) and upsert the calendar row.

        Returns True when a history record was appended.
        """
        async with self._session() as db, db.begin():
            prior = await db.scalar(
                select(RateCalendarEntry.rate)
                .where(
                    RateCalendarEntry.hotel_id == hotel_id,
                    RateCalendarEntry.room_type_id == room_type_id,
                    RateCalendarEntry.stay_date == stay_date,
                )
                .with_for_update()
            )
            changed = prior is None or Decimal(prior) != rate
            if changed:
                db.add(PriceHistory(
                    hotel_id=hotel_id,
                    room_type_id=room_type_id,
                    stay_date=stay_date,
                    old_price=prior,
                    new_price=rate,
                    source=source,
                ))
            await db.execute(calendar_upsert_stmt(hotel_id, room_type_id, stay_date, rate, source))
        return changed

    async def hydrate_calendar(
        self, hotel_id: str, room_type_id: str, rates: dict[date, Decimal], source: str
    ) -> int:
        if not rates:
            return 0
        rows = [
            {
                "hotel_id": hotel_id,
                "room_type_id": room_type_id,
                "stay_date": d,
                "rate": r,
                "source": source,
            }
            for d, r in sorted(rates.items())
        ]
        async with self._session() as db, db.begin():
            await db.execute(calendar_hydrate_stmt(rows))
        return len(rows)

    # History

    async def get_latest_history(self, hotel_id: str, from_date: date) -> list[HistoryMark]:
        """Most recent history record per (room type, stay date)."""
        async with self._session() as db:
            result = await db.execute(
                select(PriceHistory)
                .where(PriceHistory.hotel_id == hotel_id, PriceHistory.stay_date >= from_date)
                .distinct(PriceHistory.room_type_id, PriceHistory.stay_date)
                .order_by(
                    PriceHistory.room_type_id,
                    PriceHistory.stay_date,
                    PriceHistory.created_at.desc(),
                )
            )
            return [
                HistoryMark(
                    room_type_id=h.room_type_id,
                    stay_date=h.stay_date,
                    created_at=h.created_at,
                    old_price=h.old_price,
                    new_price=h.new_price,
                )
                for h in result.scalars().all()
            ]

    # Occupancy (owned by ingestion, read-only)

    async def get_live_occupancy(self, hotel_id: str, from_date: date) -> list[OccupancyRow]:
        """Latest captured metrics row per stay date."""
        async with self._session() as db:
            result = await db.execute(
                select(
                    DailyMetricsSnapshot.stay_date,
                    DailyMetricsSnapshot.rooms_sold,
                    DailyMetricsSnapshot.capacity_count,
                )
                .where(
                    DailyMetricsSnapshot.hotel_id == hotel_id,
                    DailyMetricsSnapshot.stay_date >= from_date,
                )
                .distinct(DailyMetricsSnapshot.stay_date)
                .order_by(DailyMetricsSnapshot.stay_date, DailyMetricsSnapshot.captured_at.desc())
            )
            return [
                OccupancyRow(stay_date=r.stay_date, rooms_sold=r.rooms_sold or 0, capacity=r.capacity_count or 0)
                for r in result
            ]

    async def get_prior_rooms_sold(self, hotel_id: str, today: date) -> dict[date, int]:
        """Rooms sold per stay date from the latest pacing snapshot taken before today."""
        async with self._session() as db:
            result = await db.execute(
                select(PacingSnapshot.stay_date, PacingSnapshot.rooms_sold)
                .where(
                    PacingSnapshot.hotel_id == hotel_id,
                    PacingSnapshot.snapshot_date < today,
                    PacingSnapshot.stay_date >= today,
                )
                .distinct(PacingSnapshot.stay_date)
                .order_by(PacingSnapshot.stay_date, PacingSnapshot.snapshot_date.desc())
            )
            return {r.stay_date: r.rooms_sold or 0 for r in result}

    # Predictions

    async def upsert_predictions(self, decisions: list[RateDecision]) -> int:
        if not decisions:
            return 0
        rows = [
            {
                "hotel_id": d.hotel_id,
                "room_type_id": d.room_type_id,
                "stay_date": d.stay_date,
                "suggested_rate": d.suggested_rate,
                "confidence_score": d.confidence_score,
                "reasoning": d.reasoning,
                "model_version": d.model_version,
                "is_applied": False,
            }
            for d in decisions
        ]
        async with self._session() as db, db.begin():
            await db.execute(prediction_upsert_stmt(rows))
        return len(rows)

    async def get_unapplied_predictions(
        self,
        hotel_id: str,
        room_type_id: str | None = None,
        stay_dates: Iterable[date] | None = None,
    ) -> list[PredictionRow]:
        query = select(RatePrediction).where(
            RatePrediction.hotel_id == hotel_id,
            RatePrediction.is_applied.is_(False),
        )
        if room_type_id is not None:
            query = query.where(RatePrediction.room_type_id == room_type_id)
        if stay_dates is not None:
            query = query.where(RatePrediction.stay_date.in_(list(stay_dates)))
        query = query.order_by(RatePrediction.stay_date)

        async with self._session() as db:
            result = await db.execute(query)
            return [
                PredictionRow(
                    hotel_id=p.hotel_id,
                    room_type_id=p.room_type_id,
                    stay_date=p.stay_date,
                    suggested_rate=p.suggested_rate,
                    confidence_score=p.confidence_score,
                    model_version=p.model_version,
                    is_applied=p.is_applied,
                    created_at=p.created_at,
                )
                for p in result.scalars().all()
            ]

    async def mark_predictions_applied(
        self, hotel_id: str, room_type_id: str, stay_dates: Iterable[date]
    ) -> None:
        stay_dates = list(stay_dates)
        if not stay_dates:
            return
        async with self._session() as db, db.begin():
            await db.execute(
                update(RatePrediction)
                .where(
                    RatePrediction.hotel_id == hotel_id,
                    RatePrediction.room_type_id == room_type_id,
                    RatePrediction.stay_date.in_(stay_dates),
                )
                .values(is_applied=True)
            )


rate_store = RateStore()
