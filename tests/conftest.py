"""
Shared pytest fixtures: an in-memory rate store and a scripted PMS adapter.
"""

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.pms_client import PmsAdapter, PmsAdapterError
from ratepilot.services.rate_store import (
    CalendarRow,
    Catalog,
    HistoryMark,
    OccupancyRow,
    PredictionRow,
)


class InMemoryRateStore:
    """Same interface as RateStore, backed by dicts."""

    def __init__(self):
        self.configs: dict[str, HotelPricingConfig] = {}
        self.catalogs: dict[str, Catalog] = {}
        self.calendar: dict[tuple, CalendarRow] = {}
        self.history: list[dict] = []
        self.predictions: dict[tuple, PredictionRow] = {}
        self.daily_max: dict[str, dict[date, Decimal]] = {}
        self.pace_curves: dict[str, list[dict]] = {}
        self.occupancy: dict[str, list[OccupancyRow]] = {}
        self.prior_rooms_sold: dict[str, dict[date, int]] = {}
        self.fail_writes_on: set[date] = set()
        self.config_lock = asyncio.Lock()

    async def get_config(self, hotel_id):
        config = self.configs.get(hotel_id)
        if config is None:
            return None
        return config.model_copy(update={"daily_max_rates": dict(self.daily_max.get(hotel_id, {}))})

    async def mutate_config(self, hotel_id, mutate, catalog=None):
        async with self.config_lock:
            existing = await self.get_config(hotel_id)
            effective = catalog if catalog is not None else self.catalogs.get(hotel_id)
            # Yield between read and write like a real round trip would
            await asyncio.sleep(0)
            config = mutate(existing, effective)
            if config is None:
                return existing
            self.configs[hotel_id] = config
            if catalog is not None:
                self.catalogs[hotel_id] = catalog
            return config

    async def save_config(self, config, catalog=None):
        return await self.mutate_config(config.hotel_id, lambda existing, stored: config, catalog)

    async def save_daily_max_rates(self, hotel_id, upserts, deletes=()):
        rows = self.daily_max.setdefault(hotel_id, {})
        for d in deletes:
            rows.pop(d, None)
        rows.update(upserts)

    async def get_daily_max_rows(self, hotel_id, from_date):
        return [
            {"stay_date": d.isoformat(), "max_price": float(v)}
            for d, v in sorted(self.daily_max.get(hotel_id, {}).items())
            if d >= from_date
        ]

    async def get_pace_curves(self, hotel_id):
        return list(self.pace_curves.get(hotel_id, []))

    async def get_calendar_rows(self, hotel_id, room_type_id=None, start=None, end=None):
        return sorted(
            (
                row for (h, _, _), row in self.calendar.items()
                if h == hotel_id
                and (room_type_id is None or row.room_type_id == room_type_id)
                and (start is None or row.stay_date >= start)
                and (end is None or row.stay_date <= end)
            ),
            key=lambda r: (r.stay_date, r.room_type_id),
        )

    async def persist_override(self, hotel_id, room_type_id, stay_date, rate, source):
        if stay_date in self.fail_writes_on:
            raise RuntimeError("connection reset")
        key = (hotel_id, room_type_id, stay_date)
        prior = self.calendar.get(key)
        changed = prior is None or prior.rate != rate
        if changed:
            self.history.append({
                "hotel_id": hotel_id,
                "room_type_id": room_type_id,
                "stay_date": stay_date,
                "old_price": prior.rate if prior else None,
                "new_price": rate,
                "source": source,
                "created_at": datetime.now(timezone.utc),
            })
        self.calendar[key] = CalendarRow(room_type_id, stay_date, rate, source, datetime.now(timezone.utc))
        return changed

    async def hydrate_calendar(self, hotel_id, room_type_id, rates, source):
        for d, r in rates.items():
            key = (hotel_id, room_type_id, d)
            prior = self.calendar.get(key)
            keep_source = prior is not None and prior.rate == r
            self.calendar[key] = CalendarRow(room_type_id, d, r, prior.source if keep_source else source)
        return len(rates)

    async def get_latest_history(self, hotel_id, from_date):
        latest: dict[tuple, HistoryMark] = {}
        for h in self.history:
            if h["hotel_id"] != hotel_id or h["stay_date"] < from_date:
                continue
            key = (h["room_type_id"], h["stay_date"])
            if key not in latest or h["created_at"] >= latest[key].created_at:
                latest[key] = HistoryMark(
                    h["room_type_id"], h["stay_date"], h["created_at"], h["old_price"], h["new_price"]
                )
        return list(latest.values())

    async def get_live_occupancy(self, hotel_id, from_date):
        return [r for r in self.occupancy.get(hotel_id, []) if r.stay_date >= from_date]

    async def get_prior_rooms_sold(self, hotel_id, today):
        return dict(self.prior_rooms_sold.get(hotel_id, {}))

    async def upsert_predictions(self, decisions):
        for d in decisions:
            self.predictions[(d.hotel_id, d.room_type_id, d.stay_date)] = PredictionRow(
                hotel_id=d.hotel_id,
                room_type_id=d.room_type_id,
                stay_date=d.stay_date,
                suggested_rate=d.suggested_rate,
                confidence_score=d.confidence_score,
                model_version=d.model_version,
                is_applied=False,
            )
        return len(decisions)

    async def get_unapplied_predictions(self, hotel_id, room_type_id=None, stay_dates=None):
        wanted = set(stay_dates) if stay_dates is not None else None
        return sorted(
            (
                p for p in self.predictions.values()
                if p.hotel_id == hotel_id
                and not p.is_applied
                and (room_type_id is None or p.room_type_id == room_type_id)
                and (wanted is None or p.stay_date in wanted)
            ),
            key=lambda p: p.stay_date,
        )

    async def mark_predictions_applied(self, hotel_id, room_type_id, stay_dates):
        for d in stay_dates:
            pred = self.predictions.get((hotel_id, room_type_id, d))
            if pred is not None:
                pred.is_applied = True


class FakePms(PmsAdapter):
    """Records posts; failures are scripted per call."""

    def __init__(self, live_rates=None, room_types=None, rate_plans=None):
        self.live_rates: dict[date, Decimal] = live_rates or {}
        self.room_types = room_types or []
        self.rate_plans = rate_plans or []
        self.posted: list[tuple] = []
        self.post_errors: list[Exception] = []
        self.get_rates_error: Exception | None = None

    async def post_rate(self, property_id, rate_id, stay_date, rate):
        if self.post_errors:
            raise self.post_errors.pop(0)
        self.posted.append((rate_id, stay_date, rate))
        return f"job-{len(self.posted)}"

    async def get_rates(self, property_id, room_type_id, start, end):
        if self.get_rates_error is not None:
            raise self.get_rates_error
        return {d: r for d, r in self.live_rates.items() if start <= d <= end}

    async def get_room_types(self, property_id):
        return list(self.room_types)

    async def get_rate_plans(self, property_id):
        return list(self.rate_plans)


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def store():
    return InMemoryRateStore()


@pytest.fixture
def pms():
    return FakePms()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rate_limited():
    return PmsAdapterError("putRate", "HTTP 429: slow down", 429)


@pytest.fixture
def hotel_config():
    """Hotel 'h1': base room 'R1' with two derived rooms, one unmapped."""
    return HotelPricingConfig(
        hotel_id="h1",
        pms_property_id="P1",
        base_room_type_id="R1",
        rate_id_map={"R1": "RATE-1", "R2": "RATE-2"},
        room_differentials=[
            {"roomTypeId": "R2", "operator": "+", "value": 20},
            {"roomTypeId": "R3", "operator": "-", "value": 10},
        ],
        monthly_min_rates={"jan": 50},
    )


@pytest.fixture
async def seeded_store(store, hotel_config):
    await store.save_config(hotel_config)
    return store
