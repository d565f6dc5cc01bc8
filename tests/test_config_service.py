"""Tests for config load/save, catalog sync and daily ceilings."""

import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ratepilot.services.config_service import PricingConfigMissingError, PricingConfigService
from ratepilot.services.pms_client import PmsAdapterError
from ratepilot.services.pricing.guardrails import utc_today
from ratepilot.services.pricing.rate_plans import build_rate_id_map
from ratepilot.services.rate_store import Catalog

ROOM_TYPES = [{"roomTypeID": "R1"}, {"roomTypeID": "R2"}]
RATE_PLANS = [
    {"rateID": "10", "roomTypeID": "R1", "ratePlanNamePublic": "Net Rate"},
    {"rateID": "11", "roomTypeID": "R1", "ratePlanNamePublic": "Standard Rate"},
    {"rateID": "20", "roomTypeID": "R2", "ratePlanNamePublic": "BAR"},
    {"rateID": "21", "roomTypeID": "R2", "ratePlanNamePublic": "BAR derived", "isDerived": True},
]


@pytest.fixture
def service(store, pms):
    pms.room_types = ROOM_TYPES
    pms.rate_plans = RATE_PLANS
    return PricingConfigService(store=store, pms=pms)


class TestRequireConfig:

    async def test_missing_config(self, service):
        with pytest.raises(PricingConfigMissingError, match="no pricing configuration"):
            await service.require_config("h1")

    async def test_missing_map(self, service):
        await service.save_config("h1", {"base_room_type_id": "R1"})
        with pytest.raises(PricingConfigMissingError, match="rate ID map"):
            await service.require_config("h1")
        assert (await service.require_config("h1", need_rate_map=False)).hotel_id == "h1"


class TestSaveConfig:

    async def test_invalid_payload_not_persisted(self, service, store):
        with pytest.raises(ValidationError):
            await service.save_config("h1", {"multiplier": 0})
        with pytest.raises(ValidationError):
            await service.save_config("h1", {"nonRef": {"active": True, "percent": 120}})
        assert store.configs == {}

    async def test_rebuilds_map_from_stored_catalog(self, service, store):
        store.catalogs["h1"] = Catalog(ROOM_TYPES, RATE_PLANS)
        saved = await service.save_config("h1", {"rate_id_map": {"R1": "10"}})
        assert saved.rate_id_map == {"R1": "11", "R2": "20"}
        assert store.configs["h1"].rate_id_map == {"R1": "11", "R2": "20"}

    async def test_keeps_existing_map_without_catalog(self, service, store):
        await service.save_config("h1", {"rate_id_map": {"R1": "11"}})
        saved = await service.save_config("h1", {"multiplier": "1.5"})
        assert saved.rate_id_map == {"R1": "11"}
        assert saved.multiplier == Decimal("1.5")

    async def test_hotel_id_from_argument(self, service):
        saved = await service.save_config(42, {"hotel_id": "other"})
        assert saved.hotel_id == "42"


class TestSyncCatalog:

    async def test_builds_map_and_hydrates_base_room(self, service, store, pms):
        today = utc_today()
        pms.live_rates = {today + timedelta(days=1): Decimal("120"), today + timedelta(days=2): Decimal("130")}

        config = await service.sync_catalog("h1", "P1")

        assert config.rate_id_map == {"R1": "11", "R2": "20"}
        assert config.pms_property_id == "P1"
        assert store.catalogs["h1"].rate_plans == RATE_PLANS
        rows = await store.get_calendar_rows("h1", "R1")
        assert [(r.rate, r.source) for r in rows] == [(Decimal("120"), "SYNC"), (Decimal("130"), "SYNC")]

    async def test_hydration_keeps_source_when_rate_unchanged(self, service, store, pms):
        tomorrow = utc_today() + timedelta(days=1)
        await store.persist_override("h1", "R1", tomorrow, Decimal("120"), "MANUAL")
        pms.live_rates = {tomorrow: Decimal("120")}

        await service.sync_catalog("h1", "P1")

        assert (await store.get_calendar_rows("h1", "R1"))[0].source == "MANUAL"

    async def test_hydration_failure_does_not_fail_sync(self, service, store, pms):
        pms.get_rates_error = PmsAdapterError("getRate", "HTTP 503: down", 503)
        config = await service.sync_catalog("h1", "P1")
        assert config.rate_id_map
        assert store.calendar == {}

    async def test_existing_settings_survive_sync(self, service, store):
        await service.save_config("h1", {"multiplier": "1.8", "base_room_type_id": "R2"})
        config = await service.sync_catalog("h1", "P1")
        assert config.multiplier == Decimal("1.8")
        assert config.base_room_type_id == "R2"


class TestHealRateIdMap:

    async def test_no_catalog_returns_config_unchanged(self, service, store):
        config = await service.save_config("h1", {"rate_id_map": {"R1": "x"}})
        assert (await service.heal_rate_id_map(config)).rate_id_map == {"R1": "x"}

    async def test_drift_corrected(self, service, store):
        config = await service.save_config("h1", {"rate_id_map": {"R1": "10"}})
        store.catalogs["h1"] = Catalog(ROOM_TYPES, RATE_PLANS)
        healed = await service.heal_rate_id_map(config)
        assert healed.rate_id_map == {"R1": "11", "R2": "20"}
        assert store.configs["h1"].rate_id_map == {"R1": "11", "R2": "20"}


class TestDailyMaxRates:

    async def test_upserts_positive_and_deletes_empty(self, service, store):
        store.daily_max["h1"] = {date(2025, 12, 30): Decimal("300")}
        result = await service.save_daily_max_rates("h1", {
            "2025-12-30": "",
            "2025-12-31": "250",
            "2026-01-01": 0,
        })
        assert result == {"saved": 1, "removed": 2}
        assert store.daily_max["h1"] == {date(2025, 12, 31): Decimal("250.00")}

    async def test_config_save_keeps_daily_ceilings(self, service, store):
        await service.save_config("h1", {"multiplier": "1.3"})
        await service.save_daily_max_rates("h1", {"2025-12-31": 250, "2024-06-01": 180})

        saved = await service.save_config("h1", {"multiplier": "1.4", "guardrail_max": 400})

        config = await service.get_config("h1")
        assert config.daily_max_for(date(2025, 12, 31)) == Decimal("250.00")
        assert config.daily_max_for(date(2024, 6, 1)) == Decimal("180.00")
        assert saved.daily_max_rates == config.daily_max_rates
        assert config.multiplier == Decimal("1.4")


class TestConcurrentConfigWrites:

    async def test_map_always_matches_stored_catalog(self, service, store):
        store.catalogs["h1"] = Catalog(ROOM_TYPES, RATE_PLANS[:1])
        await service.save_config("h1", {"multiplier": "1.3"})
        assert store.configs["h1"].rate_id_map == {"R1": "10"}

        await asyncio.gather(
            service.save_config("h1", {"multiplier": "1.6"}),
            service.sync_catalog("h1", "P1"),
        )

        stored = store.configs["h1"]
        catalog = store.catalogs["h1"]
        assert catalog.rate_plans == RATE_PLANS
        assert stored.rate_id_map == build_rate_id_map(catalog.room_types, catalog.rate_plans)
        assert stored.multiplier == Decimal("1.6")
