"""Pricing config service: load, validate and save per-hotel configuration."""

import asyncio
import logging
from datetime import timedelta
from decimal import Decimal

from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.pms_client import PmsAdapter, PmsAdapterError
from ratepilot.services.pricing.config import pricing_engine_config
from ratepilot.services.pricing.guardrails import utc_today
from ratepilot.services.pricing.money import as_date, to_decimal
from ratepilot.services.pricing.rate_plans import build_rate_id_map
from ratepilot.services.rate_store import Catalog, RateStore

logger = logging.getLogger(__name__)

HYDRATION_DAYS = 365


class PricingConfigMissingError(LookupError):
    """The hotel cannot be priced until it is (re-)synced with the PMS."""

    def __init__(self, hotel_id: str, detail: str):
        super().__init__(f"Hotel {hotel_id}: {detail}. Re-sync the hotel with the PMS.")
        self.hotel_id = hotel_id


class PricingConfigService:
    def __init__(self, store: RateStore | None = None, pms: PmsAdapter | None = None):
        self._store = store
        self._pms = pms

    @property
    def store(self) -> RateStore:
        if self._store is None:
            from ratepilot.services.rate_store import rate_store

            self._store = rate_store
        return self._store

    @property
    def pms(self) -> PmsAdapter:
        if self._pms is None:
            from ratepilot.services.pms_client import pms_client

            self._pms = pms_client
        return self._pms

    async def get_config(self, hotel_id: str) -> HotelPricingConfig | None:
        return await self.store.get_config(str(hotel_id))

    async def require_config(self, hotel_id: str, need_rate_map: bool = True) -> HotelPricingConfig:
        config = await self.get_config(hotel_id)
        if config is None:
            raise PricingConfigMissingError(str(hotel_id), "no pricing configuration found")
        if need_rate_map and not config.rate_id_map:
            raise PricingConfigMissingError(str(hotel_id), "rate ID map is missing")
        return config

    async def save_config(self, hotel_id: str, payload: HotelPricingConfig | dict) -> HotelPricingConfig:
        """Validate and persist a config; the rate ID map is rebuilt from the stored catalog.

        The catalog read, the map rebuild and the write share one locked
        transaction. Daily ceilings are left alone (see save_daily_max_rates).
        Raises pydantic.ValidationError for a payload that breaks the config invariants.
        """
        if isinstance(payload, HotelPricingConfig):
            data = payload.model_dump(by_alias=True)
        else:
            data = dict(payload)
        data["hotel_id"] = str(hotel_id)
        config = HotelPricingConfig.model_validate(data)

        def _merge(existing: HotelPricingConfig | None, catalog: Catalog | None) -> HotelPricingConfig:
            update = {"daily_max_rates": existing.daily_max_rates if existing is not None else {}}
            if catalog is not None:
                update["rate_id_map"] = build_rate_id_map(catalog.room_types, catalog.rate_plans)
            elif config.rate_id_map is None and existing is not None:
                update["rate_id_map"] = existing.rate_id_map
            return config.model_copy(update=update)

        saved = await self.store.mutate_config(config.hotel_id, _merge)
        logger.info(
            f"Saved pricing config for hotel {saved.hotel_id} "
            f"({len(saved.rate_id_map or {})} mapped room types)"
        )
        return saved

    async def sync_catalog(self, hotel_id: str, pms_property_id: str) -> HotelPricingConfig:
        """Pull the PMS catalog, rebuild the rate ID map and hydrate the base room calendar."""
        hotel_id = str(hotel_id)
        room_types, rate_plans = await asyncio.gather(
            self.pms.get_room_types(pms_property_id),
            self.pms.get_rate_plans(pms_property_id),
        )
        rate_id_map = build_rate_id_map(room_types, rate_plans)

        def _apply_catalog(existing: HotelPricingConfig | None, catalog: Catalog | None) -> HotelPricingConfig:
            current = existing or HotelPricingConfig(hotel_id=hotel_id)
            return current.model_copy(
                update={"pms_property_id": str(pms_property_id), "rate_id_map": rate_id_map}
            )

        config = await self.store.mutate_config(
            hotel_id, _apply_catalog, catalog=Catalog(room_types=room_types, rate_plans=rate_plans)
        )
        logger.info(
            f"Synced catalog for hotel {hotel_id}: {len(room_types)} room types, "
            f"{len(rate_plans)} rate plans, {len(rate_id_map)} mapped"
        )

        base_room = config.base_room_type_id
        if base_room is None and room_types:
            base_room = str(room_types[0].get("roomTypeID"))
        if base_room:
            await self._hydrate_calendar(hotel_id, str(pms_property_id), base_room)
        else:
            logger.warning(f"Hotel {hotel_id}: no base room type, skipping calendar hydration")
        return config

    async def _hydrate_calendar(self, hotel_id: str, pms_property_id: str, room_type_id: str) -> int:
        start = utc_today()
        end = start + timedelta(days=HYDRATION_DAYS)
        try:
            live = await self.pms.get_rates(pms_property_id, room_type_id, start, end)
        except PmsAdapterError as e:
            logger.error(f"Hotel {hotel_id}: calendar hydration failed, sync kept: {e}")
            return 0
        count = await self.store.hydrate_calendar(
            hotel_id, room_type_id, live, pricing_engine_config.sources.sync
        )
        logger.info(f"Hotel {hotel_id}: hydrated {count} days for room {room_type_id}")
        return count

    async def heal_rate_id_map(self, config: HotelPricingConfig) -> HotelPricingConfig:
        """Rebuild the map from the stored catalog and persist it if it drifted."""

        def _heal(existing: HotelPricingConfig | None, catalog: Catalog | None) -> HotelPricingConfig | None:
            if existing is None or catalog is None:
                return None
            fresh = build_rate_id_map(catalog.room_types, catalog.rate_plans)
            if not fresh:
                raise PricingConfigMissingError(config.hotel_id, "unable to build a valid rate ID map")
            if fresh == (existing.rate_id_map or {}):
                return None
            logger.warning(f"Hotel {config.hotel_id}: rate ID map drifted, correcting target plans")
            return existing.model_copy(update={"rate_id_map": fresh})

        healed = await self.store.mutate_config(config.hotel_id, _heal)
        if healed is None:
            return config
        return config.model_copy(update={"rate_id_map": healed.rate_id_map})

    async def save_daily_max_rates(self, hotel_id: str, rates: dict) -> dict:
        """Upsert positive ceilings; an empty or non-positive value removes that day's ceiling."""
        upserts: dict = {}
        deletes = []
        for key, raw in (rates or {}).items():
            stay_date = as_date(key)
            value = to_decimal(raw)
            if value is None or value <= 0:
                deletes.append(stay_date)
            else:
                upserts[stay_date] = value.quantize(Decimal("0.01"))
        await self.store.save_daily_max_rates(str(hotel_id), upserts, deletes)
        return {"saved": len(upserts), "removed": len(deletes)}


pricing_config_service = PricingConfigService()
