"""Override orchestrator: calendar writes, audit history and the PMS push payload.

A batch of (date, rate) overrides for the base room becomes:
    - one history record per real change
    - one calendar upsert per date
    - push items for the base room and every derived room that resolves
      to a rate plan

DB writes run concurrently; PMS pushes go through the sequential push queue.
"""

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from ratepilot.config import settings
from ratepilot.schemas.pricing import HotelPricingConfig
from ratepilot.services.config_service import PricingConfigMissingError, PricingConfigService
from ratepilot.services.outcomes import BatchReport, ItemOutcome, OutcomeStatus, OverrideBatch, RatePush
from ratepilot.services.pms_client import PmsAdapter, PmsAdapterError
from ratepilot.services.pricing.config import pricing_engine_config
from ratepilot.services.pricing.differentials import compute_differential
from ratepilot.services.pricing.guardrails import apply_guardrails
from ratepilot.services.pricing.money import as_date, finalize_rate, to_positive_rate
from ratepilot.services.pricing.waterfall import PricingContext, compute_sell_rate
from ratepilot.services.push_queue import RatePushQueue
from ratepilot.services.rate_store import RateStore

logger = logging.getLogger(__name__)

SOURCES = pricing_engine_config.sources

MAX_RECALCULATE_DAYS = 366


@dataclass
class CalendarPreviewDay:
    stay_date: date
    live_rate: Decimal | None
    suggested_rate: Decimal | None
    final_rate: Decimal | None
    guardrail_min: Decimal
    is_frozen: bool
    is_floor_active: bool
    source: str

    def to_dict(self) -> dict:
        def _num(v):
            return float(v) if v is not None else None

        return {
            "date": self.stay_date.isoformat(),
            "live_rate": _num(self.live_rate),
            "suggested_rate": _num(self.suggested_rate),
            "final_rate": _num(self.final_rate),
            "guardrail_min": float(self.guardrail_min),
            "is_frozen": self.is_frozen,
            "is_floor_active": self.is_floor_active,
            "source": self.source,
        }


def iter_dates(start: date, end: date):
    """Calendar days from start to end inclusive."""
    day = start
    while day <= end:
        yield day
        day += timedelta(days=1)


def validate_overrides(overrides: Iterable[dict], report: BatchReport) -> dict[date, Decimal]:
    """Keep well-formed rows; a later row for the same date replaces an earlier one."""
    accepted: dict[date, Decimal] = {}
    for row in overrides or []:
        raw_date = row.get("date") if isinstance(row, dict) else None
        raw_rate = row.get("rate") if isinstance(row, dict) else None
        try:
            stay_date = as_date(raw_date)
        except (TypeError, ValueError):
            logger.warning(f"Dropping override with bad date {raw_date!r}")
            report.add(ItemOutcome(OutcomeStatus.INVALID, str(raw_date), reason="bad date"))
            continue

        rate = finalize_rate(to_positive_rate(raw_rate))
        if rate is None:
            logger.warning(f"Dropping override for {stay_date}: invalid rate {raw_rate!r}")
            report.add(ItemOutcome(OutcomeStatus.INVALID, stay_date, reason=f"invalid rate {raw_rate!r}"))
            continue

        accepted.pop(stay_date, None)
        accepted[stay_date] = rate
    return accepted


class RateOverrideService:
    def __init__(
        self,
        store: RateStore | None = None,
        pms: PmsAdapter | None = None,
        push_queue: RatePushQueue | None = None,
        config_service: PricingConfigService | None = None,
        write_concurrency: int | None = None,
    ):
        self._store = store
        self._pms = pms
        self._push_queue = push_queue
        self._config_service = config_service
        self._write_concurrency = write_concurrency or settings.override_write_concurrency

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

    @property
    def push_queue(self) -> RatePushQueue:
        if self._push_queue is None:
            from ratepilot.services.push_queue import rate_push_queue

            self._push_queue = rate_push_queue
        return self._push_queue

    @property
    def config_service(self) -> PricingConfigService:
        if self._config_service is None:
            self._config_service = PricingConfigService(store=self._store, pms=self._pms)
        return self._config_service

    # ---------- Apply ----------

    async def apply_overrides(
        self,
        hotel_id: str,
        pms_property_id: str | None,
        base_room_type_id: str | None,
        overrides: Iterable[dict],
        source: str = SOURCES.manual,
    ) -> OverrideBatch:
        """Persist a batch of base-room overrides and build the PMS push payload.

        Raises PricingConfigMissingError when the hotel has no config or no
        rate ID map. Bad rows, mapping gaps and failed writes are reported per
        item and never abort the batch.
        """
        hotel_id = str(hotel_id)
        config = await self.config_service.require_config(hotel_id)
        base_room = str(base_room_type_id or config.base_room_type_id or "")
        if not base_room:
            raise PricingConfigMissingError(hotel_id, "no base room type configured")

        batch = OverrideBatch()
        accepted = validate_overrides(overrides, batch.report)
        if not accepted:
            logger.info(f"Hotel {hotel_id}: no valid overrides in batch")
            return batch

        semaphore = asyncio.Semaphore(self._write_concurrency)

        async def _write(stay_date: date, rate: Decimal) -> bool:
            async with semaphore:
                return await self.store.persist_override(hotel_id, base_room, stay_date, rate, source)

        results = await asyncio.gather(
            *[_write(d, r) for d, r in accepted.items()],
            return_exceptions=True,
        )

        history_writes = 0
        for (stay_date, rate), result in zip(accepted.items(), results):
            if isinstance(result, Exception):
                logger.error(f"Hotel {hotel_id}: calendar write failed for {stay_date}: {result}")
                batch.report.add(ItemOutcome(
                    OutcomeStatus.FAILED, stay_date, base_room, rate, f"calendar write failed: {result}"
                ))
                continue
            if result:
                history_writes += 1
            batch.report.add(ItemOutcome(
                OutcomeStatus.APPLIED, stay_date, base_room, rate, None if result else "unchanged"
            ))
            self._enqueue_pushes(config, base_room, stay_date, rate, batch)

        logger.info(
            f"Hotel {hotel_id}: {len(accepted)} overrides ({source}), {history_writes} history records, "
            f"{len(batch.payload)} push items, {len(batch.report.invalid)} invalid"
        )
        return batch

    def _enqueue_pushes(
        self,
        config: HotelPricingConfig,
        base_room: str,
        stay_date: date,
        rate: Decimal,
        batch: OverrideBatch,
    ) -> None:
        base_rate_id = config.rate_id_for(base_room)
        if base_rate_id:
            batch.payload.append(RatePush(base_rate_id, stay_date, rate, base_room))
        else:
            logger.warning(f"Hotel {config.hotel_id}: no rate plan mapped for base room {base_room}")
            batch.report.add(ItemOutcome(
                OutcomeStatus.SKIPPED, stay_date, base_room, rate, "no rate plan mapped"
            ))

        for rule in config.room_differentials:
            if rule.room_type_id == base_room:
                continue
            derived = compute_differential(rate, rule.room_type_id, config.room_differentials)
            rate_id = config.rate_id_for(rule.room_type_id)
            if derived is None:
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, rule.room_type_id, None, "no derived rate"
                ))
            elif not rate_id:
                logger.warning(
                    f"Hotel {config.hotel_id}: no rate plan mapped for room {rule.room_type_id}, skipping push"
                )
                batch.report.add(ItemOutcome(
                    OutcomeStatus.SKIPPED, stay_date, rule.room_type_id, derived, "no rate plan mapped"
                ))
            else:
                batch.payload.append(RatePush(rate_id, stay_date, derived, rule.room_type_id))

    async def push_overrides(
        self,
        hotel_id: str,
        pms_property_id: str | None,
        base_room_type_id: str | None,
        overrides: Iterable[dict],
        source: str = SOURCES.manual,
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """apply_overrides, then publish the payload through the push queue."""
        if not pms_property_id:
            raise PricingConfigMissingError(str(hotel_id), "no PMS property id")

        batch = await self.apply_overrides(hotel_id, pms_property_id, base_room_type_id, overrides, source)
        push_report = await self.push_queue.push(
            hotel_id,
            pms_property_id,
            batch.payload,
            deadline=settings.pms_push_deadline_seconds if deadline is None else deadline,
            cancel_event=cancel_event,
        )

        report = BatchReport()
        report.extend(batch.report)
        report.extend(push_report)
        return report

    # ---------- Preview / recalculate ----------

    async def preview_calendar(
        self,
        hotel_id: str,
        base_room_type_id: str | None,
        start: date | str,
        end: date | str,
        today: date | None = None,
    ) -> list[CalendarPreviewDay]:
        """Read-only: live rate -> waterfall -> guardrails for each day in [start, end]."""
        hotel_id = str(hotel_id)
        start, end = as_date(start), as_date(end)
        if end < start:
            raise ValueError(f"end {end} is before start {start}")

        config = await self.config_service.require_config(hotel_id, need_rate_map=False)
        base_room = str(base_room_type_id or config.base_room_type_id or "")
        if not base_room:
            raise PricingConfigMissingError(hotel_id, "no base room type configured")

        live: dict[date, Decimal] = {}
        if config.pms_property_id:
            try:
                live = await self.pms.get_rates(config.pms_property_id, base_room, start, end)
            except PmsAdapterError as e:
                logger.error(f"Hotel {hotel_id}: live rates unavailable for {start}..{end}: {e}")
        else:
            logger.warning(f"Hotel {hotel_id}: no PMS property id, previewing without live rates")

        stored = await self.store.get_calendar_rows(hotel_id, base_room, start, end)
        manual = {row.stay_date: row.rate for row in stored if row.source == SOURCES.manual}

        context = PricingContext.from_config(config)
        days = []
        for day in iter_dates(start, end):
            live_rate = live.get(day)
            suggested = compute_sell_rate(live_rate, context, day)
            result = apply_guardrails(suggested, live_rate, config, day, today=today)

            if day in manual:
                final_rate, source = manual[day], SOURCES.manual
            elif result.is_frozen:
                final_rate, source = result.final_rate, SOURCES.frozen
            else:
                final_rate, source = result.final_rate, SOURCES.ai

            days.append(CalendarPreviewDay(
                stay_date=day,
                live_rate=live_rate,
                suggested_rate=suggested,
                final_rate=final_rate,
                guardrail_min=result.active_min,
                is_frozen=result.is_frozen,
                is_floor_active=result.is_floor_active,
                source=source,
            ))
        return days

    async def recalculate(
        self,
        hotel_id: str,
        start: date | str,
        end: date | str,
        today: date | None = None,
    ) -> OverrideBatch:
        """Re-run the engine over a date range and write non-manual results as AUTO overrides."""
        hotel_id = str(hotel_id)
        start, end = as_date(start), as_date(end)
        if end < start:
            raise ValueError(f"end {end} is before start {start}")
        if (end - start).days + 1 > MAX_RECALCULATE_DAYS:
            raise ValueError(f"range {start}..{end} exceeds {MAX_RECALCULATE_DAYS} days")

        config = await self.config_service.require_config(hotel_id, need_rate_map=False)
        config = await self.config_service.heal_rate_id_map(config)
        if not config.rate_id_map:
            raise PricingConfigMissingError(hotel_id, "rate ID map is missing")
        if not config.base_room_type_id:
            raise PricingConfigMissingError(hotel_id, "no base room type configured")

        days = await self.preview_calendar(hotel_id, config.base_room_type_id, start, end, today=today)
        overrides = [
            {"date": d.stay_date, "rate": d.final_rate}
            for d in days
            if d.source != SOURCES.manual and d.final_rate is not None
        ]
        logger.info(
            f"Hotel {hotel_id}: recalculated {len(days)} days, {len(overrides)} eligible for update"
        )
        return await self.apply_overrides(
            hotel_id, config.pms_property_id, config.base_room_type_id, overrides, source=SOURCES.auto
        )


rate_override_service = RateOverrideService()
