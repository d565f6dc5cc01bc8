"""Rate push queue: paced, sequential PMS writes per hotel.

The PMS rate-limits writes, and two pushes racing on the same (plan, night)
can land stale-after-fresh, so a hotel's pushes run one at a time behind a
per-hotel lock with a fixed gap between calls.
"""

import asyncio
import logging
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable

from ratepilot.config import settings
from ratepilot.services.outcomes import BatchReport, ItemOutcome, OutcomeStatus, RatePush
from ratepilot.services.pms_client import PmsAdapter, PmsAdapterError
from ratepilot.services.pricing.money import to_positive_rate

logger = logging.getLogger(__name__)


class RatePushQueue:
    def __init__(
        self,
        pms: PmsAdapter | None = None,
        interval: float | None = None,
        max_retries: int | None = None,
        backoff: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._pms = pms
        self._interval = settings.pms_push_interval_seconds if interval is None else interval
        self._max_retries = settings.pms_push_max_retries if max_retries is None else max_retries
        self._backoff = settings.pms_push_backoff_seconds if backoff is None else backoff
        self._sleep = sleep
        self._clock = clock
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def pms(self) -> PmsAdapter:
        if self._pms is None:
            from ratepilot.services.pms_client import pms_client

            self._pms = pms_client
        return self._pms

    @staticmethod
    def order_payload(payload: Iterable[RatePush]) -> list[RatePush]:
        """Dedupe on (rate plan, night) keeping the last value, then sort by night."""
        latest: dict[tuple, RatePush] = {}
        for item in payload:
            latest[(item.rate_id, item.stay_date)] = item
        return sorted(latest.values(), key=lambda p: (p.stay_date, p.room_type_id or "", p.rate_id))

    async def push(
        self,
        hotel_id: str,
        pms_property_id: str,
        payload: Iterable[RatePush],
        deadline: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> BatchReport:
        """Post every item in order; failures are recorded per item and never abort the loop.

        ``deadline`` is a budget in seconds from now. Items not reached before it
        passes (or before ``cancel_event`` is set) are reported as skipped.
        """
        report = BatchReport()
        items = self.order_payload(payload)
        if not items:
            return report

        stop_at = self._clock() + deadline if deadline is not None else None

        async with self._locks[str(hotel_id)]:
            posted_any = False
            for index, item in enumerate(items):
                if to_positive_rate(item.rate) is None:
                    logger.error(
                        f"Hotel {hotel_id}: blocked non-positive rate {item.rate!r} for plan {item.rate_id} on {item.stay_date}"
                    )
                    report.add(ItemOutcome(
                        OutcomeStatus.INVALID, item.stay_date, item.room_type_id, item.rate, "non-positive rate"
                    ))
                    continue

                if posted_any and self._interval > 0:
                    await self._sleep(self._interval)

                stop_reason = None
                if cancel_event is not None and cancel_event.is_set():
                    stop_reason = "cancelled"
                elif stop_at is not None and self._clock() >= stop_at:
                    stop_reason = "deadline exceeded"
                if stop_reason:
                    remaining = items[index:]
                    logger.warning(
                        f"Hotel {hotel_id}: push stopped ({stop_reason}), {len(remaining)} rates not sent"
                    )
                    for rest in remaining:
                        report.add(ItemOutcome(
                            OutcomeStatus.SKIPPED, rest.stay_date, rest.room_type_id, rest.rate, stop_reason
                        ))
                    break

                report.add(await self._post_with_retry(hotel_id, pms_property_id, item))
                posted_any = True

        summary = report.summary()
        logger.info(f"Hotel {hotel_id}: push finished {summary}")
        return report

    async def _post_with_retry(self, hotel_id: str, pms_property_id: str, item: RatePush) -> ItemOutcome:
        attempt = 0
        while True:
            try:
                job_id = await self.pms.post_rate(pms_property_id, item.rate_id, item.stay_date, item.rate)
                return ItemOutcome(
                    OutcomeStatus.APPLIED, item.stay_date, item.room_type_id, item.rate, job_reference_id=job_id
                )
            except PmsAdapterError as e:
                if e.is_retryable and attempt < self._max_retries:
                    delay = self._backoff * (2 ** attempt)
                    logger.warning(
                        f"Hotel {hotel_id}: {e} (attempt {attempt + 1}), retrying in {delay:.2f}s"
                    )
                    attempt += 1
                    await self._sleep(delay)
                    continue
                logger.error(f"Hotel {hotel_id}: giving up on plan {item.rate_id} {item.stay_date}: {e}")
                return ItemOutcome(OutcomeStatus.FAILED, item.stay_date, item.room_type_id, item.rate, str(e))
            except Exception as e:
                logger.error(f"Hotel {hotel_id}: unexpected push error for plan {item.rate_id} {item.stay_date}: {e}")
                return ItemOutcome(OutcomeStatus.FAILED, item.stay_date, item.room_type_id, item.rate, str(e))


rate_push_queue = RatePushQueue()
