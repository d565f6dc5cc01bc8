"""PMS client: Cloudbeds-style API adapter for rates and the room/rate-plan catalog."""

import logging
from abc import ABC, abstractmethod
from datetime import date
from decimal import Decimal

import httpx

from ratepilot.config import settings
from ratepilot.services.pricing.money import as_date, to_positive_rate

logger = logging.getLogger(__name__)


class PmsAdapterError(RuntimeError):
    """Any PMS failure: HTTP status, transport, or a body we cannot use."""

    def __init__(self, operation: str, message: str, status_code: int | None = None):
        super().__init__(f"PMS {operation} failed: {message}")
        self.operation = operation
        self.status_code = status_code

    @property
    def is_rate_limited(self) -> bool:
        return self.status_code == 429

    @property
    def is_retryable(self) -> bool:
        return self.status_code is None or self.status_code == 429 or self.status_code >= 500


class PmsAdapter(ABC):
    """What the pricing core needs from a PMS."""

    @abstractmethod
    async def post_rate(self, property_id: str, rate_id: str, stay_date: date, rate: Decimal) -> str:
        """Queue one nightly rate; returns the PMS job reference id."""

    @abstractmethod
    async def get_rates(
        self, property_id: str, room_type_id: str, start: date, end: date
    ) -> dict[date, Decimal]:
        """Live nightly rates for a room type; nights without a usable rate are absent."""

    @abstractmethod
    async def get_room_types(self, property_id: str) -> list[dict]:
        ...

    @abstractmethod
    async def get_rate_plans(self, property_id: str) -> list[dict]:
        ...


class PmsClient(PmsAdapter):
    """httpx adapter. The bearer token comes from settings; refreshing it is not our job."""

    def __init__(
        self,
        base_url: str | None = None,
        access_token: str | None = None,
        timeout: float | None = None,
    ):
        self._base_url = base_url or settings.pms_base_url
        self._access_token = access_token if access_token is not None else settings.pms_access_token
        self._timeout = timeout or settings.pms_timeout_seconds
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    def _headers(self, property_id: str) -> dict:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "X-PROPERTY-ID": str(property_id),
        }

    async def _request(self, operation: str, method: str, path: str, property_id: str, **kwargs) -> dict:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, headers=self._headers(property_id), **kwargs)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as e:
            raise PmsAdapterError(
                operation, f"HTTP {e.response.status_code}: {e.response.text[:300]}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise PmsAdapterError(operation, f"transport error: {e}") from e
        except ValueError as e:
            raise PmsAdapterError(operation, "response was not JSON") from e

        if not isinstance(body, dict):
            raise PmsAdapterError(operation, "unexpected response shape")
        if body.get("success") is False:
            raise PmsAdapterError(operation, str(body.get("message") or "success=false"))
        return body

    async def post_rate(self, property_id: str, rate_id: str, stay_date: date, rate: Decimal) -> str:
        safe_rate = to_positive_rate(rate)
        if safe_rate is None:
            # Last line of defence: a zero price must never reach the booking engine
            raise PmsAdapterError("putRate", f"refusing to post non-positive rate {rate!r}", 400)

        night = stay_date.isoformat()
        data = {
            "rates[0][rateID]": rate_id,
            "rates[0][interval][0][startDate]": night,
            "rates[0][interval][0][endDate]": night,
            "rates[0][interval][0][rate]": str(safe_rate),
        }
        body = await self._request("putRate", "POST", "/putRate", property_id, data=data)
        job_id = body.get("jobReferenceID")
        logger.info(f"Posted rate {safe_rate} for rate plan {rate_id} on {night} (job {job_id})")
        return str(job_id) if job_id is not None else ""

    async def get_rates(
        self, property_id: str, room_type_id: str, start: date, end: date
    ) -> dict[date, Decimal]:
        body = await self._request(
            "getRate",
            "GET",
            "/getRate",
            property_id,
            params={
                "roomTypeID": room_type_id,
                "startDate": start.isoformat(),
                "endDate": end.isoformat(),
                "detailedRates": "true",
            },
        )
        data = body.get("data") or {}
        detailed = data.get("roomRateDetailed") if isinstance(data, dict) else None

        rates: dict[date, Decimal] = {}
        for row in detailed or []:
            rate = to_positive_rate(row.get("rate"))
            if not row.get("date") or rate is None:
                continue
            try:
                rates[as_date(row["date"])] = rate
            except ValueError:
                logger.warning(f"Ignoring live rate with bad date {row.get('date')!r}")
        return rates

    async def get_room_types(self, property_id: str) -> list[dict]:
        body = await self._request("getRoomTypes", "GET", "/getRoomTypes", property_id)
        return list(body.get("data") or [])

    async def get_rate_plans(self, property_id: str) -> list[dict]:
        body = await self._request("getRatePlans", "GET", "/getRatePlans", property_id)
        return list(body.get("data") or [])

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None


pms_client = PmsClient()
