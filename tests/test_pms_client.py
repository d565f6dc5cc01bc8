"""Tests for the httpx PMS adapter against a mock transport."""

from datetime import date
from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from ratepilot.services.pms_client import PmsAdapterError, PmsClient


def make_client(handler) -> PmsClient:
    client = PmsClient(base_url="https://pms.test/api/v1.3", access_token="tok", timeout=5)
    client._client = httpx.AsyncClient(
        base_url="https://pms.test/api/v1.3", transport=httpx.MockTransport(handler)
    )
    return client


class TestPostRate:

    async def test_posts_form_fields(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers["Authorization"]
            seen["property"] = request.headers["X-PROPERTY-ID"]
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"success": True, "jobReferenceID": 991})

        job = await make_client(handler).post_rate("P1", "RATE-1", date(2025, 1, 10), Decimal("99.45"))

        assert job == "991"
        assert seen["path"].endswith("/putRate")
        assert seen["auth"] == "Bearer tok"
        assert seen["property"] == "P1"
        assert seen["form"]["rates[0][rateID]"] == ["RATE-1"]
        assert seen["form"]["rates[0][interval][0][startDate]"] == ["2025-01-10"]
        assert seen["form"]["rates[0][interval][0][rate]"] == ["99.45"]

    @pytest.mark.parametrize("rate", [Decimal("0"), Decimal("-1"), None])
    async def test_refuses_non_positive_rate(self, rate):
        def handler(request):
            raise AssertionError("must not reach the PMS")

        with pytest.raises(PmsAdapterError) as exc:
            await make_client(handler).post_rate("P1", "RATE-1", date(2025, 1, 10), rate)
        assert not exc.value.is_retryable

    async def test_rate_limit_is_retryable(self):
        client = make_client(lambda request: httpx.Response(429, text="Too Many Requests"))
        with pytest.raises(PmsAdapterError) as exc:
            await client.post_rate("P1", "RATE-1", date(2025, 1, 10), Decimal("100"))
        assert exc.value.is_rate_limited
        assert exc.value.is_retryable

    async def test_success_false_is_error(self):
        client = make_client(lambda request: httpx.Response(200, json={"success": False, "message": "bad rateID"}))
        with pytest.raises(PmsAdapterError, match="bad rateID"):
            await client.post_rate("P1", "RATE-1", date(2025, 1, 10), Decimal("100"))


class TestGetRates:

    async def test_parses_detailed_rates(self):
        def handler(request):
            assert request.url.params["roomTypeID"] == "R1"
            return httpx.Response(200, json={"success": True, "data": {"roomRateDetailed": [
                {"date": "2025-01-10", "rate": "120.00"},
                {"date": "2025-01-11", "rate": 0},
                {"date": "2025-01-12", "rate": None},
                {"date": "garbage", "rate": 50},
                {"date": "2025-01-13", "rate": 135.5},
            ]}})

        rates = await make_client(handler).get_rates("P1", "R1", date(2025, 1, 10), date(2025, 1, 13))

        assert rates == {date(2025, 1, 10): Decimal("120.00"), date(2025, 1, 13): Decimal("135.5")}

    async def test_non_json_body(self):
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(PmsAdapterError, match="not JSON"):
            await client.get_rates("P1", "R1", date(2025, 1, 10), date(2025, 1, 13))

    async def test_transport_error_is_retryable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(PmsAdapterError) as exc:
            await make_client(handler).get_room_types("P1")
        assert exc.value.status_code is None
        assert exc.value.is_retryable


class TestCatalog:

    async def test_room_types_and_rate_plans(self):
        def handler(request):
            if request.url.path.endswith("/getRoomTypes"):
                return httpx.Response(200, json={"success": True, "data": [{"roomTypeID": "R1"}]})
            return httpx.Response(200, json={"success": True, "data": [{"rateID": "1", "roomTypeID": "R1"}]})

        client = make_client(handler)
        assert await client.get_room_types("P1") == [{"roomTypeID": "R1"}]
        assert await client.get_rate_plans("P1") == [{"rateID": "1", "roomTypeID": "R1"}]
        await client.close()
