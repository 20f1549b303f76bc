"""Tests for the carrier HTTP client."""

import json

import httpx
import pytest

from storefront.infrastructure.carrier_client import (
    CarrierClient,
    CarrierClientError,
    CarrierRate,
    CarrierTracking,
    parse_duration_range,
)


def make_client(handler) -> CarrierClient:
    return CarrierClient(
        api_key="test-key",
        base_url="https://carrier.test/v1",
        origin_postal_code="12950",
        timeout=5.0,
        transport=httpx.MockTransport(handler),
    )


ITEMS = [{"name": "Order Items", "value": 100000, "weight": 500, "quantity": 1}]


class TestParseDurationRange:
    """Tests for transit range parsing."""

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("2 - 3", (2, 3)),
            ("1 - 1", (1, 1)),
            ("3", (3, 3)),
            ("2 - 3 days", (2, 3)),
            ("", (1, 1)),
            (None, (1, 1)),
            ("5 - 2", (5, 5)),
        ],
    )
    def test_parse(self, raw: str | None, expected: tuple[int, int]) -> None:
        """Ranges, single values and garbage all give a usable window."""
        assert parse_duration_range(raw) == expected


class TestResponseModels:
    """Tests for API response parsing."""

    def test_rate_from_api_response(self) -> None:
        """A pricing entry becomes a CarrierRate with lowercase codes."""
        rate = CarrierRate.from_api_response(
            {
                "courier_code": "JNE",
                "courier_name": "JNE",
                "courier_service_name": "Reguler",
                "type": "REG",
                "price": 18000,
                "shipment_duration_range": "2 - 3",
                "available_for_insurance": True,
            }
        )
        assert rate.courier_code == "jne"
        assert rate.service_code == "reg"
        assert rate.price == 18000
        assert (rate.eta_days_min, rate.eta_days_max) == (2, 3)
        assert rate.insurance_available

    def test_tracking_falls_back_to_waybill(self) -> None:
        """The waybill id is used when no tracking id is present."""
        tracking = CarrierTracking.from_api_response(
            {
                "status": "dropping_off",
                "courier": {"waybill_id": "WB-1"},
                "history": [{"status": "picked", "note": "Picked up", "updated_at": "2025-01-01"}],
            }
        )
        assert tracking.tracking_id == "WB-1"
        assert tracking.history[0]["status"] == "picked"


class TestCarrierClient:
    """Tests for CarrierClient requests."""

    async def test_get_rates_sends_origin_and_couriers(self) -> None:
        """The rates request carries origin, destination and courier list."""
        seen: dict = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "pricing": [
                        {
                            "courier_code": "jne",
                            "type": "reg",
                            "price": 18000,
                            "shipment_duration_range": "2 - 3",
                        }
                    ],
                },
            )

        client = make_client(handler)
        rates = await client.get_rates("40115", ITEMS, ["jne", "tiki"])
        await client.close()

        assert seen["path"] == "/v1/rates/couriers"
        assert seen["auth"] == "test-key"
        assert seen["body"]["origin_postal_code"] == "12950"
        assert seen["body"]["destination_postal_code"] == "40115"
        assert seen["body"]["couriers"] == "jne,tiki"
        assert [r.price for r in rates] == [18000]

    async def test_rejected_postal_code(self) -> None:
        """A 400 about the postal code marks the destination as rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(400, json={"success": False, "error": "Invalid destination postal code"})

        client = make_client(handler)
        with pytest.raises(CarrierClientError) as exc_info:
            await client.get_rates("00000", ITEMS, ["jne"])
        await client.close()

        assert exc_info.value.status_code == 400
        assert exc_info.value.rejected_destination

    async def test_server_error(self) -> None:
        """A 5xx surfaces as a plain client error."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="unavailable")

        client = make_client(handler)
        with pytest.raises(CarrierClientError) as exc_info:
            await client.get_rates("40115", ITEMS, ["jne"])
        await client.close()

        assert exc_info.value.status_code == 503
        assert not exc_info.value.rejected_destination

    async def test_timeout_is_mapped(self) -> None:
        """Transport timeouts become CarrierClientError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = make_client(handler)
        with pytest.raises(CarrierClientError, match="timed out"):
            await client.get_rates("40115", ITEMS, ["jne"])
        await client.close()

    async def test_unconfigured_client_refuses_rates(self) -> None:
        """Without credentials no request is made."""
        client = CarrierClient(api_key="", base_url="https://carrier.test/v1", origin_postal_code="")
        assert not client.configured
        with pytest.raises(CarrierClientError, match="not configured"):
            await client.get_rates("40115", ITEMS, ["jne"])

    async def test_create_order(self) -> None:
        """Booking returns the carrier order id and tracking id."""

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/orders"
            return httpx.Response(
                200,
                json={"success": True, "id": "bs-1", "status": "confirmed", "courier": {"waybill_id": "WB-9"}},
            )

        client = make_client(handler)
        shipment = await client.create_order({"reference_id": "ORD-1"})
        await client.close()

        assert shipment.carrier_order_id == "bs-1"
        assert shipment.tracking_id == "WB-9"

    async def test_track_unknown_order(self) -> None:
        """A 404 from tracking means the carrier does not know the order."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404, json={"success": False})

        client = make_client(handler)
        assert await client.track("missing") is None
        await client.close()
