"""Carrier HTTP client for the domestic shipping aggregator (Biteship API).

Provides rate quotes, shipment booking and shipment tracking. Every call
is bounded by the configured timeout; transport failures and non-2xx
answers surface as CarrierClientError.
"""

import re
from dataclasses import dataclass, field
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()


class CarrierClientError(Exception):
    """Error from carrier API call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        rejected_destination: bool = False,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.rejected_destination = rejected_destination
        super().__init__(message)


# ============================================================================
# Response Models
# ============================================================================


def parse_duration_range(duration: str | None) -> tuple[int, int]:
    """Parse a transit range like ``"2 - 3"`` into (min, max) days.

    Missing or unparseable parts fall back to one day.
    """
    numbers = [int(n) for n in re.findall(r"\d+", duration or "")]
    low = numbers[0] if numbers and numbers[0] > 0 else 1
    high = numbers[1] if len(numbers) > 1 and numbers[1] > 0 else low
    return low, max(low, high)


@dataclass
class CarrierRate:
    """One priced courier service."""

    courier_code: str
    courier_name: str
    service_code: str
    service_name: str
    description: str
    price: int
    eta_days_min: int
    eta_days_max: int
    insurance_available: bool

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CarrierRate":
        """Create from a ``pricing`` entry of the rates response."""
        eta_min, eta_max = parse_duration_range(
            data.get("shipment_duration_range") or data.get("duration")
        )
        return cls(
            courier_code=str(data.get("courier_code", "")).lower(),
            courier_name=data.get("courier_name", ""),
            service_code=str(data.get("type", "")).lower(),
            service_name=data.get("courier_service_name", ""),
            description=data.get("description", ""),
            price=int(data.get("price", 0)),
            eta_days_min=eta_min,
            eta_days_max=eta_max,
            insurance_available=bool(data.get("available_for_insurance", False)),
        )


@dataclass
class CarrierShipment:
    """Booked carrier order."""

    carrier_order_id: str
    tracking_id: str | None
    status: str | None
    price: int | None = None

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CarrierShipment":
        """Create from the create-order response."""
        courier = data.get("courier") or {}
        return cls(
            carrier_order_id=data["id"],
            tracking_id=courier.get("tracking_id") or courier.get("waybill_id") or None,
            status=data.get("status"),
            price=data.get("price"),
        )


@dataclass
class CarrierTracking:
    """Tracking status and history of a shipment."""

    status: str | None
    tracking_id: str | None
    link: str | None
    history: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "CarrierTracking":
        """Create from the tracking response."""
        courier = data.get("courier") or {}
        return cls(
            status=data.get("status"),
            tracking_id=courier.get("tracking_id") or courier.get("waybill_id"),
            link=data.get("link"),
            history=[
                {
                    "status": entry.get("status"),
                    "note": entry.get("note"),
                    "updated_at": entry.get("updated_at"),
                }
                for entry in data.get("history", [])
            ],
        )


# ============================================================================
# Carrier HTTP Client
# ============================================================================


class CarrierClient:
    """HTTP client for the carrier aggregator API.

    One instance is shared by the process; the underlying httpx client is
    created lazily and closed on shutdown.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        origin_postal_code: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize carrier client.

        Args:
            api_key: Carrier API key (sent as the Authorization header).
            base_url: Carrier API base URL.
            origin_postal_code: Warehouse postal code used as shipment origin.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (tests).
        """
        self.api_key = api_key
        self.base_url = base_url
        self.origin_postal_code = origin_postal_code
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def configured(self) -> bool:
        """Whether credentials and an origin are present."""
        return bool(self.api_key and self.origin_postal_code)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={
                    "Authorization": self.api_key,
                    "Content-Type": "application/json",
                },
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            client = await self._get_client()
            return await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.error("Carrier API request timed out", path=path, timeout=self.timeout)
            raise CarrierClientError(f"Request timed out after {self.timeout}s") from e
        except httpx.RequestError as e:
            logger.error("Carrier API request failed", path=path, error=str(e))
            raise CarrierClientError(f"Request failed: {e}") from e

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text
        if isinstance(data, dict):
            return str(data.get("error") or data.get("message") or data)
        return str(data)

    async def get_rates(
        self,
        destination_postal_code: str,
        items: list[dict[str, Any]],
        couriers: list[str],
    ) -> list[CarrierRate]:
        """Get courier rates for a parcel.

        Args:
            destination_postal_code: Recipient postal code.
            items: Parcel items with name, value, weight (grams), quantity.
            couriers: Courier codes to ask for.

        Returns:
            Priced services in the order the carrier returned them.

        Raises:
            CarrierClientError: On API error. ``rejected_destination`` is set
                when the carrier refused the postal code.
        """
        if not self.configured:
            raise CarrierClientError("Carrier API is not configured")

        payload = {
            "origin_postal_code": self.origin_postal_code,
            "destination_postal_code": destination_postal_code,
            "couriers": ",".join(couriers),
            "items": items,
        }
        logger.info(
            "Requesting carrier rates",
            origin=self.origin_postal_code,
            destination=destination_postal_code,
            couriers=payload["couriers"],
        )

        response = await self._request("POST", "/rates/couriers", json=payload)

        if response.status_code == 400:
            message = self._error_message(response)
            raise CarrierClientError(
                f"Rates request rejected: {message}",
                status_code=400,
                rejected_destination="postal" in message.lower(),
            )
        if response.status_code != 200:
            raise CarrierClientError(
                f"Failed to get rates: {self._error_message(response)}",
                response.status_code,
            )

        data = response.json()
        if not data.get("success", True):
            raise CarrierClientError(f"Failed to get rates: {data.get('message')}")

        rates = [CarrierRate.from_api_response(p) for p in data.get("pricing", [])]
        logger.info("Carrier rates received", options=len(rates))
        return rates

    async def create_order(self, payload: dict[str, Any]) -> CarrierShipment:
        """Book a shipment with the carrier.

        Args:
            payload: Create-order body (origin/destination contacts,
                courier company and type, items).

        Returns:
            Booked shipment with the carrier order id and tracking id.

        Raises:
            CarrierClientError: On API error.
        """
        response = await self._request("POST", "/orders", json=payload)

        if response.status_code not in (200, 201):
            raise CarrierClientError(
                f"Failed to create carrier order: {self._error_message(response)}",
                response.status_code,
            )

        data = response.json()
        if not data.get("success", True):
            raise CarrierClientError(f"Failed to create carrier order: {data.get('message')}")

        shipment = CarrierShipment.from_api_response(data)
        logger.info(
            "Carrier order created",
            carrier_order_id=shipment.carrier_order_id,
            tracking_id=shipment.tracking_id,
        )
        return shipment

    async def track(self, carrier_order_id: str) -> CarrierTracking | None:
        """Get tracking for a carrier order.

        Returns:
            Tracking if the carrier knows the order, None otherwise.

        Raises:
            CarrierClientError: On API error (except 404).
        """
        response = await self._request("GET", f"/trackings/{carrier_order_id}")

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise CarrierClientError(
                f"Failed to track shipment: {self._error_message(response)}",
                response.status_code,
            )

        return CarrierTracking.from_api_response(response.json())
