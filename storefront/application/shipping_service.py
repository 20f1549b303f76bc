"""Shipping rate resolution.

Domestic destinations are priced live by the carrier aggregator;
every other country is priced from the international zone table:

    cost = base_rate + ceil(weight_grams / 1000) * per_kg_rate

All carrier and zone amounts are in IDR.
"""

import math
from dataclasses import dataclass, field
from typing import Any

import structlog

from storefront.domain.exceptions import (
    DomainError,
    InvalidCheckoutError,
    InvalidDestinationError,
    NoOptionsFoundError,
    ShippingZoneNotFoundError,
    UnsupportedDestinationError,
    UpstreamUnavailableError,
)
from storefront.domain.state_machines import ShippingType
from storefront.infrastructure.carrier_client import CarrierClient, CarrierClientError
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database
from storefront.infrastructure.models import ShippingZoneModel
from storefront.infrastructure.repositories import ShippingZoneRepository

logger = structlog.get_logger()

SHIPPING_CURRENCY = "IDR"

# Declared parcel value sent with domestic rate requests when the caller
# has no better figure.
DEFAULT_DECLARED_VALUE = 100000


def billable_kilograms(weight_grams: int) -> int:
    """Weight in whole kilograms, always rounded up.

    A parcel is never billed for less than one kilogram.
    """
    if weight_grams < 0:
        raise ValueError(f"Parcel weight cannot be negative, got {weight_grams}")
    return max(1, math.ceil(weight_grams / 1000))


def international_cost(base_rate: int, per_kg_rate: int, weight_grams: int) -> int:
    """Zone price for a parcel of the given weight."""
    return base_rate + billable_kilograms(weight_grams) * per_kg_rate


# ============================================================================
# Data Transfer Objects
# ============================================================================


@dataclass
class ShippingOption:
    """One way of shipping a parcel, with its price in IDR."""

    shipping_type: ShippingType
    carrier_code: str | None
    service_code: str | None
    display_name: str
    cost: int
    eta_days_min: int
    eta_days_max: int
    insurance_available: bool = False
    description: str | None = None
    zone_id: str | None = None
    zone_name: str | None = None
    currency: str = SHIPPING_CURRENCY


@dataclass
class ShippingZoneDTO:
    """International shipping zone."""

    id: str
    name: str
    countries: list[str]
    base_rate: int
    per_kg_rate: int
    min_days: int
    max_days: int

    @classmethod
    def from_model(cls, zone: ShippingZoneModel) -> "ShippingZoneDTO":
        return cls(
            id=zone.id,
            name=zone.name,
            countries=sorted(c.upper() for c in zone.countries or []),
            base_rate=zone.base_rate,
            per_kg_rate=zone.per_kg_rate,
            min_days=zone.min_days,
            max_days=zone.max_days,
        )


@dataclass
class QuoteResult:
    """Result of quoting a destination."""

    options: list[ShippingOption] = field(default_factory=list)
    shipping_type: ShippingType | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ZonesResult:
    """Result of listing or fetching zones."""

    zones: list[ShippingZoneDTO] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Shipping Rate Resolver
# ============================================================================


class ShippingRateResolver:
    """Prices shipping for a destination and parcel weight."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        carrier: CarrierClient,
    ) -> None:
        """Initialize resolver.

        Args:
            settings: Application settings (domestic market, couriers).
            database: Database holding the shipping zones.
            carrier: Carrier aggregator client.
        """
        self.settings = settings
        self.database = database
        self.carrier = carrier

    def shipping_type_for(self, country_code: str) -> ShippingType:
        """Domestic for the configured home market, international otherwise."""
        if country_code.strip().upper() == self.settings.domestic_country_code.upper():
            return ShippingType.DOMESTIC
        return ShippingType.INTERNATIONAL

    def _select_couriers(self, preferred_carriers: list[str] | None) -> list[str]:
        available = self.settings.available_couriers
        if not preferred_carriers:
            return available

        requested = [c.strip().lower() for c in preferred_carriers if c.strip()]
        selected = [c for c in requested if c in available]
        if requested and not selected:
            raise InvalidCheckoutError(
                f"Invalid courier(s) {requested}. Available: {', '.join(available)}"
            )
        return selected or available

    async def quote_domestic(
        self,
        destination_postal_code: str,
        parcel_weight_grams: int,
        preferred_carriers: list[str] | None = None,
        declared_value: int = DEFAULT_DECLARED_VALUE,
    ) -> list[ShippingOption]:
        """Quote domestic carrier services, cheapest first.

        Args:
            destination_postal_code: Recipient postal code.
            parcel_weight_grams: Total parcel weight.
            preferred_carriers: Restrict to these courier codes.
            declared_value: Parcel value in IDR sent to the carrier.

        Returns:
            Options ranked by cost, then by fastest delivery.

        Raises:
            UpstreamUnavailableError: Carrier unreachable or not configured.
            InvalidDestinationError: Postal code rejected.
            NoOptionsFoundError: Carrier returned no service.
        """
        postal_code = destination_postal_code.strip()
        if not postal_code.isdigit():
            raise InvalidDestinationError(destination_postal_code, "postal code must be numeric")
        if parcel_weight_grams <= 0:
            raise InvalidCheckoutError("Parcel weight must be positive")
        if not self.carrier.configured:
            raise UpstreamUnavailableError("Domestic shipping is not configured")

        couriers = self._select_couriers(preferred_carriers)
        items = [
            {
                "name": "Order Items",
                "value": declared_value,
                "weight": parcel_weight_grams,
                "quantity": 1,
            }
        ]

        try:
            rates = await self.carrier.get_rates(postal_code, items, couriers)
        except CarrierClientError as e:
            if e.rejected_destination:
                raise InvalidDestinationError(postal_code, e.message) from e
            raise UpstreamUnavailableError(e.message) from e

        options = [
            ShippingOption(
                shipping_type=ShippingType.DOMESTIC,
                carrier_code=rate.courier_code,
                service_code=rate.service_code,
                display_name=f"{rate.courier_name} {rate.service_name}".strip(),
                description=rate.description or None,
                cost=rate.price,
                eta_days_min=rate.eta_days_min,
                eta_days_max=rate.eta_days_max,
                insurance_available=rate.insurance_available,
            )
            for rate in rates
            if rate.courier_code in couriers
        ]
        if not options:
            raise NoOptionsFoundError(postal_code)

        options.sort(key=lambda o: (o.cost, o.eta_days_min, o.eta_days_max))
        return options

    async def quote_international(
        self,
        destination_country_code: str,
        parcel_weight_grams: int,
    ) -> ShippingOption:
        """Quote the zone rate for a foreign destination.

        Raises:
            UnsupportedDestinationError: No active zone covers the country.
        """
        country = destination_country_code.strip().upper()
        if parcel_weight_grams < 0:
            raise InvalidCheckoutError("Parcel weight cannot be negative")

        async with self.database.unit_of_work() as session:
            zone = await ShippingZoneRepository(session).find_for_country(country)

        if zone is None:
            raise UnsupportedDestinationError(country)

        cost = international_cost(zone.base_rate, zone.per_kg_rate, parcel_weight_grams)
        logger.debug(
            "International shipping quoted",
            country=country,
            zone=zone.name,
            weight_grams=parcel_weight_grams,
            cost=cost,
        )
        return ShippingOption(
            shipping_type=ShippingType.INTERNATIONAL,
            carrier_code=None,
            service_code=None,
            display_name=f"International Shipping - {zone.name}",
            cost=cost,
            eta_days_min=zone.min_days,
            eta_days_max=zone.max_days,
            zone_id=zone.id,
            zone_name=zone.name,
        )

    async def resolve(
        self,
        country_code: str,
        postal_code: str,
        parcel_weight_grams: int,
        preferred_carriers: list[str] | None = None,
    ) -> list[ShippingOption]:
        """Quote a destination through the domestic or international path."""
        if self.shipping_type_for(country_code) == ShippingType.DOMESTIC:
            return await self.quote_domestic(postal_code, parcel_weight_grams, preferred_carriers)
        return [await self.quote_international(country_code, parcel_weight_grams)]

    async def resolve_chosen(
        self,
        country_code: str,
        postal_code: str,
        parcel_weight_grams: int,
        carrier_code: str | None,
        service_code: str | None,
    ) -> ShippingOption:
        """Re-price the option a customer picked at checkout.

        Raises:
            InvalidCheckoutError: Domestic checkout without a carrier
                service, or with one the carrier no longer offers.
        """
        if self.shipping_type_for(country_code) == ShippingType.INTERNATIONAL:
            return await self.quote_international(country_code, parcel_weight_grams)

        if not carrier_code or not service_code:
            raise InvalidCheckoutError("Domestic shipping requires a courier and service")

        options = await self.quote_domestic(postal_code, parcel_weight_grams, [carrier_code])
        for option in options:
            if option.carrier_code == carrier_code.lower() and option.service_code == service_code.lower():
                return option
        raise InvalidCheckoutError(
            f"Shipping service {carrier_code}/{service_code} is not available for this destination"
        )

    async def quote(
        self,
        country_code: str,
        postal_code: str,
        parcel_weight_grams: int,
        preferred_carriers: list[str] | None = None,
    ) -> QuoteResult:
        """Quote a destination, returning errors as a result.

        Returns:
            QuoteResult with ranked options or the error kind.
        """
        shipping_type = self.shipping_type_for(country_code)
        try:
            options = await self.resolve(
                country_code, postal_code, parcel_weight_grams, preferred_carriers
            )
        except DomainError as e:
            logger.warning(
                "Shipping quote failed",
                country=country_code,
                postal_code=postal_code,
                error_code=e.error_code,
                error=e.message,
            )
            return QuoteResult(
                shipping_type=shipping_type,
                success=False,
                error=e.message,
                error_code=e.error_code,
                error_kind=e.error_kind,
                details=e.details,
            )
        return QuoteResult(options=options, shipping_type=shipping_type)

    async def list_zones(self) -> ZonesResult:
        """List active international zones."""
        async with self.database.unit_of_work() as session:
            zones = await ShippingZoneRepository(session).list_active()
            return ZonesResult(zones=[ShippingZoneDTO.from_model(z) for z in zones])

    async def get_zone(self, zone_id: str) -> ZonesResult:
        """Get one active zone by id."""
        async with self.database.unit_of_work() as session:
            zones = await ShippingZoneRepository(session).list_active()
            match = [ShippingZoneDTO.from_model(z) for z in zones if z.id == zone_id]

        if not match:
            error = ShippingZoneNotFoundError(zone_id)
            return ZonesResult(
                success=False,
                error=error.message,
                error_code=error.error_code,
                error_kind=error.error_kind,
                details=error.details,
            )
        return ZonesResult(zones=match)
