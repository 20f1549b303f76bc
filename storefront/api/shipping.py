"""Shipping API endpoints.

- POST /shipping/quote - ranked shipping options for a destination
- GET /shipping/zones - active international zones
- GET /shipping/zones/{zone_id} - one zone
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from storefront.api.dependencies import get_shipping_resolver
from storefront.api.errors import http_error
from storefront.api.schemas import (
    ErrorResponse,
    PriceSchema,
    ShippingOptionSchema,
    ShippingQuoteRequest,
    ShippingQuoteResponse,
    ShippingTypeEnum,
    ShippingZoneSchema,
    ShippingZonesResponse,
)
from storefront.application.shipping_service import (
    ShippingOption,
    ShippingRateResolver,
    ShippingZoneDTO,
)

router = APIRouter(prefix="/shipping", tags=["Shipping"])


def option_to_schema(option: ShippingOption) -> ShippingOptionSchema:
    """Convert ShippingOption to ShippingOptionSchema."""
    return ShippingOptionSchema(
        shipping_type=ShippingTypeEnum(option.shipping_type.value),
        carrier_code=option.carrier_code,
        service_code=option.service_code,
        display_name=option.display_name,
        description=option.description,
        cost=PriceSchema(amount=option.cost, currency=option.currency),
        eta_days_min=option.eta_days_min,
        eta_days_max=option.eta_days_max,
        insurance_available=option.insurance_available,
        zone_id=option.zone_id,
        zone_name=option.zone_name,
    )


def zone_to_schema(zone: ShippingZoneDTO) -> ShippingZoneSchema:
    """Convert ShippingZoneDTO to ShippingZoneSchema."""
    return ShippingZoneSchema(
        id=zone.id,
        name=zone.name,
        countries=zone.countries,
        base_rate=PriceSchema(amount=zone.base_rate, currency="IDR"),
        per_kg_rate=PriceSchema(amount=zone.per_kg_rate, currency="IDR"),
        min_days=zone.min_days,
        max_days=zone.max_days,
    )


@router.post(
    "/quote",
    response_model=ShippingQuoteResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Quote shipping",
    description="Domestic destinations are priced by the carrier, others by zone. Cheapest first.",
)
async def quote_shipping(
    request: ShippingQuoteRequest,
    resolver: Annotated[ShippingRateResolver, Depends(get_shipping_resolver)],
) -> ShippingQuoteResponse:
    """Quote shipping options for a parcel.

    Raises:
        HTTPException: If the destination cannot be served.
    """
    result = await resolver.quote(
        country_code=request.country,
        postal_code=request.postal_code,
        parcel_weight_grams=request.weight_grams,
        preferred_carriers=request.couriers,
    )
    if not result.success:
        raise http_error(result, "SHIPPING_QUOTE_FAILED", "Failed to quote shipping")

    return ShippingQuoteResponse(
        shipping_type=ShippingTypeEnum(result.shipping_type.value),
        options=[option_to_schema(option) for option in result.options],
    )


@router.get(
    "/zones",
    response_model=ShippingZonesResponse,
    summary="List shipping zones",
)
async def list_zones(
    resolver: Annotated[ShippingRateResolver, Depends(get_shipping_resolver)],
) -> ShippingZonesResponse:
    result = await resolver.list_zones()
    return ShippingZonesResponse(zones=[zone_to_schema(zone) for zone in result.zones])


@router.get(
    "/zones/{zone_id}",
    response_model=ShippingZoneSchema,
    responses={404: {"model": ErrorResponse}},
    summary="Get shipping zone",
)
async def get_zone(
    zone_id: str,
    resolver: Annotated[ShippingRateResolver, Depends(get_shipping_resolver)],
) -> ShippingZoneSchema:
    result = await resolver.get_zone(zone_id)
    if not result.success or not result.zones:
        raise http_error(result, "SHIPPING_ZONE_NOT_FOUND", f"Shipping zone not found: {zone_id}")

    return zone_to_schema(result.zones[0])
