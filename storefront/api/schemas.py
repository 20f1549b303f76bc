"""API schemas for the storefront order API.

Pydantic models for request/response validation and serialization.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


# ============================================================================
# Common Schemas
# ============================================================================


class Currency(str, Enum):
    """Supported order currencies."""

    IDR = "IDR"
    USD = "USD"


class PriceSchema(BaseModel):
    """Price representation."""

    amount: int = Field(..., description="Amount in the smallest currency unit")
    currency: str = Field(default="IDR", description="Currency code")


class ErrorDetail(BaseModel):
    """Detailed error information."""

    field: str | None = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")


class ErrorResponse(BaseModel):
    """Standard error response.

    All API errors follow this format for consistency.
    """

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: list[ErrorDetail] | dict[str, Any] = Field(
        default_factory=list, description="Additional error details"
    )
    request_id: str | None = Field(
        default=None, description="Request ID for correlation"
    )


class PaginatedResponse(BaseModel):
    """Base paginated response."""

    total: int = Field(..., description="Total number of items")
    page: int = Field(..., description="Current page number")
    page_size: int = Field(..., description="Items per page")
    has_more: bool = Field(..., description="Whether there are more pages")


class OrderStatusEnum(str, Enum):
    """Order status values."""

    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    FAILED = "FAILED"


class ShippingTypeEnum(str, Enum):
    """Shipping type values."""

    DOMESTIC = "DOMESTIC"
    INTERNATIONAL = "INTERNATIONAL"


# ============================================================================
# Checkout Schemas
# ============================================================================


class ShippingAddressSchema(BaseModel):
    """Recipient and destination of an order."""

    recipient_name: str = Field(..., min_length=1, max_length=255)
    recipient_phone: str = Field(..., min_length=1, max_length=50)
    email: str | None = Field(default=None, max_length=255)
    address: str = Field(..., min_length=1, description="Street address")
    city: str = Field(..., min_length=1, max_length=100)
    province: str | None = Field(default=None, max_length=100)
    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    postal_code: str = Field(..., min_length=1, max_length=20)
    notes: str | None = Field(default=None, max_length=500)


class OrderCreateRequest(BaseModel):
    """Request to place an order from the caller's cart."""

    shipping_address: ShippingAddressSchema
    carrier_code: str | None = Field(
        default=None, description="Courier code (domestic shipping only)"
    )
    service_code: str | None = Field(
        default=None, description="Courier service code (domestic shipping only)"
    )
    currency: Currency = Field(default=Currency.IDR, description="Order currency")
    payment_method: str | None = Field(default=None, description="Preferred payment method")


# ============================================================================
# Order Schemas
# ============================================================================


class OrderItemSchema(BaseModel):
    """Order line item."""

    id: str
    product_id: str
    variant_id: str
    product_name: str
    variant_name: str
    sku: str
    quantity: int
    unit_price: PriceSchema
    unit_discount: PriceSchema
    line_subtotal: PriceSchema
    line_discount: PriceSchema


class OrderStatusHistorySchema(BaseModel):
    """Status history entry."""

    from_status: str | None
    to_status: str
    reason: str | None = None
    actor: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None


class OrderResponse(BaseModel):
    """Full order details."""

    id: str
    order_number: str
    user_id: str
    status: OrderStatusEnum
    currency: str
    exchange_rate: Decimal | None = None
    subtotal: PriceSchema
    discount: PriceSchema
    tax: PriceSchema
    shipping_cost: PriceSchema
    total: PriceSchema
    shipping_type: ShippingTypeEnum
    shipping_method: str
    shipping_address: ShippingAddressSchema
    parcel_weight_grams: int
    carrier_courier: str | None = None
    carrier_service: str | None = None
    carrier_order_id: str | None = None
    tracking_number: str | None = None
    shipping_zone_id: str | None = None
    payment_method: str | None = None
    payment_provider: str | None = None
    invoice_number: str | None = None
    items: list[OrderItemSchema]
    status_history: list[OrderStatusHistorySchema] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None


class OrderSummarySchema(BaseModel):
    """Order summary for lists."""

    id: str
    order_number: str
    status: OrderStatusEnum
    total: PriceSchema
    item_count: int
    shipping_type: ShippingTypeEnum
    tracking_number: str | None = None
    created_at: datetime | None = None


class OrdersListResponse(PaginatedResponse):
    """Paginated list of orders."""

    items: list[OrderSummarySchema] = Field(..., description="List of orders")


class OrderCancelRequest(BaseModel):
    """Request to cancel an order."""

    reason: str | None = Field(default=None, max_length=500, description="Cancellation reason")


class OrderStatusUpdateRequest(BaseModel):
    """Admin request to move an order to another status."""

    status: OrderStatusEnum = Field(..., description="Target status")
    tracking_number: str | None = Field(
        default=None, max_length=100, description="Required when shipping internationally"
    )
    reason: str | None = Field(default=None, max_length=500)


class TrackingResponse(BaseModel):
    """Shipment tracking of an order."""

    order_number: str
    status: OrderStatusEnum
    shipping_type: ShippingTypeEnum
    shipping_method: str
    courier: str | None = None
    tracking_number: str | None = None
    carrier_order_id: str | None = None
    carrier_status: str | None = None
    tracking_link: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    history: list[dict[str, Any]] = Field(default_factory=list)


class SweepResponse(BaseModel):
    """Outcome of a manually triggered sweep."""

    sweep: str
    matched: int
    succeeded: int
    skipped: int
    failed: int
    errors: dict[str, str] = Field(default_factory=dict)


# ============================================================================
# Shipping Schemas
# ============================================================================


class ShippingQuoteRequest(BaseModel):
    """Request for shipping options to a destination."""

    country: str = Field(..., min_length=2, max_length=2, description="ISO 3166-1 alpha-2")
    postal_code: str = Field(default="", max_length=20)
    weight_grams: int = Field(..., ge=1, description="Parcel weight in grams")
    couriers: list[str] | None = Field(
        default=None, description="Restrict domestic quotes to these couriers"
    )


class ShippingOptionSchema(BaseModel):
    """One shipping option."""

    shipping_type: ShippingTypeEnum
    carrier_code: str | None = None
    service_code: str | None = None
    display_name: str
    description: str | None = None
    cost: PriceSchema
    eta_days_min: int
    eta_days_max: int
    insurance_available: bool = False
    zone_id: str | None = None
    zone_name: str | None = None


class ShippingQuoteResponse(BaseModel):
    """Ranked shipping options."""

    shipping_type: ShippingTypeEnum
    options: list[ShippingOptionSchema]


class ShippingZoneSchema(BaseModel):
    """International shipping zone."""

    id: str
    name: str
    countries: list[str]
    base_rate: PriceSchema
    per_kg_rate: PriceSchema
    min_days: int
    max_days: int


class ShippingZonesResponse(BaseModel):
    """Active shipping zones."""

    zones: list[ShippingZoneSchema]


# ============================================================================
# Webhook Schemas
# ============================================================================


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned for every webhook delivery."""

    success: bool = Field(..., description="False only if an applied change failed")
    status: str = Field(..., description="processed, ignored or failed")
    message: str = Field(..., description="Status message")
    order_number: str | None = None
