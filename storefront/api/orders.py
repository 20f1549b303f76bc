"""Customer order API endpoints.

Provides endpoints for the caller's own orders:
- POST /orders - place an order from the cart
- GET /orders - list orders (paginated)
- GET /orders/{order_number} - order details and status
- POST /orders/{order_number}/cancel - cancel an unpaid order
- GET /orders/{order_number}/tracking - shipment tracking
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query, status

from storefront.api.dependencies import get_order_service, get_user_id
from storefront.api.errors import http_error
from storefront.api.schemas import (
    ErrorResponse,
    OrderCancelRequest,
    OrderCreateRequest,
    OrderItemSchema,
    OrderResponse,
    OrdersListResponse,
    OrderStatusEnum,
    OrderStatusHistorySchema,
    OrderSummarySchema,
    PriceSchema,
    ShippingAddressSchema,
    ShippingTypeEnum,
    TrackingResponse,
)
from storefront.application.order_service import (
    CheckoutInput,
    ListOrdersResult,
    OrderDTO,
    OrderService,
    TrackingInfo,
)
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import ShippingAddress

logger = structlog.get_logger()

router = APIRouter(prefix="/orders", tags=["Orders"])


# ============================================================================
# Converters
# ============================================================================


def order_to_response(order: OrderDTO) -> OrderResponse:
    """Convert OrderDTO to OrderResponse."""
    currency = order.currency

    def price(amount: int) -> PriceSchema:
        return PriceSchema(amount=amount, currency=currency)

    items = [
        OrderItemSchema(
            id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            product_name=item.product_name,
            variant_name=item.variant_name,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=price(item.unit_price),
            unit_discount=price(item.unit_discount),
            line_subtotal=price(item.line_subtotal),
            line_discount=price(item.line_discount),
        )
        for item in order.items
    ]

    address = order.shipping_address
    shipping_address = ShippingAddressSchema(
        recipient_name=address.recipient_name,
        recipient_phone=address.recipient_phone,
        email=address.email,
        address=address.address,
        city=address.city,
        province=address.province,
        country=address.country,
        postal_code=address.postal_code,
        notes=address.notes,
    )

    status_history = [
        OrderStatusHistorySchema(
            from_status=entry.from_status,
            to_status=entry.to_status,
            reason=entry.reason,
            actor=entry.actor,
            metadata=entry.metadata,
            created_at=entry.created_at,
        )
        for entry in order.status_history
    ]

    return OrderResponse(
        id=order.id,
        order_number=order.order_number,
        user_id=order.user_id,
        status=OrderStatusEnum(order.status.value),
        currency=currency,
        exchange_rate=order.exchange_rate,
        subtotal=price(order.subtotal),
        discount=price(order.discount),
        tax=price(order.tax),
        shipping_cost=price(order.shipping_cost),
        total=price(order.total),
        shipping_type=ShippingTypeEnum(order.shipping_type.value),
        shipping_method=order.shipping_method,
        shipping_address=shipping_address,
        parcel_weight_grams=order.parcel_weight_grams,
        carrier_courier=order.carrier_courier,
        carrier_service=order.carrier_service,
        carrier_order_id=order.carrier_order_id,
        tracking_number=order.tracking_number,
        shipping_zone_id=order.shipping_zone_id,
        payment_method=order.payment_method,
        payment_provider=order.payment_provider,
        invoice_number=order.invoice_number,
        items=items,
        status_history=status_history,
        created_at=order.created_at,
        updated_at=order.updated_at,
        paid_at=order.paid_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        completed_at=order.completed_at,
        canceled_at=order.canceled_at,
    )


def order_to_summary(order: OrderDTO) -> OrderSummarySchema:
    """Convert OrderDTO to OrderSummarySchema."""
    return OrderSummarySchema(
        id=order.id,
        order_number=order.order_number,
        status=OrderStatusEnum(order.status.value),
        total=PriceSchema(amount=order.total, currency=order.currency),
        item_count=sum(item.quantity for item in order.items),
        shipping_type=ShippingTypeEnum(order.shipping_type.value),
        tracking_number=order.tracking_number,
        created_at=order.created_at,
    )


def orders_to_list_response(result: ListOrdersResult) -> OrdersListResponse:
    """Convert ListOrdersResult to a paginated response."""
    return OrdersListResponse(
        items=[order_to_summary(order) for order in result.orders],
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        has_more=(result.page * result.page_size) < result.total,
    )


def tracking_to_response(tracking: TrackingInfo) -> TrackingResponse:
    """Convert TrackingInfo to TrackingResponse."""
    return TrackingResponse(
        order_number=tracking.order_number,
        status=OrderStatusEnum(tracking.status.value),
        shipping_type=ShippingTypeEnum(tracking.shipping_type.value),
        shipping_method=tracking.shipping_method,
        courier=tracking.courier,
        tracking_number=tracking.tracking_number,
        carrier_order_id=tracking.carrier_order_id,
        carrier_status=tracking.carrier_status,
        tracking_link=tracking.tracking_link,
        shipped_at=tracking.shipped_at,
        delivered_at=tracking.delivered_at,
        history=tracking.history,
    )


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Place order",
    description="Create a PENDING order from the caller's cart, reserving stock and clearing the cart.",
)
async def create_order(
    request: OrderCreateRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Place an order from the caller's cart.

    Raises:
        HTTPException: If the cart, destination or stock rule fails.
    """
    address = request.shipping_address
    checkout = CheckoutInput(
        shipping_address=ShippingAddress(
            recipient_name=address.recipient_name,
            recipient_phone=address.recipient_phone,
            email=address.email,
            address=address.address,
            city=address.city,
            province=address.province,
            country=address.country,
            postal_code=address.postal_code,
            notes=address.notes,
        ),
        carrier_code=request.carrier_code,
        service_code=request.service_code,
        currency=request.currency.value,
        payment_method=request.payment_method,
    )

    result = await service.create_order(user_id, checkout)
    if not result.success or not result.order:
        raise http_error(result, "ORDER_CREATE_FAILED", "Failed to create order")

    return order_to_response(result.order)


@router.get(
    "",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List my orders",
)
async def list_orders(
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[OrderService, Depends(get_order_service)],
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status: OrderStatusEnum | None = Query(default=None, description="Filter by status"),
) -> OrdersListResponse:
    """List the caller's orders, newest first."""
    result = await service.list_orders(
        user_id=user_id,
        status=OrderStatus(status.value) if status else None,
        page=page,
        page_size=page_size,
    )
    return orders_to_list_response(result)


@router.get(
    "/{order_number}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
)
async def get_order(
    order_number: str,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Get one of the caller's orders.

    Raises:
        HTTPException: If the order does not exist or belongs to someone else.
    """
    result = await service.get_order(order_number, user_id=user_id)
    if not result.success or not result.order:
        raise http_error(result, "ORDER_NOT_FOUND", f"Order not found: {order_number}")

    return order_to_response(result.order)


@router.post(
    "/{order_number}/cancel",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Cancel order",
    description="Cancel an order that is still awaiting payment. Reserved stock is returned.",
)
async def cancel_order(
    order_number: str,
    request: OrderCancelRequest,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Cancel one of the caller's PENDING orders.

    Raises:
        HTTPException: If the order is not found or already past payment.
    """
    result = await service.cancel_by_customer(order_number, user_id, reason=request.reason)
    if not result.success or not result.order:
        raise http_error(result, "CANCEL_FAILED", "Failed to cancel order")

    return order_to_response(result.order)


@router.get(
    "/{order_number}/tracking",
    response_model=TrackingResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Track shipment",
)
async def get_tracking(
    order_number: str,
    user_id: Annotated[str, Depends(get_user_id)],
    service: Annotated[OrderService, Depends(get_order_service)],
) -> TrackingResponse:
    """Tracking of one of the caller's orders."""
    result = await service.get_tracking(order_number, user_id=user_id)
    if not result.success or not result.tracking:
        raise http_error(result, "ORDER_NOT_FOUND", f"Order not found: {order_number}")

    return tracking_to_response(result.tracking)
