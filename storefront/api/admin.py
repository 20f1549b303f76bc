"""Admin API endpoints.

All routes require the admin API key (see AdminApiKeyMiddleware).

- GET /admin/orders - list all orders with filters
- GET /admin/orders/paid-without-tracking - paid domestic orders lacking a carrier order
- GET /admin/orders/{order_number} - order details
- PATCH /admin/orders/{order_number}/status - move an order to another status
- POST /admin/orders/{order_number}/retry-carrier - retry carrier booking
- POST /admin/cron/cancel-expired - run the expiry sweep now
- POST /admin/cron/auto-complete - run the completion sweep now
"""

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, Query

from storefront.api.dependencies import Container, get_container, get_order_service
from storefront.api.errors import http_error
from storefront.api.orders import order_to_response, orders_to_list_response
from storefront.api.schemas import (
    ErrorResponse,
    OrderResponse,
    OrdersListResponse,
    OrderStatusEnum,
    OrderStatusUpdateRequest,
    ShippingTypeEnum,
    SweepResponse,
)
from storefront.application.order_service import OrderService
from storefront.application.sweep_service import SweepResult
from storefront.domain.state_machines import OrderStatus, ShippingType

logger = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["Admin"])


def sweep_to_response(result: SweepResult) -> SweepResponse:
    """Convert SweepResult to SweepResponse."""
    return SweepResponse(
        sweep=result.sweep,
        matched=result.matched,
        succeeded=result.succeeded,
        skipped=result.skipped,
        failed=result.failed,
        errors=result.errors,
    )


@router.get(
    "/orders",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List all orders",
)
async def list_orders(
    service: Annotated[OrderService, Depends(get_order_service)],
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int = Query(default=20, ge=1, le=100, description="Items per page"),
    status: OrderStatusEnum | None = Query(default=None, description="Filter by status"),
    shipping_type: ShippingTypeEnum | None = Query(default=None, description="Filter by shipping type"),
    user_id: str | None = Query(default=None, description="Filter by customer"),
) -> OrdersListResponse:
    """List orders across all customers, newest first."""
    result = await service.list_orders(
        user_id=user_id,
        status=OrderStatus(status.value) if status else None,
        shipping_type=ShippingType(shipping_type.value) if shipping_type else None,
        page=page,
        page_size=page_size,
    )
    return orders_to_list_response(result)


@router.get(
    "/orders/paid-without-tracking",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Paid orders without a carrier booking",
    description="Domestic orders past payment whose carrier order was never created.",
)
async def list_paid_without_tracking(
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrdersListResponse:
    result = await service.list_paid_without_tracking()
    return orders_to_list_response(result)


@router.get(
    "/orders/{order_number}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get any order",
)
async def get_order(
    order_number: str,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    result = await service.get_order(order_number)
    if not result.success or not result.order:
        raise http_error(result, "ORDER_NOT_FOUND", f"Order not found: {order_number}")

    return order_to_response(result.order)


@router.patch(
    "/orders/{order_number}/status",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Update order status",
    description="Move an order to another status. Illegal moves are rejected with 409.",
)
async def update_order_status(
    order_number: str,
    request: OrderStatusUpdateRequest,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    """Apply an admin status change.

    Shipping an international order needs a tracking number; shipping a
    domestic order books the carrier shipment if none exists yet.

    Raises:
        HTTPException: If the order is missing or the move is not allowed.
    """
    result = await service.update_status(
        order_number,
        OrderStatus(request.status.value),
        actor="admin",
        tracking_number=request.tracking_number,
        reason=request.reason,
    )
    if not result.success or not result.order:
        raise http_error(result, "STATUS_UPDATE_FAILED", "Failed to update order status")

    return order_to_response(result.order)


@router.post(
    "/orders/{order_number}/retry-carrier",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        502: {"model": ErrorResponse},
    },
    summary="Retry carrier booking",
)
async def retry_carrier_order(
    order_number: str,
    service: Annotated[OrderService, Depends(get_order_service)],
) -> OrderResponse:
    result = await service.retry_carrier_order(order_number)
    if not result.success or not result.order:
        raise http_error(result, "CARRIER_RETRY_FAILED", "Failed to book carrier order")

    return order_to_response(result.order)


@router.post(
    "/cron/cancel-expired",
    response_model=SweepResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Cancel expired unpaid orders now",
)
async def run_expiry_sweep(
    container: Annotated[Container, Depends(get_container)],
) -> SweepResponse:
    logger.info("Expiry sweep triggered manually")
    return sweep_to_response(await container.sweeper.cancel_expired_orders())


@router.post(
    "/cron/auto-complete",
    response_model=SweepResponse,
    responses={401: {"model": ErrorResponse}},
    summary="Complete delivered orders now",
)
async def run_completion_sweep(
    container: Annotated[Container, Depends(get_container)],
) -> SweepResponse:
    logger.info("Completion sweep triggered manually")
    return sweep_to_response(await container.sweeper.complete_delivered_orders())
