"""Service wiring and FastAPI dependencies.

One Container is built per application from a Settings instance and
kept on ``app.state``. Route handlers receive services through the
dependency functions below.
"""

from dataclasses import dataclass
from typing import Annotated

import httpx
from fastapi import Depends, Header, HTTPException, Request, status

from storefront.application.notifications import (
    InvoiceService,
    LoggingNotificationSink,
    NotificationSink,
)
from storefront.application.order_service import OrderService
from storefront.application.shipping_service import ShippingRateResolver
from storefront.application.sweep_service import OrderSweeper, SweepScheduler
from storefront.application.webhook_service import (
    CarrierWebhookService,
    PaymentSignatureVerifier,
    PaymentWebhookService,
)
from storefront.infrastructure.carrier_client import CarrierClient
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database


@dataclass
class Container:
    """Everything the HTTP layer and the scheduler need."""

    settings: Settings
    database: Database
    carrier: CarrierClient
    shipping: ShippingRateResolver
    invoices: InvoiceService
    notifications: NotificationSink
    orders: OrderService
    carrier_webhooks: CarrierWebhookService
    payment_webhooks: PaymentWebhookService
    sweeper: OrderSweeper
    scheduler: SweepScheduler

    async def close(self) -> None:
        """Release outbound clients and pooled connections."""
        await self.carrier.close()
        await self.database.dispose()


def build_container(
    settings: Settings,
    database: Database | None = None,
    carrier_transport: httpx.AsyncBaseTransport | None = None,
    notifications: NotificationSink | None = None,
) -> Container:
    """Wire services for one application instance.

    Args:
        settings: Application settings.
        database: Existing database (tests share one with fixtures).
        carrier_transport: Custom httpx transport for the carrier client.
        notifications: Notification sink; logs only when omitted.

    Returns:
        Container with every service constructed.
    """
    database = database or Database(settings.database_url, echo=settings.debug)
    carrier = CarrierClient(
        api_key=settings.biteship_api_key,
        base_url=settings.biteship_base_url,
        origin_postal_code=settings.warehouse_postal_code,
        timeout=settings.carrier_timeout_seconds,
        transport=carrier_transport,
    )
    shipping = ShippingRateResolver(settings, database, carrier)
    invoices = InvoiceService(database)
    notifications = notifications or LoggingNotificationSink()
    orders = OrderService(settings, database, shipping, carrier, invoices, notifications)
    sweeper = OrderSweeper(settings, database, orders)

    return Container(
        settings=settings,
        database=database,
        carrier=carrier,
        shipping=shipping,
        invoices=invoices,
        notifications=notifications,
        orders=orders,
        carrier_webhooks=CarrierWebhookService(orders),
        payment_webhooks=PaymentWebhookService(
            orders,
            PaymentSignatureVerifier(settings.midtrans_server_key),
            verify_signatures=settings.midtrans_is_production,
        ),
        sweeper=sweeper,
        scheduler=SweepScheduler(
            sweeper,
            expiry_interval_seconds=settings.expiry_interval_seconds,
            completion_interval_seconds=settings.completion_interval_seconds,
        ),
    )


# ============================================================================
# Dependencies
# ============================================================================


def get_container(request: Request) -> Container:
    """Get the application's service container."""
    return request.app.state.container


def get_order_service(
    container: Annotated[Container, Depends(get_container)],
) -> OrderService:
    """Get order service."""
    return container.orders


def get_shipping_resolver(
    container: Annotated[Container, Depends(get_container)],
) -> ShippingRateResolver:
    """Get shipping rate resolver."""
    return container.shipping


def get_user_id(
    x_user_id: Annotated[str | None, Header()] = None,
) -> str:
    """Customer id forwarded by the upstream gateway.

    Raises:
        HTTPException: If the header is missing.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHORIZED",
                "message": "Missing X-User-Id header",
            },
        )
    return x_user_id.strip()
