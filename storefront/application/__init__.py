"""Application layer module.

Contains application services (use cases) that orchestrate
domain logic and infrastructure.
"""

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

__all__ = [
    "CarrierWebhookService",
    "InvoiceService",
    "LoggingNotificationSink",
    "NotificationSink",
    "OrderService",
    "OrderSweeper",
    "PaymentSignatureVerifier",
    "PaymentWebhookService",
    "ShippingRateResolver",
    "SweepScheduler",
]
