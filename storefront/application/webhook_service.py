"""Webhook processing service.

Handles asynchronous status pushes from:
- The carrier aggregator (shipment progress)
- The payment gateway (Midtrans-style transaction notifications)

Deliveries are at-least-once and unordered. Nothing here raises to the
transport: unknown orders, unknown statuses, repeated or regressive
statuses and illegal transitions are logged and discarded, and the
caller always acknowledges the delivery.
"""

import hashlib
import hmac
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog

from storefront.application.order_service import OrderService, UpdateOrderResult
from storefront.domain.exceptions import ErrorKind
from storefront.domain.state_machines import OrderStatus

logger = structlog.get_logger()


# Carrier shipment statuses mapped onto order statuses.
CARRIER_STATUS_MAP: dict[str, OrderStatus] = {
    "confirmed": OrderStatus.SHIPPED,
    "allocated": OrderStatus.SHIPPED,
    "picking_up": OrderStatus.SHIPPED,
    "picked": OrderStatus.SHIPPED,
    "dropping_off": OrderStatus.SHIPPED,
    "delivered": OrderStatus.DELIVERED,
    "cancelled": OrderStatus.CANCELLED,
    "rejected": OrderStatus.CANCELLED,
    "courier_not_found": OrderStatus.CANCELLED,
    "returned": OrderStatus.CANCELLED,
}


class EventStatus(str, Enum):
    """Outcome of a webhook delivery."""

    PROCESSED = "processed"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class WebhookResult:
    """Result of webhook processing.

    Attributes:
        success: False only when an applied transition failed unexpectedly.
        status: Final event status.
        message: Status message.
        order_number: Order the event resolved to, if any.
        target_status: Mapped order status, if any.
    """

    success: bool
    status: EventStatus
    message: str
    order_number: str | None = None
    target_status: OrderStatus | None = None


def _ignored(
    message: str,
    order_number: str | None = None,
    target_status: OrderStatus | None = None,
) -> WebhookResult:
    logger.info(
        "Webhook event ignored",
        reason=message,
        order_number=order_number,
        target_status=target_status.value if target_status else None,
    )
    return WebhookResult(
        success=True,
        status=EventStatus.IGNORED,
        message=message,
        order_number=order_number,
        target_status=target_status,
    )


def _from_transition(
    result: UpdateOrderResult,
    order_number: str,
    target: OrderStatus,
) -> WebhookResult:
    if result.success:
        return WebhookResult(
            success=True,
            status=EventStatus.PROCESSED,
            message=f"Order moved to {target.value}",
            order_number=order_number,
            target_status=target,
        )
    if result.error_kind in (ErrorKind.CONFLICT, ErrorKind.NOT_FOUND, ErrorKind.VALIDATION):
        return _ignored(
            result.error or "Transition rejected",
            order_number=order_number,
            target_status=target,
        )
    logger.error(
        "Webhook transition failed",
        order_number=order_number,
        target_status=target.value,
        error_code=result.error_code,
        error=result.error,
    )
    return WebhookResult(
        success=False,
        status=EventStatus.FAILED,
        message=result.error or "Transition failed",
        order_number=order_number,
        target_status=target,
    )


# ============================================================================
# Carrier Webhooks
# ============================================================================


class CarrierWebhookService:
    """Applies carrier shipment status pushes to orders."""

    def __init__(self, orders: OrderService) -> None:
        self.orders = orders

    async def handle_carrier_event(
        self,
        external_order_id: str | None,
        external_status: str | None,
        raw_payload: dict[str, Any] | None = None,
    ) -> WebhookResult:
        """Process a carrier status push.

        Args:
            external_order_id: The carrier's order id.
            external_status: The carrier's shipment status.
            raw_payload: Full webhook body (used for the tracking number).

        Returns:
            WebhookResult describing what happened.
        """
        raw_payload = raw_payload or {}
        logger.info(
            "Processing carrier webhook",
            carrier_order_id=external_order_id,
            status=external_status,
        )

        if not external_order_id:
            return _ignored("Missing carrier order id")

        order = await self.orders.find_by_carrier_order_id(external_order_id)
        if order is None:
            logger.warning("Carrier webhook for unknown order", carrier_order_id=external_order_id)
            return _ignored("Unknown carrier order")

        courier = raw_payload.get("courier") or {}
        tracking_number = courier.get("tracking_id") or courier.get("waybill_id")
        if tracking_number and tracking_number != order.tracking_number:
            await self.orders.record_tracking_number(order.order_number, tracking_number)

        target = CARRIER_STATUS_MAP.get((external_status or "").strip().lower())
        if target is None:
            logger.warning(
                "Unknown carrier status",
                status=external_status,
                order_number=order.order_number,
            )
            return _ignored("Unknown carrier status", order_number=order.order_number)

        if target == order.status:
            return _ignored(
                "Order already in this status",
                order_number=order.order_number,
                target_status=target,
            )
        if order.status.is_regression_to(target):
            return _ignored(
                f"Stale status, order is already {order.status.value}",
                order_number=order.order_number,
                target_status=target,
            )
        if not order.status.can_transition_to(target):
            return _ignored(
                f"Transition from {order.status.value} not allowed",
                order_number=order.order_number,
                target_status=target,
            )

        if target == OrderStatus.SHIPPED:
            result = await self.orders.mark_shipped(
                order.order_number, tracking_number=tracking_number, actor="carrier"
            )
        elif target == OrderStatus.DELIVERED:
            result = await self.orders.mark_delivered(order.order_number, actor="carrier")
        else:
            result = await self.orders.cancel_order(
                order.order_number,
                reason=f"Carrier reported {external_status}",
                actor="carrier",
            )

        return _from_transition(result, order.order_number, target)


# ============================================================================
# Payment Webhooks
# ============================================================================


class PaymentSignatureVerifier:
    """Verifies payment gateway notification signatures.

    signature = SHA-512(order_id + status_code + gross_amount + server_key)
    """

    def __init__(self, server_key: str) -> None:
        self.server_key = server_key

    def compute(self, order_id: str, status_code: str, gross_amount: str) -> str:
        """Expected signature for a notification."""
        raw = f"{order_id}{status_code}{gross_amount}{self.server_key}"
        return hashlib.sha512(raw.encode()).hexdigest()

    def verify(self, notification: dict[str, Any]) -> bool:
        """Check the notification's ``signature_key``.

        Returns:
            True if signature is valid.
        """
        order_id = notification.get("order_id")
        status_code = notification.get("status_code")
        gross_amount = notification.get("gross_amount")
        signature = notification.get("signature_key")

        if not (order_id and status_code and gross_amount and signature):
            logger.warning(
                "Payment notification missing signature fields",
                order_id=order_id,
                has_status_code=bool(status_code),
                has_gross_amount=bool(gross_amount),
                has_signature=bool(signature),
            )
            return False

        expected = self.compute(str(order_id), str(status_code), str(gross_amount))
        if not hmac.compare_digest(expected, str(signature)):
            logger.warning("Payment notification signature mismatch", order_id=order_id)
            return False
        return True


def map_payment_status(transaction_status: str | None, fraud_status: str | None) -> OrderStatus | None:
    """Map a gateway transaction status onto an order status.

    Returns:
        Target status, or None when the notification changes nothing.
    """
    transaction_status = (transaction_status or "").lower()
    fraud_status = (fraud_status or "").lower()

    if transaction_status == "capture":
        if fraud_status == "accept":
            return OrderStatus.PAID
        if fraud_status == "deny":
            return OrderStatus.FAILED
        return None
    if transaction_status == "settlement":
        return OrderStatus.PAID
    if transaction_status == "deny":
        return OrderStatus.FAILED
    if transaction_status in ("cancel", "expire"):
        return OrderStatus.CANCELLED
    return None


class PaymentWebhookService:
    """Applies payment gateway notifications to orders."""

    PROVIDER = "midtrans"

    def __init__(
        self,
        orders: OrderService,
        verifier: PaymentSignatureVerifier,
        verify_signatures: bool,
    ) -> None:
        """Initialize payment webhook service.

        Args:
            orders: Order service.
            verifier: Signature verifier.
            verify_signatures: Reject unsigned notifications (production).
        """
        self.orders = orders
        self.verifier = verifier
        self.verify_signatures = verify_signatures

    async def handle_payment_notification(self, notification: dict[str, Any]) -> WebhookResult:
        """Process a payment notification.

        Args:
            notification: Notification body.

        Returns:
            WebhookResult describing what happened.
        """
        order_number = notification.get("order_id")
        transaction_status = notification.get("transaction_status")
        fraud_status = notification.get("fraud_status")

        logger.info(
            "Processing payment notification",
            order_number=order_number,
            transaction_status=transaction_status,
            fraud_status=fraud_status,
        )

        if self.verify_signatures and not self.verifier.verify(notification):
            return _ignored("Invalid signature", order_number=order_number)
        if not order_number:
            return _ignored("Missing order id")

        target = map_payment_status(transaction_status, fraud_status)
        if target is None:
            return _ignored(
                f"No order change for transaction status {transaction_status}",
                order_number=order_number,
            )

        current = await self.orders.get_order(order_number)
        if not current.success or current.order is None:
            logger.warning("Payment notification for unknown order", order_number=order_number)
            return _ignored("Unknown order", order_number=order_number)

        status = current.order.status
        if status == target:
            return _ignored("Order already in this status", order_number=order_number, target_status=target)
        if not status.can_transition_to(target):
            return _ignored(
                f"Transition from {status.value} not allowed",
                order_number=order_number,
                target_status=target,
            )

        if target == OrderStatus.PAID:
            result = await self.orders.mark_paid(
                order_number,
                actor="payment",
                payment_provider=self.PROVIDER,
                payment_id=notification.get("transaction_id"),
                payment_method=notification.get("payment_type"),
            )
        elif target == OrderStatus.FAILED:
            result = await self.orders.mark_failed(
                order_number,
                reason=f"Payment {transaction_status}",
                actor="payment",
            )
        else:
            result = await self.orders.cancel_order(
                order_number,
                reason=f"Payment {transaction_status}",
                actor="payment",
            )

        return _from_transition(result, order_number, target)
