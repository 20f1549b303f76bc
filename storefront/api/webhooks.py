"""Webhook receiver endpoints.

Provides:
- POST /webhooks/carrier - shipment status pushes from the carrier aggregator
- POST /webhooks/payment - transaction notifications from the payment gateway

Both always answer 200 so the sender never retries. Bodies that fail
to parse, unknown orders and rejected transitions are logged and
acknowledged.
"""

import json
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, Depends, Request

from storefront.api.dependencies import Container, get_container
from storefront.api.schemas import WebhookAckResponse
from storefront.application.webhook_service import EventStatus, WebhookResult

logger = structlog.get_logger()

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


async def _read_json(request: Request) -> dict[str, Any] | None:
    body = await request.body()
    if not body.strip():
        return {}
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


def _ack(result: WebhookResult) -> WebhookAckResponse:
    return WebhookAckResponse(
        success=result.success,
        status=result.status.value,
        message=result.message,
        order_number=result.order_number,
    )


def _failed_ack(message: str) -> WebhookAckResponse:
    return WebhookAckResponse(success=False, status=EventStatus.FAILED.value, message=message)


@router.post(
    "/carrier",
    response_model=WebhookAckResponse,
    summary="Receive carrier webhook",
)
async def receive_carrier_webhook(
    request: Request,
    container: Annotated[Container, Depends(get_container)],
) -> WebhookAckResponse:
    """Apply a carrier shipment status push.

    An empty body is the carrier's reachability ping.
    """
    payload = await _read_json(request)
    if payload is None:
        logger.warning("Carrier webhook body is not a JSON object")
        return WebhookAckResponse(
            success=True, status=EventStatus.IGNORED.value, message="Malformed payload"
        )
    if not payload:
        logger.info("Carrier webhook ping received")
        return WebhookAckResponse(success=True, status=EventStatus.IGNORED.value, message="OK")

    try:
        result = await container.carrier_webhooks.handle_carrier_event(
            external_order_id=payload.get("order_id"),
            external_status=payload.get("status"),
            raw_payload=payload,
        )
    except Exception as e:
        logger.exception(
            "Carrier webhook processing failed",
            carrier_order_id=payload.get("order_id"),
            error=str(e),
        )
        return _failed_ack("Processing failed")

    return _ack(result)


@router.post(
    "/payment",
    response_model=WebhookAckResponse,
    summary="Receive payment webhook",
)
async def receive_payment_webhook(
    request: Request,
    container: Annotated[Container, Depends(get_container)],
) -> WebhookAckResponse:
    """Apply a payment gateway notification."""
    payload = await _read_json(request)
    if not payload:
        logger.warning("Payment webhook body is empty or not a JSON object")
        return WebhookAckResponse(
            success=True, status=EventStatus.IGNORED.value, message="Malformed payload"
        )

    try:
        result = await container.payment_webhooks.handle_payment_notification(payload)
    except Exception as e:
        logger.exception(
            "Payment webhook processing failed",
            order_number=payload.get("order_id"),
            error=str(e),
        )
        return _failed_ack("Processing failed")

    return _ack(result)
