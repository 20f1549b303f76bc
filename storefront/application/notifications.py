"""Post-transition collaborators: customer notifications and invoices.

Both are called after an order transition has committed. Their
failures are logged by the caller and never undo the transition.
"""

from datetime import datetime, timezone
from typing import Protocol

import structlog
from sqlalchemy.exc import IntegrityError

from storefront.domain.exceptions import OrderNotFoundError
from storefront.domain.state_machines import OrderStatus
from storefront.infrastructure.database import Database
from storefront.infrastructure.repositories import OrderRepository

logger = structlog.get_logger()


# ============================================================================
# Notifications
# ============================================================================


class NotificationSink(Protocol):
    """Receiver of order status notifications (in-app, email)."""

    async def notify_status_change(
        self,
        user_id: str,
        order_number: str,
        order_id: str,
        status: OrderStatus,
        locale: str = "id",
    ) -> None:
        """Tell the customer their order moved to a new status."""
        ...


class LoggingNotificationSink:
    """Notification sink that only records the event in the log.

    Used when no delivery channel is wired in.
    """

    async def notify_status_change(
        self,
        user_id: str,
        order_number: str,
        order_id: str,
        status: OrderStatus,
        locale: str = "id",
    ) -> None:
        logger.info(
            "Order status notification",
            user_id=user_id,
            order_number=order_number,
            order_id=order_id,
            status=status.value,
            locale=locale,
        )


# ============================================================================
# Invoices
# ============================================================================


INVOICE_PREFIX = "INV-"


def format_invoice_number(year: int, sequence: int) -> str:
    """Format an invoice number, e.g. ``INV-20250001``."""
    return f"{INVOICE_PREFIX}{year}{sequence:04d}"


def next_invoice_number(latest: str | None, year: int) -> str:
    """Compute the invoice number following ``latest`` within ``year``.

    Args:
        latest: Highest invoice number issued this year, if any.
        year: Current calendar year.

    Returns:
        Next invoice number; the sequence restarts at 1 each year.
    """
    year_prefix = f"{INVOICE_PREFIX}{year}"
    sequence = 1
    if latest and latest.startswith(year_prefix):
        suffix = latest[len(year_prefix):]
        if suffix.isdigit():
            sequence = int(suffix) + 1
    return format_invoice_number(year, sequence)


class InvoiceService:
    """Assigns invoice numbers to paid orders."""

    MAX_ATTEMPTS = 3

    def __init__(self, database: Database) -> None:
        self.database = database

    async def assign_invoice_number(
        self,
        order_number: str,
        now: datetime | None = None,
    ) -> str:
        """Assign an invoice number to an order once.

        Returns the existing number if the order already has one. A
        collision with a concurrently issued number is retried.

        Raises:
            OrderNotFoundError: If the order does not exist.
        """
        year = (now or datetime.now(timezone.utc)).year

        attempt = 0
        while True:
            attempt += 1
            try:
                async with self.database.unit_of_work() as session:
                    repo = OrderRepository(session)
                    order = await repo.get_by_number(order_number, for_update=True)
                    if order is None:
                        raise OrderNotFoundError(order_number)
                    if order.invoice_number:
                        return order.invoice_number

                    latest = await repo.latest_invoice_number(f"{INVOICE_PREFIX}{year}")
                    order.invoice_number = next_invoice_number(latest, year)
                    await session.flush()
                    invoice_number = order.invoice_number
            except IntegrityError:
                if attempt >= self.MAX_ATTEMPTS:
                    raise
                logger.warning(
                    "Invoice number collision, retrying",
                    order_number=order_number,
                    attempt=attempt,
                )
                continue

            logger.info(
                "Invoice number assigned",
                order_number=order_number,
                invoice_number=invoice_number,
            )
            return invoice_number
