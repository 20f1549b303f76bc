"""Tests for the order service: checkout, transitions and side effects."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from storefront.api.dependencies import Container
from storefront.application.order_service import CheckoutInput, OrderService
from storefront.domain import OrderStatus, ShippingType


def current_year() -> int:
    return datetime.now(timezone.utc).year


# ============================================================================
# Checkout
# ============================================================================


class TestCreateOrder:
    """Tests for creating orders from carts."""

    async def test_domestic_order_with_promotion(
        self, container: Container, seed, domestic_address
    ) -> None:
        """Two units at 100000 with 10% off shipped by JNE REG."""
        variant = await seed.product(id_price=100000, discount=Decimal("0.10"), stock=5)
        await seed.cart("user-1", [(variant, 2)])

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(
                shipping_address=domestic_address,
                carrier_code="jne",
                service_code="reg",
                payment_method="bank_transfer",
            ),
        )

        assert result.success, result.error
        order = result.order
        assert order.status == OrderStatus.PENDING
        assert order.order_number.startswith("ORD-")
        assert order.currency == "IDR"
        assert order.subtotal == 200000
        assert order.discount == 20000
        assert order.tax == 19800
        assert order.shipping_cost == 18000
        assert order.total == 217800
        assert order.shipping_type == ShippingType.DOMESTIC
        assert order.shipping_method == "JNE Reguler"
        assert (order.carrier_courier, order.carrier_service) == ("jne", "reg")
        assert order.parcel_weight_grams == 1000
        assert order.payment_method == "bank_transfer"
        assert order.exchange_rate is None

        item = order.items[0]
        assert (item.quantity, item.unit_price, item.unit_discount) == (2, 100000, 10000)
        assert item.sku == variant.sku

        assert await seed.stock(variant) == 3
        assert await seed.cart_size("user-1") == 0

    async def test_usd_order_converts_shipping(
        self, container: Container, seed, domestic_address
    ) -> None:
        """USD orders price items in cents and convert IDR shipping."""
        variant = await seed.product(en_price=700, discount=Decimal("0.10"))
        await seed.cart("user-1", [(variant, 2)])

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(
                shipping_address=domestic_address,
                carrier_code="jne",
                service_code="reg",
                currency="usd",
            ),
        )

        order = result.order
        assert order.currency == "USD"
        assert order.exchange_rate == Decimal("15700")
        assert order.subtotal == 1400
        assert order.discount == 140
        assert order.tax == 139
        assert order.shipping_cost == 115
        assert order.total == 1514

    async def test_international_order_uses_zone(self, place_order) -> None:
        """International orders are priced by zone, without a courier."""
        order = await place_order(quantity=2, international=True)

        assert order.shipping_type == ShippingType.INTERNATIONAL
        assert order.shipping_cost == 425000
        assert order.shipping_zone_id is not None
        assert order.carrier_courier is None

    async def test_totals_are_consistent(self, container: Container, place_order) -> None:
        """Stored items re-derive the stored totals."""
        order = await place_order(quantity=3)

        recomputed = order.recompute_totals(container.settings.tax_rate)
        assert recomputed.total == order.total
        assert recomputed.is_consistent()
        assert order.total == order.subtotal - order.discount + order.tax + order.shipping_cost

    async def test_first_history_entry(self, place_order) -> None:
        """Creation is recorded as the first history entry."""
        order = await place_order()

        assert len(order.status_history) == 1
        entry = order.status_history[0]
        assert entry.from_status is None
        assert entry.to_status == "PENDING"
        assert entry.actor == "customer"

    async def test_insufficient_stock(self, container: Container, seed, domestic_address) -> None:
        """Nothing is written when a line cannot be covered."""
        variant = await seed.product(stock=1)
        await seed.cart("user-1", [(variant, 2)])

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(shipping_address=domestic_address, carrier_code="jne", service_code="reg"),
        )

        assert not result.success
        assert result.error_code == "INSUFFICIENT_STOCK"
        assert result.error_kind == "conflict"
        assert result.details["available"] == 1
        assert await seed.stock(variant) == 1
        assert await seed.order_count() == 0
        assert await seed.cart_size("user-1") == 1

    async def test_stock_never_oversold(self, container: Container, seed, domestic_address) -> None:
        """Two carts competing for the same units cannot both win."""
        variant = await seed.product(stock=3)
        await seed.cart("user-1", [(variant, 2)])
        await seed.cart("user-2", [(variant, 2)])
        checkout = CheckoutInput(
            shipping_address=domestic_address, carrier_code="jne", service_code="reg"
        )

        first = await container.orders.create_order("user-1", checkout)
        second = await container.orders.create_order("user-2", checkout)

        assert first.success
        assert not second.success
        assert second.error_code == "INSUFFICIENT_STOCK"
        assert await seed.stock(variant) == 1

    async def test_empty_cart(self, container: Container, domestic_address) -> None:
        """Checking out without a cart is a validation error."""
        result = await container.orders.create_order(
            "nobody",
            CheckoutInput(shipping_address=domestic_address, carrier_code="jne", service_code="reg"),
        )

        assert result.error_code == "EMPTY_CART"
        assert result.error_kind == "validation"

    async def test_unavailable_product(self, container: Container, seed, domestic_address) -> None:
        """Soft-deleted products block checkout."""
        variant = await seed.product(name="Old Kebaya", stock=5)
        await seed.cart("user-1", [(variant, 1)])
        await seed.deactivate_product(variant)

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(shipping_address=domestic_address, carrier_code="jne", service_code="reg"),
        )

        assert result.error_code == "PRODUCT_UNAVAILABLE"
        assert "Old Kebaya" in result.error
        assert await seed.stock(variant) == 5

    async def test_unsupported_currency(self, container: Container, seed, domestic_address) -> None:
        """Only IDR and USD orders are accepted."""
        variant = await seed.product()
        await seed.cart("user-1", [(variant, 1)])

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(
                shipping_address=domestic_address,
                carrier_code="jne",
                service_code="reg",
                currency="EUR",
            ),
        )

        assert result.error_code == "UNSUPPORTED_CURRENCY"

    async def test_unsupported_destination(
        self, container: Container, seed, international_address
    ) -> None:
        """A country without a zone cannot check out; stock is untouched."""
        variant = await seed.product(stock=4)
        await seed.cart("user-1", [(variant, 1)])

        result = await container.orders.create_order(
            "user-1", CheckoutInput(shipping_address=international_address)
        )

        assert result.error_code == "UNSUPPORTED_DESTINATION"
        assert result.error_kind == "not_found"
        assert await seed.stock(variant) == 4

    async def test_domestic_requires_courier(self, container: Container, seed, domestic_address) -> None:
        """Domestic checkout must name a courier service."""
        variant = await seed.product()
        await seed.cart("user-1", [(variant, 1)])

        result = await container.orders.create_order(
            "user-1", CheckoutInput(shipping_address=domestic_address)
        )

        assert result.error_code == "INVALID_CHECKOUT"

    async def test_carrier_outage_blocks_domestic_checkout(
        self, container: Container, seed, carrier_api, domestic_address
    ) -> None:
        """Without a carrier quote no domestic order is created."""
        carrier_api.fail_rates = True
        variant = await seed.product(stock=2)
        await seed.cart("user-1", [(variant, 1)])

        result = await container.orders.create_order(
            "user-1",
            CheckoutInput(shipping_address=domestic_address, carrier_code="jne", service_code="reg"),
        )

        assert result.error_kind == "upstream"
        assert await seed.stock(variant) == 2


# ============================================================================
# Lifecycle
# ============================================================================


class TestOrderLifecycle:
    """Tests for status transitions and their side effects."""

    async def test_happy_path_international(
        self, container: Container, seed, notifications, place_order
    ) -> None:
        """An order walks the whole chain, stamping each step once."""
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=2, international=True)
        orders: OrderService = container.orders
        assert await seed.stock(variant) == 3

        paid = await orders.mark_paid(order.order_number, payment_provider="midtrans", payment_id="tx-1")
        assert paid.success
        assert paid.order.status == OrderStatus.PAID
        assert paid.order.paid_at is not None
        assert paid.order.invoice_number == f"INV-{current_year()}0001"
        assert paid.order.payment_id == "tx-1"

        assert (await orders.mark_processing(order.order_number)).success

        shipped = await orders.mark_shipped(order.order_number, tracking_number="JNE123")
        assert shipped.success
        assert shipped.order.tracking_number == "JNE123"
        assert shipped.order.shipped_at is not None

        delivered = await orders.mark_delivered(order.order_number)
        assert delivered.order.delivered_at is not None

        completed = await orders.mark_completed(order.order_number)
        assert completed.order.status == OrderStatus.COMPLETED
        assert completed.order.completed_at is not None
        assert completed.order.canceled_at is None

        assert notifications.statuses_for(order.order_number) == [
            OrderStatus.PAID,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.COMPLETED,
        ]
        history = [entry.to_status for entry in completed.order.status_history]
        assert history == ["PENDING", "PAID", "PROCESSING", "SHIPPED", "DELIVERED", "COMPLETED"]
        assert await seed.stock(variant) == 3


    async def test_paid_domestic_order_books_carrier(
        self, container: Container, carrier_api, seed, place_order
    ) -> None:
        """Payment books the shipment and stores the carrier ids."""
        variant = await seed.product(id_price=100000, discount=Decimal("0.10"))
        order = await place_order(variant=variant, quantity=2)

        paid = await container.orders.mark_paid(order.order_number)

        assert paid.success
        assert paid.order.carrier_order_id == "carrier-order-1"
        assert paid.order.tracking_number == "TRK00001"

        booking = carrier_api.order_requests[0]
        assert booking["origin_postal_code"] == "12950"
        assert booking["destination_postal_code"] == "40115"
        assert booking["courier_company"] == "jne"
        assert booking["courier_type"] == "reg"
        assert booking["reference_id"] == order.order_number
        assert booking["items"][0]["value"] == 90000
        assert booking["items"][0]["quantity"] == 2

        found = await container.orders.find_by_carrier_order_id("carrier-order-1")
        assert found.order_number == order.order_number

    async def test_domestic_ship_uses_carrier_tracking(
        self, container: Container, place_order
    ) -> None:
        """A booked domestic order ships with the carrier's tracking id."""
        order = await place_order()
        await container.orders.mark_paid(order.order_number)
        await container.orders.mark_processing(order.order_number)

        shipped = await container.orders.mark_shipped(order.order_number)

        assert shipped.success
        assert shipped.order.tracking_number == "TRK00001"

    async def test_failed_booking_is_left_for_retry(
        self, container: Container, carrier_api, place_order
    ) -> None:
        """Payment still succeeds when booking fails; an admin retries later."""
        order = await place_order()
        carrier_api.fail_orders = True

        paid = await container.orders.mark_paid(order.order_number)
        assert paid.success
        assert paid.order.status == OrderStatus.PAID
        assert paid.order.carrier_order_id is None

        pending = await container.orders.list_paid_without_tracking()
        assert [o.order_number for o in pending.orders] == [order.order_number]

        carrier_api.fail_orders = False
        retried = await container.orders.retry_carrier_order(order.order_number)
        assert retried.success
        assert retried.order.carrier_order_id is not None

        again = await container.orders.retry_carrier_order(order.order_number)
        assert again.error_code == "CARRIER_RETRY_NOT_ALLOWED"
        assert again.error_kind == "conflict"
        assert (await container.orders.list_paid_without_tracking()).orders == []

    async def test_retry_rejected_for_international(self, container: Container, place_order) -> None:
        """International orders never get a carrier booking."""
        order = await place_order(international=True)
        await container.orders.mark_paid(order.order_number)

        result = await container.orders.retry_carrier_order(order.order_number)

        assert result.error_code == "CARRIER_RETRY_NOT_ALLOWED"

    async def test_domestic_ship_fails_when_carrier_down(
        self, container: Container, carrier_api, place_order
    ) -> None:
        """Shipping a domestic order without a booking needs the carrier."""
        order = await place_order()
        carrier_api.fail_orders = True
        await container.orders.mark_paid(order.order_number)
        await container.orders.mark_processing(order.order_number)

        shipped = await container.orders.mark_shipped(order.order_number)

        assert not shipped.success
        assert shipped.error_kind == "upstream"
        current = await container.orders.get_order(order.order_number)
        assert current.order.status == OrderStatus.PROCESSING

    async def test_international_ship_requires_tracking(
        self, container: Container, place_order
    ) -> None:
        """International orders cannot ship without a tracking number."""
        order = await place_order(international=True)
        await container.orders.mark_paid(order.order_number)
        await container.orders.mark_processing(order.order_number)

        result = await container.orders.mark_shipped(order.order_number)

        assert result.error_code == "TRACKING_NUMBER_REQUIRED"
        assert result.error_kind == "validation"
        current = await container.orders.get_order(order.order_number)
        assert current.order.status == OrderStatus.PROCESSING
        assert current.order.shipped_at is None

    async def test_illegal_transition_changes_nothing(
        self, container: Container, notifications, place_order
    ) -> None:
        """PENDING cannot ship; the order and history are unchanged."""
        order = await place_order(international=True)

        result = await container.orders.mark_shipped(order.order_number, tracking_number="X1")

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert result.error_kind == "conflict"
        current = await container.orders.get_order(order.order_number)
        assert current.order.status == OrderStatus.PENDING
        assert current.order.tracking_number is None
        assert len(current.order.status_history) == 1
        assert notifications.sent == []

    async def test_unknown_order(self, container: Container) -> None:
        """Transitions on a missing order report not found."""
        result = await container.orders.mark_paid("ORD-20250101-DEADBEEF")

        assert result.error_code == "ORDER_NOT_FOUND"
        assert result.error_kind == "not_found"

    async def test_notification_failure_does_not_undo(
        self, container: Container, notifications, place_order
    ) -> None:
        """A failing sink never rolls back the transition."""
        order = await place_order(international=True)
        notifications.fail = True

        paid = await container.orders.mark_paid(order.order_number)

        assert paid.success
        current = await container.orders.get_order(order.order_number)
        assert current.order.status == OrderStatus.PAID

    async def test_invoice_numbers_increase(self, container: Container, place_order) -> None:
        """Each paid order gets the next invoice number of the year."""
        first = await place_order(user_id="user-1", international=True)
        second = await place_order(user_id="user-2", international=True)

        a = await container.orders.mark_paid(first.order_number)
        b = await container.orders.mark_paid(second.order_number)

        year = current_year()
        assert a.order.invoice_number == f"INV-{year}0001"
        assert b.order.invoice_number == f"INV-{year}0002"

    async def test_update_status_routes_to_transition(
        self, container: Container, place_order
    ) -> None:
        """Admin status updates run the matching transition."""
        order = await place_order(international=True)

        paid = await container.orders.update_status(order.order_number, OrderStatus.PAID)
        processing = await container.orders.update_status(order.order_number, OrderStatus.PROCESSING)
        shipped = await container.orders.update_status(
            order.order_number, OrderStatus.SHIPPED, tracking_number="EMS-1"
        )

        assert paid.order.invoice_number is not None
        assert processing.order.status == OrderStatus.PROCESSING
        assert shipped.order.tracking_number == "EMS-1"
        assert shipped.order.status_history[-1].actor == "admin"


class TestIllegalTransitions:
    """Rejected status changes leave the stored order untouched."""

    async def _drive_to(self, orders: OrderService, order_number: str, status: OrderStatus) -> None:
        steps = {
            OrderStatus.PENDING: [],
            OrderStatus.PAID: [orders.mark_paid],
            OrderStatus.PROCESSING: [orders.mark_paid, orders.mark_processing],
            OrderStatus.SHIPPED: [orders.mark_paid, orders.mark_processing, "ship"],
            OrderStatus.DELIVERED: [
                orders.mark_paid,
                orders.mark_processing,
                "ship",
                orders.mark_delivered,
            ],
            OrderStatus.COMPLETED: [
                orders.mark_paid,
                orders.mark_processing,
                "ship",
                orders.mark_delivered,
                orders.mark_completed,
            ],
            OrderStatus.CANCELLED: [orders.cancel_order],
            OrderStatus.FAILED: [orders.mark_failed],
        }
        for step in steps[status]:
            if step == "ship":
                result = await orders.mark_shipped(order_number, tracking_number="EMS-1")
            else:
                result = await step(order_number)
            assert result.success, result.error

    @pytest.mark.parametrize(
        "source, targets",
        [
            ("PENDING", ["PROCESSING", "SHIPPED", "DELIVERED", "COMPLETED"]),
            ("PAID", ["PENDING", "PAID", "SHIPPED", "FAILED"]),
            ("PROCESSING", ["PAID", "DELIVERED", "COMPLETED", "FAILED"]),
            ("SHIPPED", ["PROCESSING", "SHIPPED", "COMPLETED", "FAILED"]),
            ("DELIVERED", ["SHIPPED", "CANCELLED", "FAILED", "PENDING"]),
            ("COMPLETED", ["CANCELLED", "DELIVERED", "PENDING"]),
            ("CANCELLED", ["PENDING", "PAID", "CANCELLED"]),
            ("FAILED", ["PAID", "CANCELLED", "SHIPPED"]),
        ],
    )
    async def test_rejected_targets_change_nothing(
        self,
        container: Container,
        seed,
        notifications,
        place_order,
        source: str,
        targets: list[str],
    ) -> None:
        """Status, timestamps, history and stock survive each rejected move."""
        orders = container.orders
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=2, international=True)
        await self._drive_to(orders, order.order_number, OrderStatus(source))
        before = (await orders.get_order(order.order_number)).order
        stock_before = await seed.stock(variant)
        sent_before = len(notifications.sent)

        for target in targets:
            result = await orders.update_status(
                order.order_number,
                OrderStatus(target),
                tracking_number="T-X",
                reason="not allowed",
            )

            assert not result.success
            assert result.error_code == "ILLEGAL_TRANSITION"
            assert result.error_kind == "conflict"

        after = (await orders.get_order(order.order_number)).order
        assert after.status == source
        for stamp in ("paid_at", "shipped_at", "delivered_at", "completed_at", "canceled_at"):
            assert getattr(after, stamp) == getattr(before, stamp), stamp
        assert after.tracking_number == before.tracking_number
        assert len(after.status_history) == len(before.status_history)
        assert await seed.stock(variant) == stock_before
        assert len(notifications.sent) == sent_before


# ============================================================================
# Cancellation and stock
# ============================================================================


class TestCancellation:
    """Tests for cancellation and stock restoration."""

    async def test_cancel_paid_order_restores_stock(
        self, container: Container, seed, place_order
    ) -> None:
        """Cancelling returns every unit to stock."""
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=2, international=True)
        await container.orders.mark_paid(order.order_number)

        cancelled = await container.orders.cancel_order(order.order_number, reason="Out of region")

        assert cancelled.success
        assert cancelled.order.status == OrderStatus.CANCELLED
        assert cancelled.order.canceled_at is not None
        assert cancelled.order.status_history[-1].reason == "Out of region"
        assert await seed.stock(variant) == 5

    async def test_double_cancel_restores_once(
        self, container: Container, seed, place_order
    ) -> None:
        """A second cancel is rejected and stock is not returned twice."""
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=2)

        first = await container.orders.cancel_order(order.order_number)
        second = await container.orders.cancel_order(order.order_number)

        assert first.success
        assert second.error_code == "ILLEGAL_TRANSITION"
        assert await seed.stock(variant) == 5

    async def test_delivered_order_cannot_be_cancelled(
        self, container: Container, seed, place_order
    ) -> None:
        """Stock is only returned for orders still holding it."""
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=1, international=True)
        orders = container.orders
        await orders.mark_paid(order.order_number)
        await orders.mark_processing(order.order_number)
        await orders.mark_shipped(order.order_number, tracking_number="T-1")
        await orders.mark_delivered(order.order_number)

        result = await orders.cancel_order(order.order_number)

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert await seed.stock(variant) == 4

    async def test_failed_payment_keeps_reservation(
        self, container: Container, seed, place_order
    ) -> None:
        """FAILED holds the stock until the order is retried and cancelled."""
        variant = await seed.product(stock=5)
        order = await place_order(variant=variant, quantity=2)

        failed = await container.orders.mark_failed(order.order_number, reason="Card declined")
        assert failed.order.status == OrderStatus.FAILED
        assert await seed.stock(variant) == 3

        assert (await container.orders.cancel_order(order.order_number)).error_code == "ILLEGAL_TRANSITION"

        reopened = await container.orders.reopen_order(order.order_number)
        assert reopened.order.status == OrderStatus.PENDING

        assert (await container.orders.cancel_order(order.order_number)).success
        assert await seed.stock(variant) == 5

    async def test_customer_cancels_pending_order(
        self, container: Container, seed, place_order
    ) -> None:
        """Customers may cancel their own unpaid orders."""
        variant = await seed.product(stock=2)
        order = await place_order(user_id="user-1", variant=variant, quantity=1)

        result = await container.orders.cancel_by_customer(order.order_number, "user-1")

        assert result.success
        assert result.order.status_history[-1].actor == "customer"
        assert await seed.stock(variant) == 2

    async def test_customer_cannot_cancel_paid_order(
        self, container: Container, place_order
    ) -> None:
        """Once paid, only an admin can cancel."""
        order = await place_order(user_id="user-1", international=True)
        await container.orders.mark_paid(order.order_number)

        result = await container.orders.cancel_by_customer(order.order_number, "user-1")

        assert result.error_code == "ILLEGAL_TRANSITION"

    async def test_customer_cannot_cancel_other_users_order(
        self, container: Container, place_order
    ) -> None:
        """Other customers' orders look missing."""
        order = await place_order(user_id="user-1")

        result = await container.orders.cancel_by_customer(order.order_number, "user-2")

        assert result.error_code == "ORDER_NOT_FOUND"

    async def test_expire_order_past_cutoff(
        self, container: Container, seed, place_order
    ) -> None:
        """An unpaid order older than the cutoff is cancelled with its stock."""
        variant = await seed.product(stock=3)
        order = await place_order(variant=variant, quantity=2)
        await seed.backdate_order(
            order.order_number, created_at=datetime.now(timezone.utc) - timedelta(hours=30)
        )

        result = await container.orders.expire_order(
            order.order_number, datetime.now(timezone.utc) - timedelta(hours=24)
        )

        assert result.success
        assert result.order.status == OrderStatus.CANCELLED
        assert result.order.status_history[-1].actor == "system"
        assert await seed.stock(variant) == 3

    async def test_expire_order_refuses_paid_order(
        self, container: Container, seed, place_order
    ) -> None:
        """Expiry never cancels an order that has been paid."""
        variant = await seed.product(stock=3)
        order = await place_order(variant=variant, quantity=2, international=True)
        await container.orders.mark_paid(order.order_number)
        await seed.backdate_order(
            order.order_number, created_at=datetime.now(timezone.utc) - timedelta(hours=30)
        )

        result = await container.orders.expire_order(
            order.order_number, datetime.now(timezone.utc) - timedelta(hours=24)
        )

        assert result.error_code == "ILLEGAL_TRANSITION"
        assert result.error_kind == "conflict"
        current = (await container.orders.get_order(order.order_number)).order
        assert current.status == OrderStatus.PAID
        assert current.canceled_at is None
        assert await seed.stock(variant) == 1

    async def test_expire_order_refuses_fresh_order(
        self, container: Container, seed, place_order
    ) -> None:
        """An order created after the cutoff is still payable."""
        variant = await seed.product(stock=3)
        order = await place_order(variant=variant, quantity=1)

        result = await container.orders.expire_order(
            order.order_number, datetime.now(timezone.utc) - timedelta(hours=24)
        )

        assert result.error_code == "ORDER_NOT_EXPIRED"
        assert result.error_kind == "conflict"
        current = (await container.orders.get_order(order.order_number)).order
        assert current.status == OrderStatus.PENDING
        assert len(current.status_history) == 1
        assert await seed.stock(variant) == 2


# ============================================================================
# Queries
# ============================================================================


class TestOrderQueries:
    """Tests for order lookups and listings."""

    async def test_get_order_scoped_to_owner(self, container: Container, place_order) -> None:
        """A customer only sees their own orders."""
        order = await place_order(user_id="user-1")

        assert (await container.orders.get_order(order.order_number, user_id="user-1")).success
        other = await container.orders.get_order(order.order_number, user_id="user-2")
        assert other.error_code == "ORDER_NOT_FOUND"

    async def test_list_orders_filters_and_paginates(
        self, container: Container, place_order
    ) -> None:
        """Listing filters by owner and status, newest first."""
        first = await place_order(user_id="user-1")
        second = await place_order(user_id="user-1", international=True)
        await place_order(user_id="user-2")
        await container.orders.cancel_order(first.order_number)

        mine = await container.orders.list_orders(user_id="user-1")
        assert mine.total == 2
        assert [o.order_number for o in mine.orders] == [second.order_number, first.order_number]

        page = await container.orders.list_orders(user_id="user-1", page=2, page_size=1)
        assert [o.order_number for o in page.orders] == [first.order_number]

        cancelled = await container.orders.list_orders(status=OrderStatus.CANCELLED)
        assert [o.order_number for o in cancelled.orders] == [first.order_number]

        international = await container.orders.list_orders(shipping_type=ShippingType.INTERNATIONAL)
        assert [o.order_number for o in international.orders] == [second.order_number]

    async def test_tracking_includes_carrier_history(
        self, container: Container, carrier_api, place_order
    ) -> None:
        """Tracking is enriched with the carrier's view when available."""
        order = await place_order()
        await container.orders.mark_paid(order.order_number)
        carrier_api.trackings["carrier-order-1"] = {
            "status": "dropping_off",
            "link": "https://track.test/TRK00001",
            "courier": {"tracking_id": "TRK00001"},
            "history": [{"status": "picked", "note": "Picked up", "updated_at": "2025-01-02T10:00:00Z"}],
        }

        result = await container.orders.get_tracking(order.order_number, user_id="user-1")

        assert result.success
        tracking = result.tracking
        assert tracking.tracking_number == "TRK00001"
        assert tracking.carrier_status == "dropping_off"
        assert tracking.tracking_link == "https://track.test/TRK00001"
        assert tracking.history[0]["status"] == "picked"

    async def test_tracking_survives_carrier_outage(
        self, container: Container, carrier_api, place_order
    ) -> None:
        """Stored tracking data is returned when the carrier is down."""
        order = await place_order()
        await container.orders.mark_paid(order.order_number)
        carrier_api.fail_tracking = True

        result = await container.orders.get_tracking(order.order_number)

        assert result.success
        assert result.tracking.tracking_number == "TRK00001"
        assert result.tracking.carrier_status is None
