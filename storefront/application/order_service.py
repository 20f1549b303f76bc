"""Order application service.

Orchestrates the order lifecycle:
- Creating orders from a customer's cart (atomic insert, stock
  reservation and cart clearing)
- Driving every status change through one transition function
- Post-commit side effects (invoice number, notification, carrier
  booking), each isolated from the others
- Order queries and tracking lookups

Domain errors raised inside a unit of work roll the transaction back
and are returned to callers as result objects.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, TypeVar
from uuid import uuid4

import structlog
from sqlalchemy.orm.exc import StaleDataError

from storefront.application.notifications import InvoiceService, NotificationSink
from storefront.application.shipping_service import SHIPPING_CURRENCY, ShippingRateResolver
from storefront.domain.exceptions import (
    CarrierOrderNotRetryableError,
    DomainError,
    EmptyCartError,
    ErrorKind,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidCheckoutError,
    OrderNotExpiredError,
    OrderNotFoundError,
    ProductUnavailableError,
    TrackingNumberRequiredError,
    UnsupportedCurrencyError,
    UpstreamUnavailableError,
)
from storefront.domain.pricing import LineItemInput, LineTotals, OrderTotals, compute_totals, totals_from_lines
from storefront.domain.state_machines import OrderStatus, ShippingType, validate_order_transition
from storefront.domain.value_objects import Money, ShippingAddress, round_minor
from storefront.infrastructure.carrier_client import CarrierClient, CarrierClientError
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database
from storefront.infrastructure.models import (
    CartModel,
    OrderItemModel,
    OrderModel,
    OrderStatusHistoryModel,
)
from storefront.infrastructure.repositories import CartRepository, OrderRepository, StockRepository

logger = structlog.get_logger()

SUPPORTED_ORDER_CURRENCIES = ("IDR", "USD")

CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

# Lifecycle timestamp set on first entry into each status.
_STATUS_TIMESTAMPS: dict[OrderStatus, str] = {
    OrderStatus.PAID: "paid_at",
    OrderStatus.SHIPPED: "shipped_at",
    OrderStatus.DELIVERED: "delivered_at",
    OrderStatus.COMPLETED: "completed_at",
    OrderStatus.CANCELLED: "canceled_at",
}

# Statuses from which a missing carrier booking may be retried.
_CARRIER_RETRY_STATUSES = {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED}


def generate_order_number(now: datetime | None = None) -> str:
    """Generate an order number, e.g. ``ORD-20250101-1A2B3C4D``."""
    now = now or datetime.now(timezone.utc)
    return f"ORD-{now:%Y%m%d}-{uuid4().hex[:8].upper()}"


# ============================================================================
# Order Data Transfer Objects
# ============================================================================


@dataclass
class CheckoutInput:
    """What the customer chose at checkout."""

    shipping_address: ShippingAddress
    carrier_code: str | None = None
    service_code: str | None = None
    currency: str = "IDR"
    payment_method: str | None = None


@dataclass
class OrderItemDTO:
    """Order item data transfer object."""

    id: str
    product_id: str
    variant_id: str
    product_name: str
    variant_name: str
    sku: str
    quantity: int
    unit_price: int
    unit_discount: int
    line_subtotal: int
    line_discount: int
    unit_weight_grams: int = 0

    @classmethod
    def from_model(cls, item: OrderItemModel) -> "OrderItemDTO":
        return cls(
            id=item.id,
            product_id=item.product_id,
            variant_id=item.variant_id,
            product_name=item.product_name,
            variant_name=item.variant_name,
            sku=item.sku,
            quantity=item.quantity,
            unit_price=item.unit_price,
            unit_discount=item.unit_discount,
            line_subtotal=item.line_subtotal,
            line_discount=item.line_discount,
            unit_weight_grams=item.unit_weight_grams,
        )


@dataclass
class StatusHistoryEntry:
    """Status history entry."""

    from_status: str | None
    to_status: str
    reason: str | None = None
    actor: str | None = None
    metadata: dict[str, Any] | None = None
    created_at: datetime | None = None


@dataclass
class OrderDTO:
    """Order data transfer object (detached snapshot of the aggregate)."""

    id: str
    order_number: str
    user_id: str
    status: OrderStatus
    currency: str
    subtotal: int
    discount: int
    tax: int
    shipping_cost: int
    total: int
    shipping_type: ShippingType
    shipping_method: str
    shipping_address: ShippingAddress
    items: list[OrderItemDTO]
    exchange_rate: Decimal | None = None
    parcel_weight_grams: int = 0
    carrier_courier: str | None = None
    carrier_service: str | None = None
    carrier_order_id: str | None = None
    tracking_number: str | None = None
    shipping_zone_id: str | None = None
    payment_method: str | None = None
    payment_provider: str | None = None
    payment_id: str | None = None
    invoice_number: str | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    completed_at: datetime | None = None
    canceled_at: datetime | None = None
    status_history: list[StatusHistoryEntry] = field(default_factory=list)

    @classmethod
    def from_model(cls, order: OrderModel) -> "OrderDTO":
        """Snapshot an ORM order (items and history must be loaded)."""
        return cls(
            id=order.id,
            order_number=order.order_number,
            user_id=order.user_id,
            status=OrderStatus(order.status),
            currency=order.currency,
            subtotal=order.subtotal,
            discount=order.discount,
            tax=order.tax,
            shipping_cost=order.shipping_cost,
            total=order.total,
            exchange_rate=order.exchange_rate,
            shipping_type=ShippingType(order.shipping_type),
            shipping_method=order.shipping_method,
            shipping_address=ShippingAddress(
                recipient_name=order.recipient_name,
                recipient_phone=order.recipient_phone,
                email=order.recipient_email,
                address=order.shipping_address,
                city=order.shipping_city,
                province=order.shipping_province,
                country=order.shipping_country,
                postal_code=order.shipping_postal_code,
                notes=order.shipping_notes,
            ),
            parcel_weight_grams=order.parcel_weight_grams,
            items=[OrderItemDTO.from_model(item) for item in order.items],
            carrier_courier=order.carrier_courier,
            carrier_service=order.carrier_service,
            carrier_order_id=order.carrier_order_id,
            tracking_number=order.tracking_number,
            shipping_zone_id=order.shipping_zone_id,
            payment_method=order.payment_method,
            payment_provider=order.payment_provider,
            payment_id=order.payment_id,
            invoice_number=order.invoice_number,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
            paid_at=order.paid_at,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
            completed_at=order.completed_at,
            canceled_at=order.canceled_at,
            status_history=[
                StatusHistoryEntry(
                    from_status=entry.from_status,
                    to_status=entry.to_status,
                    reason=entry.reason,
                    actor=entry.actor,
                    metadata=entry.details,
                    created_at=entry.created_at,
                )
                for entry in order.status_history
            ],
        )

    def recompute_totals(self, tax_rate: Decimal) -> OrderTotals:
        """Re-derive the totals from the stored items and shipping cost."""
        lines = [
            LineTotals(
                unit_price=item.unit_price,
                unit_discount=item.unit_discount,
                quantity=item.quantity,
            )
            for item in self.items
        ]
        return totals_from_lines(lines, self.shipping_cost, tax_rate, self.currency)


@dataclass
class TrackingInfo:
    """Shipment tracking view of an order."""

    order_number: str
    status: OrderStatus
    shipping_type: ShippingType
    shipping_method: str
    courier: str | None
    tracking_number: str | None
    carrier_order_id: str | None
    shipped_at: datetime | None
    delivered_at: datetime | None
    carrier_status: str | None = None
    tracking_link: str | None = None
    history: list[dict[str, Any]] = field(default_factory=list)


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class CreateOrderResult:
    """Result of creating an order."""

    order: OrderDTO | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class GetOrderResult:
    """Result of getting an order."""

    order: OrderDTO | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class UpdateOrderResult:
    """Result of updating an order."""

    order: OrderDTO | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ListOrdersResult:
    """Result of listing orders."""

    orders: list[OrderDTO] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 20
    success: bool = True
    error: str | None = None


@dataclass
class TrackingResult:
    """Result of a tracking lookup."""

    tracking: TrackingInfo | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    error_kind: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


ResultT = TypeVar("ResultT", CreateOrderResult, GetOrderResult, UpdateOrderResult, TrackingResult)


def _failure(result_type: type[ResultT], error: DomainError) -> ResultT:
    return result_type(
        success=False,
        error=error.message,
        error_code=error.error_code,
        error_kind=error.error_kind,
        details=error.details,
    )


@dataclass(frozen=True)
class _CartLine:
    """Validated cart line captured before pricing."""

    product_id: str
    variant_id: str
    product_name: str
    variant_name: str
    sku: str
    quantity: int
    unit_price: int
    discount_fraction: Decimal
    unit_weight_grams: int


def _cart_signature(cart: CartModel | None) -> list[tuple[str, int]]:
    if cart is None:
        return []
    return sorted((item.variant_id, item.quantity) for item in cart.items)


def _to_idr(amount: int, currency: str, exchange_rate: Decimal | None) -> int:
    """Convert an order-currency amount to IDR for carrier declarations."""
    if currency == SHIPPING_CURRENCY or exchange_rate is None:
        return amount
    major = Money(amount, currency).to_decimal() * Decimal(exchange_rate)
    return round_minor(major)


UpdateFn = Callable[[OrderModel, datetime], None]


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for managing orders.

    Handles order lifecycle:
    - Create order from the customer's cart
    - Status transitions (payment, fulfilment, cancellation, failure)
    - Carrier order booking and retry
    - Queries and tracking
    """

    def __init__(
        self,
        settings: Settings,
        database: Database,
        shipping: ShippingRateResolver,
        carrier: CarrierClient,
        invoices: InvoiceService,
        notifications: NotificationSink,
    ) -> None:
        """Initialize service.

        Args:
            settings: Application settings.
            database: Database for units of work.
            shipping: Shipping rate resolver.
            carrier: Carrier aggregator client.
            invoices: Invoice number assignment.
            notifications: Customer notification sink.
        """
        self.settings = settings
        self.database = database
        self.shipping = shipping
        self.carrier = carrier
        self.invoices = invoices
        self.notifications = notifications

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_order(self, user_id: str, checkout: CheckoutInput) -> CreateOrderResult:
        """Create an order from the user's cart.

        Validates the cart, prices shipping and totals, then inserts the
        order and its items, reserves stock and clears the cart in one
        transaction.

        Args:
            user_id: Owner of the cart.
            checkout: Shipping destination and chosen service.

        Returns:
            CreateOrderResult with the created PENDING order.
        """
        try:
            order = await self._create_order(user_id, checkout)
        except DomainError as e:
            logger.warning(
                "Order creation rejected",
                user_id=user_id,
                error_code=e.error_code,
                error=e.message,
            )
            return _failure(CreateOrderResult, e)

        logger.info(
            "Order created",
            order_number=order.order_number,
            user_id=user_id,
            total=order.total,
            currency=order.currency,
            shipping_type=order.shipping_type.value,
        )
        return CreateOrderResult(order=order)

    async def _create_order(self, user_id: str, checkout: CheckoutInput) -> OrderDTO:
        currency = checkout.currency.upper()
        if currency not in SUPPORTED_ORDER_CURRENCIES:
            raise UnsupportedCurrencyError(currency)
        now = datetime.now(timezone.utc)

        async with self.database.unit_of_work() as session:
            cart = await CartRepository(session).get_for_user(user_id)
            lines = self._validate_cart(user_id, cart, currency, now)
            signature = _cart_signature(cart)

        address = checkout.shipping_address
        weight = sum(line.unit_weight_grams * line.quantity for line in lines)
        option = await self.shipping.resolve_chosen(
            country_code=address.country,
            postal_code=address.postal_code,
            parcel_weight_grams=max(weight, 1),
            carrier_code=checkout.carrier_code,
            service_code=checkout.service_code,
        )

        exchange_rate = self.settings.usd_to_idr_rate if currency == "USD" else None
        shipping_cost = Money(option.cost, SHIPPING_CURRENCY).convert(
            currency, self.settings.usd_to_idr_rate
        )
        totals, priced = compute_totals(
            [LineItemInput(line.unit_price, line.quantity, line.discount_fraction) for line in lines],
            shipping_cost=shipping_cost.amount,
            tax_rate=self.settings.tax_rate,
            currency=currency,
        )

        async with self.database.unit_of_work() as session:
            carts = CartRepository(session)
            cart = await carts.get_for_user(user_id)
            if cart is None or _cart_signature(cart) != signature:
                raise InvalidCheckoutError("Cart changed during checkout, please review it and retry")

            stock = StockRepository(session)
            for line in lines:
                if not await stock.decrement(line.variant_id, line.quantity):
                    available = await stock.get_stock(line.variant_id) or 0
                    raise InsufficientStockError(line.variant_id, line.sku, available, line.quantity)

            order = OrderModel(
                order_number=generate_order_number(now),
                user_id=user_id,
                status=OrderStatus.PENDING,
                subtotal=totals.subtotal,
                discount=totals.discount,
                tax=totals.tax,
                shipping_cost=totals.shipping_cost,
                total=totals.total,
                currency=currency,
                exchange_rate=exchange_rate,
                payment_method=checkout.payment_method,
                shipping_type=option.shipping_type,
                shipping_method=option.display_name,
                carrier_courier=option.carrier_code,
                carrier_service=option.service_code,
                shipping_zone_id=option.zone_id,
                recipient_name=address.recipient_name,
                recipient_phone=address.recipient_phone,
                recipient_email=address.email,
                shipping_address=address.address,
                shipping_city=address.city,
                shipping_province=address.province,
                shipping_country=address.country,
                shipping_postal_code=address.postal_code,
                shipping_notes=address.notes,
                parcel_weight_grams=weight,
                created_at=now,
                updated_at=now,
            )
            order.items = [
                OrderItemModel(
                    line_number=number,
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=line.product_name,
                    variant_name=line.variant_name,
                    sku=line.sku,
                    quantity=line.quantity,
                    unit_price=priced_line.unit_price,
                    unit_discount=priced_line.unit_discount,
                    line_subtotal=priced_line.line_subtotal,
                    line_discount=priced_line.line_discount,
                    unit_weight_grams=line.unit_weight_grams,
                    created_at=now,
                )
                for number, (line, priced_line) in enumerate(zip(lines, priced), start=1)
            ]
            order.status_history = [
                OrderStatusHistoryModel(
                    from_status=None,
                    to_status=OrderStatus.PENDING.value,
                    reason="Order created at checkout",
                    actor="customer",
                    created_at=now,
                )
            ]

            await OrderRepository(session).add(order)
            await carts.clear(cart.id)
            return OrderDTO.from_model(order)

    @staticmethod
    def _validate_cart(
        user_id: str,
        cart: CartModel | None,
        currency: str,
        now: datetime,
    ) -> list[_CartLine]:
        if cart is None or not cart.items:
            raise EmptyCartError(user_id)

        lines: list[_CartLine] = []
        for item in cart.items:
            product = item.product
            variant = item.variant
            if product is None or not product.is_available():
                raise ProductUnavailableError(product.name if product else item.product_id)
            if variant is None or variant.product_id != product.id or not variant.is_available():
                raise ProductUnavailableError(
                    product.name, variant.variant_name if variant else item.variant_id
                )
            if item.quantity <= 0:
                raise InvalidCheckoutError(f"Invalid quantity {item.quantity} for {variant.sku}")
            if variant.stock < item.quantity:
                raise InsufficientStockError(variant.id, variant.sku, variant.stock, item.quantity)

            discount = Decimal("0")
            if product.promotion is not None and product.promotion.is_running(now):
                discount = Decimal(product.promotion.discount)

            lines.append(
                _CartLine(
                    product_id=product.id,
                    variant_id=variant.id,
                    product_name=product.name,
                    variant_name=variant.variant_name,
                    sku=variant.sku,
                    quantity=item.quantity,
                    unit_price=product.price_in(currency),
                    discount_fraction=discount,
                    unit_weight_grams=product.weight_grams or 0,
                )
            )
        return lines

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def mark_paid(
        self,
        order_number: str,
        actor: str = "payment",
        payment_provider: str | None = None,
        payment_id: str | None = None,
        payment_method: str | None = None,
    ) -> UpdateOrderResult:
        """Record a confirmed payment (PENDING to PAID).

        Args:
            order_number: Order number.
            actor: Who initiated the transition.
            payment_provider: Payment gateway name.
            payment_id: Gateway transaction id.
            payment_method: Payment method reported by the gateway.

        Returns:
            UpdateOrderResult with the updated order.
        """

        def update_payment(order: OrderModel, now: datetime) -> None:
            if payment_provider:
                order.payment_provider = payment_provider
            if payment_id:
                order.payment_id = payment_id
            if payment_method:
                order.payment_method = payment_method

        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.PAID,
            actor=actor,
            metadata={"payment_provider": payment_provider, "payment_id": payment_id},
            update_fn=update_payment,
        )

    async def mark_processing(self, order_number: str, actor: str = "admin") -> UpdateOrderResult:
        """Start fulfilment of a paid order."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.PROCESSING,
            actor=actor,
        )

    async def mark_shipped(
        self,
        order_number: str,
        tracking_number: str | None = None,
        actor: str = "admin",
    ) -> UpdateOrderResult:
        """Mark order as shipped.

        Domestic orders take their tracking number from the carrier order,
        booking one first if none exists. International orders need the
        caller's tracking number.

        Args:
            order_number: Order number.
            tracking_number: Shipment tracking number.
            actor: Who initiated the transition.

        Returns:
            UpdateOrderResult with the updated order.
        """
        async with self.database.unit_of_work() as session:
            current = await OrderRepository(session).get_by_number(order_number)
            if current is None:
                return _failure(UpdateOrderResult, OrderNotFoundError(order_number))
            status = OrderStatus(current.status)
            shipping_type = ShippingType(current.shipping_type)
            has_carrier_order = current.carrier_order_id is not None

        if shipping_type == ShippingType.DOMESTIC and not has_carrier_order:
            try:
                validate_order_transition(order_number, status, OrderStatus.SHIPPED)
                await self._book_carrier_order(order_number)
            except DomainError as e:
                logger.warning(
                    "Cannot ship order",
                    order_number=order_number,
                    error_code=e.error_code,
                    error=e.message,
                )
                return _failure(UpdateOrderResult, e)

        def update_shipping(order: OrderModel, now: datetime) -> None:
            if order.shipping_type == ShippingType.DOMESTIC:
                tracking = order.tracking_number or tracking_number
            else:
                tracking = tracking_number
            if not tracking:
                raise TrackingNumberRequiredError(order_number, order.shipping_type.value)
            order.tracking_number = tracking

        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.SHIPPED,
            actor=actor,
            metadata={"tracking_number": tracking_number},
            update_fn=update_shipping,
        )

    async def mark_delivered(self, order_number: str, actor: str = "admin") -> UpdateOrderResult:
        """Mark order as delivered."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.DELIVERED,
            actor=actor,
        )

    async def mark_completed(
        self,
        order_number: str,
        actor: str = "admin",
        reason: str | None = None,
    ) -> UpdateOrderResult:
        """Close a delivered order."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.COMPLETED,
            actor=actor,
            reason=reason,
        )

    async def mark_failed(
        self,
        order_number: str,
        reason: str | None = None,
        actor: str = "payment",
    ) -> UpdateOrderResult:
        """Record a failed payment. The stock reservation is kept."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.FAILED,
            actor=actor,
            reason=reason,
        )

    async def reopen_order(self, order_number: str, actor: str = "admin") -> UpdateOrderResult:
        """Move a failed order back to PENDING for another payment attempt."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.PENDING,
            actor=actor,
            reason="Payment retry",
        )

    async def cancel_order(
        self,
        order_number: str,
        reason: str | None = None,
        actor: str = "admin",
    ) -> UpdateOrderResult:
        """Cancel an order, returning its items to stock.

        Args:
            order_number: Order number.
            reason: Cancellation reason.
            actor: Who cancelled (customer/admin/system/carrier/payment).

        Returns:
            UpdateOrderResult with the updated order.
        """
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.CANCELLED,
            actor=actor,
            reason=reason,
        )

    async def cancel_by_customer(
        self,
        order_number: str,
        user_id: str,
        reason: str | None = None,
    ) -> UpdateOrderResult:
        """Cancel the customer's own order while it awaits payment."""
        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.CANCELLED,
            actor="customer",
            reason=reason or "Cancelled by customer",
            user_id=user_id,
            allowed_from={OrderStatus.PENDING},
        )

    async def expire_order(
        self,
        order_number: str,
        cutoff: datetime,
        reason: str | None = None,
        actor: str = "system",
    ) -> UpdateOrderResult:
        """Cancel an unpaid order whose payment window closed at ``cutoff``.

        Status and age are re-checked under the row lock, so an order paid
        after it was selected comes back as a conflict and keeps its stock.
        """

        def check_expired(order: OrderModel, now: datetime) -> None:
            if order.created_at is None or order.created_at > cutoff:
                raise OrderNotExpiredError(
                    order_number,
                    order.created_at.isoformat() if order.created_at else "",
                    cutoff.isoformat(),
                )

        return await self._transition_order(
            order_number=order_number,
            target_status=OrderStatus.CANCELLED,
            actor=actor,
            reason=reason,
            update_fn=check_expired,
            allowed_from={OrderStatus.PENDING},
        )

    async def update_status(
        self,
        order_number: str,
        target_status: OrderStatus,
        actor: str = "admin",
        tracking_number: str | None = None,
        reason: str | None = None,
    ) -> UpdateOrderResult:
        """Move an order to any status (admin action).

        Routes to the matching transition so its side effects apply.
        """
        if target_status == OrderStatus.SHIPPED:
            return await self.mark_shipped(order_number, tracking_number, actor=actor)
        if target_status == OrderStatus.CANCELLED:
            return await self.cancel_order(order_number, reason=reason, actor=actor)
        if target_status == OrderStatus.FAILED:
            return await self.mark_failed(order_number, reason=reason, actor=actor)
        if target_status == OrderStatus.COMPLETED:
            return await self.mark_completed(order_number, actor=actor, reason=reason)
        if target_status == OrderStatus.PAID:
            return await self.mark_paid(order_number, actor=actor)
        return await self._transition_order(
            order_number=order_number,
            target_status=target_status,
            actor=actor,
            reason=reason,
        )

    async def _transition_order(
        self,
        order_number: str,
        target_status: OrderStatus,
        actor: str,
        reason: str | None = None,
        metadata: dict[str, Any] | None = None,
        update_fn: UpdateFn | None = None,
        user_id: str | None = None,
        allowed_from: set[OrderStatus] | None = None,
    ) -> UpdateOrderResult:
        """Perform a status transition on an order.

        Every status change goes through here. The order row is locked,
        the move is checked against the transition table, lifecycle
        timestamps and history are written, and stock is returned when
        a cancellation releases a reservation, all in one transaction.
        Side effects run after the commit.

        Args:
            order_number: Order number.
            target_status: Target status.
            actor: Who initiated the transition.
            reason: Reason for transition.
            metadata: Additional metadata for the history entry.
            update_fn: Function to update order fields; may raise a
                DomainError to abort the transition.
            user_id: Restrict to orders owned by this user.
            allowed_from: Further restrict the source statuses.

        Returns:
            UpdateOrderResult with the updated order.
        """
        try:
            async with self.database.unit_of_work() as session:
                order = await OrderRepository(session).get_by_number(order_number, for_update=True)
                if order is None or (user_id is not None and order.user_id != user_id):
                    raise OrderNotFoundError(order_number)

                from_status = OrderStatus(order.status)
                if allowed_from is not None and from_status not in allowed_from:
                    raise IllegalTransitionError(
                        order_number,
                        from_status.value,
                        target_status.value,
                        [s.value for s in allowed_from],
                    )
                transition = validate_order_transition(order_number, from_status, target_status)

                now = datetime.now(timezone.utc)
                if update_fn:
                    update_fn(order, now)

                order.status = target_status
                order.updated_at = now
                timestamp_field = _STATUS_TIMESTAMPS.get(target_status)
                if timestamp_field and getattr(order, timestamp_field) is None:
                    setattr(order, timestamp_field, now)

                if transition.restores_stock:
                    stock = StockRepository(session)
                    for item in order.items:
                        await stock.increment(item.variant_id, item.quantity)

                order.status_history.append(
                    OrderStatusHistoryModel(
                        from_status=from_status.value,
                        to_status=target_status.value,
                        reason=reason,
                        actor=actor,
                        details=metadata,
                        created_at=now,
                    )
                )
                await session.flush()
                updated = OrderDTO.from_model(order)

        except DomainError as e:
            logger.warning(
                "Order transition rejected",
                order_number=order_number,
                target_status=target_status.value,
                actor=actor,
                error_code=e.error_code,
                error=e.message,
            )
            return _failure(UpdateOrderResult, e)
        except StaleDataError:
            logger.warning(
                "Order modified concurrently",
                order_number=order_number,
                target_status=target_status.value,
                actor=actor,
            )
            return UpdateOrderResult(
                success=False,
                error=f"Order {order_number} was modified concurrently",
                error_code=CONCURRENT_MODIFICATION,
                error_kind=ErrorKind.CONFLICT,
            )

        logger.info(
            "Order status transitioned",
            order_number=order_number,
            from_status=from_status.value,
            to_status=target_status.value,
            actor=actor,
            stock_restored=transition.restores_stock,
        )

        await self._after_transition(updated)
        return UpdateOrderResult(order=updated)

    async def _after_transition(self, order: OrderDTO) -> None:
        """Run post-commit side effects; none of them can undo the transition."""
        if order.status == OrderStatus.PAID:
            if order.invoice_number is None:
                try:
                    order.invoice_number = await self.invoices.assign_invoice_number(
                        order.order_number
                    )
                except Exception as e:
                    logger.error(
                        "Invoice number assignment failed",
                        order_number=order.order_number,
                        error=str(e),
                    )

            if order.shipping_type == ShippingType.DOMESTIC and order.carrier_order_id is None:
                try:
                    booked = await self._book_carrier_order(order.order_number)
                    order.carrier_order_id = booked.carrier_order_id
                    order.tracking_number = booked.tracking_number
                except DomainError as e:
                    logger.warning(
                        "Carrier order creation failed, awaiting manual retry",
                        order_number=order.order_number,
                        error_code=e.error_code,
                        error=e.message,
                    )
                except Exception as e:
                    logger.error(
                        "Carrier order creation failed, awaiting manual retry",
                        order_number=order.order_number,
                        error=str(e),
                    )

        try:
            await self.notifications.notify_status_change(
                user_id=order.user_id,
                order_number=order.order_number,
                order_id=order.id,
                status=order.status,
            )
        except Exception as e:
            logger.error(
                "Order notification failed",
                order_number=order.order_number,
                status=order.status.value,
                error=str(e),
            )

    # ------------------------------------------------------------------
    # Carrier booking
    # ------------------------------------------------------------------

    def _carrier_order_payload(self, order: OrderModel) -> dict[str, Any]:
        settings = self.settings
        payload: dict[str, Any] = {
            "origin_contact_name": settings.warehouse_name,
            "origin_contact_phone": settings.warehouse_phone,
            "origin_address": settings.warehouse_address,
            "origin_postal_code": settings.warehouse_postal_code,
            "destination_contact_name": order.recipient_name,
            "destination_contact_phone": order.recipient_phone,
            "destination_address": order.shipping_address,
            "destination_postal_code": order.shipping_postal_code,
            "courier_company": order.carrier_courier,
            "courier_type": order.carrier_service,
            "delivery_type": "now",
            "reference_id": order.order_number,
            "order_note": f"Order {order.order_number}",
            "items": [
                {
                    "name": f"{item.product_name} - {item.variant_name}",
                    "sku": item.sku,
                    "value": _to_idr(
                        item.unit_price - item.unit_discount, order.currency, order.exchange_rate
                    ),
                    "quantity": item.quantity,
                    "weight": max(item.unit_weight_grams, 1),
                }
                for item in order.items
            ],
        }
        if order.recipient_email:
            payload["destination_contact_email"] = order.recipient_email
        if order.shipping_notes:
            payload["destination_note"] = order.shipping_notes
        return payload

    async def _book_carrier_order(self, order_number: str) -> OrderDTO:
        """Create the carrier shipment for a domestic order and store its ids.

        Raises:
            OrderNotFoundError: Unknown order.
            UpstreamUnavailableError: Carrier not configured or failing.
        """
        async with self.database.unit_of_work() as session:
            order = await OrderRepository(session).get_by_number(order_number)
            if order is None:
                raise OrderNotFoundError(order_number)
            payload = self._carrier_order_payload(order)

        if not self.carrier.configured:
            raise UpstreamUnavailableError("Domestic shipping is not configured")

        try:
            shipment = await self.carrier.create_order(payload)
        except CarrierClientError as e:
            raise UpstreamUnavailableError(e.message) from e

        async with self.database.unit_of_work() as session:
            order = await OrderRepository(session).get_by_number(order_number, for_update=True)
            if order is None:
                raise OrderNotFoundError(order_number)
            if order.carrier_order_id and order.carrier_order_id != shipment.carrier_order_id:
                logger.warning(
                    "Order already has a carrier order, keeping the existing one",
                    order_number=order_number,
                    existing=order.carrier_order_id,
                    duplicate=shipment.carrier_order_id,
                )
            else:
                order.carrier_order_id = shipment.carrier_order_id
                if shipment.tracking_id and not order.tracking_number:
                    order.tracking_number = shipment.tracking_id
                await session.flush()
            booked = OrderDTO.from_model(order)

        logger.info(
            "Carrier order stored",
            order_number=order_number,
            carrier_order_id=booked.carrier_order_id,
            tracking_number=booked.tracking_number,
        )
        return booked

    async def retry_carrier_order(self, order_number: str) -> UpdateOrderResult:
        """Retry carrier booking for a paid domestic order that has none.

        Returns:
            UpdateOrderResult with the order carrying its new carrier ids.
        """
        try:
            async with self.database.unit_of_work() as session:
                order = await OrderRepository(session).get_by_number(order_number)
                if order is None:
                    raise OrderNotFoundError(order_number)
                if order.shipping_type != ShippingType.DOMESTIC:
                    raise CarrierOrderNotRetryableError(order_number, "order ships internationally")
                if order.carrier_order_id:
                    raise CarrierOrderNotRetryableError(order_number, "carrier order already exists")
                if OrderStatus(order.status) not in _CARRIER_RETRY_STATUSES:
                    raise CarrierOrderNotRetryableError(
                        order_number, f"order is {OrderStatus(order.status).value}"
                    )

            booked = await self._book_carrier_order(order_number)
        except DomainError as e:
            logger.warning(
                "Carrier order retry failed",
                order_number=order_number,
                error_code=e.error_code,
                error=e.message,
            )
            return _failure(UpdateOrderResult, e)

        return UpdateOrderResult(order=booked)

    async def record_tracking_number(self, order_number: str, tracking_number: str) -> bool:
        """Store a tracking number reported by the carrier.

        Returns:
            True if the stored tracking number changed.
        """
        async with self.database.unit_of_work() as session:
            order = await OrderRepository(session).get_by_number(order_number, for_update=True)
            if order is None or order.tracking_number == tracking_number:
                return False
            previous = order.tracking_number
            order.tracking_number = tracking_number

        logger.info(
            "Tracking number updated",
            order_number=order_number,
            previous=previous,
            tracking_number=tracking_number,
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_order(self, order_number: str, user_id: str | None = None) -> GetOrderResult:
        """Get an order by order number.

        Args:
            order_number: Order number.
            user_id: When given, only the owner's order is returned.

        Returns:
            GetOrderResult with the order if found.
        """
        async with self.database.unit_of_work() as session:
            order = await OrderRepository(session).get_by_number(order_number)
            if order is None or (user_id is not None and order.user_id != user_id):
                return _failure(GetOrderResult, OrderNotFoundError(order_number))
            return GetOrderResult(order=OrderDTO.from_model(order))

    async def find_by_carrier_order_id(self, carrier_order_id: str) -> OrderDTO | None:
        """Get the order booked under a carrier order id."""
        async with self.database.unit_of_work() as session:
            order = await OrderRepository(session).get_by_carrier_order_id(carrier_order_id)
            return OrderDTO.from_model(order) if order else None

    async def list_orders(
        self,
        user_id: str | None = None,
        status: OrderStatus | None = None,
        shipping_type: ShippingType | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> ListOrdersResult:
        """List orders newest first, with pagination and filtering.

        Args:
            user_id: Only this customer's orders.
            status: Filter by status.
            shipping_type: Filter by shipping type.
            page: Page number (1-based).
            page_size: Items per page.

        Returns:
            ListOrdersResult with paginated orders.
        """
        async with self.database.unit_of_work() as session:
            orders, total = await OrderRepository(session).find_all(
                user_id=user_id,
                status=status,
                shipping_type=shipping_type,
                limit=page_size,
                offset=(page - 1) * page_size,
            )
            dtos = [OrderDTO.from_model(order) for order in orders]

        return ListOrdersResult(orders=dtos, total=total, page=page, page_size=page_size)

    async def list_paid_without_tracking(self) -> ListOrdersResult:
        """Domestic orders past payment that still have no carrier order."""
        async with self.database.unit_of_work() as session:
            orders = await OrderRepository(session).find_paid_without_carrier_order()
            dtos = [OrderDTO.from_model(order) for order in orders]

        return ListOrdersResult(orders=dtos, total=len(dtos), page=1, page_size=max(len(dtos), 1))

    async def get_tracking(self, order_number: str, user_id: str | None = None) -> TrackingResult:
        """Tracking data of an order, enriched by the carrier when reachable."""
        result = await self.get_order(order_number, user_id=user_id)
        if not result.success or result.order is None:
            return TrackingResult(
                success=False,
                error=result.error,
                error_code=result.error_code,
                error_kind=result.error_kind,
            )

        order = result.order
        tracking = TrackingInfo(
            order_number=order.order_number,
            status=order.status,
            shipping_type=order.shipping_type,
            shipping_method=order.shipping_method,
            courier=order.carrier_courier,
            tracking_number=order.tracking_number,
            carrier_order_id=order.carrier_order_id,
            shipped_at=order.shipped_at,
            delivered_at=order.delivered_at,
        )

        if order.carrier_order_id and self.carrier.configured:
            try:
                carrier_tracking = await self.carrier.track(order.carrier_order_id)
            except CarrierClientError as e:
                logger.warning(
                    "Carrier tracking unavailable",
                    order_number=order.order_number,
                    error=e.message,
                )
                carrier_tracking = None
            if carrier_tracking is not None:
                tracking.carrier_status = carrier_tracking.status
                tracking.tracking_link = carrier_tracking.link
                tracking.history = carrier_tracking.history

        return TrackingResult(tracking=tracking)
