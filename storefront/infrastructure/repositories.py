"""Repositories for database operations.

Each repository wraps one AsyncSession; the caller owns the transaction
(see Database.unit_of_work).
"""

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.domain.state_machines import OrderStatus, ShippingType
from storefront.infrastructure.models import (
    CartItemModel,
    CartModel,
    OrderModel,
    ProductVariantModel,
    ShippingZoneModel,
)


class OrderRepository:
    """Repository for Order aggregate operations.

    Example usage:
        async with database.unit_of_work() as session:
            repo = OrderRepository(session)
            order = await repo.get_by_number("ORD-20250101-1A2B3C4D", for_update=True)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize repository with database session.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def add(self, order: OrderModel) -> OrderModel:
        """Insert an order together with its items."""
        self.session.add(order)
        await self.session.flush()
        return order

    async def get_by_number(
        self,
        order_number: str,
        for_update: bool = False,
    ) -> OrderModel | None:
        """Get order by order number.

        Args:
            order_number: Human-facing order number.
            for_update: Lock the row until the transaction ends.

        Returns:
            Order if found, None otherwise.
        """
        stmt = select(OrderModel).where(OrderModel.order_number == order_number)
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_carrier_order_id(self, carrier_order_id: str) -> OrderModel | None:
        """Get order by the carrier's own order id."""
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.carrier_order_id == carrier_order_id)
        )
        return result.scalar_one_or_none()

    async def find_all(
        self,
        user_id: str | None = None,
        status: OrderStatus | None = None,
        shipping_type: ShippingType | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[OrderModel], int]:
        """List orders newest first.

        Returns:
            Tuple of (page of orders, total matching count).
        """
        conditions = []
        if user_id is not None:
            conditions.append(OrderModel.user_id == user_id)
        if status is not None:
            conditions.append(OrderModel.status == status)
        if shipping_type is not None:
            conditions.append(OrderModel.shipping_type == shipping_type)

        count_stmt = select(func.count()).select_from(OrderModel)
        stmt = select(OrderModel)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        total = (await self.session.execute(count_stmt)).scalar_one()
        stmt = stmt.order_by(OrderModel.created_at.desc()).limit(limit).offset(offset)
        result = await self.session.execute(stmt)
        return result.scalars().all(), total

    async def find_numbers_pending_since(self, cutoff: datetime) -> list[str]:
        """Order numbers still PENDING that were created at or before cutoff."""
        result = await self.session.execute(
            select(OrderModel.order_number)
            .where(
                OrderModel.status == OrderStatus.PENDING,
                OrderModel.created_at <= cutoff,
            )
            .order_by(OrderModel.created_at)
        )
        return list(result.scalars().all())

    async def find_numbers_delivered_since(self, cutoff: datetime) -> list[str]:
        """Order numbers DELIVERED at or before cutoff."""
        result = await self.session.execute(
            select(OrderModel.order_number)
            .where(
                OrderModel.status == OrderStatus.DELIVERED,
                OrderModel.delivered_at <= cutoff,
            )
            .order_by(OrderModel.delivered_at)
        )
        return list(result.scalars().all())

    async def find_paid_without_carrier_order(self) -> Sequence[OrderModel]:
        """Domestic orders past payment that never got a carrier booking."""
        result = await self.session.execute(
            select(OrderModel)
            .where(
                OrderModel.status.in_(
                    [OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.SHIPPED]
                ),
                OrderModel.shipping_type == ShippingType.DOMESTIC,
                OrderModel.carrier_order_id.is_(None),
            )
            .order_by(OrderModel.paid_at)
        )
        return result.scalars().all()

    async def latest_invoice_number(self, prefix: str) -> str | None:
        """Highest invoice number starting with prefix.

        Sequences widen past four digits, so longer numbers sort first.
        """
        result = await self.session.execute(
            select(OrderModel.invoice_number)
            .where(OrderModel.invoice_number.like(f"{prefix}%"))
            .order_by(
                func.length(OrderModel.invoice_number).desc(),
                OrderModel.invoice_number.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()


class StockRepository:
    """Atomic stock counter operations on product variants."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def decrement(self, variant_id: str, quantity: int) -> bool:
        """Decrement stock if enough remains.

        The floor check and the write are one statement, so two
        concurrent checkouts can never both take the last unit.

        Returns:
            True if the stock was decremented, False if insufficient.
        """
        result = await self.session.execute(
            update(ProductVariantModel)
            .where(
                ProductVariantModel.id == variant_id,
                ProductVariantModel.stock >= quantity,
            )
            .values(stock=ProductVariantModel.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def increment(self, variant_id: str, quantity: int) -> None:
        """Return units to stock."""
        await self.session.execute(
            update(ProductVariantModel)
            .where(ProductVariantModel.id == variant_id)
            .values(stock=ProductVariantModel.stock + quantity)
            .execution_options(synchronize_session=False)
        )

    async def get_stock(self, variant_id: str) -> int | None:
        """Current stock of a variant, None if it does not exist."""
        result = await self.session.execute(
            select(ProductVariantModel.stock).where(ProductVariantModel.id == variant_id)
        )
        return result.scalar_one_or_none()


class CartRepository:
    """Read and clear user carts."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get_for_user(self, user_id: str) -> CartModel | None:
        """Load the user's cart with items, products, variants and promotions."""
        result = await self.session.execute(
            select(CartModel)
            .where(CartModel.user_id == user_id)
            .options(
                selectinload(CartModel.items).selectinload(CartItemModel.product),
                selectinload(CartModel.items).selectinload(CartItemModel.variant),
            )
        )
        return result.scalar_one_or_none()

    async def clear(self, cart_id: str) -> None:
        """Remove every line from a cart."""
        await self.session.execute(
            delete(CartItemModel)
            .where(CartItemModel.cart_id == cart_id)
            .execution_options(synchronize_session=False)
        )


class ShippingZoneRepository:
    """Read-only access to international shipping zones."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_active(self) -> Sequence[ShippingZoneModel]:
        """Active zones ordered by name."""
        result = await self.session.execute(
            select(ShippingZoneModel)
            .where(ShippingZoneModel.is_active.is_(True))
            .order_by(ShippingZoneModel.name)
        )
        return result.scalars().all()

    async def find_for_country(self, country_code: str) -> ShippingZoneModel | None:
        """Active zone whose country set contains country_code.

        Membership is checked in Python so the lookup behaves the same on
        PostgreSQL arrays and on JSON columns.
        """
        country_code = country_code.upper()
        for zone in await self.list_active():
            if country_code in {c.upper() for c in zone.countries or []}:
                return zone
        return None
