"""SQLAlchemy models for database tables.

Provides ORM models for the catalog rows the order core reads
(products, variants, promotions), carts, shipping zones, and the
order aggregate (orders, order_items, order_status_history).
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import relationship

from storefront.domain.state_machines import OrderStatus, ShippingType
from storefront.infrastructure.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _uuid() -> str:
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp on every backend.

    SQLite drops tzinfo on the way in and out; values are normalized
    to UTC when bound and tagged as UTC when read.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def process_result_value(self, value: datetime | None, dialect: Any) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


JSONType = JSON().with_variant(JSONB(), "postgresql")
CountryList = JSON().with_variant(ARRAY(String(2)), "postgresql")


# ============================================================================
# Catalog Models
# ============================================================================


class PromotionModel(Base):
    """Percentage promotion attached to products."""

    __tablename__ = "promotions"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    discount = Column(Numeric(5, 4), nullable=False)  # 0.15 == 15% off
    is_active = Column(Boolean, nullable=False, default=True)
    starts_at = Column(UTCDateTime, nullable=True)
    ends_at = Column(UTCDateTime, nullable=True)

    def is_running(self, now: datetime) -> bool:
        """Whether the promotion applies at the given instant."""
        if not self.is_active:
            return False
        if self.starts_at is not None and now < self.starts_at:
            return False
        if self.ends_at is not None and now > self.ends_at:
            return False
        return True


class ProductModel(Base):
    """Catalog product (only the columns the order core reads)."""

    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    id_price = Column(Integer, nullable=False)  # IDR
    en_price = Column(Integer, nullable=False)  # USD cents
    weight_grams = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(UTCDateTime, nullable=True)
    promotion_id = Column(
        String(36),
        ForeignKey("promotions.id", ondelete="SET NULL"),
        nullable=True,
    )

    promotion = relationship("PromotionModel", lazy="joined")
    variants = relationship("ProductVariantModel", back_populates="product")

    def is_available(self) -> bool:
        """Soft-deleted products count as missing."""
        return bool(self.is_active) and self.deleted_at is None

    def price_in(self, currency: str) -> int:
        """Catalog price in minor units of the given currency."""
        return self.en_price if currency.upper() == "USD" else self.id_price


class ProductVariantModel(Base):
    """Purchasable variant holding the stock counter."""

    __tablename__ = "product_variants"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_product_variants_stock_non_negative"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(
        String(36),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    variant_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False, unique=True)
    stock = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    deleted_at = Column(UTCDateTime, nullable=True)

    product = relationship("ProductModel", back_populates="variants")

    def is_available(self) -> bool:
        """Soft-deleted variants count as missing."""
        return bool(self.is_active) and self.deleted_at is None


# ============================================================================
# Cart Models
# ============================================================================


class CartModel(Base):
    """A user's shopping cart."""

    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, unique=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.created_at",
    )


class CartItemModel(Base):
    """Line in a cart."""

    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(
        String(36),
        ForeignKey("carts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False)
    variant_id = Column(String(36), ForeignKey("product_variants.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    cart = relationship("CartModel", back_populates="items")
    product = relationship("ProductModel")
    variant = relationship("ProductVariantModel")


# ============================================================================
# Shipping Models
# ============================================================================


class ShippingZoneModel(Base):
    """International flat-plus-per-kilogram rate zone."""

    __tablename__ = "shipping_zones"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False, unique=True)
    countries = Column(CountryList, nullable=False, default=list)
    base_rate = Column(Integer, nullable=False)
    per_kg_rate = Column(Integer, nullable=False)
    min_days = Column(Integer, nullable=False)
    max_days = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)


# ============================================================================
# Order Models
# ============================================================================


class OrderModel(Base):
    """Order model for database persistence.

    Represents an order created from a cart at checkout and tracks the
    full lifecycle from payment to completion or cancellation.
    """

    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    status = Column(
        Enum(OrderStatus, native_enum=False, length=20),
        nullable=False,
        default=OrderStatus.PENDING,
        index=True,
    )
    version = Column(Integer, nullable=False, default=1)

    # Totals (minor units of currency)
    subtotal = Column(Integer, nullable=False)
    discount = Column(Integer, nullable=False, default=0)
    tax = Column(Integer, nullable=False)
    shipping_cost = Column(Integer, nullable=False)
    total = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False, default="IDR")
    exchange_rate = Column(Numeric(12, 4), nullable=True)

    # Payment snapshot
    payment_method = Column(String(30), nullable=True)
    payment_provider = Column(String(30), nullable=True)
    payment_id = Column(String(100), nullable=True)
    invoice_number = Column(String(30), nullable=True, unique=True)

    # Shipping snapshot
    shipping_type = Column(Enum(ShippingType, native_enum=False, length=20), nullable=False)
    shipping_method = Column(String(255), nullable=False)
    carrier_courier = Column(String(50), nullable=True)
    carrier_service = Column(String(50), nullable=True)
    carrier_order_id = Column(String(100), nullable=True, unique=True)
    tracking_number = Column(String(100), nullable=True)
    shipping_zone_id = Column(
        String(36),
        ForeignKey("shipping_zones.id", ondelete="SET NULL"),
        nullable=True,
    )
    recipient_name = Column(String(100), nullable=False)
    recipient_phone = Column(String(20), nullable=False)
    recipient_email = Column(String(255), nullable=True)
    shipping_address = Column(Text, nullable=False)
    shipping_city = Column(String(100), nullable=False)
    shipping_province = Column(String(100), nullable=True)
    shipping_country = Column(String(2), nullable=False)
    shipping_postal_code = Column(String(10), nullable=False)
    shipping_notes = Column(Text, nullable=True)
    parcel_weight_grams = Column(Integer, nullable=False, default=0)

    # Lifecycle timestamps
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow, index=True)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)
    paid_at = Column(UTCDateTime, nullable=True)
    shipped_at = Column(UTCDateTime, nullable=True)
    delivered_at = Column(UTCDateTime, nullable=True)
    completed_at = Column(UTCDateTime, nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)

    # Relationships
    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderItemModel.line_number",
    )
    status_history = relationship(
        "OrderStatusHistoryModel",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="OrderStatusHistoryModel.created_at",
    )

    __mapper_args__ = {"version_id_col": version}


class OrderItemModel(Base):
    """Snapshot of a purchased line at order creation."""

    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = Column(String(36), ForeignKey("products.id"), nullable=False, index=True)
    variant_id = Column(String(36), ForeignKey("product_variants.id"), nullable=False, index=True)
    line_number = Column(Integer, nullable=False, default=1)
    product_name = Column(String(255), nullable=False)
    variant_name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Integer, nullable=False)
    unit_discount = Column(Integer, nullable=False, default=0)
    line_subtotal = Column(Integer, nullable=False)
    line_discount = Column(Integer, nullable=False, default=0)
    unit_weight_grams = Column(Integer, nullable=False, default=0)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    # Relationships
    order = relationship("OrderModel", back_populates="items")


class OrderStatusHistoryModel(Base):
    """Order status history model for audit trail.

    Tracks all status transitions for an order.
    """

    __tablename__ = "order_status_history"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=True)
    to_status = Column(String(20), nullable=False)
    reason = Column(Text, nullable=True)
    actor = Column(String(100), nullable=True)
    details = Column("metadata", JSONType, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)

    # Relationships
    order = relationship("OrderModel", back_populates="status_history")
