"""Shared fixtures.

Every test gets its own SQLite database file, a fake carrier API served
through httpx.MockTransport and a notification sink that records calls.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
import pytest
from sqlalchemy import func, select, update

from storefront.api.dependencies import Container, build_container
from storefront.application.order_service import CheckoutInput
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import ShippingAddress
from storefront.infrastructure.config import Settings
from storefront.infrastructure.database import Database
from storefront.infrastructure.models import (
    CartItemModel,
    CartModel,
    OrderModel,
    ProductModel,
    ProductVariantModel,
    PromotionModel,
    ShippingZoneModel,
)
from storefront.infrastructure.repositories import StockRepository

ADMIN_API_KEY = "test-admin-key"
MIDTRANS_SERVER_KEY = "test-server-key"


# ============================================================================
# Fake collaborators
# ============================================================================


DEFAULT_RATES: list[dict[str, Any]] = [
    {
        "courier_code": "jne",
        "courier_name": "JNE",
        "courier_service_name": "Reguler",
        "type": "reg",
        "description": "Layanan reguler",
        "price": 18000,
        "shipment_duration_range": "2 - 3",
        "available_for_insurance": True,
    },
    {
        "courier_code": "jne",
        "courier_name": "JNE",
        "courier_service_name": "Yakin Esok Sampai",
        "type": "yes",
        "description": "Next day",
        "price": 30000,
        "shipment_duration_range": "1 - 1",
        "available_for_insurance": True,
    },
    {
        "courier_code": "sicepat",
        "courier_name": "SiCepat",
        "courier_service_name": "Reguler",
        "type": "reg",
        "description": "Layanan reguler",
        "price": 18000,
        "shipment_duration_range": "1 - 2",
        "available_for_insurance": False,
    },
    {
        "courier_code": "tiki",
        "courier_name": "TIKI",
        "courier_service_name": "Economy",
        "type": "eco",
        "description": "Ekonomi",
        "price": 15000,
        "shipment_duration_range": "4 - 5",
        "available_for_insurance": False,
    },
]


@dataclass
class FakeCarrierApi:
    """In-memory stand-in for the carrier aggregator's HTTP API."""

    rates: list[dict[str, Any]] = field(default_factory=lambda: list(DEFAULT_RATES))
    rejected_postal_codes: set[str] = field(default_factory=lambda: {"00000"})
    fail_rates: bool = False
    fail_orders: bool = False
    fail_tracking: bool = False
    return_tracking_id: bool = True
    rate_requests: list[dict[str, Any]] = field(default_factory=list)
    order_requests: list[dict[str, Any]] = field(default_factory=list)
    trackings: dict[str, dict[str, Any]] = field(default_factory=dict)

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "POST" and path.endswith("/rates/couriers"):
            return self._rates(json.loads(request.content))
        if request.method == "POST" and path.endswith("/orders"):
            return self._create_order(json.loads(request.content))
        if request.method == "GET" and "/trackings/" in path:
            return self._track(path.rsplit("/", 1)[-1])
        return httpx.Response(404, json={"success": False, "error": "Not found"})

    def _rates(self, body: dict[str, Any]) -> httpx.Response:
        self.rate_requests.append(body)
        if self.fail_rates:
            return httpx.Response(503, json={"success": False, "error": "Service unavailable"})
        if body["destination_postal_code"] in self.rejected_postal_codes:
            return httpx.Response(
                400, json={"success": False, "error": "Invalid destination postal code"}
            )
        couriers = set(body["couriers"].split(","))
        pricing = [rate for rate in self.rates if rate["courier_code"] in couriers]
        return httpx.Response(200, json={"success": True, "pricing": pricing})

    def _create_order(self, body: dict[str, Any]) -> httpx.Response:
        self.order_requests.append(body)
        if self.fail_orders:
            return httpx.Response(500, json={"success": False, "error": "Courier not available"})
        number = len(self.order_requests)
        courier: dict[str, Any] = {"company": body.get("courier_company")}
        if self.return_tracking_id:
            courier["tracking_id"] = f"TRK{number:05d}"
        return httpx.Response(
            200,
            json={
                "success": True,
                "id": f"carrier-order-{number}",
                "status": "confirmed",
                "price": 18000,
                "courier": courier,
            },
        )

    def _track(self, carrier_order_id: str) -> httpx.Response:
        if self.fail_tracking:
            return httpx.Response(502, json={"success": False, "error": "Bad gateway"})
        tracking = self.trackings.get(carrier_order_id)
        if tracking is None:
            return httpx.Response(404, json={"success": False, "error": "Not found"})
        return httpx.Response(200, json=tracking)


@dataclass
class Notification:
    user_id: str
    order_number: str
    order_id: str
    status: OrderStatus
    locale: str


class RecordingNotificationSink:
    """Notification sink that keeps every call."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.fail = False

    async def notify_status_change(
        self,
        user_id: str,
        order_number: str,
        order_id: str,
        status: OrderStatus,
        locale: str = "id",
    ) -> None:
        if self.fail:
            raise RuntimeError("mail server down")
        self.sent.append(Notification(user_id, order_number, order_id, status, locale))

    def statuses_for(self, order_number: str) -> list[OrderStatus]:
        return [n.status for n in self.sent if n.order_number == order_number]


# ============================================================================
# Seeding
# ============================================================================


@dataclass
class SeededVariant:
    product_id: str
    variant_id: str
    sku: str


class Seeder:
    """Inserts catalog, cart and zone rows."""

    def __init__(self, database: Database) -> None:
        self.database = database
        self._sku_counter = 0

    async def product(
        self,
        name: str = "Batik Shirt",
        id_price: int = 100000,
        en_price: int = 700,
        weight_grams: int = 500,
        stock: int = 10,
        discount: Decimal | None = None,
        variant_name: str = "M",
    ) -> SeededVariant:
        self._sku_counter += 1
        sku = f"SKU-{self._sku_counter:04d}"
        async with self.database.unit_of_work() as session:
            promotion = None
            if discount is not None:
                promotion = PromotionModel(name=f"{name} promo", discount=discount, is_active=True)
                session.add(promotion)
                await session.flush()
            product = ProductModel(
                name=name,
                id_price=id_price,
                en_price=en_price,
                weight_grams=weight_grams,
                is_active=True,
                promotion_id=promotion.id if promotion else None,
            )
            session.add(product)
            await session.flush()
            variant = ProductVariantModel(
                product_id=product.id,
                variant_name=variant_name,
                sku=sku,
                stock=stock,
                is_active=True,
            )
            session.add(variant)
            await session.flush()
            return SeededVariant(product_id=product.id, variant_id=variant.id, sku=sku)

    async def cart(self, user_id: str, lines: list[tuple[SeededVariant, int]]) -> str:
        """Fill the user's cart, creating it on first use."""
        async with self.database.unit_of_work() as session:
            cart = (
                await session.execute(select(CartModel).where(CartModel.user_id == user_id))
            ).scalar_one_or_none()
            if cart is None:
                cart = CartModel(user_id=user_id)
                session.add(cart)
                await session.flush()
            for variant, quantity in lines:
                session.add(
                    CartItemModel(
                        cart_id=cart.id,
                        product_id=variant.product_id,
                        variant_id=variant.variant_id,
                        quantity=quantity,
                    )
                )
            return cart.id

    async def zone(
        self,
        name: str = "Asia Pacific",
        countries: list[str] | None = None,
        base_rate: int = 300000,
        per_kg_rate: int = 125000,
        min_days: int = 7,
        max_days: int = 14,
        is_active: bool = True,
    ) -> str:
        async with self.database.unit_of_work() as session:
            zone = ShippingZoneModel(
                name=name,
                countries=countries if countries is not None else ["SG", "MY", "AU"],
                base_rate=base_rate,
                per_kg_rate=per_kg_rate,
                min_days=min_days,
                max_days=max_days,
                is_active=is_active,
            )
            session.add(zone)
            await session.flush()
            return zone.id

    async def stock(self, variant: SeededVariant) -> int | None:
        async with self.database.unit_of_work() as session:
            return await StockRepository(session).get_stock(variant.variant_id)

    async def cart_size(self, user_id: str) -> int:
        async with self.database.unit_of_work() as session:
            result = await session.execute(
                select(func.count())
                .select_from(CartItemModel)
                .join(CartModel, CartModel.id == CartItemModel.cart_id)
                .where(CartModel.user_id == user_id)
            )
            return result.scalar_one()

    async def order_count(self) -> int:
        async with self.database.unit_of_work() as session:
            result = await session.execute(select(func.count()).select_from(OrderModel))
            return result.scalar_one()

    async def set_stock(self, variant: SeededVariant, stock: int) -> None:
        async with self.database.unit_of_work() as session:
            await session.execute(
                update(ProductVariantModel)
                .where(ProductVariantModel.id == variant.variant_id)
                .values(stock=stock)
            )

    async def deactivate_product(self, variant: SeededVariant) -> None:
        async with self.database.unit_of_work() as session:
            await session.execute(
                update(ProductModel)
                .where(ProductModel.id == variant.product_id)
                .values(deleted_at=datetime.now(timezone.utc))
            )

    async def backdate_order(self, order_number: str, **timestamps: datetime) -> None:
        async with self.database.unit_of_work() as session:
            await session.execute(
                update(OrderModel)
                .where(OrderModel.order_number == order_number)
                .values(**timestamps)
            )


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a throwaway database, with the carrier configured."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}",
        admin_api_key=ADMIN_API_KEY,
        biteship_api_key="test-carrier-key",
        biteship_base_url="https://carrier.test/v1",
        biteship_couriers="jne,tiki,sicepat",
        warehouse_name="Test Warehouse",
        warehouse_phone="0811111111",
        warehouse_address="Jl. Gudang No. 1, Jakarta",
        warehouse_postal_code="12950",
        midtrans_server_key=MIDTRANS_SERVER_KEY,
        midtrans_is_production=False,
        tax_rate=Decimal("0.11"),
        usd_to_idr_rate=Decimal("15700"),
        sweep_concurrency=1,
        scheduler_enabled=False,
        log_json=False,
    )


@pytest.fixture
async def database(settings: Settings):
    """Database with all tables created."""
    db = Database(settings.database_url)
    await db.create_all()
    yield db
    await db.dispose()


@pytest.fixture
def seed(database: Database) -> Seeder:
    return Seeder(database)


@pytest.fixture
def carrier_api() -> FakeCarrierApi:
    return FakeCarrierApi()


@pytest.fixture
def notifications() -> RecordingNotificationSink:
    return RecordingNotificationSink()


@pytest.fixture
async def container(
    settings: Settings,
    database: Database,
    carrier_api: FakeCarrierApi,
    notifications: RecordingNotificationSink,
):
    """Fully wired services sharing the test database."""
    wired: Container = build_container(
        settings,
        database=database,
        carrier_transport=httpx.MockTransport(carrier_api.handler),
        notifications=notifications,
    )
    yield wired
    await wired.carrier.close()


@pytest.fixture
def domestic_address() -> ShippingAddress:
    return ShippingAddress(
        recipient_name="Siti Rahma",
        recipient_phone="081298765432",
        address="Jl. Merdeka No. 10",
        city="Bandung",
        province="Jawa Barat",
        country="ID",
        postal_code="40115",
        email="siti@example.com",
    )


@pytest.fixture
def international_address() -> ShippingAddress:
    return ShippingAddress(
        recipient_name="Tan Wei Ming",
        recipient_phone="+6591234567",
        address="10 Orchard Road",
        city="Singapore",
        country="SG",
        postal_code="238826",
    )


@pytest.fixture
def place_order(container: Container, seed: Seeder, domestic_address, international_address):
    """Check out a fresh cart and return the created order.

    Domestic orders ship with JNE REG; international ones need a zone
    covering SG, which is seeded on first use.
    """
    zones: list[str] = []

    async def _place(
        user_id: str = "user-1",
        variant: SeededVariant | None = None,
        quantity: int = 1,
        international: bool = False,
        currency: str = "IDR",
    ):
        variant = variant or await seed.product()
        await seed.cart(user_id, [(variant, quantity)])
        if international:
            if not zones:
                zones.append(await seed.zone(countries=["SG"]))
            checkout = CheckoutInput(shipping_address=international_address, currency=currency)
        else:
            checkout = CheckoutInput(
                shipping_address=domestic_address,
                carrier_code="jne",
                service_code="reg",
                currency=currency,
            )
        result = await container.orders.create_order(user_id, checkout)
        assert result.success, result.error
        return result.order

    return _place
