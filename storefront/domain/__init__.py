"""Domain layer - value objects, pricing, the order state machine and errors.

- **Value Objects**: Money (integer minor units), ShippingAddress
- **Pricing**: line and order totals with rounding per line
- **State Machine**: OrderStatus transitions and webhook precedence
- **Exceptions**: domain errors carrying an error code and kind

Example usage:
    from storefront.domain import LineItemInput, OrderStatus, compute_totals

    totals, lines = compute_totals(
        [LineItemInput(unit_price=100000, quantity=2, discount_fraction=Decimal("0.10"))],
        shipping_cost=20000,
        tax_rate=Decimal("0.11"),
        currency="IDR",
    )
    OrderStatus.PENDING.can_transition_to(OrderStatus.PAID)  # True
"""

from storefront.domain.base import ValueObject
from storefront.domain.exceptions import (
    CarrierOrderNotRetryableError,
    CheckoutError,
    DomainError,
    EmptyCartError,
    ErrorKind,
    IllegalTransitionError,
    InsufficientStockError,
    InvalidCheckoutError,
    InvalidDestinationError,
    MoneyError,
    NegativeMoneyError,
    NoOptionsFoundError,
    OrderNotExpiredError,
    OrderNotFoundError,
    ProductUnavailableError,
    ShippingError,
    ShippingZoneNotFoundError,
    TrackingNumberRequiredError,
    UnsupportedCurrencyError,
    UnsupportedDestinationError,
    UpstreamUnavailableError,
)
from storefront.domain.pricing import (
    LineItemInput,
    LineTotals,
    OrderTotals,
    compute_totals,
    price_line,
    totals_from_lines,
)
from storefront.domain.state_machines import (
    OrderStatus,
    ShippingType,
    StateTransition,
    validate_order_transition,
)
from storefront.domain.value_objects import (
    CURRENCY_EXPONENTS,
    Money,
    ShippingAddress,
    currency_exponent,
    round_minor,
)

__all__ = [
    # Base classes
    "ValueObject",
    # Value Objects
    "CURRENCY_EXPONENTS",
    "Money",
    "ShippingAddress",
    "currency_exponent",
    "round_minor",
    # Pricing
    "LineItemInput",
    "LineTotals",
    "OrderTotals",
    "compute_totals",
    "price_line",
    "totals_from_lines",
    # State Machines
    "OrderStatus",
    "ShippingType",
    "StateTransition",
    "validate_order_transition",
    # Exceptions
    "ErrorKind",
    "DomainError",
    "IllegalTransitionError",
    "TrackingNumberRequiredError",
    "CheckoutError",
    "EmptyCartError",
    "ProductUnavailableError",
    "InsufficientStockError",
    "InvalidCheckoutError",
    "ShippingError",
    "UpstreamUnavailableError",
    "InvalidDestinationError",
    "NoOptionsFoundError",
    "UnsupportedDestinationError",
    "OrderNotExpiredError",
    "OrderNotFoundError",
    "ShippingZoneNotFoundError",
    "CarrierOrderNotRetryableError",
    "MoneyError",
    "UnsupportedCurrencyError",
    "NegativeMoneyError",
]
