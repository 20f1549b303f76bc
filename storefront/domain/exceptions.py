"""Domain exceptions.

All domain-level errors that represent business rule violations.
Each error carries a machine-readable ``error_code`` and an
``error_kind`` (validation, conflict, not_found, upstream) which the
application layer turns into result objects and the HTTP layer into
status codes.
"""

from typing import Any


class ErrorKind:
    """Error taxonomy shared by services and the HTTP layer."""

    VALIDATION = "validation"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UPSTREAM = "upstream"


class DomainError(Exception):
    """Base class for all domain exceptions.

    All domain errors should inherit from this class to allow
    catching domain-specific errors at the application layer.
    """

    error_code: str = "DOMAIN_ERROR"
    error_kind: str = ErrorKind.VALIDATION

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize domain error.

        Args:
            message: Human-readable error message.
            details: Optional dictionary with additional error context.
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ============================================================================
# State Machine Errors
# ============================================================================


class IllegalTransitionError(DomainError):
    """Raised when a status change is not in the transition table.

    The order is left unchanged.
    """

    error_code = "ILLEGAL_TRANSITION"
    error_kind = ErrorKind.CONFLICT

    def __init__(
        self,
        order_number: str,
        current_state: str,
        target_state: str,
        allowed_transitions: list[str] | None = None,
    ) -> None:
        """Initialize illegal transition error.

        Args:
            order_number: Order number of the order being transitioned.
            current_state: Current state of the order.
            target_state: Attempted target state.
            allowed_transitions: List of allowed target states from current state.
        """
        allowed = allowed_transitions or []
        message = (
            f"Cannot transition order {order_number} "
            f"from '{current_state}' to '{target_state}'. "
            f"Allowed transitions: {allowed}"
        )
        super().__init__(
            message,
            details={
                "order_number": order_number,
                "current_state": current_state,
                "target_state": target_state,
                "allowed_transitions": allowed,
            },
        )
        self.current_state = current_state
        self.target_state = target_state


class TrackingNumberRequiredError(DomainError):
    """Raised when shipping an order without a tracking number."""

    error_code = "TRACKING_NUMBER_REQUIRED"

    def __init__(self, order_number: str, shipping_type: str) -> None:
        super().__init__(
            f"Tracking number is required to ship {shipping_type.lower()} order {order_number}",
            details={"order_number": order_number, "shipping_type": shipping_type},
        )


# ============================================================================
# Checkout Errors
# ============================================================================


class CheckoutError(DomainError):
    """Base class for checkout-related errors."""

    pass


class EmptyCartError(CheckoutError):
    """Raised when trying to check out an empty cart."""

    error_code = "EMPTY_CART"

    def __init__(self, user_id: str) -> None:
        super().__init__("Cart is empty", details={"user_id": user_id})


class ProductUnavailableError(CheckoutError):
    """Raised when a product or variant is inactive or soft-deleted."""

    error_code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_name: str, variant_name: str | None = None) -> None:
        """Initialize product unavailable error.

        Args:
            product_name: Name of the unavailable product.
            variant_name: Name of the unavailable variant, if the variant is the cause.
        """
        if variant_name:
            message = f"Variant {variant_name} of {product_name} is no longer available"
        else:
            message = f"Product {product_name} is no longer available"
        super().__init__(
            message,
            details={"product_name": product_name, "variant_name": variant_name},
        )


class InsufficientStockError(CheckoutError):
    """Raised when a variant cannot cover the requested quantity."""

    error_code = "INSUFFICIENT_STOCK"
    error_kind = ErrorKind.CONFLICT

    def __init__(
        self,
        variant_id: str,
        sku: str,
        available: int | None,
        requested: int,
    ) -> None:
        """Initialize insufficient stock error.

        Args:
            variant_id: ID of the deficient variant.
            sku: SKU of the deficient variant.
            available: Stock seen when the check failed, if known.
            requested: Requested quantity.
        """
        super().__init__(
            f"Insufficient stock for {sku}. Available: {available}, Requested: {requested}",
            details={
                "variant_id": variant_id,
                "sku": sku,
                "available": available,
                "requested": requested,
            },
        )
        self.variant_id = variant_id


class InvalidCheckoutError(CheckoutError):
    """Raised when the checkout input combination is inconsistent."""

    error_code = "INVALID_CHECKOUT"

    def __init__(self, reason: str) -> None:
        super().__init__(reason, details={"reason": reason})


# ============================================================================
# Shipping Errors
# ============================================================================


class ShippingError(DomainError):
    """Base class for shipping-rate errors."""

    pass


class UpstreamUnavailableError(ShippingError):
    """Raised when the carrier API is unreachable, misconfigured or failing."""

    error_code = "UPSTREAM_UNAVAILABLE"
    error_kind = ErrorKind.UPSTREAM

    def __init__(self, reason: str) -> None:
        super().__init__(f"Carrier service unavailable: {reason}", details={"reason": reason})


class InvalidDestinationError(ShippingError):
    """Raised when the carrier rejects the destination postal code."""

    error_code = "INVALID_DESTINATION"

    def __init__(self, postal_code: str, reason: str | None = None) -> None:
        super().__init__(
            f"Invalid destination postal code {postal_code}"
            + (f": {reason}" if reason else ""),
            details={"postal_code": postal_code, "reason": reason},
        )


class NoOptionsFoundError(ShippingError):
    """Raised when no shipping option is available for a destination."""

    error_code = "NO_OPTIONS_FOUND"
    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, destination: str) -> None:
        super().__init__(
            f"No shipping options available for {destination}",
            details={"destination": destination},
        )


class UnsupportedDestinationError(ShippingError):
    """Raised when no active shipping zone covers a country."""

    error_code = "UNSUPPORTED_DESTINATION"
    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, country_code: str) -> None:
        super().__init__(
            f"No shipping zone found for country: {country_code}",
            details={"country_code": country_code},
        )


# ============================================================================
# Lookup Errors
# ============================================================================


class OrderNotFoundError(DomainError):
    """Raised when an order does not exist or is not visible to the caller."""

    error_code = "ORDER_NOT_FOUND"
    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, order_number: str) -> None:
        super().__init__(
            f"Order not found: {order_number}",
            details={"order_number": order_number},
        )


class OrderNotExpiredError(DomainError):
    """Raised when expiring an order whose payment window is still open."""

    error_code = "ORDER_NOT_EXPIRED"
    error_kind = ErrorKind.CONFLICT

    def __init__(self, order_number: str, created_at: str, cutoff: str) -> None:
        super().__init__(
            f"Order {order_number} is still within its payment window",
            details={"order_number": order_number, "created_at": created_at, "cutoff": cutoff},
        )


class ShippingZoneNotFoundError(DomainError):
    """Raised when a referenced shipping zone does not exist or is inactive."""

    error_code = "SHIPPING_ZONE_NOT_FOUND"
    error_kind = ErrorKind.NOT_FOUND

    def __init__(self, zone_id: str) -> None:
        super().__init__(
            f"Shipping zone not found: {zone_id}",
            details={"zone_id": zone_id},
        )


class CarrierOrderNotRetryableError(DomainError):
    """Raised when a carrier booking retry is requested for an ineligible order."""

    error_code = "CARRIER_RETRY_NOT_ALLOWED"
    error_kind = ErrorKind.CONFLICT

    def __init__(self, order_number: str, reason: str) -> None:
        super().__init__(
            f"Cannot retry carrier order for {order_number}: {reason}",
            details={"order_number": order_number, "reason": reason},
        )


# ============================================================================
# Money Errors
# ============================================================================


class MoneyError(DomainError):
    """Base class for money-related errors."""

    pass


class UnsupportedCurrencyError(MoneyError):
    """Raised for a currency without a known minor-unit exponent."""

    error_code = "UNSUPPORTED_CURRENCY"

    def __init__(self, currency: str) -> None:
        super().__init__(
            f"Unsupported currency: {currency}",
            details={"currency": currency},
        )


class NegativeMoneyError(MoneyError):
    """Raised when attempting to create money with negative amount."""

    error_code = "NEGATIVE_AMOUNT"

    def __init__(self, amount: int) -> None:
        """Initialize negative money error.

        Args:
            amount: The negative amount in minor units.
        """
        super().__init__(
            f"Money amount cannot be negative: {amount}",
            details={"amount": amount},
        )
