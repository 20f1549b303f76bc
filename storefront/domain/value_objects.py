"""Value Objects for the domain layer.

Value objects are immutable objects that are defined by their attributes
rather than identity. They are interchangeable when their values are equal.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Self

from storefront.domain.base import ValueObject
from storefront.domain.exceptions import NegativeMoneyError, UnsupportedCurrencyError


# ============================================================================
# Currency
# ============================================================================


# Number of decimal places in the major unit of each supported currency.
# Amounts are always stored in minor units, so IDR is stored in rupiah
# and USD in cents.
CURRENCY_EXPONENTS: dict[str, int] = {
    "IDR": 0,
    "JPY": 0,
    "KRW": 0,
    "USD": 2,
    "EUR": 2,
    "SGD": 2,
}


def currency_exponent(currency: str) -> int:
    """Get the minor-unit exponent of a currency.

    Raises:
        UnsupportedCurrencyError: If the currency is unknown.
    """
    try:
        return CURRENCY_EXPONENTS[currency.upper()]
    except KeyError:
        raise UnsupportedCurrencyError(currency) from None


def round_minor(value: Decimal) -> int:
    """Round a Decimal amount of minor units to a whole minor unit.

    Halves round away from zero.
    """
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ============================================================================
# Money
# ============================================================================


@dataclass(frozen=True)
class Money(ValueObject):
    """Represents monetary value with currency.

    Money is stored in the smallest currency unit (whole rupiah for
    IDR, cents for USD) to avoid floating-point precision issues.

    Attributes:
        amount: Amount in smallest currency unit.
        currency: ISO 4217 currency code (e.g., 'IDR', 'USD').
    """

    amount: int
    currency: str = "IDR"

    def __post_init__(self) -> None:
        """Validate money constraints."""
        if self.amount < 0:
            raise NegativeMoneyError(self.amount)
        # Normalize currency to uppercase
        object.__setattr__(self, "currency", self.currency.upper())
        currency_exponent(self.currency)

    @classmethod
    def zero(cls, currency: str = "IDR") -> Self:
        """Create zero amount money."""
        return cls(amount=0, currency=currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = "IDR") -> Self:
        """Create money from a decimal amount in major units.

        Args:
            amount: Decimal amount in major units (e.g., dollars).
            currency: Currency code.

        Returns:
            Money instance.
        """
        scale = Decimal(10) ** currency_exponent(currency)
        return cls(amount=round_minor(amount * scale), currency=currency)

    def to_decimal(self) -> Decimal:
        """Convert to decimal amount in major units."""
        return Decimal(self.amount) / (Decimal(10) ** currency_exponent(self.currency))

    def convert(self, currency: str, rate: Decimal) -> "Money":
        """Convert into another currency.

        Args:
            currency: Target currency code.
            rate: Units of this currency per one unit of the target currency
                (e.g. 15700 when converting IDR into USD).

        Returns:
            New Money in the target currency, rounded to its minor unit.
        """
        if currency.upper() == self.currency:
            return self
        return Money.from_decimal(self.to_decimal() / rate, currency)

    def __str__(self) -> str:
        """Return formatted string representation (e.g. 'IDR 150000')."""
        exponent = currency_exponent(self.currency)
        return f"{self.currency} {self.to_decimal():.{exponent}f}"


# ============================================================================
# Shipping destination
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Recipient contact and destination captured at checkout."""

    recipient_name: str
    recipient_phone: str
    address: str
    city: str
    country: str
    postal_code: str
    province: str | None = None
    notes: str | None = None
    email: str | None = None

    def __post_init__(self) -> None:
        """Normalize the country code."""
        if len(self.country) != 2:
            raise ValueError(f"Country must be an ISO 3166 alpha-2 code, got {self.country!r}")
        object.__setattr__(self, "country", self.country.upper())

    def format_single_line(self) -> str:
        """Format address as single line."""
        parts = [self.address, self.city]
        if self.province:
            parts.append(self.province)
        parts.extend([self.postal_code, self.country])
        return ", ".join(parts)
