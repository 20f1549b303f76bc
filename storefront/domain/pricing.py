"""Order pricing.

Pure functions that turn cart lines, a shipping cost and a tax rate
into order totals. All amounts are integers in the order currency's
minor unit; every intermediate value is rounded to a whole minor unit
before it is summed, and promotion discounts are rounded per line.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from storefront.domain.value_objects import currency_exponent, round_minor


@dataclass(frozen=True)
class LineItemInput:
    """A cart line to be priced.

    Attributes:
        unit_price: Catalog price per unit in minor units.
        quantity: Number of units (> 0).
        discount_fraction: Active promotion discount, e.g. Decimal("0.15").
    """

    unit_price: int
    quantity: int
    discount_fraction: Decimal = Decimal("0")

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Quantity must be positive, got {self.quantity}")
        if self.unit_price < 0:
            raise ValueError(f"Unit price cannot be negative, got {self.unit_price}")
        if not Decimal("0") <= self.discount_fraction <= Decimal("1"):
            raise ValueError(f"Discount fraction must be within [0, 1], got {self.discount_fraction}")


@dataclass(frozen=True)
class LineTotals:
    """Priced line, as stored on an order item."""

    unit_price: int
    unit_discount: int
    quantity: int

    @property
    def line_subtotal(self) -> int:
        """Gross line amount before discount."""
        return self.unit_price * self.quantity

    @property
    def line_discount(self) -> int:
        """Total promotion discount of the line."""
        return self.unit_discount * self.quantity


@dataclass(frozen=True)
class OrderTotals:
    """Monetary summary of an order."""

    subtotal: int
    discount: int
    tax: int
    shipping_cost: int
    total: int
    currency: str

    def is_consistent(self) -> bool:
        """Check the total identity holds."""
        return self.total == (self.subtotal - self.discount) + self.tax + self.shipping_cost


def price_line(item: LineItemInput) -> LineTotals:
    """Price a single cart line.

    The per-unit promotion discount is rounded here, once per line, so
    multi-item orders never drift by accumulated fractions.
    """
    unit_discount = round_minor(Decimal(item.unit_price) * item.discount_fraction)
    return LineTotals(
        unit_price=item.unit_price,
        unit_discount=unit_discount,
        quantity=item.quantity,
    )


def totals_from_lines(
    lines: Iterable[LineTotals],
    shipping_cost: int,
    tax_rate: Decimal,
    currency: str,
) -> OrderTotals:
    """Sum already-priced lines into order totals.

    Used both at checkout and to re-derive the totals of a stored order
    from its items.
    """
    currency_exponent(currency)
    if shipping_cost < 0:
        raise ValueError(f"Shipping cost cannot be negative, got {shipping_cost}")

    lines = list(lines)
    subtotal = sum(line.line_subtotal for line in lines)
    discount = sum(line.line_discount for line in lines)
    taxable = subtotal - discount
    tax = round_minor(Decimal(taxable) * Decimal(tax_rate))

    return OrderTotals(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        shipping_cost=shipping_cost,
        total=taxable + tax + shipping_cost,
        currency=currency.upper(),
    )


def compute_totals(
    line_items: Sequence[LineItemInput],
    shipping_cost: int,
    tax_rate: Decimal,
    currency: str,
) -> tuple[OrderTotals, list[LineTotals]]:
    """Compute order totals for a set of cart lines.

    Args:
        line_items: Lines to price.
        shipping_cost: Chosen shipping cost in minor units of ``currency``.
        tax_rate: Tax rate applied to the discounted subtotal.
        currency: Order currency code.

    Returns:
        Tuple of (order totals, priced lines in input order).
    """
    lines = [price_line(item) for item in line_items]
    return totals_from_lines(lines, shipping_cost, tax_rate, currency), lines
