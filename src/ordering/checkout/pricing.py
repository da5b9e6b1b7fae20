"""Order pricing — subtotal, tax, shipping and grand total for a set of lines.

Pure and stateless. All arithmetic is ``Decimal``; tax and shipping are rounded
half-up to cents.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

TAX_RATE = Decimal("0.10")
SHIPPING_BASE_RATE = Decimal("5.00")
SHIPPING_PER_ITEM_RATE = Decimal("0.50")


def round_half_up(amount) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class OrderPricing:
    """Financial summary of an order.

    ``total == subtotal + tax + shipping - discount`` holds by construction.
    """

    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal
    total_items: int
    currency: str = "USD"


class PricingCalculator:
    def __init__(
        self,
        tax_rate=TAX_RATE,
        shipping_base=SHIPPING_BASE_RATE,
        shipping_per_item=SHIPPING_PER_ITEM_RATE,
        currency="USD",
    ):
        self.tax_rate = Decimal(tax_rate)
        self.shipping_base = Decimal(shipping_base)
        self.shipping_per_item = Decimal(shipping_per_item)
        self.currency = currency

    @classmethod
    def from_settings(cls, settings):
        return cls(
            tax_rate=settings.pricing.tax_rate,
            shipping_base=settings.pricing.shipping_base,
            shipping_per_item=settings.pricing.shipping_per_item,
            currency=settings.pricing.currency,
        )

    def subtotal(self, lines) -> Decimal:
        return sum((Decimal(line.price) * line.quantity for line in lines), ZERO)

    def tax(self, subtotal) -> Decimal:
        return round_half_up(subtotal * self.tax_rate)

    def shipping(self, total_items) -> Decimal:
        if total_items == 0:
            return ZERO
        additional = self.shipping_per_item * max(0, total_items - 1)
        return round_half_up(self.shipping_base + additional)

    def compute(self, lines, discount=ZERO) -> OrderPricing:
        """Price ``lines`` (anything with ``price`` and ``quantity``)."""
        lines = list(lines)
        discount = round_half_up(discount or ZERO)
        total_items = sum(line.quantity for line in lines)

        subtotal = self.subtotal(lines)
        tax = self.tax(subtotal)
        shipping = self.shipping(total_items)

        return OrderPricing(
            subtotal=subtotal,
            tax=tax,
            shipping=shipping,
            discount=discount,
            total=subtotal + tax + shipping - discount,
            total_items=total_items,
            currency=self.currency,
        )
