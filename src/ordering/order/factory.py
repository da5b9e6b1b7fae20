"""OrderFactory — builds an Order and its items from a cart snapshot.

Construction only: nothing here reads or writes stock. Each OrderItem copies the
product's name, sku and image at this instant; the unit price is the one the
cart captured, so item subtotals always add up to the priced subtotal.
"""

import secrets
import time
from datetime import UTC, datetime

import structlog

from ordering.order.order import Address, Order, OrderItem, OrderStatus, PaymentMethod, PaymentStatus
from shared.exceptions import ObjectNotFoundError, PersistenceError, ValidationError

logger = structlog.get_logger(__name__)

ORDER_NUMBER_PREFIX = "ORD"
DEFAULT_ATTEMPTS = 5


def _random_hex():
    return secrets.token_hex(4).upper()


def _time_suffix():
    return int(time.time() * 1000) % 10000


def format_order_number(random_part, time_suffix) -> str:
    """``ORD-<8 hex>-<4 digits>``, e.g. ``ORD-1A2B3C4D-0042``."""
    return f"{ORDER_NUMBER_PREFIX}-{random_part}-{time_suffix:04d}"


class OrderFactory:
    def __init__(self, attempts=DEFAULT_ATTEMPTS, random_hex=_random_hex, time_suffix=_time_suffix):
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self._random_hex = random_hex
        self._time_suffix = time_suffix

    @classmethod
    def from_settings(cls, settings):
        return cls(attempts=settings.checkout.order_number_attempts)

    def generate_order_number(self, exists) -> str:
        """Draw order numbers until ``exists(number)`` is False, up to ``attempts`` times."""
        for attempt in range(1, self.attempts + 1):
            number = format_order_number(self._random_hex(), self._time_suffix())
            if not exists(number):
                return number
            logger.warning("Order number collision", order_number=number, attempt=attempt)

        raise PersistenceError({"order_number": ["Could not allocate a unique order number. Please retry."]})

    def build(
        self,
        user_id,
        snapshot,
        products,
        pricing,
        shipping_address,
        billing_address=None,
        payment_method=None,
        notes=None,
        exists=lambda number: False,
    ) -> Order:
        """Assemble a PENDING order.

        Args:
            user_id: Owner of the order.
            snapshot: The ``CartSnapshot`` being checked out.
            products: ``{product_id: Product}`` for every line in the snapshot.
            pricing: ``OrderPricing`` computed over the same snapshot.
            shipping_address: ``Address`` (or mapping) to copy into the order.
            billing_address: Defaults to the shipping address.
            payment_method: ``PaymentMethod`` or its name.
            notes: Free text from the customer.
            exists: Order-number uniqueness check against stored orders.
        """
        shipping = Address.from_dict(shipping_address)
        billing = Address.from_dict(billing_address) if billing_address else shipping

        items = []
        for line in snapshot.lines:
            product = products.get(line.product_id)
            if product is None:
                raise ObjectNotFoundError({"product_id": [f"Product not found with id: {line.product_id}"]})
            items.append(
                OrderItem(
                    product_id=line.product_id,
                    product_name=product.name,
                    product_sku=product.sku,
                    product_image_url=product.image_url,
                    price=line.price,
                    quantity=line.quantity,
                    subtotal=line.price * line.quantity,
                )
            )

        now = datetime.now(UTC)
        return Order(
            order_number=self.generate_order_number(exists),
            user_id=user_id,
            status=OrderStatus.PENDING.value,
            payment_method=_payment_method(payment_method),
            payment_status=PaymentStatus.PENDING.value,
            subtotal=pricing.subtotal,
            tax_amount=pricing.tax,
            shipping_amount=pricing.shipping,
            discount_amount=pricing.discount,
            total_amount=pricing.total,
            currency=pricing.currency,
            shipping_address=shipping,
            billing_address=billing,
            notes=notes,
            items=items,
            created_at=now,
            updated_at=now,
        )


def _payment_method(value):
    if value is None:
        return None
    if isinstance(value, PaymentMethod):
        return value.value
    try:
        return PaymentMethod(value).value
    except ValueError as exc:
        raise ValidationError({"payment_method": [f"Unknown payment method: {value}"]}) from exc
