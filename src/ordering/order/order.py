"""Order aggregate — the durable result of a checkout.

An Order is created exactly once, by checkout, together with its items. After
that only status, payment status, tracking and timestamp fields change, and
only through the transition tables below.

State Machine:
    PENDING → PROCESSING → CONFIRMED → SHIPPED → DELIVERED
    CANCELLED (from PENDING, PROCESSING, CONFIRMED)
    REFUNDED, ON_HOLD (from any non-terminal state)
    ON_HOLD → the state it was held from (held_from_status), or REFUNDED
    Terminal: DELIVERED, CANCELLED, REFUNDED

``version`` is an optimistic-lock column, so two concurrent lifecycle
changes to one order cannot both commit.

OrderItems carry a snapshot of the product (name, sku, image, unit price)
taken at purchase time. They never follow later catalogue edits.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, composite, mapped_column, relationship

from shared.exceptions import InvalidStateTransitionError, ValidationError
from shared.persistence import Base, Money


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    CONFIRMED = "CONFIRMED"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"
    ON_HOLD = "ON_HOLD"


class PaymentStatus(Enum):
    PENDING = "PENDING"
    AUTHORIZED = "AUTHORIZED"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    PARTIALLY_REFUNDED = "PARTIALLY_REFUNDED"


class PaymentMethod(Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    PAYPAL = "PAYPAL"
    STRIPE = "STRIPE"
    CASH_ON_DELIVERY = "CASH_ON_DELIVERY"
    BANK_TRANSFER = "BANK_TRANSFER"


# State machine transition map
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.ON_HOLD,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.CONFIRMED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.ON_HOLD,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.SHIPPED,
        OrderStatus.CANCELLED,
        OrderStatus.REFUNDED,
        OrderStatus.ON_HOLD,
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.REFUNDED, OrderStatus.ON_HOLD},
    # Resuming is further limited to held_from_status
    OrderStatus.ON_HOLD: {
        OrderStatus.PENDING,
        OrderStatus.PROCESSING,
        OrderStatus.CONFIRMED,
        OrderStatus.SHIPPED,
        OrderStatus.REFUNDED,
    },
    OrderStatus.DELIVERED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
    OrderStatus.REFUNDED: set(),  # Terminal
}

# States from which cancellation is allowed
_CANCELLABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.CONFIRMED}

_RESUMABLE_STATES = {OrderStatus.PENDING, OrderStatus.PROCESSING, OrderStatus.CONFIRMED, OrderStatus.SHIPPED}

_VALID_PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.AUTHORIZED, PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.AUTHORIZED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED, PaymentStatus.PARTIALLY_REFUNDED},
    PaymentStatus.PARTIALLY_REFUNDED: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}

SHIPPING_METHOD = "Standard Shipping"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class Address:
    """A delivery or billing address captured at checkout time.

    Embedded by value into the order's own columns. Later changes to the
    customer's address book never reach an existing order.
    """

    street: str
    city: str
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None
    phone: str | None = None
    recipient_name: str | None = None

    @classmethod
    def from_dict(cls, data) -> "Address":
        if isinstance(data, Address):
            return data
        if not data or not data.get("street") or not data.get("city"):
            raise ValidationError({"address": ["Street and city are required"]})
        return cls(
            street=data["street"],
            city=data["city"],
            state=data.get("state"),
            zip_code=data.get("zip_code"),
            country=data.get("country"),
            phone=data.get("phone"),
            recipient_name=data.get("recipient_name"),
        )


def _address_columns(prefix):
    return (
        mapped_column(f"{prefix}_street", String(255), nullable=True),
        mapped_column(f"{prefix}_city", String(100), nullable=True),
        mapped_column(f"{prefix}_state", String(100), nullable=True),
        mapped_column(f"{prefix}_zip_code", String(20), nullable=True),
        mapped_column(f"{prefix}_country", String(100), nullable=True),
        mapped_column(f"{prefix}_phone", String(30), nullable=True),
        mapped_column(f"{prefix}_recipient_name", String(255), nullable=True),
    )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
class OrderItem(Base):
    """A purchased line: product snapshot, unit price, quantity. Immutable once created."""

    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(Integer, index=True)
    product_name: Mapped[str] = mapped_column(String(255))
    product_sku: Mapped[str] = mapped_column(String(50))
    product_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    price: Mapped[Decimal] = mapped_column(Money)
    quantity: Mapped[int] = mapped_column(Integer)
    subtotal: Mapped[Decimal] = mapped_column(Money)


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
class Order(Base):
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True)
    user_id: Mapped[int] = mapped_column(Integer, index=True)
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), default=PaymentStatus.PENDING.value)

    subtotal: Mapped[Decimal] = mapped_column(Money)
    tax_amount: Mapped[Decimal] = mapped_column(Money)
    shipping_amount: Mapped[Decimal] = mapped_column(Money)
    discount_amount: Mapped[Decimal] = mapped_column(Money)
    total_amount: Mapped[Decimal] = mapped_column(Money)
    currency: Mapped[str] = mapped_column(String(3), default="USD")

    shipping_address: Mapped[Address] = composite(Address, *_address_columns("shipping"))
    billing_address: Mapped[Address] = composite(Address, *_address_columns("billing"))

    tracking_number: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shipping_method: Mapped[str | None] = mapped_column(String(100), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    shipped_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    held_from_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    items: Mapped[list[OrderItem]] = relationship(
        OrderItem,
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=OrderItem.id,
    )

    @property
    def total_items(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def order_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_cancellable(self) -> bool:
        return self.order_status in _CANCELLABLE_STATES

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def can_transition_to(self, target_status: OrderStatus) -> bool:
        if self.order_status == OrderStatus.ON_HOLD and target_status in _RESUMABLE_STATES:
            return target_status.value == self.held_from_status
        return target_status in _VALID_TRANSITIONS.get(self.order_status, set())

    def _assert_can_transition(self, target_status: OrderStatus):
        """Validate that the current state allows transition to target."""
        if not self.can_transition_to(target_status):
            raise InvalidStateTransitionError(self.status, target_status.value)

    def _set_status(self, target_status: OrderStatus, now=None):
        self.held_from_status = self.status if target_status == OrderStatus.ON_HOLD else None
        self.status = target_status.value
        self.updated_at = now or datetime.now(UTC)

    # -------------------------------------------------------------------
    # Order lifecycle transitions
    # -------------------------------------------------------------------
    def transition_to(self, target_status: OrderStatus):
        """Checked move to a status with no side effects of its own."""
        self._assert_can_transition(target_status)
        self._set_status(target_status)

    def ship(self, tracking_number):
        """Ship a confirmed order, or release a shipment that was put on hold."""
        if self.order_status == OrderStatus.ON_HOLD:
            # Tracking details from the original shipment stay as recorded
            self.transition_to(OrderStatus.SHIPPED)
            return

        if not tracking_number or not tracking_number.strip():
            raise ValidationError({"tracking_number": ["Tracking number is required to ship an order"]})
        self._assert_can_transition(OrderStatus.SHIPPED)

        now = datetime.now(UTC)
        self.tracking_number = tracking_number.strip()
        self.shipping_method = SHIPPING_METHOD
        self.shipped_at = now
        self._set_status(OrderStatus.SHIPPED, now)

    def deliver(self):
        self._assert_can_transition(OrderStatus.DELIVERED)
        now = datetime.now(UTC)
        self.delivered_at = now
        self._set_status(OrderStatus.DELIVERED, now)

    def cancel(self):
        """Cancel the order. Stock restoration is the lifecycle manager's job."""
        if not self.is_cancellable:
            raise InvalidStateTransitionError(self.status, OrderStatus.CANCELLED.value)

        now = datetime.now(UTC)
        self.cancelled_at = now
        self._refund_payment_if_paid()
        self._set_status(OrderStatus.CANCELLED, now)

    def refund(self):
        self._assert_can_transition(OrderStatus.REFUNDED)
        self._refund_payment_if_paid()
        self._set_status(OrderStatus.REFUNDED)

    def hold(self):
        self._assert_can_transition(OrderStatus.ON_HOLD)
        self._set_status(OrderStatus.ON_HOLD)

    # -------------------------------------------------------------------
    # Payment status
    # -------------------------------------------------------------------
    def record_payment(self, target: PaymentStatus):
        current = PaymentStatus(self.payment_status)
        if target not in _VALID_PAYMENT_TRANSITIONS.get(current, set()):
            raise InvalidStateTransitionError(current.value, target.value)
        self.payment_status = target.value
        self.updated_at = datetime.now(UTC)

    def _refund_payment_if_paid(self):
        if PaymentStatus(self.payment_status) == PaymentStatus.PAID:
            self.payment_status = PaymentStatus.REFUNDED.value

    def __repr__(self):
        return f"<Order id={self.id} number={self.order_number!r} status={self.status}>"
