"""Shopping Cart aggregate — one cart per customer, converted to an Order at checkout.

The cart owns its items (parent-owns-children: items reference the cart by
id, the cart never hands out back-pointers). ``total_items`` and
``total_amount`` are derived from the items and recomputed by every mutation
in the same flush as the item change, so they are never stale.

``version`` is the optimistic-lock column: it is bumped on every flush of the
cart row and an UPDATE carrying a stale version matches nothing. Checkout
relies on this to refuse a cart that was edited after its snapshot was taken.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shared.exceptions import ObjectNotFoundError, ValidationError
from shared.persistence import Base, Money


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    price: Decimal

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class CartSnapshot:
    """Fully materialized view of a cart, taken once at the start of checkout."""

    cart_id: int
    user_id: int
    version: int
    lines: tuple[CartLine, ...]

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def product_ids(self) -> list[int]:
        return sorted({line.product_id for line in self.lines})


class CartItem(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="uq_cart_items_cart_product"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    cart_id: Mapped[int] = mapped_column(ForeignKey("carts.id", ondelete="CASCADE"), index=True)
    product_id: Mapped[int] = mapped_column(ForeignKey("products.id"))
    quantity: Mapped[int] = mapped_column(Integer)
    price: Mapped[Decimal] = mapped_column(Money)
    subtotal: Mapped[Decimal] = mapped_column(Money)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    def update_quantity(self, quantity, price):
        self.quantity = quantity
        self.price = price
        self.subtotal = price * quantity


class Cart(Base):
    __tablename__ = "carts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    total_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0.00"))
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    __mapper_args__ = {"version_id_col": version}

    items: Mapped[list[CartItem]] = relationship(
        CartItem,
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by=CartItem.id,
    )

    # -------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------
    @classmethod
    def create(cls, user_id):
        now = datetime.now(UTC)
        return cls(
            user_id=user_id,
            items=[],
            total_items=0,
            total_amount=Decimal("0.00"),
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Item management
    # -------------------------------------------------------------------
    def find_item(self, item_id) -> CartItem:
        item = next((i for i in self.items if i.id == item_id), None)
        if item is None:
            raise ObjectNotFoundError({"item_id": [f"Cart item not found with id: {item_id}"]})
        return item

    def line_for(self, product_id) -> CartItem | None:
        return next((i for i in self.items if i.product_id == product_id), None)

    def add_item(self, product_id, quantity, price) -> CartItem:
        """Add a product (or increase the quantity of its existing line)."""
        check_quantity(quantity)

        existing = self.line_for(product_id)
        if existing is not None:
            existing.update_quantity(existing.quantity + quantity, price)
            item = existing
        else:
            item = CartItem(
                product_id=product_id,
                quantity=quantity,
                price=price,
                subtotal=price * quantity,
                created_at=datetime.now(UTC),
            )
            self.items.append(item)

        self._touch()
        return item

    def update_item_quantity(self, item_id, quantity, price) -> CartItem:
        check_quantity(quantity)
        item = self.find_item(item_id)
        item.update_quantity(quantity, price)
        self._touch()
        return item

    def remove_item(self, item_id) -> None:
        item = self.find_item(item_id)
        self.items.remove(item)
        self._touch()

    def clear(self) -> None:
        """Remove every item; the cart itself lives on."""
        self.items.clear()
        self._touch()

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    def recalculate_totals(self) -> None:
        self.total_items = sum(item.quantity for item in self.items)
        self.total_amount = sum((item.subtotal for item in self.items), Decimal("0.00"))

    def snapshot(self) -> CartSnapshot:
        return CartSnapshot(
            cart_id=self.id,
            user_id=self.user_id,
            version=self.version,
            lines=tuple(
                CartLine(product_id=item.product_id, quantity=item.quantity, price=item.price)
                for item in self.items
            ),
        )

    def _touch(self):
        self.recalculate_totals()
        self.updated_at = datetime.now(UTC)


def check_quantity(quantity):
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError({"quantity": ["Quantity must be at least 1"]})
