"""Checkout — converts a user's cart into an order in one transaction.

Flow (all inside a single unit of work):
    1. Snapshot the cart; an empty cart fails with CartEmptyError
    2. Every product in the snapshot must exist and be active
    3. Reserve stock per product, ascending product id
    4. Price the snapshot
    5. Build the order and its items
    6. Insert order + items
    7. Clear the cart (written against the snapshotted cart version)
    8. Commit, unless the checkout deadline has already passed

A failure at any step leaves no trace: the transaction is rolled back, so
stock, cart and orders look exactly as they did before the call. The order
confirmation is dispatched only after the commit, and its outcome never
reaches the caller.
"""

import time
from dataclasses import dataclass

import structlog

from ordering.order.order import Address, Order, PaymentMethod
from shared.exceptions import (
    CartEmptyError,
    CheckoutTimeoutError,
    ObjectNotFoundError,
    ProductUnavailableError,
    ShopStreamError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

DEFAULT_TIMEOUT = 10.0


@dataclass(frozen=True)
class CheckoutRequest:
    """What the customer supplies at checkout besides the cart itself."""

    shipping_address: Address | dict
    billing_address: Address | dict | None = None
    use_shipping_for_billing: bool = False
    payment_method: PaymentMethod | str | None = None
    notes: str | None = None

    def resolve_addresses(self) -> tuple[Address, Address]:
        """Validated (shipping, billing); billing falls back to shipping."""
        if self.shipping_address is None:
            raise ValidationError({"shipping_address": ["Shipping address is required"]})
        shipping = Address.from_dict(self.shipping_address)
        if self.use_shipping_for_billing or not self.billing_address:
            return shipping, shipping
        return shipping, Address.from_dict(self.billing_address)

    def resolve_payment_method(self) -> PaymentMethod | None:
        if self.payment_method is None or isinstance(self.payment_method, PaymentMethod):
            return self.payment_method
        try:
            return PaymentMethod(self.payment_method)
        except ValueError as exc:
            raise ValidationError({"payment_method": [f"Unknown payment method: {self.payment_method}"]}) from exc


class CheckoutCoordinator:
    def __init__(
        self,
        database,
        cart_store,
        ledger,
        pricing,
        factory,
        dispatcher=None,
        timeout=DEFAULT_TIMEOUT,
        clock=time.monotonic,
    ):
        self.database = database
        self.cart_store = cart_store
        self.ledger = ledger
        self.pricing = pricing
        self.factory = factory
        self.dispatcher = dispatcher
        self.timeout = timeout
        self._clock = clock

    def checkout(self, user_id, request: CheckoutRequest) -> Order:
        """Turn ``user_id``'s cart into a PENDING order.

        Raises:
            ValidationError: bad address or payment method (nothing touched).
            ObjectNotFoundError: the user has no cart, or a product vanished.
            CartEmptyError: the cart has no items.
            ProductUnavailableError: a product in the cart is inactive.
            InsufficientStockError: a line could not be reserved.
            ExpectedVersionError: the cart changed while checkout ran.
            CheckoutTimeoutError: the attempt overran its deadline.
            PersistenceError: the store failed; retry is safe.
        """
        shipping, billing = request.resolve_addresses()
        payment_method = request.resolve_payment_method()

        deadline = self._clock() + self.timeout
        log = logger.bind(user_id=user_id)
        log.info("Checkout started")

        try:
            with self.cart_store.lock_for(user_id), self.database.unit_of_work() as uow:
                order = self._place_order(uow, user_id, shipping, billing, payment_method, request.notes, deadline)
        except ShopStreamError as e:
            log.info("Checkout rolled back", error=e.code, messages=e.messages)
            raise

        log.info(
            "Checkout committed",
            order_id=order.id,
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )

        if self.dispatcher is not None:
            self.dispatcher.order_created(order)
        return order

    def _place_order(self, uow, user_id, shipping, billing, payment_method, notes, deadline) -> Order:
        # Step 1
        snapshot = self.cart_store.load_snapshot(uow, user_id)
        if snapshot.is_empty:
            raise CartEmptyError(user_id)

        # Step 2
        products = uow.products.get_many(snapshot.product_ids)
        for product_id in snapshot.product_ids:
            product = products.get(product_id)
            if product is None:
                raise ObjectNotFoundError({"product_id": [f"Product not found with id: {product_id}"]})
            if not product.is_active:
                raise ProductUnavailableError(product_id, product.name)

        # Step 3
        self.ledger.reserve_all(uow, [(line.product_id, line.quantity) for line in snapshot.lines])
        self._check_deadline(deadline, "reserve")

        # Steps 4-5
        pricing = self.pricing.compute(snapshot.lines)
        order = self.factory.build(
            user_id=user_id,
            snapshot=snapshot,
            products=products,
            pricing=pricing,
            shipping_address=shipping,
            billing_address=billing,
            payment_method=payment_method,
            notes=notes,
            exists=uow.orders.exists_by_order_number,
        )

        # Steps 6-7
        uow.orders.add(order)
        self.cart_store.clear(uow, snapshot)

        # Step 8
        self._check_deadline(deadline, "commit")
        uow.commit()
        return order

    def _check_deadline(self, deadline, stage):
        if self._clock() > deadline:
            logger.warning("Checkout deadline exceeded", stage=stage, timeout=self.timeout)
            raise CheckoutTimeoutError({"checkout": [f"Checkout did not complete within {self.timeout} seconds"]})
