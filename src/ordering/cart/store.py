"""CartStore — owns each user's single cart and hands checkout a consistent snapshot.

Mutations of one cart are applied one at a time (a lock per user, plus the
cart's optimistic version column across processes). Different users' carts
never contend with each other.
"""

import threading
import weakref

import structlog

from catalogue.product.product import Product
from ordering.cart.cart import Cart, CartSnapshot, check_quantity
from shared.exceptions import (
    ExpectedVersionError,
    InsufficientStockError,
    ObjectNotFoundError,
    ProductUnavailableError,
)

logger = structlog.get_logger(__name__)


class CartStore:
    def __init__(self, database):
        self.database = database
        # Entries vanish once no caller holds the lock
        self._locks: weakref.WeakValueDictionary = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def lock_for(self, user_id) -> threading.Lock:
        """The lock serializing writes to ``user_id``'s cart."""
        with self._locks_guard:
            lock = self._locks.get(user_id)
            if lock is None:
                lock = self._locks[user_id] = threading.Lock()
            return lock

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_cart(self, user_id) -> Cart:
        """Return the user's cart, creating an empty one on first access."""
        with self.lock_for(user_id), self.database.unit_of_work() as uow:
            cart = self._get_or_create(uow, user_id)
            uow.commit()
            return cart

    def item_count(self, user_id) -> int:
        with self.database.unit_of_work() as uow:
            cart = uow.carts.get_by_user(user_id)
            return cart.total_items if cart is not None else 0

    def load_snapshot(self, uow, user_id) -> CartSnapshot:
        """Materialize the cart inside ``uow``; the returned snapshot never changes."""
        cart = uow.carts.get_by_user(user_id)
        if cart is None:
            raise ObjectNotFoundError({"cart": [f"Cart not found for user: {user_id}"]})
        return cart.snapshot()

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def add_item(self, user_id, product_id, quantity) -> Cart:
        """Add ``quantity`` of a product, merging with an existing line for it."""
        check_quantity(quantity)

        with self.lock_for(user_id), self.database.unit_of_work() as uow:
            cart = self._get_or_create(uow, user_id)
            product = _available_product(uow, product_id)

            existing = cart.line_for(product_id)
            requested = quantity + (existing.quantity if existing is not None else 0)
            _check_stock(product, requested)

            cart.add_item(product_id, quantity, product.discounted_price)
            uow.flush()
            uow.commit()

        logger.info(
            "Item added to cart",
            user_id=user_id,
            cart_id=cart.id,
            product_id=product_id,
            quantity=quantity,
        )
        return cart

    def update_quantity(self, user_id, item_id, quantity) -> Cart:
        check_quantity(quantity)

        with self.lock_for(user_id), self.database.unit_of_work() as uow:
            cart = self._get_existing(uow, user_id)
            item = cart.find_item(item_id)
            product = _available_product(uow, item.product_id)
            _check_stock(product, quantity)

            cart.update_item_quantity(item_id, quantity, product.discounted_price)
            uow.flush()
            uow.commit()

        logger.info("Cart item quantity updated", user_id=user_id, item_id=item_id, quantity=quantity)
        return cart

    def remove_item(self, user_id, item_id) -> Cart:
        with self.lock_for(user_id), self.database.unit_of_work() as uow:
            cart = self._get_existing(uow, user_id)
            cart.remove_item(item_id)
            uow.flush()
            uow.commit()

        logger.info("Cart item removed", user_id=user_id, item_id=item_id)
        return cart

    def clear(self, uow, snapshot) -> None:
        """Empty the snapshotted cart as part of the caller's checkout transaction.

        Fails with ``ExpectedVersionError`` when the cart changed after ``snapshot``
        was taken; the flush itself is guarded by the same version.
        """
        cart_id = snapshot.cart_id
        cart = uow.carts.get(cart_id)
        if cart is None:
            raise ObjectNotFoundError({"cart": [f"Cart not found with id: {cart_id}"]})
        if cart.version != snapshot.version:
            logger.info(
                "Cart changed during checkout",
                cart_id=cart_id,
                snapshot_version=snapshot.version,
                current_version=cart.version,
            )
            raise ExpectedVersionError({"cart": [f"Cart {cart_id} was modified during checkout"]})
        cart.clear()
        uow.flush()
        logger.debug("Cart cleared", cart_id=cart_id, user_id=cart.user_id)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _get_or_create(self, uow, user_id) -> Cart:
        cart = uow.carts.get_by_user(user_id)
        if cart is None:
            cart = uow.carts.add(Cart.create(user_id=user_id))
            logger.info("Created new cart", user_id=user_id, cart_id=cart.id)
        return cart

    def _get_existing(self, uow, user_id) -> Cart:
        cart = uow.carts.get_by_user(user_id)
        if cart is None:
            raise ObjectNotFoundError({"cart": [f"Cart not found for user: {user_id}"]})
        return cart


def _available_product(uow, product_id) -> Product:
    product = uow.products.get(product_id)
    if product is None:
        raise ObjectNotFoundError({"product_id": [f"Product not found with id: {product_id}"]})
    if not product.is_active:
        raise ProductUnavailableError(product_id, product.name)
    return product


def _check_stock(product, requested):
    # Advisory only: checkout re-checks atomically when it reserves
    if product.stock_quantity < requested:
        raise InsufficientStockError(
            product_id=product.id,
            available=product.stock_quantity,
            requested=requested,
        )
