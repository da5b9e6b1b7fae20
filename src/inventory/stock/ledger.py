"""Inventory ledger — atomic stock reservation and restoration for products.

Stock Model:
    stock_quantity: units that can still be sold (never negative)
    reserve:  conditional decrement, succeeds only if enough units remain
    restore:  increment, used to compensate a cancelled order

A reservation is never "read stock, compare, write stock". The guard and the
decrement are one statement against the store, so N concurrent reservations
against M units can succeed at most M times in total.
"""

from dataclasses import dataclass

import structlog

from shared.exceptions import InsufficientStockError, ObjectNotFoundError, ShopStreamError, ValidationError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Reservation:
    product_id: int
    quantity: int


class InventoryLedger:
    """Stateless service; every call runs inside the caller's unit of work."""

    def reserve(self, uow, product_id, quantity) -> Reservation:
        """Take ``quantity`` units of ``product_id`` out of available stock.

        Raises:
            ValidationError: quantity below 1.
            ObjectNotFoundError: no such product.
            InsufficientStockError: fewer than ``quantity`` units available.
        """
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        if uow.products.conditional_decrement(product_id, quantity):
            logger.debug("Stock reserved", product_id=product_id, quantity=quantity)
            return Reservation(product_id=product_id, quantity=quantity)

        # Zero rows matched: find out why, for the caller's benefit only
        available = uow.products.stock_of(product_id)
        if available is None:
            raise ObjectNotFoundError({"product_id": [f"Product not found with id: {product_id}"]})

        logger.info(
            "Stock reservation rejected",
            product_id=product_id,
            available=available,
            requested=quantity,
        )
        raise InsufficientStockError(product_id=product_id, available=available, requested=quantity)

    def reserve_all(self, uow, lines) -> list[Reservation]:
        """Reserve every ``(product_id, quantity)`` line in ascending product id order.

        Lines for the same product are combined first. The fixed order keeps
        concurrent checkouts over overlapping products from acquiring row
        locks in opposite orders. On failure the reservations made so far are
        handed back before the error propagates.
        """
        totals: dict[int, int] = {}
        for product_id, quantity in lines:
            totals[product_id] = totals.get(product_id, 0) + quantity

        reservations = []
        try:
            for product_id in sorted(totals):
                reservations.append(self.reserve(uow, product_id, totals[product_id]))
        except ShopStreamError:
            self.release_all(uow, reservations)
            raise
        return reservations

    def restore(self, uow, product_id, quantity) -> None:
        """Return ``quantity`` units of ``product_id`` to available stock."""
        if quantity < 1:
            raise ValidationError({"quantity": ["Quantity must be at least 1"]})

        if not uow.products.increment(product_id, quantity):
            raise ObjectNotFoundError({"product_id": [f"Product not found with id: {product_id}"]})
        logger.debug("Stock restored", product_id=product_id, quantity=quantity)

    def release_all(self, uow, reservations) -> None:
        """Compensate reservations in reverse order of acquisition."""
        for reservation in reversed(reservations):
            self.restore(uow, reservation.product_id, reservation.quantity)
