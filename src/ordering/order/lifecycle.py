"""Order lifecycle — ship, deliver, cancel, refund and payment status changes.

Each operation loads the order, checks the caller may act on it, applies one
checked transition and commits, all in one unit of work. Cancelling puts every
item's quantity back into stock in that same transaction, so the status change
and the restock commit together or not at all. Notifications go out after the
commit and never affect the result.
"""

import structlog

from ordering.order.order import Order, OrderStatus, PaymentStatus
from shared.exceptions import ObjectNotFoundError, UnauthorizedError, ValidationError

logger = structlog.get_logger(__name__)


class OrderLifecycleManager:
    def __init__(self, database, ledger, dispatcher=None):
        self.database = database
        self.ledger = ledger
        self.dispatcher = dispatcher

    # -------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------
    def ship(self, order_id, tracking_number, caller) -> Order:
        caller.require_admin()
        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id)
            previous = order.status
            order.ship(tracking_number)
            uow.commit()

        _log_transition(order, previous, caller, tracking_number=order.tracking_number)
        # A released hold is not a new shipment
        if self.dispatcher is not None and previous != OrderStatus.ON_HOLD.value:
            self.dispatcher.order_shipped(order, order.tracking_number)
        return order

    def deliver(self, order_id, caller) -> Order:
        caller.require_admin()
        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id)
            previous = order.status
            order.deliver()
            uow.commit()

        _log_transition(order, previous, caller)
        if self.dispatcher is not None:
            self.dispatcher.order_delivered(order)
        return order

    def cancel(self, order_id, caller) -> Order:
        """Cancel the order and put its items back into stock.

        Owners may cancel their own orders; admins may cancel any. A second
        cancel is rejected by the state machine, so stock is restored at most
        once per item.
        """
        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id, caller)
            previous = order.status
            order.cancel()
            for item in order.items:
                self.ledger.restore(uow, item.product_id, item.quantity)
            uow.commit()

        _log_transition(order, previous, caller, restocked_items=len(order.items))
        return order

    def refund(self, order_id, caller) -> Order:
        """Move the order to REFUNDED. Stock is not returned."""
        caller.require_admin()
        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id)
            previous = order.status
            order.refund()
            uow.commit()

        _log_transition(order, previous, caller)
        return order

    def update_status(self, order_id, status, caller, tracking_number=None) -> Order:
        """Admin entry point: route a requested status to its operation."""
        caller.require_admin()
        target = _parse(OrderStatus, status, "status")

        if target == OrderStatus.SHIPPED:
            return self.ship(order_id, tracking_number, caller)
        if target == OrderStatus.DELIVERED:
            return self.deliver(order_id, caller)
        if target == OrderStatus.CANCELLED:
            return self.cancel(order_id, caller)
        if target == OrderStatus.REFUNDED:
            return self.refund(order_id, caller)

        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id)
            previous = order.status
            order.transition_to(target)
            uow.commit()

        _log_transition(order, previous, caller)
        return order

    # -------------------------------------------------------------------
    # Payment status
    # -------------------------------------------------------------------
    def record_payment(self, order_id, payment_status, caller) -> Order:
        caller.require_admin()
        target = _parse(PaymentStatus, payment_status, "payment_status")

        with self.database.unit_of_work() as uow:
            order = _load(uow, order_id)
            previous = order.payment_status
            order.record_payment(target)
            uow.commit()

        logger.info(
            "Payment status changed",
            order_id=order.id,
            order_number=order.order_number,
            from_status=previous,
            to_status=order.payment_status,
            caller_id=caller.user_id,
        )
        return order


def _load(uow, order_id, caller=None) -> Order:
    order = uow.orders.get(order_id)
    if order is None:
        raise ObjectNotFoundError({"order_id": [f"Order not found with id: {order_id}"]})
    if caller is not None and not caller.can_access(order.user_id):
        raise UnauthorizedError({"order_id": [f"Not allowed to modify order {order_id}"]})
    return order


def _parse(enum_cls, value, field):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationError({field: [f"Unknown {field}: {value}"]}) from exc


def _log_transition(order, previous, caller, **extra):
    logger.info(
        "Order status changed",
        order_id=order.id,
        order_number=order.order_number,
        from_status=previous,
        to_status=order.status,
        caller_id=caller.user_id,
        **extra,
    )
