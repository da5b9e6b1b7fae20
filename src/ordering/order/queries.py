"""Read-side order queries, filtered by the caller's identity."""

from ordering.order.order import Order
from shared.exceptions import ObjectNotFoundError, UnauthorizedError


class OrderQueries:
    def __init__(self, database):
        self.database = database

    def get_order(self, order_id, caller) -> Order:
        with self.database.unit_of_work() as uow:
            order = uow.orders.get(order_id)
            if order is None:
                raise ObjectNotFoundError({"order_id": [f"Order not found with id: {order_id}"]})
            _authorize(order, caller)
            return order

    def get_order_by_number(self, order_number, caller) -> Order:
        with self.database.unit_of_work() as uow:
            order = uow.orders.get_by_number(order_number)
            if order is None:
                raise ObjectNotFoundError({"order_number": [f"Order not found with number: {order_number}"]})
            _authorize(order, caller)
            return order

    def list_orders(self, caller) -> list[Order]:
        """The caller's own orders, newest first."""
        with self.database.unit_of_work() as uow:
            return uow.orders.list_for_user(caller.user_id)


def _authorize(order, caller):
    if not caller.can_access(order.user_id):
        raise UnauthorizedError({"order_id": [f"Not allowed to view order {order.id}"]})
