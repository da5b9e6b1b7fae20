"""Order persistence and read queries."""

from sqlalchemy import select

from ordering.order.order import Order


class OrderRepository:
    def __init__(self, session):
        self.session = session

    def add(self, order: Order) -> Order:
        self.session.add(order)
        self.session.flush()
        return order

    def get(self, order_id) -> Order | None:
        return self.session.get(Order, order_id)

    def get_by_number(self, order_number) -> Order | None:
        return self.session.scalars(select(Order).where(Order.order_number == order_number)).one_or_none()

    def exists_by_order_number(self, order_number) -> bool:
        return self.session.scalar(select(Order.id).where(Order.order_number == order_number)) is not None

    def list_for_user(self, user_id) -> list[Order]:
        """The user's orders, newest first."""
        return list(
            self.session.scalars(
                select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.id.desc())
            ).all()
        )
