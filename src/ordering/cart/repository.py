"""Cart persistence."""

from sqlalchemy import select

from ordering.cart.cart import Cart


class CartRepository:
    def __init__(self, session):
        self.session = session

    def add(self, cart: Cart) -> Cart:
        self.session.add(cart)
        self.session.flush()
        return cart

    def get(self, cart_id) -> Cart | None:
        return self.session.get(Cart, cart_id)

    def get_by_user(self, user_id) -> Cart | None:
        """Load the user's cart with every item materialized (items are selectin-loaded)."""
        return self.session.scalars(select(Cart).where(Cart.user_id == user_id)).one_or_none()
