"""Product persistence, including the atomic stock updates used by the inventory ledger."""

from sqlalchemy import select, update

from catalogue.product.product import Product


class ProductRepository:
    def __init__(self, session):
        self.session = session

    def add(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    def get(self, product_id) -> Product | None:
        return self.session.get(Product, product_id)

    def get_many(self, product_ids) -> dict[int, Product]:
        """Materialize all requested products in one query, keyed by id."""
        ids = list(product_ids)
        if not ids:
            return {}
        rows = self.session.scalars(select(Product).where(Product.id.in_(ids))).all()
        return {product.id: product for product in rows}

    def stock_of(self, product_id) -> int | None:
        return self.session.scalar(select(Product.stock_quantity).where(Product.id == product_id))

    def conditional_decrement(self, product_id, quantity) -> bool:
        """Decrement stock by ``quantity`` only if at least that much is on hand.

        One UPDATE statement: the store evaluates the guard and applies the
        decrement under the same row lock. Returns False when no row matched.
        """
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock_quantity >= quantity)
            .values(stock_quantity=Product.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def increment(self, product_id, quantity) -> bool:
        result = self.session.execute(
            update(Product)
            .where(Product.id == product_id)
            .values(stock_quantity=Product.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
