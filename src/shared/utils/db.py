from shared.persistence import Base, Database


def _load_models():
    """Import every mapped module so its tables are registered on ``Base.metadata``."""
    import catalogue.product.product  # noqa: F401
    import ordering.cart.cart  # noqa: F401
    import ordering.order.order  # noqa: F401


def setup_db(database: Database):
    """Setup database schema"""
    _load_models()
    Base.metadata.create_all(database.engine)


def drop_db(database: Database):
    """Drop database schema"""
    _load_models()
    Base.metadata.drop_all(database.engine)
