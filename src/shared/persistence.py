"""SQLAlchemy persistence: engine, sessions, unit of work, and the Money column.

A ``UnitOfWork`` spans exactly one database transaction. Repositories hang off
it (``uow.products``, ``uow.carts``, ``uow.orders``) so that every write made
inside the block either commits together or not at all.
"""

from decimal import ROUND_HALF_UP, Decimal

import structlog
from sqlalchemy import BigInteger, create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.types import TypeDecorator

from shared.exceptions import ExpectedVersionError, PersistenceError

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")


class Base(DeclarativeBase):
    pass


class Money(TypeDecorator):
    """Fixed-point money column: stored as integer cents, read back as ``Decimal``."""

    impl = BigInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        cents = (Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return int(cents)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return (Decimal(value) / 100).quantize(CENT)


class Database:
    """Owns the engine and the session factory for one configured store."""

    def __init__(self, url, lock_timeout=5.0, echo=False):
        self.url = url
        connect_args = {}
        if url.startswith("sqlite"):
            # Busy timeout: how long a writer waits on another writer's lock
            connect_args = {"check_same_thread": False, "timeout": lock_timeout}
        elif url.startswith("postgresql"):
            connect_args = {"options": f"-c lock_timeout={int(lock_timeout * 1000)}"}

        self.engine = create_engine(url, echo=echo, connect_args=connect_args)
        if url.startswith("sqlite"):
            event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.database.url,
            lock_timeout=settings.database.lock_timeout,
            echo=settings.database.echo,
        )

    def unit_of_work(self):
        return UnitOfWork(self.session_factory)

    def dispose(self):
        self.engine.dispose()


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):  # noqa: ARG001
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class UnitOfWork:
    """One transaction over all repositories.

    Usage:
        with database.unit_of_work() as uow:
            uow.products.conditional_decrement(product_id, 2)
            uow.commit()

    Anything not committed when the block exits is rolled back. Store errors
    surface as ``PersistenceError`` with the driver detail kept out of the
    message.
    """

    def __init__(self, session_factory):
        self._session_factory = session_factory
        self.session = None

    def __enter__(self):
        # Imported here: repositories depend on the models, which depend on Base
        from catalogue.product.repository import ProductRepository
        from ordering.cart.repository import CartRepository
        from ordering.order.repository import OrderRepository

        self.session = self._session_factory()
        self.products = ProductRepository(self.session)
        self.carts = CartRepository(self.session)
        self.orders = OrderRepository(self.session)
        return self

    def __exit__(self, exc_type, exc, tb):
        # close() alone discards uncommitted work without expiring loaded
        # objects, so results read in the block stay usable after it.
        try:
            if exc is not None:
                self.rollback()
        finally:
            self.session.close()

        if isinstance(exc, StaleDataError):
            logger.info("Unit of work lost an optimistic lock", error=str(exc))
            raise ExpectedVersionError(
                {"_entity": ["The record was modified concurrently. Please reload and retry."]}
            ) from exc
        if isinstance(exc, SQLAlchemyError):
            logger.error("Unit of work failed", error_type=type(exc).__name__)
            raise PersistenceError({"_store": ["The operation could not be completed. Please retry."]}) from exc
        return False

    def flush(self):
        self.session.flush()

    def commit(self):
        self.session.commit()

    def rollback(self):
        if self.session.in_transaction():
            self.session.rollback()
