import os
from decimal import Decimal
from pathlib import Path

import pytest

from catalogue.product.product import Product
from identity.caller.identity import Identity, Role
from notifications.channel.fake_order import FakeNotificationAdapter
from ordering.checkout.coordinator import CheckoutRequest
from ordering.services import build_services
from shared.config import load_settings
from shared.persistence import Database
from shared.utils.db import drop_db, setup_db

ROOT = Path(__file__).resolve().parent.parent


def pytest_addoption(parser):
    parser.addoption(
        "--env",
        action="store",
        default="test",
        help="Config environment to run tests on",
    )


def pytest_sessionstart(session):
    """Select the config environment before any settings are loaded."""
    os.environ["PROTEAN_ENV"] = session.config.option.env


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their directory location."""
    for item in items:
        test_path = Path(item.fspath)

        # Mark tests based on their directory
        if "/domain/" in str(test_path):
            item.add_marker(pytest.mark.domain)
        elif "/application/" in str(test_path):
            item.add_marker(pytest.mark.application)
        elif "/integration/" in str(test_path):
            item.add_marker(pytest.mark.integration)


@pytest.fixture()
def settings(tmp_path):
    """Test settings backed by a fresh SQLite file, so threads share one real store."""
    return load_settings(
        root_path=ROOT,
        overrides={"database": {"url": f"sqlite:///{tmp_path / 'shopstream.db'}"}},
    )


@pytest.fixture()
def database(settings):
    database = Database.from_settings(settings)
    setup_db(database)

    yield database

    drop_db(database)
    database.dispose()


@pytest.fixture()
def notifier():
    adapter = FakeNotificationAdapter()
    yield adapter
    adapter.reset()


@pytest.fixture()
def services(settings, database, notifier):
    services = build_services(settings, database=database, notifier=notifier)
    yield services
    services.dispatcher.shutdown()


@pytest.fixture()
def make_product(database):
    """Factory: persist a product and return it (detached, attributes loaded)."""
    counter = {"n": 0}

    def _make(price="10.00", stock=10, name=None, discount_price=None, is_active=True, image_url=None):
        counter["n"] += 1
        with database.unit_of_work() as uow:
            product = uow.products.add(
                Product(
                    name=name or f"Product {counter['n']}",
                    sku=f"SKU-{counter['n']:04d}",
                    price=Decimal(price),
                    discount_price=Decimal(discount_price) if discount_price is not None else None,
                    stock_quantity=stock,
                    is_active=is_active,
                    image_url=image_url,
                )
            )
            uow.commit()
        return product

    return _make


@pytest.fixture()
def stock_of(database):
    def _stock_of(product_id):
        with database.unit_of_work() as uow:
            return uow.products.stock_of(product_id)

    return _stock_of


@pytest.fixture()
def customer():
    return Identity(user_id=1001, role=Role.CUSTOMER)


@pytest.fixture()
def other_customer():
    return Identity(user_id=1002, role=Role.CUSTOMER)


@pytest.fixture()
def admin():
    return Identity(user_id=1, role=Role.ADMIN)


@pytest.fixture()
def shipping_address():
    return {
        "street": "123 Main St",
        "city": "Springfield",
        "state": "IL",
        "zip_code": "62701",
        "country": "US",
        "phone": "555-0100",
        "recipient_name": "Jane Doe",
    }


@pytest.fixture()
def checkout_request(shipping_address):
    return CheckoutRequest(shipping_address=shipping_address, payment_method="CREDIT_CARD")
