"""Application tests for checkout — totals, reservation, all-or-nothing and snapshots."""

import itertools
from decimal import Decimal

import pytest
from ordering.checkout.coordinator import CheckoutRequest
from ordering.order.order import Address
from ordering.order.repository import OrderRepository
from shared.exceptions import (
    CartEmptyError,
    CheckoutTimeoutError,
    InsufficientStockError,
    ObjectNotFoundError,
    PersistenceError,
    ProductUnavailableError,
    ValidationError,
)
from shared.persistence import UnitOfWork
from sqlalchemy.exc import OperationalError

USER = 501


def _order_count(database):
    with database.unit_of_work() as uow:
        return len(uow.orders.list_for_user(USER))


def _set_product(database, product_id, **fields):
    with database.unit_of_work() as uow:
        product = uow.products.get(product_id)
        for name, value in fields.items():
            setattr(product, name, value)
        uow.commit()


class TestScenarioA:
    def test_successful_checkout(self, services, make_product, stock_of, checkout_request):
        first = make_product(price="10.00", stock=10)
        second = make_product(price="5.00", stock=10)
        services.carts.add_item(USER, first.id, 2)
        services.carts.add_item(USER, second.id, 1)

        order = services.checkout.checkout(USER, checkout_request)

        assert order.id is not None
        assert order.status == "PENDING"
        assert order.subtotal == Decimal("25.00")
        assert order.shipping_amount == Decimal("6.00")
        assert order.tax_amount == Decimal("2.50")
        assert order.total_amount == Decimal("33.50")
        assert services.carts.item_count(USER) == 0
        assert stock_of(first.id) == 8
        assert stock_of(second.id) == 9

    def test_total_and_subtotal_identities(self, services, make_product, checkout_request):
        for price, qty in [("19.99", 3), ("0.35", 7), ("120.00", 1)]:
            services.carts.add_item(USER, make_product(price=price, stock=20).id, qty)

        order = services.checkout.checkout(USER, checkout_request)

        assert order.total_amount == (
            order.subtotal + order.tax_amount + order.shipping_amount - order.discount_amount
        )
        assert order.subtotal == sum(item.subtotal for item in order.items)

    def test_cart_is_cleared_not_deleted(self, services, make_product, checkout_request):
        services.carts.add_item(USER, make_product().id, 1)
        cart_id = services.carts.get_cart(USER).id

        services.checkout.checkout(USER, checkout_request)

        cart = services.carts.get_cart(USER)
        assert cart.id == cart_id
        assert cart.items == []
        assert cart.total_items == 0
        assert cart.total_amount == Decimal("0.00")

    def test_order_persisted_with_items(self, services, database, make_product, checkout_request):
        product = make_product(name="Lamp", price="30.00", image_url="http://img/lamp.png")
        services.carts.add_item(USER, product.id, 2)

        order = services.checkout.checkout(USER, checkout_request)

        with database.unit_of_work() as uow:
            stored = uow.orders.get_by_number(order.order_number)
            assert stored is not None
            assert stored.user_id == USER
            assert stored.payment_method == "CREDIT_CARD"
            assert [(i.product_name, i.quantity, i.price) for i in stored.items] == [
                ("Lamp", 2, Decimal("30.00"))
            ]
            assert stored.items[0].product_image_url == "http://img/lamp.png"

    def test_confirmation_dispatched_after_commit(self, services, notifier, make_product, checkout_request):
        services.carts.add_item(USER, make_product().id, 1)
        order = services.checkout.checkout(USER, checkout_request)

        assert services.dispatcher.flush(timeout=5)
        assert [n["order_number"] for n in notifier.sent_of_kind("order_created")] == [order.order_number]


class TestScenarioB:
    def test_insufficient_stock_leaves_no_trace(self, services, database, make_product, stock_of, checkout_request):
        product = make_product(stock=5)
        services.carts.add_item(USER, product.id, 3)
        _set_product(database, product.id, stock_quantity=2)

        with pytest.raises(InsufficientStockError) as exc:
            services.checkout.checkout(USER, checkout_request)

        assert exc.value.product_id == product.id
        assert exc.value.available == 2
        assert exc.value.requested == 3
        assert stock_of(product.id) == 2
        assert _order_count(database) == 0
        assert services.carts.item_count(USER) == 3


class TestAllOrNothing:
    def test_failing_line_rolls_back_earlier_reservations(
        self, services, database, make_product, stock_of, checkout_request
    ):
        plenty = make_product(stock=10)
        scarce = make_product(stock=5)
        services.carts.add_item(USER, plenty.id, 4)
        services.carts.add_item(USER, scarce.id, 3)
        _set_product(database, scarce.id, stock_quantity=1)

        with pytest.raises(InsufficientStockError) as exc:
            services.checkout.checkout(USER, checkout_request)

        assert exc.value.product_id == scarce.id
        assert stock_of(plenty.id) == 10
        assert stock_of(scarce.id) == 1
        assert _order_count(database) == 0
        assert services.carts.item_count(USER) == 7

    def test_timeout_rolls_everything_back(self, services, database, make_product, stock_of, checkout_request):
        product = make_product(stock=5)
        services.carts.add_item(USER, product.id, 2)

        ticks = itertools.count(start=0, step=100)
        services.checkout._clock = lambda: next(ticks)

        with pytest.raises(CheckoutTimeoutError):
            services.checkout.checkout(USER, checkout_request)

        assert stock_of(product.id) == 5
        assert _order_count(database) == 0
        assert services.carts.item_count(USER) == 2

    def test_no_notification_for_failed_checkout(self, services, notifier, make_product, database, checkout_request):
        product = make_product(stock=1)
        services.carts.add_item(USER, product.id, 1)
        _set_product(database, product.id, stock_quantity=0)

        with pytest.raises(InsufficientStockError):
            services.checkout.checkout(USER, checkout_request)

        services.dispatcher.flush(timeout=5)
        assert notifier.sent == []


class TestStoreFailure:
    @pytest.fixture()
    def loaded_cart(self, services, make_product):
        product = make_product(stock=5)
        services.carts.add_item(USER, product.id, 2)
        return product

    def _assert_untouched(self, services, database, notifier, stock_of, product):
        assert stock_of(product.id) == 5
        assert _order_count(database) == 0
        assert services.carts.item_count(USER) == 2
        services.dispatcher.flush(timeout=5)
        assert notifier.sent == []

    def test_failed_order_insert_rolls_back(
        self, services, database, notifier, stock_of, loaded_cart, checkout_request, monkeypatch
    ):
        def failing_add(self, order):
            raise OperationalError("INSERT INTO orders", {}, Exception("disk I/O error"))

        monkeypatch.setattr(OrderRepository, "add", failing_add)

        with pytest.raises(PersistenceError):
            services.checkout.checkout(USER, checkout_request)

        monkeypatch.undo()
        self._assert_untouched(services, database, notifier, stock_of, loaded_cart)

    def test_failed_commit_rolls_back(
        self, services, database, notifier, stock_of, loaded_cart, checkout_request, monkeypatch
    ):
        def failing_commit(self):
            raise OperationalError("COMMIT", {}, Exception("database is locked"))

        monkeypatch.setattr(UnitOfWork, "commit", failing_commit)

        with pytest.raises(PersistenceError):
            services.checkout.checkout(USER, checkout_request)

        monkeypatch.undo()
        self._assert_untouched(services, database, notifier, stock_of, loaded_cart)


class TestPreconditions:
    def test_empty_cart(self, services, checkout_request):
        services.carts.get_cart(USER)
        with pytest.raises(CartEmptyError):
            services.checkout.checkout(USER, checkout_request)

    def test_no_cart(self, services, checkout_request):
        with pytest.raises(ObjectNotFoundError):
            services.checkout.checkout(USER, checkout_request)

    def test_inactive_product(self, services, database, make_product, stock_of, checkout_request):
        active, retired = make_product(stock=5), make_product(stock=5)
        services.carts.add_item(USER, active.id, 1)
        services.carts.add_item(USER, retired.id, 1)
        _set_product(database, retired.id, is_active=False)

        with pytest.raises(ProductUnavailableError) as exc:
            services.checkout.checkout(USER, checkout_request)

        assert exc.value.product_id == retired.id
        assert stock_of(active.id) == 5
        assert _order_count(database) == 0

    def test_missing_shipping_address_rejected_up_front(self, services, make_product):
        services.carts.add_item(USER, make_product().id, 1)
        with pytest.raises(ValidationError):
            services.checkout.checkout(USER, CheckoutRequest(shipping_address={"city": "Nowhere"}))
        assert services.carts.item_count(USER) == 1

    def test_unknown_payment_method(self, services, make_product, shipping_address):
        services.carts.add_item(USER, make_product().id, 1)
        with pytest.raises(ValidationError):
            services.checkout.checkout(
                USER, CheckoutRequest(shipping_address=shipping_address, payment_method="IOU")
            )


class TestAddresses:
    def test_billing_defaults_to_shipping(self, services, make_product, shipping_address):
        services.carts.add_item(USER, make_product().id, 1)
        order = services.checkout.checkout(USER, CheckoutRequest(shipping_address=shipping_address))

        assert order.billing_address == order.shipping_address
        assert order.shipping_address.recipient_name == "Jane Doe"

    def test_use_shipping_for_billing_overrides_billing(self, services, make_product, shipping_address):
        services.carts.add_item(USER, make_product().id, 1)
        order = services.checkout.checkout(
            USER,
            CheckoutRequest(
                shipping_address=shipping_address,
                billing_address={"street": "9 Bill Rd", "city": "Payville"},
                use_shipping_for_billing=True,
            ),
        )
        assert order.billing_address.street == "123 Main St"

    def test_separate_billing_address(self, services, make_product, shipping_address):
        services.carts.add_item(USER, make_product().id, 1)
        order = services.checkout.checkout(
            USER,
            CheckoutRequest(
                shipping_address=shipping_address,
                billing_address=Address(street="9 Bill Rd", city="Payville"),
            ),
        )
        assert order.billing_address == Address(street="9 Bill Rd", city="Payville")
        assert order.shipping_address.city == "Springfield"


class TestSnapshotImmutability:
    def test_catalogue_edits_do_not_reach_order_items(self, services, database, make_product, checkout_request):
        product = make_product(name="Original", price="10.00")
        services.carts.add_item(USER, product.id, 1)
        order = services.checkout.checkout(USER, checkout_request)

        _set_product(database, product.id, name="Renamed", price=Decimal("99.00"), sku="NEW-SKU")

        with database.unit_of_work() as uow:
            item = uow.orders.get(order.id).items[0]
            assert item.product_name == "Original"
            assert item.product_sku == product.sku
            assert item.price == Decimal("10.00")


class TestNotificationFailure:
    def test_failed_notification_does_not_fail_checkout(
        self, services, notifier, database, make_product, checkout_request
    ):
        notifier.configure(should_succeed=False)
        services.carts.add_item(USER, make_product().id, 1)

        order = services.checkout.checkout(USER, checkout_request)

        assert services.dispatcher.flush(timeout=5)
        assert notifier.sent == []
        with database.unit_of_work() as uow:
            assert uow.orders.get(order.id) is not None
