"""Application tests for CartStore — lazy carts, item validation and serialized edits."""

import gc
import threading
from decimal import Decimal

import pytest
from shared.exceptions import (
    InsufficientStockError,
    ObjectNotFoundError,
    ProductUnavailableError,
    ValidationError,
)


class TestGetCart:
    def test_cart_created_on_first_access(self, services):
        cart = services.carts.get_cart(501)
        assert cart.id is not None
        assert cart.user_id == 501
        assert cart.items == []

    def test_same_cart_returned_on_later_access(self, services):
        first = services.carts.get_cart(501)
        second = services.carts.get_cart(501)
        assert first.id == second.id

    def test_item_count_without_cart(self, services):
        assert services.carts.item_count(999) == 0


class TestAddItem:
    def test_add_item_captures_discounted_price(self, services, make_product):
        product = make_product(price="20.00", discount_price="15.00")
        cart = services.carts.add_item(501, product.id, 2)

        assert len(cart.items) == 1
        assert cart.items[0].price == Decimal("15.00")
        assert cart.items[0].subtotal == Decimal("30.00")
        assert cart.total_items == 2
        assert cart.total_amount == Decimal("30.00")

    def test_add_existing_product_merges(self, services, make_product):
        product = make_product(stock=10)
        services.carts.add_item(501, product.id, 2)
        cart = services.carts.add_item(501, product.id, 3)

        assert len(cart.items) == 1
        assert cart.items[0].quantity == 5
        assert services.carts.item_count(501) == 5

    def test_totals_are_persisted_with_items(self, services, make_product):
        first, second = make_product(price="10.00"), make_product(price="5.00")
        services.carts.add_item(501, first.id, 2)
        services.carts.add_item(501, second.id, 1)

        cart = services.carts.get_cart(501)
        assert cart.total_items == 3
        assert cart.total_amount == Decimal("25.00")
        assert cart.total_amount == sum(item.subtotal for item in cart.items)

    @pytest.mark.parametrize("quantity", [0, -2, True, 1.5])
    def test_rejects_invalid_quantity_before_touching_store(self, services, make_product, quantity):
        product = make_product()
        with pytest.raises(ValidationError):
            services.carts.add_item(501, product.id, quantity)
        assert services.carts.item_count(501) == 0

    def test_unknown_product(self, services):
        with pytest.raises(ObjectNotFoundError):
            services.carts.add_item(501, 9999, 1)

    def test_inactive_product(self, services, make_product):
        product = make_product(is_active=False)
        with pytest.raises(ProductUnavailableError):
            services.carts.add_item(501, product.id, 1)

    def test_quantity_beyond_stock(self, services, make_product):
        product = make_product(stock=3)
        services.carts.add_item(501, product.id, 2)

        with pytest.raises(InsufficientStockError) as exc:
            services.carts.add_item(501, product.id, 2)
        assert exc.value.requested == 4
        assert exc.value.available == 3
        assert services.carts.item_count(501) == 2


class TestUpdateAndRemove:
    def test_update_quantity(self, services, make_product):
        product = make_product(price="4.00")
        cart = services.carts.add_item(501, product.id, 1)

        cart = services.carts.update_quantity(501, cart.items[0].id, 3)
        assert cart.items[0].quantity == 3
        assert cart.total_amount == Decimal("12.00")

    def test_update_beyond_stock(self, services, make_product):
        product = make_product(stock=2)
        cart = services.carts.add_item(501, product.id, 1)

        with pytest.raises(InsufficientStockError):
            services.carts.update_quantity(501, cart.items[0].id, 3)

    def test_update_unknown_item(self, services, make_product):
        services.carts.add_item(501, make_product().id, 1)
        with pytest.raises(ObjectNotFoundError):
            services.carts.update_quantity(501, 9999, 1)

    def test_update_without_cart(self, services):
        with pytest.raises(ObjectNotFoundError):
            services.carts.update_quantity(777, 1, 1)

    def test_remove_item(self, services, make_product):
        first, second = make_product(), make_product()
        services.carts.add_item(501, first.id, 1)
        cart = services.carts.add_item(501, second.id, 2)
        item_id = next(item.id for item in cart.items if item.product_id == first.id)

        cart = services.carts.remove_item(501, item_id)
        assert [item.product_id for item in cart.items] == [second.id]
        assert cart.total_items == 2


class TestIsolation:
    def test_carts_are_per_user(self, services, make_product):
        product = make_product()
        services.carts.add_item(501, product.id, 1)
        services.carts.add_item(502, product.id, 3)

        assert services.carts.item_count(501) == 1
        assert services.carts.item_count(502) == 3

    def test_concurrent_adds_to_one_cart_are_all_applied(self, services, make_product):
        product = make_product(stock=100)
        services.carts.get_cart(501)
        workers = 8
        start = threading.Barrier(workers)
        errors = []

        def add_one():
            start.wait()
            try:
                services.carts.add_item(501, product.id, 1)
            except Exception as e:  # noqa: BLE001
                errors.append(e)

        threads = [threading.Thread(target=add_one) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert services.carts.item_count(501) == workers


class TestCartLocks:
    def test_same_lock_while_held(self, services):
        lock = services.carts.lock_for(501)
        assert services.carts.lock_for(501) is lock
        assert services.carts.lock_for(502) is not lock

    def test_lock_table_does_not_grow_with_users(self, services, make_product):
        product = make_product(stock=100)
        for user_id in range(2000, 2100):
            services.carts.add_item(user_id, product.id, 1)

        gc.collect()
        assert len(services.carts._locks) == 0
