"""Wiring of the ordering services for one configured database."""

from dataclasses import dataclass

from inventory.stock.ledger import InventoryLedger
from notifications.channel import get_order_notifier
from notifications.notification.dispatch import NotificationDispatcher
from ordering.cart.store import CartStore
from ordering.checkout.coordinator import CheckoutCoordinator
from ordering.checkout.pricing import PricingCalculator
from ordering.order.factory import OrderFactory
from ordering.order.lifecycle import OrderLifecycleManager
from ordering.order.queries import OrderQueries
from shared.persistence import Database


@dataclass
class OrderingServices:
    database: Database
    carts: CartStore
    checkout: CheckoutCoordinator
    lifecycle: OrderLifecycleManager
    orders: OrderQueries
    dispatcher: NotificationDispatcher

    def close(self):
        self.dispatcher.shutdown()
        self.database.dispose()


def build_services(settings, database=None, notifier=None) -> OrderingServices:
    database = database or Database.from_settings(settings)
    dispatcher = NotificationDispatcher.from_settings(notifier or get_order_notifier(), settings)
    ledger = InventoryLedger()
    carts = CartStore(database)

    return OrderingServices(
        database=database,
        carts=carts,
        checkout=CheckoutCoordinator(
            database,
            carts,
            ledger,
            PricingCalculator.from_settings(settings),
            OrderFactory.from_settings(settings),
            dispatcher=dispatcher,
            timeout=settings.checkout.timeout,
        ),
        lifecycle=OrderLifecycleManager(database, ledger, dispatcher=dispatcher),
        orders=OrderQueries(database),
        dispatcher=dispatcher,
    )
