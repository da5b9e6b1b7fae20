"""Notification adapter registry.

Provides singleton access to the order notification adapter. Uses the fake
adapter by default; a real adapter (email provider, message queue) is
installed with ``set_order_notifier`` at application start.
"""

from notifications.channel.order_port import OrderNotificationPort

_order_notifier: OrderNotificationPort | None = None


def get_order_notifier() -> OrderNotificationPort:
    """Return the configured order notification adapter (singleton)."""
    global _order_notifier
    if _order_notifier is None:
        from notifications.channel.fake_order import FakeNotificationAdapter

        _order_notifier = FakeNotificationAdapter()
    return _order_notifier


def set_order_notifier(adapter: OrderNotificationPort) -> None:
    global _order_notifier
    _order_notifier = adapter


def reset_channels():
    """Reset the adapter singleton (useful for testing)."""
    global _order_notifier
    _order_notifier = None
