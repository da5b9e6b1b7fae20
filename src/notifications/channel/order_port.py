"""Order notification port — abstract interface for customer-facing order messages."""

from abc import ABC, abstractmethod


class OrderNotificationPort(ABC):
    """Abstract interface for order notification adapters.

    Calls are made off the request path by the ``NotificationDispatcher``.
    Adapters may raise; the dispatcher logs and drops the failure.
    """

    @abstractmethod
    def notify_order_created(self, order) -> None:
        """Order confirmation after a successful checkout."""
        ...

    @abstractmethod
    def notify_order_shipped(self, order, tracking_number: str) -> None: ...

    @abstractmethod
    def notify_order_delivered(self, order) -> None: ...
