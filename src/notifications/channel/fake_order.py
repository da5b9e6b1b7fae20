"""Fake order notification adapter — records notifications for testing."""

import threading

from notifications.channel.order_port import OrderNotificationPort
from shared.exceptions import TransientInfraError


class FakeNotificationAdapter(OrderNotificationPort):
    """Adapter that records notifications in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
        self._lock = threading.Lock()

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def _record(self, kind, order, **extra):
        if not self.should_succeed:
            raise TransientInfraError({"notification": [self.failure_reason]})

        with self._lock:
            self.sent.append(
                {
                    "kind": kind,
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "user_id": order.user_id,
                    **extra,
                }
            )

    def notify_order_created(self, order) -> None:
        self._record("order_created", order)

    def notify_order_shipped(self, order, tracking_number: str) -> None:
        self._record("order_shipped", order, tracking_number=tracking_number)

    def notify_order_delivered(self, order) -> None:
        self._record("order_delivered", order)

    def sent_of_kind(self, kind) -> list[dict]:
        with self._lock:
            return [record for record in self.sent if record["kind"] == kind]

    def reset(self):
        """Clear recorded notifications (useful between tests)."""
        with self._lock:
            self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"
