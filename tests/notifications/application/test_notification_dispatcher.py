"""Tests for the fire-and-forget NotificationDispatcher."""

import threading
from types import SimpleNamespace

import pytest
from notifications.channel import get_order_notifier, reset_channels, set_order_notifier
from notifications.channel.fake_order import FakeNotificationAdapter
from notifications.notification.dispatch import NotificationDispatcher


def _order(number="ORD-1A2B3C4D-0001"):
    return SimpleNamespace(id=1, order_number=number, user_id=7)


@pytest.fixture()
def adapter():
    return FakeNotificationAdapter()


@pytest.fixture()
def dispatcher(adapter):
    dispatcher = NotificationDispatcher(adapter, workers=2)
    yield dispatcher
    dispatcher.shutdown()


class TestDispatch:
    def test_order_created(self, dispatcher, adapter):
        dispatcher.order_created(_order())
        assert dispatcher.flush(timeout=5)
        assert adapter.sent == [
            {"kind": "order_created", "order_id": 1, "order_number": "ORD-1A2B3C4D-0001", "user_id": 7}
        ]

    def test_order_shipped_carries_tracking(self, dispatcher, adapter):
        dispatcher.order_shipped(_order(), "1Z999")
        dispatcher.flush(timeout=5)
        assert adapter.sent_of_kind("order_shipped")[0]["tracking_number"] == "1Z999"

    def test_order_delivered(self, dispatcher, adapter):
        dispatcher.order_delivered(_order())
        dispatcher.flush(timeout=5)
        assert len(adapter.sent_of_kind("order_delivered")) == 1


class TestFireAndForget:
    def test_caller_does_not_wait_for_delivery(self, adapter):
        release = threading.Event()

        class SlowAdapter(FakeNotificationAdapter):
            def notify_order_created(self, order):
                release.wait(timeout=5)
                super().notify_order_created(order)

        slow = SlowAdapter()
        dispatcher = NotificationDispatcher(slow, workers=1)
        try:
            dispatcher.order_created(_order())
            # Returned while the adapter is still blocked
            assert slow.sent == []
            assert not dispatcher.flush(timeout=0.05)
            release.set()
            assert dispatcher.flush(timeout=5)
            assert len(slow.sent) == 1
        finally:
            release.set()
            dispatcher.shutdown()

    def test_adapter_failure_is_swallowed(self, dispatcher, adapter):
        adapter.configure(should_succeed=False)
        dispatcher.order_created(_order())
        assert dispatcher.flush(timeout=5)
        assert adapter.sent == []

    def test_unexpected_adapter_error_is_swallowed(self, dispatcher):
        class BrokenAdapter(FakeNotificationAdapter):
            def notify_order_created(self, order):
                raise RuntimeError("SMTP unreachable")

        dispatcher.adapter = BrokenAdapter()
        dispatcher.order_created(_order())
        assert dispatcher.flush(timeout=5)

    def test_dispatch_after_shutdown_is_dropped(self, adapter):
        dispatcher = NotificationDispatcher(adapter)
        dispatcher.shutdown()
        dispatcher.order_created(_order())
        assert adapter.sent == []


class TestRegistry:
    def test_default_adapter_is_fake_singleton(self):
        reset_channels()
        try:
            assert isinstance(get_order_notifier(), FakeNotificationAdapter)
            assert get_order_notifier() is get_order_notifier()
        finally:
            reset_channels()

    def test_set_order_notifier(self, adapter):
        set_order_notifier(adapter)
        try:
            assert get_order_notifier() is adapter
        finally:
            reset_channels()
