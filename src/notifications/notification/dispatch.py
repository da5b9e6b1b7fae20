"""Fire-and-forget dispatch of order notifications.

The dispatcher hands each notification to a small thread pool and returns at
once. Callers never wait on delivery and never see its outcome: a failing
adapter is logged here and the failure stops here.
"""

import threading
from concurrent.futures import ThreadPoolExecutor, wait

import structlog

logger = structlog.get_logger(__name__)


class NotificationDispatcher:
    """Runs ``OrderNotificationPort`` calls off the request path."""

    def __init__(self, adapter, workers: int = 2):
        self.adapter = adapter
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="notify")
        self._pending = set()
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, adapter, settings):
        return cls(adapter, workers=settings.notifications.workers)

    def order_created(self, order) -> None:
        self._submit("order_created", order, self.adapter.notify_order_created, order)

    def order_shipped(self, order, tracking_number) -> None:
        self._submit("order_shipped", order, self.adapter.notify_order_shipped, order, tracking_number)

    def order_delivered(self, order) -> None:
        self._submit("order_delivered", order, self.adapter.notify_order_delivered, order)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for dispatches submitted so far. Returns False if some are still running."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def shutdown(self, wait_for_pending: bool = True) -> None:
        self._executor.shutdown(wait=wait_for_pending)

    def _submit(self, kind, order, fn, *args):
        try:
            future = self._executor.submit(self._run, kind, order.order_number, fn, *args)
        except RuntimeError:
            # Executor already shut down
            logger.warning("Notification dropped", kind=kind, order_number=order.order_number)
            return

        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future):
        with self._lock:
            self._pending.discard(future)

    def _run(self, kind, order_number, fn, *args):
        try:
            fn(*args)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                kind=kind,
                order_number=order_number,
                error=str(e),
            )
            return
        logger.info("Notification dispatched", kind=kind, order_number=order_number)
