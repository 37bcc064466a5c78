"""Position-changed notification for tempo map subscribers.

Two ways to listen:

* ``subscribe(callback)``: the callback runs on a background dispatcher
  thread, never on the thread that made the edit.
* ``open_channel()``: a queue that receives one token per change, for
  collaborators that poll from their own thread.

The map emits only after releasing its write lock, so a subscriber may
query the map straight away without deadlocking.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor, wait

logger = logging.getLogger(__name__)

ChangeCallback = Callable[[], None]

CHANGED = object()
"""Token put on channels for every change."""


class ChangeNotifier:
    """Subscription list with fire-and-forget delivery.

    Example:
        >>> notifier = ChangeNotifier()
        >>> channel = notifier.open_channel()
        >>> notifier.emit()
        >>> channel.get_nowait() is CHANGED
        True
    """

    def __init__(self, name: str = "tempo-map") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._callbacks: list[ChangeCallback] = []
        self._channels: list[queue.Queue[object]] = []
        self._executor: ThreadPoolExecutor | None = None
        self._pending: set[Future[None]] = set()
        self._closed = False

    def subscribe(self, callback: ChangeCallback) -> Callable[[], None]:
        """Register ``callback``; returns a function that unsubscribes it."""
        with self._lock:
            self._callbacks.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return unsubscribe

    def open_channel(self) -> queue.Queue[object]:
        channel: queue.Queue[object] = queue.Queue()
        with self._lock:
            self._channels.append(channel)
        return channel

    def close_channel(self, channel: queue.Queue[object]) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._callbacks) + len(self._channels)

    def emit(self) -> None:
        """Notify every subscriber that the map changed. Never blocks on them."""
        with self._lock:
            if self._closed:
                return
            callbacks = list(self._callbacks)
            channels = list(self._channels)
            if callbacks and self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix=f"{self._name}-notify"
                )
            executor = self._executor

        for channel in channels:
            channel.put(CHANGED)

        if executor is None:
            return
        for callback in callbacks:
            future = executor.submit(self._deliver, callback)
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._discard)

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for queued callback deliveries. Returns False on timeout."""
        with self._lock:
            pending = list(self._pending)
        if not pending:
            return True
        _, not_done = wait(pending, timeout=timeout)
        return not not_done

    def close(self) -> None:
        """Stop delivering; pending callbacks still run."""
        with self._lock:
            self._closed = True
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)

    def _deliver(self, callback: ChangeCallback) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Tempo map change subscriber %r failed", callback)

    def _discard(self, future: Future[None]) -> None:
        with self._lock:
            self._pending.discard(future)


__all__ = [
    "CHANGED",
    "ChangeCallback",
    "ChangeNotifier",
]
