"""Background thread that delivers envelopes while honouring rate limits."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from errbeacon.ratelimit import RateLimiter, RateLimitingCategory

logger = logging.getLogger(__name__)

_QUEUE_SIZE = 30
_POLL_INTERVAL = 0.1

SendFunction = Callable[[Any, RateLimiter], object]


@dataclass
class _Flush:
    done: threading.Event = field(default_factory=threading.Event)


_SHUTDOWN = object()


class TransportWorker:
    """Runs ``send(envelope, limiter)`` for queued envelopes on a worker thread.

    The send function delivers one envelope and records any rate limits the
    server reports on the limiter it is given. Envelopes arriving while all
    payloads are rate limited are dropped.
    """

    def __init__(
        self,
        send: SendFunction,
        *,
        limiter: Optional[RateLimiter] = None,
        queue_size: int = _QUEUE_SIZE,
        name: str = "errbeacon-transport",
    ) -> None:
        self._send = send
        self._limiter = limiter if limiter is not None else RateLimiter()
        self._queue: "queue.Queue[Any]" = queue.Queue(maxsize=queue_size)
        self._stopping = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        while True:
            task = self._queue.get()
            if self._stopping.is_set() or task is _SHUTDOWN:
                return
            if isinstance(task, _Flush):
                task.done.set()
                continue
            time_left = self._limiter.is_disabled(RateLimitingCategory.ANY)
            if time_left is not None:
                logger.debug(
                    "Skipping event send because we're disabled due to rate limits for %ds",
                    time_left,
                )
                continue
            try:
                self._send(task, self._limiter)
            except Exception:
                logger.debug("Failed to send envelope", exc_info=True)

    def _is_running(self) -> bool:
        return not self._stopping.is_set() and self._thread.is_alive()

    def send(self, envelope: Any) -> None:
        """Queue an envelope, waiting for room; dropped once the worker has stopped."""
        while self._is_running():
            try:
                self._queue.put(envelope, timeout=_POLL_INTERVAL)
                return
            except queue.Full:
                continue

    def flush(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds for queued envelopes; True if they were all handled."""
        if not self._is_running():
            return False
        deadline = time.monotonic() + timeout
        marker = _Flush()
        try:
            self._queue.put(marker, timeout=max(timeout, 0.0))
        except queue.Full:
            return False
        return marker.done.wait(max(deadline - time.monotonic(), 0.0))

    def shutdown(self) -> None:
        """Stop the worker, discarding anything still queued."""
        self._stopping.set()
        try:
            self._queue.put_nowait(_SHUTDOWN)
        except queue.Full:
            pass
        if threading.current_thread() is not self._thread:
            self._thread.join()

    def __enter__(self) -> "TransportWorker":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()