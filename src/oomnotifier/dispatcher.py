"""Concurrent fan-out of OOM events to sinks."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Sequence
from concurrent.futures import Future, wait
from dataclasses import dataclass

from .correlator import OomEvent
from .errors import DeliveryError
from .sinks.base import BaseSink

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DeliveryResult:
    """Outcome of offering one event to one sink."""

    sink: str
    ok: bool
    error: str | None = None
    duration_ms: float = 0.0


_WorkItem = tuple[Future[DeliveryResult], BaseSink, OomEvent]


class NotificationDispatcher:
    """Offers every event to every sink, each delivery in its own pool task.

    ``dispatch`` returns as soon as the deliveries are submitted. At most
    ``max_in_flight`` deliveries are queued or running at once; beyond that
    ``dispatch`` waits for a slot.

    Workers are daemon threads, so deliveries abandoned by :meth:`shutdown`
    never hold the process open at exit.
    """

    def __init__(
        self,
        sinks: Sequence[BaseSink],
        *,
        max_workers: int = 4,
        max_in_flight: int = 64,
    ) -> None:
        self._sinks = tuple(sinks)
        self._queue: queue.SimpleQueue[_WorkItem | None] = queue.SimpleQueue()
        self._workers = [
            threading.Thread(target=self._work, name=f"oom-notify-{i}", daemon=True)
            for i in range(max(1, max_workers))
        ]
        for worker in self._workers:
            worker.start()
        self._slots = threading.BoundedSemaphore(max(1, max_in_flight))
        self._pending: set[Future[DeliveryResult]] = set()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def sinks(self) -> tuple[BaseSink, ...]:
        return self._sinks

    def dispatch(self, event: OomEvent) -> list[Future[DeliveryResult]]:
        if self._closed:
            raise RuntimeError("dispatcher has been shut down")

        futures: list[Future[DeliveryResult]] = []
        for sink in self._sinks:
            self._slots.acquire()
            future: Future[DeliveryResult] = Future()
            with self._lock:
                self._pending.add(future)
            future.add_done_callback(self._on_done)
            self._queue.put((future, sink, event))
            futures.append(future)
        return futures

    def _on_done(self, future: Future[DeliveryResult]) -> None:
        with self._lock:
            self._pending.discard(future)
        self._slots.release()

    def _work(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            future, sink, event = item
            if future.set_running_or_notify_cancel():
                future.set_result(self._deliver(sink, event))

    def _deliver(self, sink: BaseSink, event: OomEvent) -> DeliveryResult:
        started = time.monotonic()
        extra = {"sink": sink.name, "victim_pid": event.pid}
        try:
            sink.deliver(event)
        except DeliveryError as exc:
            duration_ms = round((time.monotonic() - started) * 1000, 1)
            log.error(
                f"Error while sending the OOM event for pid {event.pid} to {sink.name}: {exc.message}",
                extra={**extra, "error": exc.message, "duration_ms": duration_ms},
            )
            return DeliveryResult(sink.name, False, exc.message, duration_ms)
        except Exception as exc:
            duration_ms = round((time.monotonic() - started) * 1000, 1)
            log.exception(
                f"Unexpected error in sink {sink.name} for pid {event.pid}",
                extra={**extra, "error": str(exc), "duration_ms": duration_ms},
            )
            return DeliveryResult(sink.name, False, str(exc), duration_ms)

        duration_ms = round((time.monotonic() - started) * 1000, 1)
        log.info(
            f"OOM event for pid {event.pid} delivered to {sink.name}",
            extra={**extra, "duration_ms": duration_ms},
        )
        return DeliveryResult(sink.name, True, None, duration_ms)

    def shutdown(self, grace: float = 5.0) -> None:
        """Wait up to *grace* seconds for in-flight deliveries, then close sinks."""
        self._closed = True
        with self._lock:
            pending = set(self._pending)

        if pending:
            log.info(f"Waiting up to {grace}s for {len(pending)} in-flight deliveries")
            _, not_done = wait(pending, timeout=grace)
            if not_done:
                log.warning(f"Abandoning {len(not_done)} deliveries still in flight")
                for future in not_done:
                    future.cancel()

        for _ in self._workers:
            self._queue.put(None)
        for sink in self._sinks:
            try:
                sink.close()
            except Exception:
                log.exception(f"Error while closing sink {sink.name}")
