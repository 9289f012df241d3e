"""Daemon wiring: tail -> parse -> correlate -> dispatch."""

from __future__ import annotations

import logging

from .config import Settings
from .correlator import EventCorrelator, OomEvent
from .dispatcher import NotificationDispatcher
from .kmsg import KernelLogTailer, RawLogLine
from .oom import parse_oom_line
from .proctable import ProcessCache
from .sinks import build_sinks

log = logging.getLogger(__name__)


class OomNotifier:
    """Runs the process cache refresher alongside the kernel log pipeline.

    Lines are handled strictly in the order the tailer yields them; deliveries
    run in the dispatcher pool and never hold up the next line.
    """

    def __init__(
        self,
        tailer: KernelLogTailer,
        cache: ProcessCache,
        dispatcher: NotificationDispatcher,
        correlator: EventCorrelator | None = None,
        *,
        shutdown_grace: float = 5.0,
    ) -> None:
        self.tailer = tailer
        self.cache = cache
        self.dispatcher = dispatcher
        self.correlator = correlator or EventCorrelator(cache)
        self.shutdown_grace = shutdown_grace

    @classmethod
    def from_settings(cls, settings: Settings) -> OomNotifier:
        sinks = build_sinks(settings)
        cache = ProcessCache(
            settings.process_refresh_seconds, retain_cycles=settings.process_retain_cycles
        )
        return cls(
            KernelLogTailer(settings.kmsg_path),
            cache,
            NotificationDispatcher(
                sinks,
                max_workers=settings.dispatch_max_workers,
                max_in_flight=settings.dispatch_max_in_flight,
            ),
            shutdown_grace=settings.shutdown_grace_seconds,
        )

    def handle_line(self, line: RawLogLine) -> OomEvent | None:
        """Process one kernel log line; returns the event if it was an OOM kill."""
        record = parse_oom_line(line)
        if record is None:
            return None

        event = self.correlator.correlate(record)
        log.info(
            f"New OOM event: pid {event.pid} ({event.comm}) cmdline={event.cmdline!r}",
            extra={"victim_pid": event.pid, "comm": event.comm},
        )
        self.dispatcher.dispatch(event)
        return event

    def run(self) -> None:
        """Block until stopped. KernelLogUnavailableError is fatal and propagates."""
        # Open first so a missing privilege fails before anything else starts.
        self.tailer.open()
        sink_names = ", ".join(s.name for s in self.dispatcher.sinks) or "none"
        log.info(f"oom-notifier starting, sinks: {sink_names}")

        self.cache.start()
        try:
            for line in self.tailer:
                self.handle_line(line)
        finally:
            log.info("Shutting down")
            self.cache.stop()
            self.dispatcher.shutdown(self.shutdown_grace)
            self.tailer.close()

    def stop(self) -> None:
        self.tailer.stop()
