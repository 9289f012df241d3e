from __future__ import annotations

import threading
from datetime import UTC, datetime

import pytest

from oomnotifier.correlator import OomEvent
from oomnotifier.errors import DeliveryError
from oomnotifier.sinks.base import BaseSink


class RecordingSink(BaseSink):
    def __init__(self, name: str = "recording") -> None:
        self._name = name
        self.events: list[OomEvent] = []
        self.closed = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    def deliver(self, event: OomEvent) -> None:
        with self._lock:
            self.events.append(event)

    def close(self) -> None:
        self.closed = True


class FailingSink(RecordingSink):
    def deliver(self, event: OomEvent) -> None:
        super().deliver(event)
        raise DeliveryError(self.name, "connection refused")


def make_event(pid: int = 4242, cmdline: str | None = "worker --queue=default") -> OomEvent:
    return OomEvent(
        pid=pid,
        comm="worker",
        cmdline=cmdline,
        total_vm_kb=102400,
        kernel_ts=120.5,
        detected_at=datetime(2024, 1, 1, 12, 0, tzinfo=UTC),
        hostname="node-1",
        kernel="6.1.0-test",
        anon_rss_kb=90000,
    )


@pytest.fixture
def event() -> OomEvent:
    return make_event()
