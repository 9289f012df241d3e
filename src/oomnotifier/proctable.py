"""Background pid -> command line cache.

The kernel logs an OOM kill after the victim is gone, so its command line has
to be captured beforehand. The cache rescans the process table on a fixed
interval and publishes each scan as an immutable snapshot; lookups read
whichever snapshot is current and never wait for a scan.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from types import MappingProxyType

import psutil

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ProcessSnapshotEntry:
    pid: int
    cmdline: str
    captured_at: datetime


@dataclass(frozen=True, slots=True)
class ProcessSnapshot:
    """A complete, read-only pid -> entry table."""

    entries: Mapping[int, ProcessSnapshotEntry] = field(
        default_factory=lambda: MappingProxyType({})
    )
    taken_at: datetime | None = None

    def get(self, pid: int) -> ProcessSnapshotEntry | None:
        return self.entries.get(pid)

    def __len__(self) -> int:
        return len(self.entries)


Scanner = Callable[[], Mapping[int, ProcessSnapshotEntry]]


def scan_processes() -> dict[int, ProcessSnapshotEntry]:
    """Read the argv of every live process.

    Processes that exit or deny access mid-scan are skipped, as are processes
    without an argv (kernel threads, zombies).
    """
    now = datetime.now(UTC)
    entries: dict[int, ProcessSnapshotEntry] = {}

    for proc in psutil.process_iter(["pid", "cmdline"]):
        try:
            info = proc.info
            cmdline = info["cmdline"]
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if not cmdline:
            continue
        pid = info["pid"]
        entries[pid] = ProcessSnapshotEntry(pid=pid, cmdline=" ".join(cmdline), captured_at=now)

    return entries


class ProcessCache:
    """Periodically refreshed pid -> command line snapshot.

    Args:
        interval: Seconds between refresh cycles.
        retain_cycles: Number of further cycles an entry is kept after its
            process disappears. Covers a victim that is killed just before a
            scan and logged just after it.
        scanner: Callable producing a fresh pid -> entry mapping.
    """

    def __init__(
        self,
        interval: float = 1.0,
        *,
        retain_cycles: int = 1,
        scanner: Scanner = scan_processes,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be > 0")
        self.interval = interval
        self.retain_cycles = max(0, retain_cycles)
        self._scanner = scanner
        self._snapshot = ProcessSnapshot()
        self._missed: dict[int, int] = {}
        self._refresh_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def snapshot(self) -> ProcessSnapshot:
        return self._snapshot

    def lookup(self, pid: int) -> str | None:
        """Command line of *pid* in the current snapshot, or None."""
        entry = self._snapshot.get(pid)
        return entry.cmdline if entry is not None else None

    def entry(self, pid: int) -> ProcessSnapshotEntry | None:
        return self._snapshot.get(pid)

    def refresh(self) -> ProcessSnapshot:
        """Run one scan and publish it as the current snapshot."""
        with self._refresh_lock:
            started = time.monotonic()
            previous = self._snapshot
            entries = dict(self._scanner())

            missed: dict[int, int] = {}
            for pid, old in previous.entries.items():
                if pid in entries:
                    continue
                count = self._missed.get(pid, 0) + 1
                if count <= self.retain_cycles:
                    entries[pid] = old
                    missed[pid] = count
            self._missed = missed

            snapshot = ProcessSnapshot(
                entries=MappingProxyType(entries), taken_at=datetime.now(UTC)
            )
            # Single reference swap: readers see the old or the new table.
            self._snapshot = snapshot

        log.debug(
            f"Process snapshot refreshed: {len(snapshot)} entries "
            f"({len(missed)} retained) in {time.monotonic() - started:.3f}s"
        )
        return snapshot

    def start(self) -> None:
        """Take a first snapshot, then keep refreshing in a daemon thread."""
        if self._thread is not None:
            return
        self._refresh_safely()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="process-cache-refresher", daemon=True
        )
        self._thread.start()
        log.info(f"Process cache refreshing every {self.interval}s")

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval):
            self._refresh_safely()

    def _refresh_safely(self) -> None:
        try:
            self.refresh()
        except Exception:
            log.exception("Process table refresh failed, keeping previous snapshot")

    def stop(self, timeout: float | None = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout if timeout is not None else self.interval * 2)
            self._thread = None
