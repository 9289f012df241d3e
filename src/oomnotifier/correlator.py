"""Join parsed OOM kills with cached command lines."""

from __future__ import annotations

import logging
import os
import platform
import socket
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any

import psutil

from .oom import OomKillRecord
from .proctable import ProcessCache

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class HostInfo:
    hostname: str
    kernel: str
    boot_time: float | None = None

    @classmethod
    def detect(cls) -> HostInfo:
        hostname = os.getenv("HOSTNAME") or socket.gethostname()
        try:
            boot_time: float | None = psutil.boot_time()
        except OSError:
            boot_time = None
        return cls(hostname=hostname, kernel=platform.release(), boot_time=boot_time)


@dataclass(frozen=True, slots=True)
class OomEvent:
    """A detected OOM kill, as reported to sinks.

    ``cmdline`` is None when the victim was not in the process cache.
    """

    pid: int
    comm: str
    cmdline: str | None
    total_vm_kb: int | None
    kernel_ts: float | None
    detected_at: datetime
    hostname: str
    kernel: str
    killed_at: datetime | None = None
    anon_rss_kb: int | None = None
    file_rss_kb: int | None = None
    shmem_rss_kb: int | None = None
    uid: int | None = None
    oom_score_adj: int | None = None
    reason: str | None = None
    cmdline_captured_at: datetime | None = None

    @property
    def cmdline_found(self) -> bool:
        return self.cmdline is not None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key in ("detected_at", "killed_at", "cmdline_captured_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat(timespec="milliseconds")
        data["cmdline_found"] = self.cmdline_found
        return data


class EventCorrelator:
    """Builds OomEvents from kill records with a single, immediate cache lookup."""

    def __init__(self, cache: ProcessCache, host: HostInfo | None = None) -> None:
        self._cache = cache
        self._host = host or HostInfo.detect()

    def correlate(self, record: OomKillRecord) -> OomEvent:
        entry = self._cache.entry(record.pid)
        if entry is None:
            log.warning(
                f"Detected OOM kill of pid {record.pid} ({record.comm}) "
                "but its command line was not cached",
                extra={"victim_pid": record.pid, "comm": record.comm},
            )

        killed_at = None
        if record.kernel_ts is not None and self._host.boot_time is not None:
            killed_at = datetime.fromtimestamp(self._host.boot_time + record.kernel_ts, tz=UTC)

        return OomEvent(
            pid=record.pid,
            comm=record.comm,
            cmdline=entry.cmdline if entry is not None else None,
            total_vm_kb=record.total_vm_kb,
            kernel_ts=record.kernel_ts,
            detected_at=datetime.now(UTC),
            hostname=self._host.hostname,
            kernel=self._host.kernel,
            killed_at=killed_at,
            anon_rss_kb=record.anon_rss_kb,
            file_rss_kb=record.file_rss_kb,
            shmem_rss_kb=record.shmem_rss_kb,
            uid=record.uid,
            oom_score_adj=record.oom_score_adj,
            reason=record.reason,
            cmdline_captured_at=entry.captured_at if entry is not None else None,
        )
