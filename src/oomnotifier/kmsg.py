"""Kernel ring buffer tailing.

Reads ``/dev/kmsg`` as a blocking stream of records. Each record has the form::

    <prio>,<seq>,<usec since boot>,<flags>[,...];<message text>
     KEY=value            (optional continuation lines, indented by one space)

The device returns one record per ``read()``. Pipes and FIFOs used in its place
may return several records at once, or end a read in the middle of one, so
chunks are split on newlines and a trailing partial record is held back until
the rest of it arrives.
"""

from __future__ import annotations

import contextlib
import logging
import os
import re
import select
import threading
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime

from .errors import KernelLogUnavailableError

log = logging.getLogger(__name__)

DEFAULT_KMSG_PATH = "/dev/kmsg"

_RECORD_RE = re.compile(
    r"^(?P<prio>\d+),(?P<seq>\d+),(?P<usec>\d+)(?:,[^;]*)?;(?P<text>.*)$",
)


@dataclass(frozen=True, slots=True)
class RawLogLine:
    """One kernel log line as read from the device."""

    text: str
    read_at: datetime
    kernel_ts: float | None = None  # seconds since boot
    priority: int | None = None
    seq: int | None = None

    @property
    def level(self) -> int | None:
        return None if self.priority is None else self.priority & 7


def parse_kmsg_record(record: str, *, read_at: datetime | None = None) -> RawLogLine:
    """Turn one ``/dev/kmsg`` record into a RawLogLine.

    Text that does not carry a kmsg header is kept verbatim, so plain ``dmesg``
    output can go through the same path.
    """
    read_at = read_at or datetime.now(UTC)
    m = _RECORD_RE.match(record)
    if m is None:
        return RawLogLine(text=record, read_at=read_at)
    return RawLogLine(
        text=m.group("text"),
        read_at=read_at,
        kernel_ts=int(m.group("usec")) / 1_000_000,
        priority=int(m.group("prio")),
        seq=int(m.group("seq")),
    )


def split_records(chunk: bytes) -> list[str]:
    """Split a read chunk into record lines, dropping continuation lines."""
    text = chunk.decode("utf-8", errors="replace")
    return [line for line in text.split("\n") if line and not line.startswith(" ")]


class KernelLogTailer:
    """Lazy, infinite, non-restartable stream of kernel log lines.

    Only messages produced after :meth:`open` are returned. Iteration blocks
    in ``select()`` until the device has data or :meth:`stop` is called.
    """

    def __init__(
        self,
        path: str = DEFAULT_KMSG_PATH,
        *,
        seek_to_end: bool = True,
        read_size: int = 8192,
    ) -> None:
        self.path = path
        self.seek_to_end = seek_to_end
        self.read_size = read_size
        self._fd: int | None = None
        self._wake_r: int | None = None
        self._wake_w: int | None = None
        self._stopped = threading.Event()
        self._iterator: Iterator[RawLogLine] | None = None

    def open(self) -> None:
        """Open the device. Raises KernelLogUnavailableError on failure."""
        if self._fd is not None:
            return
        try:
            fd = os.open(self.path, os.O_RDONLY | os.O_NONBLOCK)
        except OSError as exc:
            raise KernelLogUnavailableError(
                self.path, exc.strerror or str(exc), exc.errno
            ) from exc

        if self.seek_to_end:
            try:
                os.lseek(fd, 0, os.SEEK_END)
            except OSError as exc:
                os.close(fd)
                raise KernelLogUnavailableError(
                    self.path, f"cannot seek to end: {exc.strerror or exc}", exc.errno
                ) from exc

        self._fd = fd
        self._wake_r, self._wake_w = os.pipe()
        log.info(f"Tailing kernel log {self.path}")

    def __iter__(self) -> Iterator[RawLogLine]:
        if self._iterator is None:
            self._iterator = self._lines()
        return self._iterator

    def _lines(self) -> Iterator[RawLogLine]:
        self.open()
        assert self._fd is not None and self._wake_r is not None

        partial = b""
        while not self._stopped.is_set():
            readable, _, _ = select.select([self._fd, self._wake_r], [], [])
            if self._wake_r in readable:
                break
            chunk = self._read()
            if chunk is None:
                continue
            complete, newline, partial = (partial + chunk).rpartition(b"\n")
            if not newline:
                continue
            read_at = datetime.now(UTC)
            for record in split_records(complete):
                yield parse_kmsg_record(record, read_at=read_at)

        log.info("Kernel log tailer stopped")

    def _read(self) -> bytes | None:
        assert self._fd is not None
        try:
            data = os.read(self._fd, self.read_size)
        except (BlockingIOError, InterruptedError):
            return None
        except BrokenPipeError:
            # The ring buffer wrapped past our read position; the next read
            # continues from the oldest record still available.
            log.warning("Kernel log records were overwritten before they could be read")
            return None
        except OSError as exc:
            raise KernelLogUnavailableError(
                self.path, exc.strerror or str(exc), exc.errno
            ) from exc

        if not data:
            raise KernelLogUnavailableError(self.path, "unexpected end of stream")
        return data

    def stop(self) -> None:
        """Wake a blocked read and end iteration. Safe from signal handlers."""
        self._stopped.set()
        if self._wake_w is not None:
            with contextlib.suppress(OSError):
                os.write(self._wake_w, b"\0")

    def close(self) -> None:
        self.stop()
        for fd in (self._fd, self._wake_r, self._wake_w):
            if fd is not None:
                with contextlib.suppress(OSError):
                    os.close(fd)
        self._fd = self._wake_r = self._wake_w = None

    def __enter__(self) -> KernelLogTailer:
        self.open()
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
