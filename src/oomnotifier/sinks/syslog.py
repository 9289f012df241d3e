"""Remote syslog sink (RFC 3164 over udp, tcp or a unix socket)."""

from __future__ import annotations

import logging
import logging.handlers
import os
import socket
import threading
from typing import Any

from ..correlator import OomEvent
from ..errors import ConfigError, DeliveryError
from ..utils import parse_host_port
from .base import BaseSink

log = logging.getLogger(__name__)

_SOCKTYPES = {"udp": socket.SOCK_DGRAM, "tcp": socket.SOCK_STREAM}

DEFAULT_UNIX_SOCKET = "/dev/log"


class _RaisingSysLogHandler(logging.handlers.SysLogHandler):
    """SysLogHandler that propagates send errors instead of printing them.

    Every socket it opens, the TCP connect included, is bounded by *timeout*.
    """

    def __init__(self, address: str | tuple[str, int], *, timeout: float, **kwargs: Any) -> None:
        self.io_timeout = timeout
        super().__init__(address=address, **kwargs)

    def createSocket(self) -> None:
        if isinstance(self.address, str) or self.socktype != socket.SOCK_STREAM:
            super().createSocket()
            if self.socket is not None and not self.unixsocket:
                self.socket.settimeout(self.io_timeout)
            return
        self.unixsocket = False
        self.socket = socket.create_connection(self.address, timeout=self.io_timeout)

    def _connect_unixsocket(self, address: str) -> None:
        super()._connect_unixsocket(address)
        self.socket.settimeout(self.io_timeout)

    def handleError(self, record: logging.LogRecord) -> None:
        raise


def format_syslog_message(event: OomEvent) -> str:
    cmdline = event.cmdline if event.cmdline is not None else "<unavailable>"
    parts = [
        f"OOM kill on {event.hostname}:",
        f"pid={event.pid}",
        f"comm={event.comm}",
        f'cmdline="{cmdline}"',
    ]
    if event.total_vm_kb is not None:
        parts.append(f"total-vm={event.total_vm_kb}kB")
    if event.anon_rss_kb is not None:
        parts.append(f"anon-rss={event.anon_rss_kb}kB")
    if event.uid is not None:
        parts.append(f"uid={event.uid}")
    parts.append(f"kernel={event.kernel}")
    return " ".join(parts)


class SyslogSink(BaseSink):
    def __init__(
        self,
        proto: str,
        server: str = "",
        *,
        ident: str = "oom-notifier",
        facility: int = logging.handlers.SysLogHandler.LOG_USER,
        timeout: float = 5.0,
    ) -> None:
        proto = proto.lower()
        self.proto = proto
        if proto == "unix":
            self.address: str | tuple[str, int] = server or DEFAULT_UNIX_SOCKET
            self.socktype: int | None = None
        elif proto in _SOCKTYPES:
            self.address = parse_host_port(server)
            self.socktype = _SOCKTYPES[proto]
        else:
            raise ConfigError(f"unsupported syslog protocol {proto!r} (expected udp, tcp or unix)")
        self.ident = ident
        self.facility = facility
        self.timeout = timeout
        self._handler: _RaisingSysLogHandler | None = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "syslog"

    def _get_handler(self) -> _RaisingSysLogHandler:
        if self._handler is None:
            handler = _RaisingSysLogHandler(
                self.address,
                facility=self.facility,
                socktype=self.socktype,
                timeout=self.timeout,
            )
            handler.ident = f"{self.ident}[{os.getpid()}]: "
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._handler = handler
        return self._handler

    def deliver(self, event: OomEvent) -> None:
        record = logging.LogRecord(
            name="oom-notifier",
            level=logging.ERROR,
            pathname=__file__,
            lineno=0,
            msg=format_syslog_message(event),
            args=None,
            exc_info=None,
        )
        with self._lock:
            try:
                self._get_handler().handle(record)
            except OSError as exc:
                # Reconnect on the next event.
                self._close_handler()
                raise DeliveryError(self.name, f"{self.proto} {self.address}: {exc}") from exc

    def _close_handler(self) -> None:
        if self._handler is not None:
            self._handler.close()
            self._handler = None

    def close(self) -> None:
        if not self._lock.acquire(timeout=self.timeout):
            log.warning("Syslog delivery still in progress, leaving its socket to time out")
            return
        try:
            self._close_handler()
        finally:
            self._lock.release()
