from __future__ import annotations


class NotifierError(Exception):
    """Base class for errors raised by oom-notifier."""


class KernelLogUnavailableError(NotifierError):
    """The kernel log device cannot be opened or read.

    Fatal: without the device no OOM kill can be observed.
    """

    def __init__(self, path: str, message: str, errno: int | None = None) -> None:
        super().__init__(f"{path}: {message}")
        self.path = path
        self.errno = errno


class DeliveryError(NotifierError):
    """A sink failed to deliver an event."""

    def __init__(self, sink: str, message: str) -> None:
        super().__init__(f"{sink}: {message}")
        self.sink = sink
        self.message = message


class ConfigError(NotifierError):
    """Invalid sink or daemon configuration."""
