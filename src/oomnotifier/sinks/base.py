"""Base sink interface."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..correlator import OomEvent


class BaseSink(ABC):
    """Abstract base class for notification backends.

    ``deliver`` either returns normally or raises DeliveryError. Sinks hold
    their own transport state and do not retry.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Sink name used in logs and delivery results."""
        ...

    @abstractmethod
    def deliver(self, event: OomEvent) -> None:
        """Send *event* to the backend."""
        ...

    def close(self) -> None:
        """Release transport resources."""
