"""Kafka sink: JSON message per event, keyed by hostname."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from kafka import KafkaProducer
from kafka.errors import KafkaError

from ..correlator import OomEvent
from ..errors import DeliveryError
from .base import BaseSink

log = logging.getLogger(__name__)


def _serialize(value: dict[str, Any]) -> bytes:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class KafkaSink(BaseSink):
    """Publishes events to *topic*.

    The producer is created on first delivery, so an unreachable broker set
    surfaces as a delivery failure rather than a startup error.
    """

    def __init__(
        self,
        brokers: list[str],
        topic: str,
        *,
        timeout: float = 5.0,
        producer_factory: Callable[..., Any] = KafkaProducer,
    ) -> None:
        self.brokers = list(brokers)
        self.topic = topic
        self.timeout = timeout
        self._producer_factory = producer_factory
        self._producer: Any = None
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return "kafka"

    def _get_producer(self) -> Any:
        with self._lock:
            if self._producer is None:
                self._producer = self._producer_factory(
                    bootstrap_servers=self.brokers,
                    client_id="oom-notifier",
                    value_serializer=_serialize,
                    key_serializer=lambda key: key.encode("utf-8"),
                    max_block_ms=int(self.timeout * 1000),
                )
            return self._producer

    def deliver(self, event: OomEvent) -> None:
        try:
            producer = self._get_producer()
            future = producer.send(self.topic, key=event.hostname, value=event.to_dict())
            metadata = future.get(timeout=self.timeout)
        except KafkaError as exc:
            raise DeliveryError(self.name, f"{self.topic}: {exc}") from exc

        log.debug(
            f"Published OOM event to {self.topic} "
            f"partition {metadata.partition} offset {metadata.offset}"
        )

    def close(self) -> None:
        with self._lock:
            if self._producer is not None:
                self._producer.close(timeout=self.timeout)
                self._producer = None
