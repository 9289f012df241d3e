"""Elasticsearch sink: one document per event via the index API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import requests

from ..correlator import OomEvent
from ..errors import DeliveryError
from .base import BaseSink

log = logging.getLogger(__name__)


def build_document(event: OomEvent) -> dict[str, Any]:
    doc = event.to_dict()
    doc["@timestamp"] = doc["killed_at"] or doc["detected_at"]
    return doc


class ElasticsearchSink(BaseSink):
    def __init__(
        self,
        server: str,
        index: str,
        *,
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.server = server.rstrip("/")
        self.index = index
        self.url = f"{self.server}/{quote(index, safe='')}/_doc"
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return "elasticsearch"

    def deliver(self, event: OomEvent) -> None:
        try:
            response = self._session.post(self.url, json=build_document(event), timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            raise DeliveryError(self.name, str(exc)) from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise DeliveryError(self.name, "malformed response from Elasticsearch") from exc

        if not isinstance(body, dict) or body.get("result") not in ("created", "updated"):
            raise DeliveryError(self.name, f"unexpected index response: {str(body)[:200]}")

        log.debug(f"Indexed OOM event as {self.index}/{body.get('_id')}")

    def close(self) -> None:
        self._session.close()
