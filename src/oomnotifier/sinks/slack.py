"""Slack incoming-webhook sink."""

from __future__ import annotations

import logging
from typing import Any

import requests

from ..correlator import OomEvent
from ..errors import DeliveryError
from ..utils import kb_to_human
from .base import BaseSink

log = logging.getLogger(__name__)


def format_slack_message(event: OomEvent) -> str:
    cmdline = f"`{event.cmdline}`" if event.cmdline is not None else "_not captured_"
    lines = [
        f":boom: *OOM kill on `{event.hostname}`*",
        f"*Process:* `{event.comm}` (pid {event.pid})",
        f"*Command line:* {cmdline}",
        f"*Memory:* total-vm {kb_to_human(event.total_vm_kb)}, "
        f"anon-rss {kb_to_human(event.anon_rss_kb)}",
    ]
    if event.reason:
        lines.append(f"*Reason:* {event.reason}")
    when = event.killed_at or event.detected_at
    lines.append(f"*When:* {when.isoformat(timespec='seconds')} (kernel {event.kernel})")
    return "\n".join(lines)


class SlackSink(BaseSink):
    def __init__(
        self,
        webhook: str,
        channel: str | None = None,
        *,
        username: str = "oom-notifier",
        timeout: float = 5.0,
        session: requests.Session | None = None,
    ) -> None:
        self.webhook = webhook
        self.channel = channel or None
        self.username = username
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def name(self) -> str:
        return "slack"

    def build_payload(self, event: OomEvent) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "text": format_slack_message(event),
            "username": self.username,
        }
        if self.channel:
            payload["channel"] = self.channel
        return payload

    def deliver(self, event: OomEvent) -> None:
        try:
            response = self._session.post(
                self.webhook, json=self.build_payload(event), timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as exc:
            # The webhook URL is a credential; keep it out of the message.
            status = getattr(exc.response, "status_code", None)
            detail = f"HTTP {status}" if status is not None else type(exc).__name__
            raise DeliveryError(self.name, f"webhook post failed: {detail}") from exc

    def close(self) -> None:
        self._session.close()
