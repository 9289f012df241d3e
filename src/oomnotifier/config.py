from __future__ import annotations

import os
from dataclasses import dataclass, field


def _get_str(name: str, default: str) -> str:
    return os.getenv(name, default)


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True, slots=True)
class Settings:
    kmsg_path: str = field(default_factory=lambda: _get_str("KMSG_PATH", "/dev/kmsg"))

    # Process cache
    process_refresh_seconds: float = field(
        default_factory=lambda: _get_float("PROCESS_REFRESH_SECONDS", 1.0)
    )
    process_retain_cycles: int = field(
        default_factory=lambda: _get_int("PROCESS_RETAIN_CYCLES", 1)
    )

    # Dispatcher
    dispatch_max_workers: int = field(default_factory=lambda: _get_int("DISPATCH_MAX_WORKERS", 4))
    dispatch_max_in_flight: int = field(
        default_factory=lambda: _get_int("DISPATCH_MAX_IN_FLIGHT", 64)
    )
    shutdown_grace_seconds: float = field(
        default_factory=lambda: _get_float("SHUTDOWN_GRACE_SECONDS", 5.0)
    )
    sink_timeout_seconds: float = field(
        default_factory=lambda: _get_float("SINK_TIMEOUT_SECONDS", 5.0)
    )

    # Sinks (empty string means "not configured")
    syslog_proto: str = field(default_factory=lambda: _get_str("SYSLOG_PROTO", ""))
    syslog_server: str = field(default_factory=lambda: _get_str("SYSLOG_SERVER", ""))
    elasticsearch_server: str = field(
        default_factory=lambda: _get_str("ELASTICSEARCH_SERVER", "")
    )
    elasticsearch_index: str = field(default_factory=lambda: _get_str("ELASTICSEARCH_INDEX", ""))
    kafka_brokers: str = field(default_factory=lambda: _get_str("KAFKA_BROKERS", ""))
    kafka_topic: str = field(default_factory=lambda: _get_str("KAFKA_TOPIC", ""))
    slack_webhook: str = field(default_factory=lambda: _get_str("SLACK_WEBHOOK", ""))
    slack_channel: str = field(default_factory=lambda: _get_str("SLACK_CHANNEL", ""))


settings = Settings()
