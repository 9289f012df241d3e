"""Notification sinks."""

from __future__ import annotations

import logging

from ..config import Settings
from ..utils import split_csv
from .base import BaseSink
from .elasticsearch import ElasticsearchSink
from .kafka import KafkaSink
from .slack import SlackSink
from .syslog import SyslogSink

__all__ = [
    "BaseSink",
    "ElasticsearchSink",
    "KafkaSink",
    "SlackSink",
    "SyslogSink",
    "build_sinks",
]

log = logging.getLogger(__name__)


def build_sinks(settings: Settings) -> list[BaseSink]:
    """Build every sink whose required settings are all present.

    Raises ConfigError for a sink that is configured but invalid.
    """
    sinks: list[BaseSink] = []
    timeout = settings.sink_timeout_seconds

    if settings.syslog_proto.lower() == "unix" or (
        settings.syslog_proto and settings.syslog_server
    ):
        sinks.append(
            SyslogSink(settings.syslog_proto, settings.syslog_server, timeout=timeout)
        )

    if settings.elasticsearch_server and settings.elasticsearch_index:
        sinks.append(
            ElasticsearchSink(
                settings.elasticsearch_server, settings.elasticsearch_index, timeout=timeout
            )
        )

    brokers = split_csv(settings.kafka_brokers)
    if brokers and settings.kafka_topic:
        sinks.append(KafkaSink(brokers, settings.kafka_topic, timeout=timeout))

    if settings.slack_webhook:
        sinks.append(
            SlackSink(settings.slack_webhook, settings.slack_channel or None, timeout=timeout)
        )

    if not sinks:
        log.warning("No notification sinks configured; OOM events will only be logged")
    return sinks
