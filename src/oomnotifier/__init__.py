"""
oomnotifier

Detects kernel OOM kills and reports them, with the victim's full command
line, to syslog, Elasticsearch, Kafka and Slack.

Distribution name = "oom-notifier", import package = "oomnotifier".
"""

from __future__ import annotations

from .correlator import EventCorrelator, OomEvent
from .daemon import OomNotifier
from .oom import OomKillRecord, parse_oom_line

__all__ = [
    "EventCorrelator",
    "OomEvent",
    "OomKillRecord",
    "OomNotifier",
    "__version__",
    "parse_oom_line",
]

__version__ = "0.1.0"
