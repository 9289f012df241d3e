"""OOM killer kill-line parsing.

Recognizes the line the kernel prints when the OOM killer terminates a task,
e.g. (fields after the comm vary between kernel versions)::

    Out of memory: Killed process 9865 (oom_trigger) total-vm:7468696kB,
      anon-rss:6991344kB, file-rss:4kB, shmem-rss:0kB, UID:1000 pgtables:13724kB
      oom_score_adj:0
    Memory cgroup out of memory: Killed process 42 (python3) total-vm:...
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .kmsg import RawLogLine

log = logging.getLogger(__name__)

MARKER = "Killed process"

# comm is at most 15 chars but may itself contain ")" or spaces, so take the
# shortest match that is followed by a separator.
_KILLED_RE = re.compile(
    r"Killed process\s+(?P<pid>\S+)\s+\((?P<comm>.{0,16}?)\)(?=[\s,]|$)(?P<rest>.*)$",
)

_DMESG_TS_RE = re.compile(r"^\s*(?:<\d+>)?\[\s*(?P<ts>\d+\.\d+)\]")

_FIELD_RE = re.compile(r"(?P<key>[A-Za-z_][\w-]*)[:=](?P<value>[^\s,]+)")

_FIELDS = {
    "total-vm": "total_vm_kb",
    "anon-rss": "anon_rss_kb",
    "file-rss": "file_rss_kb",
    "shmem-rss": "shmem_rss_kb",
    "pgtables": "pgtables_kb",
    "uid": "uid",
    "oom_score_adj": "oom_score_adj",
}


@dataclass(frozen=True, slots=True)
class OomKillRecord:
    """A parsed OOM kill line."""

    pid: int
    comm: str
    total_vm_kb: int | None = None
    kernel_ts: float | None = None
    anon_rss_kb: int | None = None
    file_rss_kb: int | None = None
    shmem_rss_kb: int | None = None
    pgtables_kb: int | None = None
    uid: int | None = None
    oom_score_adj: int | None = None
    reason: str | None = None  # "Out of memory", "Memory cgroup out of memory"


def _to_int(value: str) -> int:
    if value[-2:].lower() == "kb":
        value = value[:-2]
    return int(value)


def _reason(prefix: str) -> str | None:
    prefix = _DMESG_TS_RE.sub("", prefix).strip().rstrip(":").strip()
    return prefix or None


def parse_oom_line(line: RawLogLine | str) -> OomKillRecord | None:
    """Return an OomKillRecord for a kill line, None for anything else.

    Never raises: a line that carries the marker but has an unparseable pid or
    numeric field is logged and discarded.
    """
    if isinstance(line, RawLogLine):
        text, kernel_ts = line.text, line.kernel_ts
    else:
        text, kernel_ts = line, None

    if MARKER not in text:
        return None

    m = _KILLED_RE.search(text)
    if m is None:
        log.warning(f"Malformed OOM kill line discarded: {text.strip()!r}")
        return None

    if kernel_ts is None:
        ts = _DMESG_TS_RE.match(text)
        if ts:
            kernel_ts = float(ts.group("ts"))

    try:
        pid = int(m.group("pid"))
        figures: dict[str, int] = {}
        for field_m in _FIELD_RE.finditer(m.group("rest")):
            attr = _FIELDS.get(field_m.group("key").lower())
            if attr is not None and attr not in figures:
                figures[attr] = _to_int(field_m.group("value"))
    except ValueError as exc:
        log.warning(
            f"OOM kill line with non-numeric field discarded: {text.strip()!r}",
            extra={"error": str(exc)},
        )
        return None

    return OomKillRecord(
        pid=pid,
        comm=m.group("comm"),
        kernel_ts=kernel_ts,
        reason=_reason(text[: m.start()]),
        **figures,
    )


def parse_oom_lines(lines: Iterable[RawLogLine | str]) -> Iterator[OomKillRecord]:
    """Yield a record for every kill line in *lines*, in order."""
    for line in lines:
        record = parse_oom_line(line)
        if record is not None:
            yield record
