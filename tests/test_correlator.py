"""Tests for joining kill records with cached command lines."""

from __future__ import annotations

from datetime import UTC, datetime

from oomnotifier.correlator import EventCorrelator, HostInfo
from oomnotifier.oom import OomKillRecord, parse_oom_line
from oomnotifier.proctable import ProcessCache, ProcessSnapshotEntry

HOST = HostInfo(hostname="node-1", kernel="6.1.0-test", boot_time=1_700_000_000.0)


def _cache(mapping: dict[int, str]) -> ProcessCache:
    now = datetime.now(UTC)
    cache = ProcessCache(
        1.0,
        scanner=lambda: {pid: ProcessSnapshotEntry(pid, cmd, now) for pid, cmd in mapping.items()},
    )
    cache.refresh()
    return cache


def test_cached_pid_gets_exact_command_line() -> None:
    correlator = EventCorrelator(_cache({4242: "worker --queue=default"}), HOST)
    record = parse_oom_line(
        "Out of memory: Killed process 4242 (worker) total-vm:102400kB, anon-rss:1000kB"
    )
    assert record is not None

    event = correlator.correlate(record)

    assert event.cmdline == "worker --queue=default"
    assert event.cmdline_found is True
    assert event.cmdline_captured_at is not None
    assert event.total_vm_kb == 102400
    assert event.pid == 4242
    assert event.comm == "worker"
    assert event.hostname == "node-1"
    assert event.kernel == "6.1.0-test"


def test_absent_pid_is_marked_absent(caplog) -> None:
    correlator = EventCorrelator(_cache({1: "init"}), HOST)

    event = correlator.correlate(OomKillRecord(pid=9999, comm="ghost", total_vm_kb=10))

    assert event.pid == 9999
    assert event.comm == "ghost"
    assert event.cmdline is None
    assert event.cmdline_found is False
    data = event.to_dict()
    assert data["cmdline"] is None
    assert data["cmdline_found"] is False
    assert "not cached" in caplog.text


def test_killed_at_is_derived_from_boot_time() -> None:
    correlator = EventCorrelator(_cache({}), HOST)
    event = correlator.correlate(OomKillRecord(pid=1, comm="a", kernel_ts=60.0))
    assert event.killed_at == datetime.fromtimestamp(1_700_000_060.0, tz=UTC)


def test_killed_at_unknown_without_kernel_timestamp() -> None:
    correlator = EventCorrelator(_cache({}), HOST)
    event = correlator.correlate(OomKillRecord(pid=1, comm="a"))
    assert event.killed_at is None
    assert event.to_dict()["killed_at"] is None


def test_to_dict_is_json_friendly() -> None:
    correlator = EventCorrelator(_cache({5: "x -y"}), HOST)
    data = correlator.correlate(OomKillRecord(pid=5, comm="x", kernel_ts=1.0)).to_dict()
    assert isinstance(data["detected_at"], str)
    assert isinstance(data["killed_at"], str)
    assert isinstance(data["cmdline_captured_at"], str)


def test_host_info_prefers_hostname_env(monkeypatch) -> None:
    monkeypatch.setenv("HOSTNAME", "from-env")
    assert HostInfo.detect().hostname == "from-env"
