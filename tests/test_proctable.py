"""Tests for the process command line cache."""

from __future__ import annotations

import threading
from datetime import UTC, datetime
from unittest.mock import patch

import psutil
import pytest

from oomnotifier.proctable import ProcessCache, ProcessSnapshotEntry, scan_processes

_NOW = datetime(2024, 1, 1, tzinfo=UTC)


def _entries(mapping: dict[int, str]) -> dict[int, ProcessSnapshotEntry]:
    return {pid: ProcessSnapshotEntry(pid, cmd, _NOW) for pid, cmd in mapping.items()}


class _FakeProc:
    def __init__(self, pid: int, cmdline: list[str] | None, error: Exception | None = None):
        self._info = {"pid": pid, "cmdline": cmdline}
        self._error = error

    @property
    def info(self) -> dict:
        if self._error is not None:
            raise self._error
        return self._info


class _SequenceScanner:
    def __init__(self, *scans: dict[int, str]) -> None:
        self._scans = list(scans)

    def __call__(self) -> dict[int, ProcessSnapshotEntry]:
        return _entries(self._scans.pop(0))


def test_scan_processes_skips_vanished_and_empty() -> None:
    procs = [
        _FakeProc(1, ["/sbin/init", "splash"]),
        _FakeProc(2, []),  # kernel thread
        _FakeProc(3, None),  # access denied
        _FakeProc(4, ["gone"], error=psutil.NoSuchProcess(4)),
        _FakeProc(4242, ["worker", "--queue=default"]),
    ]
    with patch("oomnotifier.proctable.psutil.process_iter", return_value=iter(procs)):
        entries = scan_processes()

    assert set(entries) == {1, 4242}
    assert entries[4242].cmdline == "worker --queue=default"
    assert entries[1].pid == 1


def test_lookup_before_first_refresh_is_absent() -> None:
    cache = ProcessCache(1.0, scanner=_SequenceScanner())
    assert cache.lookup(1) is None
    assert len(cache.snapshot) == 0


def test_refresh_publishes_new_snapshot() -> None:
    cache = ProcessCache(1.0, retain_cycles=0, scanner=_SequenceScanner({1: "a"}, {2: "b"}))
    cache.refresh()
    assert cache.lookup(1) == "a"
    cache.refresh()
    assert cache.lookup(1) is None
    assert cache.lookup(2) == "b"


def test_exited_process_is_retained_for_configured_cycles() -> None:
    scanner = _SequenceScanner({1: "a", 2: "b"}, {2: "b"}, {2: "b"})
    cache = ProcessCache(1.0, retain_cycles=1, scanner=scanner)
    cache.refresh()
    cache.refresh()
    assert cache.lookup(1) == "a"
    cache.refresh()
    assert cache.lookup(1) is None


def test_reused_pid_takes_the_new_command_line() -> None:
    scanner = _SequenceScanner({1: "old"}, {1: "new"})
    cache = ProcessCache(1.0, retain_cycles=3, scanner=scanner)
    cache.refresh()
    cache.refresh()
    assert cache.lookup(1) == "new"


def test_snapshot_is_read_only() -> None:
    cache = ProcessCache(1.0, scanner=_SequenceScanner({1: "a"}))
    snapshot = cache.refresh()
    with pytest.raises(TypeError):
        snapshot.entries[2] = ProcessSnapshotEntry(2, "b", _NOW)  # type: ignore[index]


def test_lookup_during_refresh_sees_complete_snapshot() -> None:
    old = {pid: f"old-{pid}" for pid in range(100)}
    new = {pid: f"new-{pid}" for pid in range(100)}
    scanning = threading.Event()
    release = threading.Event()

    def slow_scanner() -> dict[int, ProcessSnapshotEntry]:
        if not scanning.is_set():
            scanning.set()
            release.wait(5)
            return _entries(new)
        return _entries(old)

    cache = ProcessCache(1.0, scanner=slow_scanner)
    # Seed the "old" snapshot directly; the first scanner call blocks.
    scanning.set()
    cache.refresh()
    scanning.clear()

    thread = threading.Thread(target=cache.refresh)
    thread.start()
    try:
        assert scanning.wait(5)
        # Refresh is in progress: every lookup answers from the old snapshot.
        assert {cache.lookup(pid) for pid in range(100)} == set(old.values())
    finally:
        release.set()
        thread.join(5)

    snapshot = cache.snapshot
    assert {snapshot.get(pid).cmdline for pid in range(100)} == set(new.values())


def test_failed_refresh_keeps_previous_snapshot(caplog) -> None:
    calls = {"n": 0}

    def flaky() -> dict[int, ProcessSnapshotEntry]:
        calls["n"] += 1
        if calls["n"] > 1:
            raise OSError("/proc unavailable")
        return _entries({1: "a"})

    cache = ProcessCache(0.01, scanner=flaky)
    cache.start()
    try:
        threading.Event().wait(0.1)
    finally:
        cache.stop()

    assert calls["n"] > 1
    assert cache.lookup(1) == "a"
    assert "refresh failed" in caplog.text


def test_invalid_interval() -> None:
    with pytest.raises(ValueError):
        ProcessCache(0)
