"""Shared utility functions."""

from __future__ import annotations

import os
import sys

from .errors import ConfigError


def bytes_to_human(n: int | float) -> str:
    """Convert bytes to human-readable string (e.g. 1.00 MB)."""
    value = float(n)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if abs(value) < 1024.0:
            return f"{value:.2f} {unit}"
        value /= 1024.0
    return f"{value:.2f} PB"


def kb_to_human(kb: int | None) -> str:
    """Render a kernel kB figure, or N/A when the kernel did not report it."""
    return "N/A" if kb is None else bytes_to_human(kb * 1024)


def parse_host_port(value: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its parts."""
    host, sep, port = value.strip().rpartition(":")
    if not sep or not host or not port:
        raise ConfigError(f"expected host:port, got {value!r}")
    try:
        port_num = int(port)
    except ValueError as exc:
        raise ConfigError(f"invalid port in {value!r}") from exc
    if not 0 < port_num < 65536:
        raise ConfigError(f"port out of range in {value!r}")
    return host.strip("[]"), port_num


def split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def output_text(data: str, output_file: str | None = None) -> None:
    """Write *data* to *output_file* (append) or stdout."""
    if output_file:
        mode = "a" if os.path.exists(output_file) else "w"
        with open(output_file, mode) as f:
            f.write(data + "\n")
    else:
        sys.stdout.write(data + "\n")
        sys.stdout.flush()
