#!/usr/bin/env python3
"""Allocate memory until the kernel OOM killer terminates this process.

Used to check a running oom-notifier end to end. Run it inside a memory-limited
cgroup to avoid pressuring the whole host, e.g.::

    systemd-run --user --scope -p MemoryMax=200M python3 scripts/trigger_oom.py --tag demo
"""

import argparse
import os
import sys
import time


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--step-mb", type=int, default=64, help="Allocation step in MiB (default: 64)")
    parser.add_argument(
        "--delay", type=float, default=0.05, help="Seconds between steps (default: 0.05)"
    )
    # Extra argv so the notifier has a distinctive command line to report.
    parser.add_argument("--tag", default="", help="Free-form marker, shows up in the command line")
    args = parser.parse_args()

    # Give the notifier at least one cache refresh to see this process.
    time.sleep(2.0)
    print(f"pid {os.getpid()} allocating in {args.step_mb} MiB steps", file=sys.stderr)

    chunks = []
    step = args.step_mb * 1024 * 1024
    while True:
        chunk = bytearray(step)
        # Touch every page so the memory is actually committed.
        for offset in range(0, step, 4096):
            chunk[offset] = 1
        chunks.append(chunk)
        print(f"allocated {len(chunks) * args.step_mb} MiB", file=sys.stderr)
        time.sleep(args.delay)


if __name__ == "__main__":
    main()
