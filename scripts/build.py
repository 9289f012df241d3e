#!/usr/bin/env python3
"""Build a standalone oom-notifier binary."""

import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).parent.parent


def build_pyinstaller() -> None:
    """Build standalone binary using PyInstaller."""
    entry_point = ROOT / "scripts" / "entrypoint.py"

    cmd = [
        sys.executable,
        "-m",
        "PyInstaller",
        "--onefile",
        "--name",
        "oom-notifier",
        "--paths",
        str(ROOT / "src"),
        # kafka-python loads its codecs lazily
        "--collect-submodules",
        "kafka",
        "--distpath",
        str(ROOT / "dist"),
        "--workpath",
        str(ROOT / "build"),
        "--specpath",
        str(ROOT / "build"),
        "--clean",
        str(entry_point),
    ]

    subprocess.run(cmd, check=True, cwd=ROOT)
    print(f"\nBinary built: {ROOT / 'dist' / 'oom-notifier'}")


if __name__ == "__main__":
    build_pyinstaller()
