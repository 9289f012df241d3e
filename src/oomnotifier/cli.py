"""CLI interface for oom-notifier."""

from __future__ import annotations

import argparse
import json
import signal
import sys
from dataclasses import asdict, replace
from typing import Any

from .config import Settings, settings
from .daemon import OomNotifier
from .errors import ConfigError, KernelLogUnavailableError
from .logging import configure_logging
from .oom import OomKillRecord, parse_oom_lines
from .sinks import build_sinks
from .utils import kb_to_human, output_text

# CLI flag dest -> Settings field
_OVERRIDES = {
    "kmsg_path": "kmsg_path",
    "process_refresh": "process_refresh_seconds",
    "retain_cycles": "process_retain_cycles",
    "max_workers": "dispatch_max_workers",
    "max_in_flight": "dispatch_max_in_flight",
    "shutdown_grace": "shutdown_grace_seconds",
    "sink_timeout": "sink_timeout_seconds",
    "syslog_proto": "syslog_proto",
    "syslog_server": "syslog_server",
    "elasticsearch_server": "elasticsearch_server",
    "elasticsearch_index": "elasticsearch_index",
    "kafka_brokers": "kafka_brokers",
    "kafka_topic": "kafka_topic",
    "slack_webhook": "slack_webhook",
    "slack_channel": "slack_channel",
}


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Environment-derived settings with CLI flags layered on top."""
    overrides = {
        field: getattr(args, dest)
        for dest, field in _OVERRIDES.items()
        if getattr(args, dest, None) is not None
    }
    return replace(Settings(), **overrides)


def _install_signal_handlers(notifier: OomNotifier) -> None:
    def _signal_handler(signum: int, frame: Any) -> None:
        sys.stderr.write("\n[oom-notifier] Shutdown requested, exiting gracefully...\n")
        notifier.stop()

    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)


def cmd_run(args: argparse.Namespace) -> int:
    """Run the daemon until SIGINT/SIGTERM."""
    cfg = settings_from_args(args)
    if cfg.process_refresh_seconds <= 0:
        sys.stderr.write("Error: --process-refresh must be > 0\n")
        return 2

    try:
        notifier = OomNotifier.from_settings(cfg)
    except ConfigError as e:
        sys.stderr.write(f"Error: invalid sink configuration: {e}\n")
        return 2

    _install_signal_handlers(notifier)
    try:
        notifier.run()
    except KernelLogUnavailableError as e:
        sys.stderr.write(
            f"Error: cannot read the kernel log ({e}). "
            "oom-notifier needs root or CAP_SYSLOG to observe OOM kills.\n"
        )
        return 1
    return 0


def _format_records_table(records: list[OomKillRecord]) -> str:
    lines: list[str] = [
        "=" * 84,
        "  OOM Kill Records",
        "=" * 84,
        f"Total OOM kills found: {len(records)}",
        "",
    ]

    if not records:
        lines.append("No OOM kill lines found in input.")
        lines.append("")
        return "\n".join(lines)

    border = "+------+---------+------------------+--------------+--------------+---------------+"
    lines.extend([
        border,
        "| #    | PID     | Process          | Total VM     | Anon RSS     | Kernel time   |",
        border,
    ])
    for idx, rec in enumerate(records, start=1):
        ts = f"{rec.kernel_ts:.3f}" if rec.kernel_ts is not None else "N/A"
        lines.append(
            f"| {idx:>4} | {rec.pid:>7} | {rec.comm[:16]:<16} |"
            f" {kb_to_human(rec.total_vm_kb):>12} | {kb_to_human(rec.anon_rss_kb):>12} |"
            f" {ts:>13} |"
        )
    lines.extend([border, ""])
    return "\n".join(lines)


def cmd_parse(args: argparse.Namespace) -> int:
    """Parse OOM kill lines from a file or stdin (e.g. `dmesg` output)."""
    if args.file and args.file != "-":
        try:
            with open(args.file, encoding="utf-8", errors="replace") as f:
                records = list(parse_oom_lines(f))
        except OSError as e:
            sys.stderr.write(f"Error: {e}\n")
            return 1
    else:
        records = list(parse_oom_lines(sys.stdin))

    if args.format == "json":
        output_text(json.dumps([asdict(r) for r in records], indent=2), args.output)
    else:
        output_text(_format_records_table(records), args.output)
    return 0


def cmd_sinks(args: argparse.Namespace) -> int:
    """Show the sinks the current configuration builds."""
    try:
        sinks = build_sinks(settings_from_args(args))
    except ConfigError as e:
        sys.stderr.write(f"Error: invalid sink configuration: {e}\n")
        return 2
    output_text(json.dumps({"sinks": [s.name for s in sinks]}))
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    """Show version."""
    from . import __version__

    sys.stdout.write(f"oom-notifier version {__version__}\n")
    return 0


def _add_config_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--kmsg-path",
        default=None,
        help=f"Kernel log device (default: {settings.kmsg_path})",
    )
    p.add_argument(
        "--process-refresh",
        type=float,
        default=None,
        help=f"Seconds between process table scans (default: {settings.process_refresh_seconds})",
    )
    p.add_argument(
        "--retain-cycles",
        type=int,
        default=None,
        help="Scans an exited process stays cached for "
        f"(default: {settings.process_retain_cycles})",
    )
    p.add_argument(
        "--max-workers",
        type=int,
        default=None,
        help=f"Delivery threads (default: {settings.dispatch_max_workers})",
    )
    p.add_argument(
        "--max-in-flight",
        type=int,
        default=None,
        help=f"Max queued or running deliveries (default: {settings.dispatch_max_in_flight})",
    )
    p.add_argument(
        "--shutdown-grace",
        type=float,
        default=None,
        help=f"Seconds to let deliveries finish on shutdown (default: {settings.shutdown_grace_seconds})",
    )
    p.add_argument(
        "--sink-timeout",
        type=float,
        default=None,
        help=f"Per-delivery network timeout in seconds (default: {settings.sink_timeout_seconds})",
    )
    p.add_argument(
        "--syslog-proto",
        choices=["udp", "tcp", "unix"],
        default=None,
        help="Protocol for the syslog server",
    )
    p.add_argument(
        "--syslog-server",
        default=None,
        help="Syslog server as host:port (unix: optional socket path, default /dev/log)",
    )
    p.add_argument(
        "--elasticsearch-server",
        default=None,
        help="Elasticsearch base URL, e.g. http://hostname:9200",
    )
    p.add_argument("--elasticsearch-index", default=None, help="Index for OOM events")
    p.add_argument(
        "--kafka-brokers",
        default=None,
        help="Kafka brokers as broker1:port1,broker2:port2",
    )
    p.add_argument("--kafka-topic", default=None, help="Topic for OOM events")
    p.add_argument("--slack-webhook", default=None, help="Slack incoming webhook URL")
    p.add_argument("--slack-channel", default=None, help="Slack channel override")


def build_parser() -> argparse.ArgumentParser:
    """Build argument parser."""
    parser = argparse.ArgumentParser(
        prog="oom-notifier",
        description="Notify about OOM-killed processes, reporting their full command line",
    )
    parser.add_argument(
        "--version",
        "-V",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: LOG_LEVEL env or INFO)",
    )
    parser.add_argument(
        "--log-format",
        choices=["json", "text"],
        default=None,
        help="Diagnostic log format (default: LOG_FORMAT env or json)",
    )

    subparsers = parser.add_subparsers(dest="command")

    p_run = subparsers.add_parser(
        "run",
        help="Watch the kernel log and notify configured sinks",
    )
    _add_config_args(p_run)
    p_run.set_defaults(func=cmd_run)

    examples = (
        "Examples:\n"
        "  dmesg | oom-notifier parse\n"
        "  oom-notifier parse /var/log/kern.log -f json\n"
    )
    p_parse = subparsers.add_parser(
        "parse",
        help="Parse OOM kill lines from a file or stdin",
        epilog=examples,
        formatter_class=argparse.RawTextHelpFormatter,
    )
    p_parse.add_argument("file", nargs="?", default=None, help="Input file (default: stdin)")
    p_parse.add_argument(
        "--format",
        "-f",
        choices=["table", "json"],
        default="table",
        help="Report format (default: table)",
    )
    p_parse.add_argument(
        "--output",
        "-o",
        type=str,
        default=None,
        help="Output file (default: stdout)",
    )
    p_parse.set_defaults(func=cmd_parse)

    p_sinks = subparsers.add_parser(
        "sinks",
        help="Show which sinks the configuration enables",
    )
    _add_config_args(p_sinks)
    p_sinks.set_defaults(func=cmd_sinks)

    p_version = subparsers.add_parser(
        "version",
        help="Show version",
    )
    p_version.set_defaults(func=cmd_version)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level, fmt=args.log_format)

    if args.version:
        from . import __version__

        sys.stdout.write(f"oom-notifier version {__version__}\n")
        raise SystemExit(0)

    if not args.command:
        parser.print_help()
        raise SystemExit(0)

    rc = int(args.func(args))
    raise SystemExit(rc)
