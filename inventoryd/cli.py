#!/usr/bin/env python3
"""
inventoryd Command Line Interface

Usage:
    inventoryd serve [--config <file>] [--http-addr HOST:PORT] [--log-level LEVEL] [--log-format json|text] [--log-file <file>]
    inventoryd report [--fresh | --cached] [--format json|table]
    inventoryd verify [--file <file>]
    inventoryd identity [--redacted] [--format json|yaml]
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime
from typing import List, Optional

from .config import DaemonConfig, apply_overrides, load_config
from .envelope import IntegrityEnvelope
from .errors import ChecksumMismatchError, ConfigError, IdentityError, InventoryError, StoreError
from .logging_config import configure_logging


def format_bytes(n: int) -> str:
    """Human-readable binary size, e.g. ``1.5 GiB``."""
    size = float(n)
    for unit in ("B", "KiB", "MiB", "GiB", "TiB"):
        if abs(size) < 1024 or unit == "TiB":
            return f"{int(size)} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} TiB"


def format_duration(seconds: int) -> str:
    """Compact duration, e.g. ``3d 4h 5m``."""
    if seconds < 60:
        return f"{max(0, seconds)}s"
    days, rest = divmod(seconds, 86400)
    hours, rest = divmod(rest, 3600)
    minutes = rest // 60
    parts = []
    if days:
        parts.append(f"{days}d")
    if days or hours:
        parts.append(f"{hours}h")
    parts.append(f"{minutes}m")
    return " ".join(parts)


def render_table(envelope: IntegrityEnvelope, now: Optional[datetime] = None) -> str:
    """Human summary of a report."""
    r = envelope.report
    hw, osr, health = r.hardware, r.os, r.health
    rows = [
        ("Hostname", r.hostname),
        ("Checksum", envelope.checksum[:19]),
        ("Collected", f"{envelope.collected_at.isoformat()} ({format_duration(envelope.age_seconds(now))} ago)"),
        ("OS", f"{osr.distribution} {osr.version} ({osr.architecture})"),
        ("Kernel", osr.kernel_version),
        ("Uptime", format_duration(osr.uptime_secs)),
        ("CPU", f"{hw.cpu_model} ({hw.cpu_cores} cores, {hw.cpu_threads} threads)"),
        ("Memory", f"{format_bytes(hw.ram_total_bytes - hw.ram_available_bytes)} / {format_bytes(hw.ram_total_bytes)}"),
        ("Swap", f"{format_bytes(hw.swap_used_bytes)} / {format_bytes(hw.swap_total_bytes)}"),
        ("Load", f"{health.load_average_1m:.2f} {health.load_average_5m:.2f} {health.load_average_15m:.2f}"),
        ("Nix", f"{r.nix.nix_version} ({format_bytes(r.nix.store_size_bytes)} store)"),
        ("Kubernetes", "ready" if r.kubernetes and r.kubernetes.node_ready
            else "not ready" if r.kubernetes else "n/a"),
        ("Firewall", r.security.firewall_backend or ("active" if r.security.firewall_active else "inactive")),
        ("Processes", str(r.processes.total_processes)),
    ]
    for disk in hw.disks:
        rows.append((f"Disk {disk.mount_point}",
                     f"{format_bytes(disk.used_bytes)} / {format_bytes(disk.total_bytes)} ({disk.filesystem})"))

    width = max(len(label) for label, _ in rows)
    return "\n".join(f"{label:<{width}}  {value}" for label, value in rows)


def _load(args) -> DaemonConfig:
    config = load_config(args.config)
    return apply_overrides(config, {
        key: value for key, value in {
            "http_addr": getattr(args, "http_addr", None),
            "log_level": args.log_level,
            "log_format": getattr(args, "log_format", None),
            "log_file": getattr(args, "log_file", None),
        }.items() if value is not None
    })


def cmd_serve(args, config: DaemonConfig) -> int:
    """Run the daemon."""
    import uvicorn

    from .api import create_app
    from .service import NodeService

    configure_logging(
        config.log_level,
        json_format=config.log_format == "json",
        log_file=str(config.log_file) if config.log_file else None,
    )
    host, port = config.listen
    app = create_app(NodeService.from_config(config), config)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


def cmd_report(args, config: DaemonConfig) -> int:
    """Print a report, freshly collected or from the persisted file."""
    from .service import NodeService
    from .store import PersistentStore

    if args.cached:
        try:
            envelope = PersistentStore(config.report.cache_file).read()
        except StoreError as exc:
            print(f"✗ {exc}", file=sys.stderr)
            return 1
    else:
        service = NodeService.from_config(config)
        try:
            envelope = asyncio.run(service.refresh("cli"))
        except InventoryError as exc:
            print(f"✗ {exc}", file=sys.stderr)
            return 1

    if args.format == "table":
        print(render_table(envelope))
    else:
        print(envelope.to_json())
    return 0


def cmd_verify(args, config: DaemonConfig) -> int:
    """Verify the persisted report's checksum."""
    from .store import PersistentStore

    store = PersistentStore(args.file or config.report.cache_file)
    try:
        envelope = store.read()
    except ChecksumMismatchError as exc:
        print(f"✗ CHECKSUM_MISMATCH: {store.path}")
        print(f"  expected: {exc.expected}")
        print(f"  actual:   {exc.actual}")
        return 1
    except StoreError as exc:
        print(f"✗ INVALID: {exc}")
        return 1

    print(f"✓ {envelope.checksum}")
    print(f"  collected {envelope.collected_at.isoformat()}, {format_duration(envelope.age_seconds())} ago")
    return 0


def cmd_identity(args, config: DaemonConfig) -> int:
    """Print the merged node identity."""
    from .identity import IdentityLoader, dump_yaml

    loader = IdentityLoader(config.identity.default_overlay_dir)
    try:
        identity = loader.load_with_overlays(config.identity.path, config.identity.overlay_dirs)
        if args.redacted:
            data = loader.redact(identity, config.identity.private_fields).to_dict()
        else:
            data = identity.to_tree()
    except IdentityError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 1

    if args.format == "yaml":
        print(dump_yaml(data), end="")
    else:
        print(json.dumps(data, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", help="Config file (default: $XDG_CONFIG_HOME/inventoryd/config.yaml)")
    common.add_argument("--log-level", help="Log level (debug, info, warning, error)")

    parser = argparse.ArgumentParser(
        prog="inventoryd",
        description="Node inventory daemon",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  inventoryd serve --http-addr 0.0.0.0:9100
  inventoryd report --format table
  inventoryd report --cached
  inventoryd verify --file /var/lib/inventoryd/report.json
  inventoryd identity --redacted --format yaml
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # serve
    serve_parser = subparsers.add_parser("serve", parents=[common], help="Run the daemon")
    serve_parser.add_argument("--http-addr", help="Listen address HOST:PORT")
    serve_parser.add_argument("--log-format", choices=["json", "text"], help="Log output format")
    serve_parser.add_argument("--log-file", help="Also write logs to this file")

    # report
    report_parser = subparsers.add_parser("report", parents=[common], help="Print a system report")
    source = report_parser.add_mutually_exclusive_group()
    source.add_argument("--fresh", action="store_true", help="Collect now and persist (default)")
    source.add_argument("--cached", action="store_true", help="Read the persisted report without collecting")
    report_parser.add_argument("--format", choices=["json", "table"], default="json", help="Output format")

    # verify
    verify_parser = subparsers.add_parser("verify", parents=[common], help="Verify the persisted report")
    verify_parser.add_argument("-f", "--file", help="Report file (default: configured cache_file)")

    # identity
    identity_parser = subparsers.add_parser("identity", parents=[common], help="Print the node identity")
    identity_parser.add_argument("--redacted", action="store_true", help="Remove private fields")
    identity_parser.add_argument("--format", choices=["json", "yaml"], default="json", help="Output format")

    return parser


COMMANDS = {
    "serve": cmd_serve,
    "report": cmd_report,
    "verify": cmd_verify,
    "identity": cmd_identity,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 2

    try:
        config = _load(args)
    except ConfigError as exc:
        print(f"✗ {exc}", file=sys.stderr)
        return 2

    if args.command != "serve":
        configure_logging(config.log_level if args.log_level else "warning", json_format=False)
    return handler(args, config)


if __name__ == "__main__":
    sys.exit(main())
