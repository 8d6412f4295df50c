#!/usr/bin/env python3
"""
CLI for the lsbeat collector.

Usage:
    python -m src.cli run --paths /data1 /data2 --period 3600
    python -m src.cli run --paths /data --once
    python -m src.cli scan --paths /data
    python -m src.cli registrar data/registrar/registrar-list.json
    python -m src.cli outbox --outbox data/outbox.db --drain
"""

import argparse
import json
import logging
import signal
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Load .env from project root
_env_file = Path(__file__).parent.parent / ".env"
if _env_file.exists():
    load_dotenv(_env_file)
else:
    load_dotenv()

from src.lsbeat import (
    BeatConfig,
    BeatScheduler,
    ConfigError,
    EventOutbox,
    MarkerKind,
    full_scan,
    load_registrar,
)


logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("cli")


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.should_exit = True


def _load_config(args) -> BeatConfig:
    registrar_dir = Path(args.registrar_dir) if getattr(args, "registrar_dir", None) else None
    if registrar_dir is not None and registrar_dir.suffix == ".json":
        logger.error("--registrar-dir must name a directory, both registrars are written inside it")
        sys.exit(1)
    try:
        return BeatConfig.from_env(
            scan_roots=[Path(p).resolve() for p in args.paths] if args.paths else None,
            period=getattr(args, "period", None),
            full_rescan_every=getattr(args, "full_rescan_every", None),
            registrar_list_path=registrar_dir,
            registrar_log_path=registrar_dir,
            sink=getattr(args, "sink", None),
            outbox_path=getattr(args, "outbox", None),
            http_url=getattr(args, "http_url", None),
            collect_on_start=True if getattr(args, "now", False) else None,
        )
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)


def cmd_run(args):
    """Run the collector."""
    config = _load_config(args)

    if not config.scan_roots:
        logger.error("No scan roots configured (use --paths or LSBEAT_PATHS)")
        sys.exit(1)
    for root in config.scan_roots:
        if not root.is_dir():
            logger.warning(f"Scan root is not a directory (yet): {root}")

    logger.info(f"List registrar: {config.registrar_list_path}")
    logger.info(f"Log registrar: {config.registrar_log_path}")
    logger.info(f"Sink: {config.sink}")

    if args.once:
        with BeatScheduler(config) as scheduler:
            result = scheduler.run_cycle()
        print(
            f"Collected {result.list_collected} list and {result.log_collected} log file(s) "
            f"from {result.list_targets} list / {result.log_targets} LOG directories "
            f"({result.errors} error(s))"
        )
        return

    shutdown = GracefulShutdown()

    with BeatScheduler(config) as scheduler:
        scheduler.start_async()

        logger.info(f"Collector running with {len(config.scan_roots)} root(s)")
        for root in config.scan_roots:
            logger.info(f"  - {root}")
        logger.info("Press Ctrl+C to stop")

        while not shutdown.should_exit and scheduler.is_running:
            time.sleep(1)

    logger.info("Collector stopped")


def cmd_scan(args):
    """Print the marker directories found under the roots."""
    roots = [Path(p).resolve() for p in args.paths]
    for kind in MarkerKind:
        targets = full_scan(roots, kind, follow_symlinks=args.follow_symlinks)
        print(f"\n'{kind.marker}' directories ({len(targets)}):")
        for target in targets:
            print(f"  - {target.directory_path}")
        if not targets:
            print("  (none)")


def cmd_registrar(args):
    """Print the entries of a registrar file."""
    path = Path(args.path)
    if not path.exists():
        logger.error(f"Registrar does not exist: {path}")
        sys.exit(1)

    registrar = load_registrar(path)
    print(f"\nRegistrar {path} ({len(registrar)} entries):")
    for directory, files in sorted(registrar.as_mapping().items()):
        print(f"  {directory}")
        for filename, timestamp in sorted(files.items()):
            print(f"    {filename}  {timestamp.isoformat()}")


def cmd_outbox(args):
    """Show or drain the outbox."""
    path = Path(args.outbox)
    if not path.exists():
        logger.error(f"Outbox does not exist: {path}")
        sys.exit(1)

    with EventOutbox(path) as outbox:
        if not args.drain:
            print(f"Pending events: {outbox.size()}")
            return

        drained = 0
        while True:
            items = outbox.dequeue(batch_size=100)
            if not items:
                break
            for _, record in items:
                print(json.dumps(record, ensure_ascii=False))
            outbox.ack([item_id for item_id, _ in items])
            drained += len(items)
        logger.info(f"Drained {drained} event(s)")


def main():
    parser = argparse.ArgumentParser(
        description="Collect .list and .log files from marker directories",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run the collector")
    run_parser.add_argument("--paths", nargs="+", help="Scan roots")
    run_parser.add_argument("--period", type=float, help="Seconds between cycles")
    run_parser.add_argument("--full-rescan-every", type=int, help="Cycles between full directory walks")
    run_parser.add_argument("--registrar-dir", help="Directory holding both registrars")
    run_parser.add_argument("--sink", choices=["outbox", "http"], help="Event sink")
    run_parser.add_argument("--outbox", help="SQLite outbox path")
    run_parser.add_argument("--http-url", help="Endpoint for the http sink")
    run_parser.add_argument("--now", action="store_true", help="Run the first cycle immediately")
    run_parser.add_argument("--once", action="store_true", help="Run a single cycle and exit")
    run_parser.set_defaults(func=cmd_run)

    scan_parser = subparsers.add_parser("scan", help="List marker directories")
    scan_parser.add_argument("--paths", nargs="+", required=True, help="Scan roots")
    scan_parser.add_argument("--follow-symlinks", action="store_true")
    scan_parser.set_defaults(func=cmd_scan)

    registrar_parser = subparsers.add_parser("registrar", help="Show registrar entries")
    registrar_parser.add_argument("path", help="Registrar JSON file")
    registrar_parser.set_defaults(func=cmd_registrar)

    outbox_parser = subparsers.add_parser("outbox", help="Show or drain the event outbox")
    outbox_parser.add_argument("--outbox", default="data/outbox.db", help="SQLite outbox path")
    outbox_parser.add_argument("--drain", action="store_true", help="Print pending events as JSON lines and ack them")
    outbox_parser.set_defaults(func=cmd_outbox)

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    args.func(args)


if __name__ == "__main__":
    main()
