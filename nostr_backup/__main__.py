"""CLI entry point for nostr-backup."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from pathlib import Path

import httpx
import yaml

from .config import Config, load_config
from .errors import ValidationError
from .keys import decode_pubkey, parse_kinds, resolve_window
from .models import Record
from .outcomes import PublishOutcome
from .relays import (
    AnonymizedTransport,
    ProxyProber,
    RelayPool,
    StandardTransport,
    TransportKind,
    classify,
)
from .relays.info import fetch_relay_info
from .sync import BatchPublisher, SyncEngine, build_filter

logger = logging.getLogger("nostr_backup")

PREVIEW_LENGTH = 50


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        # Safe JSON serialization
        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    # Configure handler with appropriate formatter
    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def create_pool(config: Config) -> RelayPool:
    """Build the relay pool described by the config."""
    return RelayPool(
        standard=StandardTransport(timeout=config.timeouts.standard_query_seconds),
        anonymized=AnonymizedTransport(
            proxy_url=config.proxy.url,
            query_timeout=config.timeouts.anonymized_query_seconds,
            publish_timeout=config.timeouts.anonymized_publish_seconds,
            verify_tls=config.proxy.verify_tls,
        ),
        prober=ProxyProber(
            host=config.proxy.host,
            port=config.proxy.port,
            timeout=config.proxy.probe_timeout_seconds,
        ),
    )


def _format_time(ts: int) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


def format_preview(index: int, record: Record) -> str:
    """One dry-run line: date, kind and the start of the content."""
    preview = record.content[:PREVIEW_LENGTH].replace("\n", " ")
    ellipsis = "..." if len(record.content) > PREVIEW_LENGTH else ""
    return f"{index}. [{_format_time(record.created_at)}] Kind {record.kind}: {preview}{ellipsis}"


def _load_config(path: Path | None) -> Config:
    """Load the config, reporting a broken file or env value as bad input."""
    try:
        return load_config(path)
    except (yaml.YAMLError, ValueError, TypeError, AttributeError) as e:
        raise ValidationError(f"Invalid configuration: {e}") from e


def _positive(value: int, name: str) -> int:
    if value < 1:
        raise ValidationError(f"{name} must be at least 1, got {value}")
    return value


def _print_batch(number: int, total: int, outcomes: list[PublishOutcome]) -> None:
    print(f"Batch {number}/{total}:")
    for outcome in outcomes:
        if outcome.succeeded:
            print(f"  Published: {outcome.record_id[:8]}...")
        else:
            print(f"  Failed: {outcome.record_id[:8]}... ({outcome.detail})")


async def cmd_backup(args: argparse.Namespace) -> int:
    """Copy an author's events from the source relays to the target relay."""
    # Everything is validated before any network activity
    try:
        config = _load_config(args.config)
        pubkey = decode_pubkey(args.npub)
        kinds = parse_kinds(args.kinds if args.kinds else config.filter.kinds)
        days = args.days if args.days is not None else config.filter.days
        since, until = resolve_window(args.since, args.until, days)
        batch_size = _positive(
            args.batch_size if args.batch_size is not None else config.publish.batch_size,
            "--batch-size",
        )
        delay_ms = args.delay if args.delay is not None else config.publish.delay_ms
        if delay_ms < 0:
            raise ValidationError(f"--delay must not be negative, got {delay_ms}")
        target = args.target or config.relays.target
        if not target:
            raise ValidationError("A target relay is required (--target)")
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    sources = args.relay or config.relays.sources

    print(f"Fetching events for: {args.npub}")
    print(f"Source relays: {', '.join(dict.fromkeys([*sources, target]))}")
    print(f"Target relay: {target}")
    print(f"Event kinds: {', '.join(str(k) for k in kinds)}")
    if since:
        print(f"Since: {_format_time(since)}")
    if until:
        print(f"Until: {_format_time(until)}")
    print(f"Batch size: {batch_size}")
    print("---")

    pool = create_pool(config)
    engine = SyncEngine(pool, target, sources)

    try:
        plan = await engine.plan(build_filter(pubkey, kinds, since, until))

        if not plan.target_reachable:
            print()
            print("WARNING: Cannot connect to target relay!")
            print("  Events will be published but we can't verify which ones it already has.")
            print("  Check your relay manually afterwards.")
            print()

        print(f"Found {len(plan.existing_ids)} existing events on target relay")
        print(f"Events by kind: {json.dumps(plan.kinds_breakdown)}")
        print(f"Retrieved {len(plan.candidates)} total events from source relays")
        print(f"Found {len(plan.new_records)} new events to backup")

        if not plan.new_records:
            print("No new events to backup!")
            return 0

        if args.dry_run:
            print()
            print("DRY RUN - Events that would be published:")
            for i, record in enumerate(plan.new_records, start=1):
                print(format_preview(i, record))
            print()
            print(f"Total: {len(plan.new_records)} events would be published")
            return 0

        publisher = BatchPublisher(
            pool,
            target,
            batch_size=batch_size,
            delay_ms=delay_ms,
            ack_timeout=config.publish.ack_timeout_seconds,
        )
        report = await publisher.publish_all(plan.new_records, on_batch=_print_batch)

        if args.json_report:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print()
            print("Summary:")
            print(f"  Successfully published: {report.published} events")
            print(f"  Failed: {report.failed} events")
            print(f"  Success rate: {report.success_rate:.1f}%")

        return 0

    except Exception as e:
        logger.exception("Backup failed")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    finally:
        print("Closing relay connections...")
        await pool.close(grace=config.timeouts.close_grace_seconds)


async def cmd_status(args: argparse.Namespace) -> int:
    """Check the proxy and the configured relays."""
    try:
        config = _load_config(args.config)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    target = config.relays.target
    relays = list(dict.fromkeys([*config.relays.sources, *([target] if target else [])]))

    prober = ProxyProber(
        host=config.proxy.host,
        port=config.proxy.port,
        timeout=config.proxy.probe_timeout_seconds,
    )
    proxy_reachable = await prober.probe()

    async with httpx.AsyncClient(timeout=5.0, follow_redirects=True) as client:
        infos = await asyncio.gather(
            *(
                fetch_relay_info(url, client=client)
                if classify(url) is TransportKind.STANDARD
                else asyncio.sleep(0, result=None)
                for url in relays
            )
        )

    relay_status = []
    for url, info in zip(relays, infos):
        transport = classify(url)
        entry = {
            "url": url,
            "transport": transport.value,
            "target": url == target,
        }
        if transport is TransportKind.STANDARD:
            entry["reachable"] = info is not None
            entry["name"] = info.get("name") if info else None
            entry["software"] = info.get("software") if info else None
            entry["supported_nips"] = info.get("supported_nips", []) if info else []
        else:
            entry["reachable"] = None
            entry["requires_proxy"] = True
        relay_status.append(entry)

    status_data = {
        "timestamp": datetime.now().isoformat(),
        "proxy": {
            "url": config.proxy.url,
            "reachable": proxy_reachable,
        },
        "relays": relay_status,
    }

    if args.json:
        print(json.dumps(status_data, indent=2))
        return 0

    print("nostr-backup Status Check")
    print("=========================")
    print()
    print(f"Tor proxy ({config.proxy.host}:{config.proxy.port}):")
    if proxy_reachable:
        print("  Status: Reachable")
    else:
        print("  Status: Not reachable")
        print("  .onion relays will be skipped until Tor is running")
    print()

    print("Relays:")
    for entry in relay_status:
        role = " (target)" if entry["target"] else ""
        if entry["transport"] == TransportKind.ANONYMIZED.value:
            state = "via Tor" if proxy_reachable else "unreachable (no proxy)"
            print(f"  - {entry['url']}{role}: {state}")
        elif entry["reachable"]:
            name = entry["name"] or "unnamed"
            software = f", {entry['software']}" if entry["software"] else ""
            print(f"  - {entry['url']}{role}: {name}{software}")
        else:
            print(f"  - {entry['url']}{role}: no relay information")

    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="nostr-backup",
        description="Backup nostr events from source relays to a target relay",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Backup command
    backup_parser = subparsers.add_parser("backup", help="Copy events to the target relay")
    backup_parser.add_argument(
        "-n", "--npub",
        required=True,
        help="npub/hex pubkey to backup events for",
    )
    backup_parser.add_argument(
        "-t", "--target",
        default=None,
        help="Target relay to backup events to",
    )
    backup_parser.add_argument(
        "-r", "--relay",
        nargs="+",
        default=None,
        help="Source relays to fetch from",
    )
    backup_parser.add_argument(
        "-k", "--kinds",
        nargs="+",
        action="extend",
        default=None,
        help="Event kinds to backup (space or comma separated)",
    )
    backup_parser.add_argument("--since", type=int, default=None, help="Only fetch events since this unix timestamp")
    backup_parser.add_argument("--until", type=int, default=None, help="Only fetch events until this unix timestamp")
    backup_parser.add_argument("--days", type=int, default=None, help="Only fetch events from the last N days")
    backup_parser.add_argument("--batch-size", type=int, default=None, help="Batch size for publishing")
    backup_parser.add_argument("--delay", type=int, default=None, help="Delay between batches in milliseconds")
    backup_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be done without actually publishing",
    )
    backup_parser.add_argument(
        "--json-report",
        action="store_true",
        help="Print the final report as JSON",
    )
    backup_parser.set_defaults(func=cmd_backup)

    # Status command
    status_parser = subparsers.add_parser("status", help="Check proxy and relay status")
    status_parser.add_argument(
        "--json",
        action="store_true",
        help="Output status as JSON",
    )
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, args.json_logs)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
