#!/usr/bin/env python3
"""
Command-line staleness sweep: evicts records still pending after the TTL.
"""

import argparse
import json
import sys
from pathlib import Path

# Add the project root to sys.path when run as a script
sys.path.insert(0, str(Path(__file__).parent.parent))

from memory_proxy.core.config import PENDING_TTL_DAYS
from memory_proxy.core.errors import MemoryProxyError
from memory_proxy.core.repository import RecordRepository
from memory_proxy.core.store import build_store
from memory_proxy.core.sweeper import StalenessSweeper, SweepReport


def format_report(report: SweepReport) -> str:
    """Format a sweep report for display."""
    lines = []

    if report.completed_at and report.started_at:
        duration = report.completed_at - report.started_at
        lines.append(f"Duration: {duration.total_seconds():.2f} seconds")

    if report.errors:
        lines.append(f"Status: FAILED ({len(report.errors)} errors)")
    else:
        lines.append("Status: SUCCESS")

    lines.append(f"TTL: {report.ttl_days} days")
    lines.append(f"Records scanned: {report.scanned}")

    label = "Would evict" if report.dry_run else "Evicted"
    lines.append(f"{label}: {len(report.evicted_ids)}")
    if report.evicted_ids:
        lines.append("  IDs: " + ", ".join(str(i) for i in report.evicted_ids))

    if report.skipped_ids:
        lines.append(f"Skipped (changed or already gone): {len(report.skipped_ids)}")

    if report.errors:
        lines.append("Errors:")
        for error in report.errors:
            lines.append(f"  - {error}")

    return "\n".join(lines)


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Evict records stuck in 'pending' beyond the TTL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                   # Sweep with the configured TTL
  %(prog)s --dry-run         # List stale records without deleting
  %(prog)s --ttl-days 14     # Override the TTL
  %(prog)s --json            # Output the report as JSON

Environment variables:
- STORE_BACKEND=sqlite|sheets (store selection)
- DB_PATH=./data/memory_proxy.db (sqlite store location)
- SPREADSHEET_ID, SHEET_NAME, MEMORY_SHEET_ID (sheets store)
- PENDING_TTL_DAYS=7 (default TTL)
        """
    )

    parser.add_argument(
        "--ttl-days", "-t",
        type=int,
        default=PENDING_TTL_DAYS,
        help=f"Days a record may stay pending (default: {PENDING_TTL_DAYS})"
    )

    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Report stale records without deleting them"
    )

    parser.add_argument(
        "--json", "-j",
        action="store_true",
        help="Output results as JSON instead of human-readable text"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress non-error output"
    )

    args = parser.parse_args(argv)

    if args.ttl_days < 1:
        parser.error("--ttl-days must be >= 1")

    store = None
    try:
        store = build_store()
        sweeper = StalenessSweeper(RecordRepository(store), ttl_days=args.ttl_days)
        report = sweeper.sweep(dry_run=args.dry_run)
    except MemoryProxyError as e:
        print(f"ERROR: Sweep failed: {e}")
        return 1
    finally:
        if store is not None:
            store.close()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, default=str))
    elif not args.quiet or report.errors:
        print(format_report(report))

    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
