#!/usr/bin/env python3
"""
Run the funding sourcer once from the command line.

Usage:
    python scripts/run_sourcer.py                       # every source
    python scripts/run_sourcer.py --legacy-only         # RSS feeds only
    python scripts/run_sourcer.py --paginated-only --max-batches 5
    python scripts/run_sourcer.py --source frenchweb-archive --source hackernews
    python scripts/run_sourcer.py --status              # show checkpoints

Settings (DATABASE_URL, ANTHROPIC_API_KEY, ...) come from the environment or
.env, as for the scheduler.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.archivist.checkpoints import SQLCheckpointStore
from src.archivist.database import close_db
from src.config.sources import SOURCE_REGISTRY
from src.harvester.orchestrator import SourcerStatus, run_sourcer_cli

# Logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def show_status() -> None:
    """Print the saved checkpoint of every source."""
    checkpoints = {c.source_name: c for c in await SQLCheckpointStore().list_all()}
    print(f"\n{'source':<22} {'type':<8} {'complete':<9} {'cursor':<12} {'rounds':>7}  {'oldest':<11} last import")
    for name, config in SOURCE_REGISTRY.items():
        checkpoint = checkpoints.get(name)
        if checkpoint is None:
            print(f"{name:<22} {config.source_type.value:<8} {'-':<9} {'-':<12} {0:>7}  {'-':<11} never")
            continue
        print(
            f"{name:<22} {config.source_type.value:<8} "
            f"{str(checkpoint.historical_import_complete):<9} {str(checkpoint.cursor):<12} "
            f"{checkpoint.total_rounds:>7}  {str(checkpoint.oldest_date_imported or '-'):<11} "
            f"{checkpoint.last_import_at or 'never'}"
        )


async def main(args: argparse.Namespace) -> int:
    try:
        if args.status:
            await show_status()
            return 0

        result = await run_sourcer_cli(
            legacy_only=args.legacy_only,
            paginated_only=args.paginated_only,
            sources=args.source or None,
            max_batches_per_run=args.max_batches,
        )
        return 1 if result.status == SourcerStatus.FAILED else 0
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the funding sourcer once")
    family = parser.add_mutually_exclusive_group()
    family.add_argument("--legacy-only", action="store_true", help="Only RSS feeds")
    family.add_argument("--paginated-only", action="store_true", help="Only archives and APIs (backfill)")
    parser.add_argument(
        "--source",
        action="append",
        choices=sorted(SOURCE_REGISTRY),
        help="Run this source (repeatable)",
    )
    parser.add_argument("--max-batches", type=int, default=None, help="fetch() calls per source")
    parser.add_argument("--status", action="store_true", help="Show checkpoints and exit")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args)))
