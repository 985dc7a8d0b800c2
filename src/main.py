"""
Funding Sourcer - Main Application Entry Point

Starts the APScheduler jobs (weekly RSS run, daily paginated backfill) and
keeps the event loop alive until interrupted.

Usage:
    python -m src.main
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from .archivist import close_db, init_db
from .config import SOURCE_REGISTRY, get_paginated_sources
from .scheduler import setup_scheduler, shutdown_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan():
    """Application lifespan manager."""
    print("Starting Funding Sourcer...")
    print(f"Tracking {len(SOURCE_REGISTRY)} sources ({len(get_paginated_sources())} paginated)")

    # Create tables when migrations have not been run (no-op otherwise)
    try:
        await init_db()
    except Exception as e:
        print(f"Warning: Could not initialize database: {e}")

    try:
        setup_scheduler()
        print("Scheduler started - weekly RSS and daily backfill enabled")
    except Exception as e:
        print(f"Warning: Could not start scheduler: {e}")

    yield

    # Graceful shutdown - close all resources
    print("Shutting down...")
    shutdown_scheduler()

    try:
        await close_db()
        print("Database connections closed")
    except Exception as e:
        print(f"Warning: Error closing database: {e}")


async def main():
    async with lifespan():
        # Jobs run on this loop; wait until the process is interrupted
        await asyncio.Event().wait()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
