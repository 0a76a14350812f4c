#!/usr/bin/env python3
"""Weekend Sync — regenerate weekend exception days in the calendar.

Creates one ``weekend`` calendar event per configured weekend day from the
start date over the horizon, and removes weekend events on days that are no
longer weekends. Safe to re-run; an unchanged configuration is a no-op.

Designed to run daily from cron:
    15 0 * * *

Usage:
    python scripts/sync_weekend_events.py                       # WEEKEND_DAYS from .env
    python scripts/sync_weekend_events.py --weekend-days Friday Saturday
    python scripts/sync_weekend_events.py --from 2025-01-01 --days 90
    python scripts/sync_weekend_events.py --dry-run             # report, don't write

Requires in .env (project root):
    DATABASE_URL
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from datetime import date
from pathlib import Path

# ── Path setup ────────────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from sqlalchemy.exc import SQLAlchemyError

from hr_leave.calendar.service import WeekendSyncResult, sync_weekend_events
from hr_leave.common.exceptions import ValidationException
from hr_leave.config import settings
from hr_leave.database import async_session_factory, engine
from hr_leave.main import configure_logging

logger = logging.getLogger("sync_weekend_events")


async def run_sync(
    weekend_days: list[str],
    start: date,
    horizon_days: int,
    dry_run: bool = False,
) -> WeekendSyncResult:
    async with async_session_factory() as session:
        result = await sync_weekend_events(
            session,
            weekend_days,
            today=start,
            horizon_days=horizon_days,
        )
        if dry_run:
            await session.rollback()
            logger.info("Dry run — changes rolled back")
        else:
            await session.commit()
    await engine.dispose()
    return result


def main():
    parser = argparse.ArgumentParser(
        description="Weekend Sync — regenerate weekend exception days",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                   # configured weekend, next 365 days
  %(prog)s --weekend-days Friday Saturday    # override the configured days
  %(prog)s --from 2025-01-01 --days 90       # explicit window
        """,
    )
    parser.add_argument("--weekend-days", nargs="+", metavar="DAY",
                        help="Weekend day names (default: WEEKEND_DAYS setting)")
    parser.add_argument("--from", dest="from_date", type=date.fromisoformat,
                        help="First day of the window (YYYY-MM-DD, default: today)")
    parser.add_argument("--days", type=int, default=settings.WEEKEND_HORIZON_DAYS,
                        help=f"Horizon in days (default: {settings.WEEKEND_HORIZON_DAYS})")
    parser.add_argument("--dry-run", action="store_true",
                        help="Compute changes but roll them back")
    parser.add_argument("--log-level", default=settings.LOG_LEVEL,
                        help=f"Logging level (default: {settings.LOG_LEVEL})")
    args = parser.parse_args()

    configure_logging(args.log_level)

    weekend_days = args.weekend_days or settings.weekend_days_list
    start = args.from_date or date.today()
    logger.info(
        "Syncing weekend days %s from %s over %d days",
        ", ".join(weekend_days), start, args.days,
    )

    try:
        result = asyncio.run(run_sync(weekend_days, start, args.days, args.dry_run))
    except ValidationException as e:
        logger.error("Invalid weekend configuration: %s", e.detail)
        sys.exit(2)
    except SQLAlchemyError as e:
        logger.error("Database error during weekend sync: %s", e)
        sys.exit(1)

    print(f"Weekend sync complete: {result.created} created, {result.removed} removed")


if __name__ == "__main__":
    main()
