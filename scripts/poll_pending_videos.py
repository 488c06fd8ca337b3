#!/usr/bin/env python3
"""
Cron script that checks every in-flight video generation once.

Usage:
    python scripts/poll_pending_videos.py

Add to crontab to run automatically:
    # Run every minute
    * * * * * cd /path/to/promoreel-backend && python scripts/poll_pending_videos.py
"""

import asyncio
import sys
import logging

from dotenv import load_dotenv

load_dotenv()

from promoreel.config import get_settings
from promoreel.db.database import SessionLocal
from promoreel.logging_config import configure_logging
from promoreel.services.generation_pipeline import build_pipeline, poll_in_flight_jobs

configure_logging()
logger = logging.getLogger(__name__)


async def main():
    logger.info("Starting scheduled status poll of in-flight videos")

    db = SessionLocal()
    try:
        results = await poll_in_flight_jobs(build_pipeline(db, get_settings()))

        logger.info(
            "Polled %d jobs: processing=%d completed=%d failed=%d errors=%d",
            results["total"],
            results["processing"],
            results["completed"],
            results["failed"],
            results["errors"],
        )
        if results["errors"] > 0:
            sys.exit(1)  # Non-zero exit code for monitoring
    finally:
        db.close()


if __name__ == "__main__":
    asyncio.run(main())
