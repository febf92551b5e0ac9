"""
Catalog Import Scheduler

Keeps the catalog fresh by re-importing popular movies from TMDB every day.

Usage:
    python scripts/scheduler.py

Or as a background service:
    nohup python scripts/scheduler.py &
"""

import logging
import sys
import time
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import schedule
from requests import RequestException
from sqlalchemy.exc import SQLAlchemyError

from config.config import Config
from movie_catalog.errors import AppError
from scripts.sync_catalog import run_import

Path("logs").mkdir(exist_ok=True)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.FileHandler("logs/scheduler.log"), logging.StreamHandler()],
    force=True,
)
logger = logging.getLogger(__name__)


def daily_popular_import():
    """Import the current popular movies"""
    logger.info("=" * 60)
    logger.info("Starting scheduled popular movies import")
    logger.info("=" * 60)

    try:
        imported = run_import(pages=Config.STARTUP_IMPORT_PAGES)
        logger.info(f"Scheduled import completed: {imported} new movies")
    except (AppError, RequestException, SQLAlchemyError) as e:
        logger.error(f"Scheduled import failed: {e}")


def setup_schedule():
    """Configure import schedule"""
    schedule.every().day.at("02:00").do(daily_popular_import)
    logger.info("Scheduler configured: daily popular import at 2:00 AM")


def main():
    """Main scheduler loop"""
    logger.info("Starting catalog import scheduler")

    if not Config.TMDB_API_KEY:
        logger.error("TMDB_API_KEY is not set")
        sys.exit(1)

    setup_schedule()

    logger.info("Running initial import...")
    daily_popular_import()

    logger.info("Entering scheduler loop...")
    try:
        while True:
            schedule.run_pending()
            time.sleep(60)  # Check every minute
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")


if __name__ == "__main__":
    main()
