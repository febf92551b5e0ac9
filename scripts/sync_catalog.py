"""
Catalog Import Script

Imports movies from TMDB into the catalog database on demand.

Usage:
    python scripts/sync_catalog.py [--pages 5]
    python scripts/sync_catalog.py --search "blade runner"
    python scripts/sync_catalog.py --tmdb-id 550
"""

import argparse
import logging
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from requests import RequestException
from sqlalchemy.exc import SQLAlchemyError

from config.config import Config
from movie_catalog.errors import AppError
from movie_catalog.importer import CatalogImporter
from movie_catalog.models import create_session_factory, init_db

Path("logs").mkdir(exist_ok=True)

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.FileHandler("logs/catalog_sync.log"), logging.StreamHandler()],
)
logger = logging.getLogger(__name__)


def run_import(pages: int = 5, search: str = None, tmdb_id: str = None, config=Config) -> int:
    """Run one import against the configured database; returns new movies"""
    session_factory = create_session_factory(config.DATABASE_URL)
    init_db(session_factory.kw["bind"])
    session = session_factory()

    try:
        importer = CatalogImporter(session, config=config)
        if tmdb_id:
            movie = importer.import_movie(tmdb_id)
            logger.info(f"Imported {movie.title}")
            return 1
        if search:
            return importer.search_and_import(search)
        return importer.import_popular(max_pages=pages)
    finally:
        session.close()


def main():
    """Main entry point for the import script"""
    parser = argparse.ArgumentParser(description="Import movie data from TMDB")
    parser.add_argument(
        "--pages", type=int, default=5, help="Popular pages to import, 20 movies each (default: 5)"
    )
    parser.add_argument("--search", help="Import the results of a TMDB title search instead")
    parser.add_argument("--tmdb-id", help="Import or refresh a single TMDB movie")

    args = parser.parse_args()

    if not Config.TMDB_API_KEY:
        logger.error("TMDB_API_KEY is not set")
        sys.exit(1)

    try:
        imported = run_import(pages=args.pages, search=args.search, tmdb_id=args.tmdb_id)
        logger.info(f"Import finished: {imported} new movies")
    except KeyboardInterrupt:
        logger.info("Import interrupted by user")
    except (AppError, RequestException, SQLAlchemyError) as e:
        logger.error(f"Fatal error during import: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
