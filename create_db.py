#!/usr/bin/env python3
"""
Recreate the tracks/votes tables and import the track catalog CSV
"""
import logging
import sys
from pathlib import Path

from nexttrack import config
from nexttrack.catalog import read_tracks_csv
from nexttrack.store import VoteStore

logger = logging.getLogger("nexttrack")


def create_db(csv_path: Path, database_url: str = config.DATABASE_URL) -> int:
    if database_url.startswith("sqlite:///"):
        config.DATA_DIR.mkdir(parents=True, exist_ok=True)

    store = VoteStore(database_url)
    try:
        logger.info("Dropping and recreating tables...")
        store.create_schema(drop=True)

        logger.info(f"Importing tracks from {csv_path}")
        count = store.import_tracks(read_tracks_csv(csv_path))
        logger.info(f"✅ Database recreated with {count} tracks")
        return count
    finally:
        store.dispose()


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    csv_path = Path(sys.argv[1]) if len(sys.argv) > 1 else config.TRACKS_CSV
    create_db(csv_path)


if __name__ == "__main__":
    main()
