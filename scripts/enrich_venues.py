"""Update venues with geocoded addresses from a CSV export.

Usage: python scripts/enrich_venues.py path/to/venue-data.csv
"""
import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from paddleperf import datastore_pg  # noqa: E402
from paddleperf.venues import VenueEnricher, read_rows  # noqa: E402

logger = logging.getLogger("enrich_venues")


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("csv_path", type=Path)
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not args.csv_path.exists():
        logger.error("CSV file not found: %s", args.csv_path)
        return 1

    counts = VenueEnricher().run(read_rows(args.csv_path))
    print(f"Processed: {counts['processed']}  updated: {counts['updated']}  "
          f"skipped: {counts['skipped']}  errors: {counts['errors']}")
    for row in datastore_pg.sample_venues(5):
        print(f"  {row['venue_id']}: {row['name']} ({row['city']}, {row['state']}) "
              f"{row['latitude']}, {row['longitude']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
