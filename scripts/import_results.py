"""Import scraped race results JSON into PostgreSQL.

Usage: python scripts/import_results.py path/to/collected_race_results.json
"""
import argparse
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from paddleperf.importer import ResultImporter, load_events  # noqa: E402

logger = logging.getLogger("import_results")


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("path", type=Path, help="JSON file shaped like {\"results\": [...]}")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.path.exists():
        logger.error("File not found: %s", args.path)
        return 1

    importer = ResultImporter()
    stats = importer.run(load_events(args.path))
    if stats.events_processed:
        summary = importer.summary()
        for table, count in summary["counts"].items():
            print(f"{table}: {count}")
        print("\nRaw vs calculated sample:")
        for row in summary["sample"]:
            print(f"  {row.get('raw_name')}: raw_time={row.get('raw_time')} "
                  f"position={row.get('calculated_overall_position')} "
                  f"points={row.get('ranking_points')}")
    return 1 if stats.events_failed and not stats.events_processed else 0


if __name__ == "__main__":
    sys.exit(main())
