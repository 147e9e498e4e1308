"""Rebuild event weather from a SQL backup by matching current events.

Writes UPDATE statements keyed on today's event ids plus a text report.
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
from paddleperf import reconcile  # noqa: E402

logger = logging.getLogger("reconcile_weather")


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--backup", type=Path, default=Path("backup_data.sql"))
    parser.add_argument("--out", type=Path, default=Path("weather_updates_by_current_id.sql"))
    parser.add_argument("--report", type=Path, default=Path("weather_reconcile_report.txt"))
    parser.add_argument("--fix-apostrophes", action="store_true",
                        help="treat doubled single quotes in the backup as one")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not args.backup.exists():
        logger.error("Backup file not found: %s", args.backup)
        return 1

    events = datastore_pg.list_event_keys()
    records = reconcile.load_backup(args.backup)
    logger.info("%d events in database, %d weather rows in backup", len(events), len(records))

    matched, unmatched = reconcile.match_events(records, events, fix_apostrophes=args.fix_apostrophes)
    duplicates = reconcile.find_duplicates(records)
    args.out.write_text(reconcile.render_updates(matched), encoding="utf-8")
    args.report.write_text(
        reconcile.render_summary(matched, unmatched, duplicates, total_events=len(events)),
        encoding="utf-8",
    )
    print(f"Matched {len(matched)} of {len(records)} backup rows; {len(unmatched)} unmatched")
    print(f"Updates written to {args.out}; report written to {args.report}")
    print(f"Apply with: psql \"$DATABASE_URL\" -f {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
