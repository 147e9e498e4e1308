"""Fetch race-day weather for events from the Visual Crossing API.

Usage: python scripts/enrich_weather.py [--dry-run] [--test] [--limit=N]
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
from paddleperf.weather import WeatherClient, WeatherEnricher  # noqa: E402

logger = logging.getLogger("enrich_weather")


def main(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry-run", action="store_true", help="list events without calling the API")
    parser.add_argument("--test", action="store_true", help="process a single event to check the API")
    parser.add_argument("--limit", type=int, default=None, help="process at most N events")
    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    enricher = WeatherEnricher(WeatherClient())

    if args.test:
        event = datastore_pg.first_event_with_coordinates()
        if event is None:
            logger.warning("No event with venue coordinates to test against")
            return 1
        logger.info("Testing with %s at %s, %s", event["event_name"], event["latitude"], event["longitude"])
        weather = enricher.process_event(event)
        print(weather["summary"])
        return 0

    report = enricher.enrich_all(dry_run=args.dry_run, limit=args.limit)
    if args.dry_run:
        for i, event in enumerate(report.get("preview", []), start=1):
            print(f"{i}. {event['event_name']} ({event['competition_name']})")
            print(f"   {event['venue_name']} - {event.get('city')}, {event.get('state')}")
            print(f"   {event.get('actual_start_time') or event.get('event_date')} - "
                  f"{event['latitude']}, {event['longitude']}")
        print(f"\nEvents to process: {report['candidates']}")
        print(f"Estimated time: ~{report.get('estimated_minutes', 0)} minutes")
        return 0

    print(f"Processed: {report['processed']}  succeeded: {report['succeeded']}  "
          f"errors: {report['errors']}  final delay: {report['delay']:.0f}s")
    for row in datastore_pg.sample_weather_events(5):
        print(f"  {row['event_name']}: {row['temperature']}°F, {row['wind_speed']} mph {row['wind_direction']}")
    totals = datastore_pg.count_events_with_weather()
    print(f"Events with weather data: {totals['with_weather']}/{totals['total']}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
