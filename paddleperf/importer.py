"""Import scraped PaddleGuru race results into the raw/calculated tables.

Each finisher produces two rows: a ``results`` row holding the scraped
strings exactly as published, and a ``performances`` row holding the numbers
we derive from them (milliseconds, integer positions, field strength).
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import datastore_pg
from .normalize import (
    BASE_CATEGORIES,
    BASE_DISCIPLINES,
    category_for,
    discipline_for,
    extract_field_strength,
    infer_competition_level,
    map_gender,
    parse_division_position,
    parse_position,
    parse_time_to_ms,
    split_name,
)

logger = logging.getLogger(__name__)

RESULTS_AVAILABLE = "Results available"
UNKNOWN_ORGANIZER_EMAIL = "unknown@example.com"
SOURCE_SYSTEM = "paddleguru"
CALCULATION_VERSION = "v1.0"
PROGRESS_EVERY = 5


@dataclass
class ImportStats:
    events_seen: int = 0
    events_with_results: int = 0
    events_processed: int = 0
    events_failed: int = 0
    races_imported: int = 0
    races_skipped: int = 0
    results_imported: int = 0
    failures: List[str] = field(default_factory=list)


def _parse_event_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        try:
            parsed = datetime.strptime(text, "%B %d, %Y")
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def load_events(path) -> List[Dict[str, Any]]:
    """Read a scrape file shaped like ``{"results": [...]}``."""
    with Path(path).open(encoding="utf-8") as f:
        data = json.load(f)
    events = data.get("results") if isinstance(data, dict) else None
    if not isinstance(events, list):
        raise ValueError(f"{path}: expected an object with a 'results' list")
    return events


def events_with_results(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [
        e for e in events
        if e.get("status") == RESULTS_AVAILABLE and e.get("races")
    ]


class ResultImporter:
    """Idempotent-ish importer; lookups are cached for the life of the instance."""

    def __init__(self, store=datastore_pg):
        self.store = store
        self.stats = ImportStats()
        self._disciplines: Dict[str, int] = {}
        self._categories: Dict[str, int] = {}
        self._venues: Dict[str, int] = {}
        self._organizers: Dict[str, int] = {}
        self._competitions: Dict[str, int] = {}
        self._athletes: Dict[str, int] = {}

    # ------------------------------------------------------------ seed data

    def setup_base_data(self) -> None:
        for d in BASE_DISCIPLINES:
            existing = self.store.find_discipline_id(d["code"])
            if existing is None:
                existing = self.store.insert_row("disciplines", {**d, "level": "DISCIPLINE"})
            self._disciplines[d["name"]] = existing
        for c in BASE_CATEGORIES:
            existing = self.store.find_category_id(c["code"])
            if existing is None:
                row = {k: v for k, v in c.items() if v is not None}
                existing = self.store.insert_row("categories", row)
            self._categories[c["name"]] = existing
        logger.info("Base data ready: %d disciplines, %d categories",
                    len(self._disciplines), len(self._categories))

    def _discipline_id(self, race_name, craft_type) -> Optional[int]:
        return self._disciplines.get(discipline_for(race_name, craft_type))

    def _category_id(self, age_group, gender) -> Optional[int]:
        return self._categories.get(category_for(age_group, gender))

    # ------------------------------------------------------------ entities

    def venue_for(self, event: Dict[str, Any]) -> int:
        name = f"Venue for {event.get('event_title')}"
        if name in self._venues:
            return self._venues[name]
        venue_id = self.store.find_venue_id(name)
        if venue_id is None:
            venue_id = self.store.insert_row("venues", {
                "name": name,
                "description": name,
                "venue_type": "OUTDOOR",
                "country": "USA",
            })
        self._venues[name] = venue_id
        return venue_id

    def organizer_for(self, event: Dict[str, Any]) -> int:
        emails = (event.get("organized_by") or {}).get("email_ids") or []
        email = emails[0] if emails and emails[0] else UNKNOWN_ORGANIZER_EMAIL
        if email in self._organizers:
            return self._organizers[email]
        org_id = self.store.find_organization_id(email)
        if org_id is None:
            org_id = self.store.insert_row("organizations", {
                "name": f"Organizer ({email})",
                "email": email,
                "description": "Event organizer",
            })
        self._organizers[email] = org_id
        return org_id

    def competition_for(self, event: Dict[str, Any], venue_id: int, organizer_id: int) -> int:
        source_id = str(event.get("event_id"))
        if source_id in self._competitions:
            return self._competitions[source_id]
        title = event.get("event_title") or ""
        comp_id = self.store.find_competition_id(title)
        if comp_id is None:
            event_date = _parse_event_date(event.get("event_date"))
            year = event_date.year if event_date else _int_or_none(event.get("year"))
            comp_id = self.store.insert_row("competitions", {
                "name": title,
                "year": year,
                "start_date": event_date.date() if event_date else None,
                "end_date": event_date.date() if event_date else None,
                "status": "COMPLETED" if event.get("status") == RESULTS_AVAILABLE else "SCHEDULED",
                "level": infer_competition_level(title),
                "venue_id": venue_id,
                "organizer_id": organizer_id,
                "website": event.get("event_url"),
            })
            logger.debug("Created competition %s (%s)", comp_id, title)
        self._competitions[source_id] = comp_id
        return comp_id

    def athlete_for(self, result: Dict[str, Any]) -> int:
        name = (result.get("name") or "").strip()
        if name in self._athletes:
            return self._athletes[name]
        first, last = split_name(name)
        person_id = self.store.find_person_id(first, last)
        athlete_id = None
        if person_id is not None:
            athlete_id = self.store.find_athlete_id_for_person(person_id)
        if athlete_id is None:
            person_id = self.store.insert_row("people", {
                "first_name": first,
                "last_name": last,
                "display_name": name,
                "gender": map_gender(result.get("gender")),
            })
            athlete_id = self.store.insert_row("athletes", {
                "person_id": person_id,
                "status": "ACTIVE",
            })
        self._athletes[name] = athlete_id
        return athlete_id

    # ------------------------------------------------------------ import

    def import_result(self, result: Dict[str, Any], event_id: int, discipline_id, category_id,
                      event: Dict[str, Any]) -> None:
        athlete_id = self.athlete_for(result)
        ranking_place = _int_or_none(result.get("ranking_place"))
        points = result.get("points") or None
        performance_id = self.store.insert_row("performances", {
            "athlete_id": athlete_id,
            "discipline_id": discipline_id,
            "category_id": category_id,
            "time_milliseconds": parse_time_to_ms(result.get("time")),
            "calculated_overall_position": parse_position(result.get("overall_place")),
            "calculated_division_position": parse_division_position(result.get("division_place")),
            "calculated_gender_position": ranking_place,
            "ranking_points": points,
            "performance_rating": points,
            "is_podium_finish": bool(ranking_place and ranking_place <= 3),
            "field_strength": extract_field_strength(result.get("division_place")),
            "calculation_version": CALCULATION_VERSION,
            "verified": True,
        })
        self.store.insert_row("results", {
            "athlete_id": athlete_id,
            "event_id": event_id,
            "performance_id": performance_id,
            "overall_place": result.get("overall_place"),
            "division_place": result.get("division_place"),
            "raw_name": result.get("name"),
            "bib_number": result.get("number"),
            "raw_age_group": result.get("age_group"),
            "raw_gender": result.get("gender"),
            "raw_category": result.get("category"),
            "raw_time": result.get("time"),
            "raw_craft_type": result.get("craft_type"),
            "source_event_id": result.get("event_id"),
            "source_race_name": result.get("race_name"),
            "source_url": event.get("event_url"),
            "scraped_at": datetime.now(timezone.utc).replace(tzinfo=None),
            "source_system": SOURCE_SYSTEM,
            "result_status": "OFFICIAL",
            "athlete_verified": False,
        })
        self.stats.results_imported += 1

    def import_race(self, event: Dict[str, Any], race: Dict[str, Any], competition_id: int) -> None:
        race_name = race.get("name") or ""
        if self.store.find_event_id(competition_id, race_name) is not None:
            logger.info("Skipping already imported race %r of competition %s", race_name, competition_id)
            self.stats.races_skipped += 1
            return
        results = race.get("results") or []
        first = results[0] if results else {}
        discipline_id = self._discipline_id(race_name, first.get("craft_type"))
        category_id = self._category_id(first.get("age_group"), first.get("gender"))
        event_date = _parse_event_date(event.get("event_date"))
        event_id = self.store.insert_row("events", {
            "name": race_name,
            "description": f"{race_name} - {event.get('event_title')}",
            "scheduled_start_time": event_date,
            "actual_start_time": event_date,
            "competition_id": competition_id,
            "discipline_id": discipline_id,
            "category_id": category_id,
        })
        for result in results:
            self.import_result(result, event_id, discipline_id, category_id, event)
        self.stats.races_imported += 1

    def import_event(self, event: Dict[str, Any]) -> None:
        venue_id = self.venue_for(event)
        organizer_id = self.organizer_for(event)
        competition_id = self.competition_for(event, venue_id, organizer_id)
        for race in event.get("races") or []:
            self.import_race(event, race, competition_id)

    def run(self, events: List[Dict[str, Any]]) -> ImportStats:
        self.stats.events_seen = len(events)
        todo = events_with_results(events)
        self.stats.events_with_results = len(todo)
        logger.info("Found %d race events, %d with results", len(events), len(todo))
        if not todo:
            logger.info("No events with results found")
            return self.stats

        self.setup_base_data()
        for event in todo:
            try:
                self.import_event(event)
            except Exception as e:
                # One bad event must not abort the rest of the file.
                self.stats.events_failed += 1
                self.stats.failures.append(f"{event.get('event_id')}: {e}")
                logger.exception("Error processing event %s", event.get("event_id"))
                continue
            self.stats.events_processed += 1
            if self.stats.events_processed % PROGRESS_EVERY == 0:
                logger.info("Processed %d/%d events", self.stats.events_processed, len(todo))
        logger.info(
            "Import completed: %d events, %d races (%d skipped), %d results, %d failures",
            self.stats.events_processed, self.stats.races_imported, self.stats.races_skipped,
            self.stats.results_imported, self.stats.events_failed,
        )
        return self.stats

    def summary(self) -> Dict[str, Any]:
        """Table counts plus a few raw-vs-calculated rows."""
        return {
            "counts": self.store.table_counts(),
            "sample": self.store.sample_results(3),
        }


def _int_or_none(value) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
