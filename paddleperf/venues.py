"""Fill in venue addresses and coordinates from a geocoded CSV export."""

from __future__ import annotations

import csv
import logging
import re
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from . import datastore_pg

logger = logging.getLogger(__name__)

_ZIP_RE = re.compile(r"\b(\d{5}(?:-\d{4})?)\b")


def parse_formatted_address(address: Optional[str]) -> Dict[str, Optional[str]]:
    """Split ``"487 Seaport Ct, Redwood City, CA 94063, USA"`` into parts.

    Four or more comma parts are read as street, city, "ST zip", country.
    Two or three parts only yield the city (the first part).
    """
    parts = (address or "").split(", ")
    street = city = postal_code = ""
    if len(parts) >= 4:
        street = ", ".join(parts[:-3])
        city = parts[-3]
        m = _ZIP_RE.search(parts[-2])
        if m:
            postal_code = m.group(1)
    elif len(parts) >= 2:
        city = parts[0]
    return {
        "street": street or None,
        "city": city or None,
        "postal_code": postal_code or None,
    }


def _float_or_none(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def venue_fields(row: Dict[str, str], competition_name: str) -> Dict[str, Any]:
    formatted = (row.get("Location_formattedAddress") or "").strip()
    address = parse_formatted_address(formatted)
    return {
        "name": (row.get("Location_Name") or "").strip() or formatted,
        "latitude": _float_or_none(row.get("Location_Latitude")),
        "longitude": _float_or_none(row.get("Location_Longitude")),
        "street": address["street"],
        "city": address["city"],
        "state": (row.get("State_Code") or "").strip() or None,
        "postal_code": address["postal_code"],
        "country": (row.get("Location_countryCode") or "").strip() or None,
        "description": f"Venue for {competition_name}. Address: {formatted}",
        "venue_type": "OUTDOOR",
    }


def read_rows(path) -> list:
    with Path(path).open(newline="", encoding="utf-8-sig") as f:
        return [row for row in csv.DictReader(f) if any((v or "").strip() for v in row.values())]


class VenueEnricher:
    def __init__(self, store=datastore_pg):
        self.store = store
        self.processed = 0
        self.updated = 0
        self.skipped = 0
        self.errors = 0

    def process_row(self, row: Dict[str, str]) -> bool:
        url = (row.get("Event_URL") or "").strip()
        comp = self.store.find_competition_by_website(url) if url else None
        if not comp:
            logger.info("No competition found for URL: %s", url)
            self.skipped += 1
            return False
        if not comp.get("venue_id"):
            logger.info('Competition "%s" has no venue', comp.get("name"))
            self.skipped += 1
            return False
        fields = venue_fields(row, comp.get("name") or "")
        self.store.update_venue(comp["venue_id"], fields)
        logger.info("Updated venue %s: %s (%s, %s)",
                    comp["venue_id"], fields["name"], fields["city"], fields["state"])
        self.updated += 1
        return True

    def run(self, rows: Iterable[Dict[str, str]]) -> Dict[str, int]:
        rows = list(rows)
        logger.info("Found %d venue records to process", len(rows))
        for row in rows:
            try:
                self.process_row(row)
            except Exception:
                self.errors += 1
                logger.exception("Error processing venue for %s", row.get("Event_URL"))
                continue
            self.processed += 1
            if self.processed % 10 == 0:
                logger.info("Processed %d/%d venues", self.processed, len(rows))
        return {
            "processed": self.processed,
            "updated": self.updated,
            "skipped": self.skipped,
            "errors": self.errors,
        }
