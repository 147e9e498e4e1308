"""Parsing helpers that turn scraped race results into typed values."""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

MS_PER_SECOND = 1000

# Seed rows for the discipline and category lookup tables.
BASE_DISCIPLINES: List[Dict[str, str]] = [
    {"name": "SUP Distance", "code": "SUP_DISTANCE", "race_type": "DISTANCE", "course_type": "OCEAN"},
    {"name": "SUP Sprint", "code": "SUP_SPRINT", "race_type": "SPRINT", "course_type": "FLATWATER"},
    {"name": "Surfski Distance", "code": "SURFSKI_DISTANCE", "race_type": "DISTANCE", "course_type": "OCEAN"},
    {"name": "Kayak Distance", "code": "KAYAK_DISTANCE", "race_type": "DISTANCE", "course_type": "FLATWATER"},
    {"name": "Dragon Boat", "code": "DRAGON_BOAT", "race_type": "SPRINT", "course_type": "FLATWATER"},
    {"name": "Outrigger Canoe Distance", "code": "OC_DISTANCE", "race_type": "DISTANCE", "course_type": "OCEAN"},
    {"name": "Outrigger Canoe Sprint", "code": "OC_SPRINT", "race_type": "SPRINT", "course_type": "FLATWATER"},
]

BASE_CATEGORIES: List[Dict[str, object]] = [
    {"name": "Open Men", "code": "OPEN_M", "gender": "MALE"},
    {"name": "Open Women", "code": "OPEN_F", "gender": "FEMALE"},
    {"name": "Open Mixed", "code": "OPEN_MIXED", "gender": None},
    {"name": "Masters Men", "code": "MASTERS_M", "gender": "MALE", "min_age": 40},
    {"name": "Masters Women", "code": "MASTERS_F", "gender": "FEMALE", "min_age": 40},
]

DEFAULT_DISCIPLINE = "SUP Distance"

# Checked in order; the first keyword found in the title wins.
_LEVEL_KEYWORDS: List[Tuple[Tuple[str, ...], str]] = [
    (("world", "international"), "INTERNATIONAL"),
    (("national", "usa"), "NATIONAL"),
    (("regional",), "REGIONAL"),
    (("state",), "STATE"),
    (("club",), "CLUB"),
]


def parse_time_to_ms(value: Optional[str]) -> Optional[int]:
    """Parse ``HH:MM:SS.ss`` or ``MM:SS.ss`` into integer milliseconds.

    Returns None for blanks, status strings (DNF, DNS) and malformed input.
    """
    if not value:
        return None
    parts = str(value).strip().split(":")
    try:
        if len(parts) == 3:
            hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
        elif len(parts) == 2:
            hours, minutes, seconds = 0, int(parts[0]), float(parts[1])
        else:
            return None
    except ValueError:
        return None
    if hours < 0 or minutes < 0 or seconds < 0:
        return None
    return int(round((hours * 3600 + minutes * 60 + seconds) * MS_PER_SECOND))


def _leading_int(value: Optional[str]) -> Optional[int]:
    if value is None:
        return None
    text = str(value).strip()
    digits = ""
    for ch in text:
        if ch.isdigit():
            digits += ch
        else:
            break
    return int(digits) if digits else None


def parse_position(value: Optional[str]) -> Optional[int]:
    return _leading_int(value)


def parse_division_position(value: Optional[str]) -> Optional[int]:
    """``"2/14"`` -> 2."""
    if not value:
        return None
    return _leading_int(str(value).split("/")[0])


def extract_field_strength(value: Optional[str]) -> Optional[int]:
    """``"2/14"`` -> 14; None when there is no field size."""
    if not value:
        return None
    parts = str(value).split("/")
    if len(parts) < 2:
        return None
    return _leading_int(parts[1])


def infer_competition_level(title: Optional[str]) -> str:
    lowered = (title or "").lower()
    for keywords, level in _LEVEL_KEYWORDS:
        if any(k in lowered for k in keywords):
            return level
    return "LOCAL"


def map_gender(value: Optional[str]) -> Optional[str]:
    if not value or not str(value).strip():
        return None
    g = str(value).strip().lower()
    if g in ("male", "m"):
        return "MALE"
    if g in ("female", "f"):
        return "FEMALE"
    return "OTHER"


def split_name(full_name: Optional[str]) -> Tuple[str, str]:
    """Return (first token, last token); a single token is both."""
    parts = (full_name or "").split()
    if not parts:
        return "", ""
    return parts[0], parts[-1]


def discipline_for(race_name: Optional[str], craft_type: Optional[str]) -> str:
    craft = (craft_type or "").lower()
    race = (race_name or "").lower()
    if "sup" in craft or "sup" in race:
        return "SUP Distance"
    if "surfski" in craft:
        return "Surfski Distance"
    if "kayak" in craft:
        return "Kayak Distance"
    if "oc" in craft or "outrigger" in race:
        return "Outrigger Canoe Distance"
    if "dragon" in craft:
        return "Dragon Boat"
    return DEFAULT_DISCIPLINE


def category_for(age_group: Optional[str], gender: Optional[str]) -> str:
    mapped = map_gender(gender)
    masters = "master" in (age_group or "").lower()
    if mapped == "MALE":
        return "Masters Men" if masters else "Open Men"
    if mapped == "FEMALE":
        return "Masters Women" if masters else "Open Women"
    return "Open Mixed"
