"""Recover event weather from a ``backup_data.sql`` dump.

Event ids change between database rebuilds, so backup rows are matched to
current events on (name, description, start date) and turned into
``UPDATE events ... WHERE event_id = N`` statements.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

WEATHER_MARKER = '"data_source":"Visual Crossing Weather API"'
_VALUES_RE = re.compile(r"VALUES \((.*)\);")

# Column positions in the events INSERT of the dump.
NAME_FIELD = 7
START_FIELD = 10
DESCRIPTION_FIELDS = range(20, 30)


@dataclass
class BackupWeatherRecord:
    name: str
    description: str
    start_date: str
    weather_json: str
    temperature: Optional[float] = None
    wind_speed: Optional[float] = None
    wind_direction: Optional[str] = None
    line_number: int = 0

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.name, self.description, self.start_date)


@dataclass
class MatchedUpdate:
    event_id: int
    event_name: str
    record: BackupWeatherRecord


@dataclass
class UnmatchedRecord:
    record: BackupWeatherRecord
    issue: str
    similar: Optional[Dict] = None


def normalize_apostrophes(value: str) -> str:
    return (value or "").replace("''", "'")


def _unquote(value: Optional[str]) -> str:
    if value is None:
        return ""
    if value.startswith("'"):
        value = value[1:]
    if value.endswith("'"):
        value = value[:-1]
    return value


def split_values(values: str) -> List[str]:
    """Split a VALUES tuple body on commas outside quotes and JSON braces."""
    parts: List[str] = []
    current: List[str] = []
    in_quotes = False
    depth = 0
    prev = ""
    for ch in values:
        if ch == "'" and prev != "\\":
            in_quotes = not in_quotes
        if in_quotes and ch == "{":
            depth += 1
        elif in_quotes and ch == "}":
            depth -= 1
        if ch == "," and not in_quotes and depth == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        prev = ch
    parts.append("".join(current).strip())
    return parts


def _float_field(parts: List[str], idx: int) -> Optional[float]:
    if idx >= len(parts):
        return None
    try:
        return float(_unquote(parts[idx]))
    except ValueError:
        return None


def parse_backup_line(line: str, line_number: int = 0) -> Optional[BackupWeatherRecord]:
    m = _VALUES_RE.search(line)
    if not m:
        return None
    parts = split_values(m.group(1))
    weather_idx = next((i for i, p in enumerate(parts) if WEATHER_MARKER in p), -1)
    if weather_idx == -1:
        return None

    name = _unquote(parts[NAME_FIELD]) if len(parts) > NAME_FIELD else ""
    start = _unquote(parts[START_FIELD]) if len(parts) > START_FIELD else ""
    description = ""
    for i in DESCRIPTION_FIELDS:
        if i < len(parts) and " - " in parts[i] and '"date":' not in parts[i]:
            description = _unquote(parts[i])
            break

    wind_direction = None
    if weather_idx + 4 < len(parts):
        raw_dir = _unquote(parts[weather_idx + 4])
        wind_direction = None if raw_dir.upper() == "NULL" else raw_dir

    return BackupWeatherRecord(
        name=name,
        description=description,
        start_date=start.split(" ")[0],
        weather_json=_unquote(parts[weather_idx]),
        temperature=_float_field(parts, weather_idx + 2),
        wind_speed=_float_field(parts, weather_idx + 3),
        wind_direction=wind_direction,
        line_number=line_number,
    )


def parse_backup(lines: Iterable[str]) -> List[BackupWeatherRecord]:
    records: List[BackupWeatherRecord] = []
    for n, line in enumerate(lines, start=1):
        if WEATHER_MARKER + "}" not in line:
            continue
        record = parse_backup_line(line, line_number=n)
        if record is None:
            logger.warning("Could not parse weather row on line %d", n)
            continue
        records.append(record)
    return records


def load_backup(path) -> List[BackupWeatherRecord]:
    with Path(path).open(encoding="utf-8") as f:
        return parse_backup(f)


def match_events(records: List[BackupWeatherRecord], events: List[Dict],
                 fix_apostrophes: bool = False) -> Tuple[List[MatchedUpdate], List[UnmatchedRecord]]:
    """Match backup rows to current events.

    ``events`` rows carry ``event_id``, ``name``, ``description`` and an ISO
    ``start_date``. With ``fix_apostrophes`` the backup's doubled quotes are
    collapsed before comparing.
    """
    norm = normalize_apostrophes if fix_apostrophes else (lambda s: s or "")

    def ev_date(ev: Dict) -> str:
        return (ev.get("start_date") or "")[:10]

    by_key = {}
    for ev in events:
        by_key.setdefault((norm(ev.get("name")), norm(ev.get("description")), ev_date(ev)), ev)

    matched: List[MatchedUpdate] = []
    unmatched: List[UnmatchedRecord] = []
    for rec in records:
        key = (norm(rec.name), norm(rec.description), rec.start_date)
        ev = by_key.get(key)
        if ev is not None:
            matched.append(MatchedUpdate(event_id=int(ev["event_id"]), event_name=ev.get("name") or "", record=rec))
            continue
        same_name = [e for e in events if norm(e.get("name")) == key[0]]
        same_desc = [e for e in same_name if norm(e.get("description")) == key[1]]
        if not same_name:
            unmatched.append(UnmatchedRecord(rec, "No event with matching name found in current database"))
        elif not same_desc:
            unmatched.append(UnmatchedRecord(
                rec, f'Name matches but description differs. Current: "{same_name[0].get("description")}"',
                similar=same_name[0],
            ))
        else:
            unmatched.append(UnmatchedRecord(
                rec, f'Name and description match but date differs. Current: "{ev_date(same_desc[0])}"',
                similar=same_desc[0],
            ))
    return matched, unmatched


def find_duplicates(records: List[BackupWeatherRecord]) -> Dict[Tuple[str, str, str], List[int]]:
    groups: Dict[Tuple[str, str, str], List[int]] = defaultdict(list)
    for rec in records:
        groups[rec.key].append(rec.line_number)
    return {k: v for k, v in groups.items() if len(v) > 1}


def _sql_quote(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _fmt_num(value: Optional[float]) -> str:
    if value is None:
        return "N/A"
    return f"{value:g}"


def update_statement(update: MatchedUpdate) -> str:
    rec = update.record
    fields = [f"weather_conditions = {_sql_quote(rec.weather_json)}"]
    if rec.temperature is not None:
        fields.append(f"temperature = {rec.temperature:g}")
    if rec.wind_speed is not None:
        fields.append(f"wind_speed = {rec.wind_speed:g}")
    if rec.wind_direction is not None:
        fields.append(f"wind_direction = {_sql_quote(rec.wind_direction)}")
    return (
        f"-- {update.event_name} (temp: {_fmt_num(rec.temperature)}°F, "
        f"wind: {_fmt_num(rec.wind_speed)} mph {rec.wind_direction or 'N/A'})\n"
        f"UPDATE events\nSET {', '.join(fields)}\nWHERE event_id = {update.event_id};"
    )


def render_updates(matched: List[MatchedUpdate], now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    header = [
        "-- Weather data updates keyed on current event_id",
        f"-- Generated on {now.isoformat()}",
        f"-- Matched {len(matched)} events by name + description + date",
        "",
    ]
    return "\n".join(header) + "\n" + "\n\n".join(update_statement(u) for u in matched) + "\n"


def render_summary(matched: List[MatchedUpdate], unmatched: List[UnmatchedRecord],
                   duplicates: Dict[Tuple[str, str, str], List[int]], total_events: int) -> str:
    lines = [
        "Weather reconciliation report",
        "",
        f"Backup weather records: {len(matched) + len(unmatched)}",
        f"Current database events: {total_events}",
        f"Matched: {len(matched)}",
        f"Unmatched: {len(unmatched)}",
        "",
    ]
    for u in matched:
        rec = u.record
        lines.append(
            f"event_id {u.event_id}: {u.event_name} ({_fmt_num(rec.temperature)}°F, "
            f"{_fmt_num(rec.wind_speed)} mph {rec.wind_direction or 'N/A'})"
        )
    if unmatched:
        lines += ["", "UNMATCHED BACKUP RECORDS:"]
        for i, u in enumerate(unmatched, start=1):
            lines += [
                f"{i}. Line {u.record.line_number}:",
                f'   Name: "{u.record.name}"',
                f'   Description: "{u.record.description}"',
                f'   Date: "{u.record.start_date}"',
                f"   Issue: {u.issue}",
            ]
    lines += ["", "DUPLICATE ANALYSIS:"]
    if duplicates:
        for key, line_numbers in duplicates.items():
            lines.append(f'"{"|".join(key)}" appears {len(line_numbers)} times '
                         f"(lines: {', '.join(str(n) for n in line_numbers)})")
    else:
        lines.append("No duplicates found")
    return "\n".join(lines) + "\n"
