"""Historical race-day weather from the Visual Crossing timeline API."""

from __future__ import annotations

import logging
import math
import os
import time
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

import requests

from . import datastore_pg

logger = logging.getLogger(__name__)

TIMELINE_URL = (
    "https://weather.visualcrossing.com/VisualCrossingWebServices/"
    "rest/services/timeline"
)
DATA_SOURCE = "Visual Crossing Weather API"
NOON_INDEX = 12

INITIAL_DELAY = 2.0  # seconds between requests
RATE_LIMIT_STEP = 5.0
MAX_DELAY = 30.0

COMPASS_POINTS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)


class WeatherAPIError(RuntimeError):
    """Non-success response or an empty payload from the weather API."""


class RateLimitError(WeatherAPIError):
    """HTTP 429 from the weather API."""


def degrees_to_compass(degrees: Optional[float]) -> Optional[str]:
    if degrees is None:
        return None
    return COMPASS_POINTS[int(math.floor(float(degrees) / 22.5 + 0.5)) % 16]


def _round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def _round1(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return _round_half_up(float(value) * 10) / 10


def summarize_day(day: Dict[str, Any], api_date: str) -> Dict[str, Any]:
    """Reduce one ``days[]`` entry to the document stored on the event."""
    hourly: List[Dict[str, Any]] = []
    for hour in day.get("hours") or []:
        temp = hour.get("temp")
        hourly.append({
            "time": str(hour.get("datetime") or "")[:5],
            "temperature": _round_half_up(temp) if temp is not None else None,
            "wind_speed": _round1(hour.get("windspeed")),
            "wind_direction": hour.get("winddir"),
            "wind_direction_text": degrees_to_compass(hour.get("winddir")),
            "conditions": hour.get("conditions"),
            "humidity": hour.get("humidity"),
            "visibility": hour.get("visibility"),
        })

    temps = [h["temperature"] for h in hourly if h["temperature"] is not None]
    winds = [h["wind_speed"] for h in hourly if h["wind_speed"] is not None]
    avg_temp = _round_half_up(sum(temps) / len(temps)) if temps else 0
    avg_wind = _round1(sum(winds) / len(winds)) if winds else 0.0
    reference = representative_hour(hourly)
    conditions = (reference or {}).get("conditions") or "Unknown"
    return {
        "date": api_date,
        "hourly_data": hourly,
        "summary": f"{conditions}, avg temp {avg_temp}°F, avg wind {avg_wind} mph",
        "data_source": DATA_SOURCE,
    }


def representative_hour(hourly: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Noon when the day has it, otherwise the first hour."""
    if len(hourly) > NOON_INDEX:
        return hourly[NOON_INDEX]
    return hourly[0] if hourly else None


class WeatherClient:
    def __init__(self, api_key: Optional[str] = None, base_url: str = TIMELINE_URL,
                 session=None, timeout: float = 30.0):
        self.api_key = api_key or os.environ.get("VISUAL_CROSSING_WEATHER_KEY")
        if not self.api_key:
            raise RuntimeError("VISUAL_CROSSING_WEATHER_KEY is not set")
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def day_url(self, latitude, longitude, api_date: str) -> str:
        return f"{self.base_url}/{latitude},{longitude}/{api_date}/{api_date}"

    def fetch_day(self, latitude, longitude, api_date: str) -> Dict[str, Any]:
        url = self.day_url(latitude, longitude, api_date)
        params = {
            "unitGroup": "us",
            "include": "hours",
            "key": self.api_key,
            "contentType": "json",
        }
        logger.debug("GET %s (key %s...)", url, self.api_key[:4])
        resp = self.session.get(url, params=params, timeout=self.timeout)
        if resp.status_code == 429:
            raise RateLimitError(f"Rate limit exceeded: {resp.text}")
        if not 200 <= resp.status_code < 300:
            raise WeatherAPIError(f"Weather API error {resp.status_code}: {resp.text}")
        data = resp.json()
        days = data.get("days") or []
        if not days:
            raise WeatherAPIError("No weather data returned")
        return summarize_day(days[0], api_date)


def _api_date(value) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m-%d")
    return str(value)[:10]


class WeatherEnricher:
    """Fill ``events.weather_conditions`` for events at venues with coordinates."""

    def __init__(self, client: WeatherClient, store=datastore_pg,
                 sleep: Callable[[float], None] = time.sleep, delay: float = INITIAL_DELAY):
        self.client = client
        self.store = store
        self.sleep = sleep
        self.delay = delay
        self.processed = 0
        self.succeeded = 0
        self.errors = 0

    def process_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        if event.get("latitude") is None or event.get("longitude") is None:
            raise ValueError(f"No coordinates for venue: {event.get('venue_name')}")
        api_date = _api_date(event.get("actual_start_time") or event.get("event_date"))
        if not api_date:
            raise ValueError(f"No event date for: {event.get('event_name')}")

        weather = self.client.fetch_day(event["latitude"], event["longitude"], api_date)
        ref = representative_hour(weather["hourly_data"]) or {}
        self.store.update_event_weather(
            event["event_id"],
            weather,
            ref.get("temperature"),
            ref.get("wind_speed"),
            ref.get("wind_direction_text"),
        )
        logger.info("Updated weather for %s (%s, %s) %s",
                    event.get("event_name"), event.get("city"), event.get("state"), api_date)
        return weather

    def plan(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return self.store.list_events_needing_weather(limit or 1000)

    def enrich_all(self, dry_run: bool = False, limit: Optional[int] = None) -> Dict[str, Any]:
        events = self.plan(limit)
        logger.info("Found %d events needing weather data (excluding virtual events)", len(events))
        if not events:
            virtual = self.store.count_virtual_events()
            if virtual:
                logger.info("Skipped %d virtual events (no physical location)", virtual)
            return self.report(events=[])
        if dry_run:
            return self.report(events=events, dry_run=True)

        for event in events:
            try:
                self.process_event(event)
                self.succeeded += 1
                self.sleep(self.delay)
            except RateLimitError:
                self.errors += 1
                self.delay = min(self.delay + RATE_LIMIT_STEP, MAX_DELAY)
                logger.warning("Rate limit hit on event %s; delay now %.0fs",
                               event.get("event_id"), self.delay)
                self.sleep(self.delay)
            except Exception:
                self.errors += 1
                logger.exception("Error processing weather for event %s (%s)",
                                 event.get("event_id"), event.get("event_name"))
            self.processed += 1
            if self.processed % 10 == 0:
                logger.info("Processed %d/%d events (%d success, %d errors)",
                            self.processed, len(events), self.succeeded, self.errors)
        return self.report(events=events)

    def report(self, events: List[Dict[str, Any]], dry_run: bool = False) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "candidates": len(events),
            "processed": self.processed,
            "succeeded": self.succeeded,
            "errors": self.errors,
            "delay": self.delay,
            "dry_run": dry_run,
        }
        if dry_run:
            out["preview"] = events[:10]
            out["estimated_minutes"] = math.ceil(len(events) * INITIAL_DELAY / 60)
        return out
