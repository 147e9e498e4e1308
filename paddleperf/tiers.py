"""Freemium tier limits and athlete-profile view gating."""

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from .datastore import (
    count_user_activity as ds_count_user_activity,
    find_user_athlete_link as ds_find_user_athlete_link,
    get_athlete as ds_get_athlete,
    insert_user_activity as ds_insert_user_activity,
)

TIER_LIMITS: Dict[str, Dict[str, float]] = {
    "free": {"athlete_views": 10, "comparisons": 0, "virtual_series": 0},
    "premium": {"athlete_views": math.inf, "comparisons": math.inf, "virtual_series": 5},
    "pro": {"athlete_views": math.inf, "comparisons": math.inf, "virtual_series": math.inf},
}

ACTIVITY_TYPES = ("athlete_view", "result_view", "comparison_view", "virtual_series_create")

# activity type -> TIER_LIMITS key
_LIMIT_KEYS = {
    "athlete_view": "athlete_views",
    "comparison_view": "comparisons",
    "virtual_series_create": "virtual_series",
}

FREE_RESULT_ROWS = 10
FULL_RESULT_ROWS = 100
WARNING_THRESHOLD = 3


def _start_of_day(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc).replace(tzinfo=None)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def _tier(user_session: Optional[Dict[str, Any]]) -> str:
    return (user_session or {}).get("tier") or "free"


def check_view_limit(user_session: Dict[str, Any], activity_type: str,
                     now: Optional[datetime] = None) -> bool:
    """Return True when the user may perform one more ``activity_type`` today."""
    if _tier(user_session) != "free":
        return True
    limit_key = _LIMIT_KEYS.get(activity_type)
    if limit_key is None:
        raise ValueError(f"Activity type is not limited: {activity_type}")
    limit = TIER_LIMITS["free"][limit_key]
    count = ds_count_user_activity(user_session["user_id"], activity_type, _start_of_day(now))
    return count < limit


def views_remaining(user_session: Optional[Dict[str, Any]], now: Optional[datetime] = None) -> float:
    if user_session is None or _tier(user_session) != "free":
        return math.inf
    limit = TIER_LIMITS["free"]["athlete_views"]
    used = ds_count_user_activity(user_session["user_id"], "athlete_view", _start_of_day(now))
    return max(int(limit) - int(used), 0)


def track_activity(user_session: Dict[str, Any], activity_type: str,
                   resource_id: Optional[str] = None,
                   metadata: Optional[Dict[str, Any]] = None) -> None:
    if activity_type not in ACTIVITY_TYPES:
        raise ValueError(f"Unknown activity type: {activity_type}")
    ds_insert_user_activity(
        user_session["user_id"],
        activity_type,
        resource_id=str(resource_id) if resource_id is not None else None,
        metadata=metadata,
    )


def can_user_view_athlete(user_session: Optional[Dict[str, Any]], athlete_id: int,
                          now: Optional[datetime] = None) -> Tuple[bool, Optional[str]]:
    """Decide whether the profile of ``athlete_id`` may be shown.

    Returns ``(can_view, reason)`` where reason is one of ``not_found``,
    ``private_athlete`` or ``view_limit_exceeded`` when blocked.
    """
    athlete = ds_get_athlete(athlete_id)
    if athlete is None:
        return False, "not_found"
    is_public = athlete.get("is_public")
    if is_public is None:
        is_public = True

    if user_session is None:
        if not is_public:
            return False, "private_athlete"
        return True, None

    if ds_find_user_athlete_link(user_session["user_id"], athlete_id):
        return True, None

    if _tier(user_session) == "free" and not check_view_limit(user_session, "athlete_view", now=now):
        return False, "view_limit_exceeded"
    return True, None


def result_limit_for(user_session: Optional[Dict[str, Any]]) -> int:
    if user_session is None or _tier(user_session) == "free":
        return FREE_RESULT_ROWS
    return FULL_RESULT_ROWS


def banner_state(remaining: float) -> Optional[str]:
    if remaining <= 0:
        return "exhausted"
    if remaining <= WARNING_THRESHOLD:
        return "warning"
    return None
