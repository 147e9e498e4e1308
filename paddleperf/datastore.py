from datetime import datetime
from typing import Any, Dict, List, Optional

# Datastore proxy used by the web layer.
# Every call is resolved against datastore_pg at call time so tests can swap
# the PostgreSQL functions for in-memory ones.

from . import datastore_pg as _pg


def server_info() -> Dict[str, Any]:
    return _pg.server_info()


def list_indexes() -> List[Dict[str, Any]]:
    return _pg.list_indexes()


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return _pg.get_user_by_email(email)


def insert_user(email: str, password_hash: str, first_name: Optional[str] = None,
                last_name: Optional[str] = None, tier: str = "free") -> Dict[str, Any]:
    return _pg.insert_user(email, password_hash, first_name=first_name, last_name=last_name, tier=tier)


def count_user_activity(user_id: str, activity_type: str, since: datetime) -> int:
    return _pg.count_user_activity(user_id, activity_type, since)


def insert_user_activity(user_id: str, activity_type: str, resource_id: Optional[str] = None,
                         metadata: Optional[Dict[str, Any]] = None) -> None:
    _pg.insert_user_activity(user_id, activity_type, resource_id=resource_id, metadata=metadata)


def find_user_athlete_link(user_id: str, athlete_id: int) -> Optional[Dict[str, Any]]:
    return _pg.find_user_athlete_link(user_id, athlete_id)


def insert_user_athlete_link(user_id: str, athlete_id: int, is_owner: bool = False) -> Dict[str, Any]:
    return _pg.insert_user_athlete_link(user_id, athlete_id, is_owner=is_owner)


def get_athlete(athlete_id: int) -> Optional[Dict[str, Any]]:
    return _pg.get_athlete(athlete_id)


def search_athletes(query: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    return _pg.search_athletes(query=query, limit=limit)


def list_athlete_results(athlete_id: int, limit: int) -> List[Dict[str, Any]]:
    return _pg.list_athlete_results(athlete_id, limit)


def count_athlete_results(athlete_id: int) -> int:
    return _pg.count_athlete_results(athlete_id)


def list_recent_competitions(limit: int = 10) -> List[Dict[str, Any]]:
    return _pg.list_recent_competitions(limit=limit)


def count_disciplines() -> int:
    return _pg.count_disciplines()
