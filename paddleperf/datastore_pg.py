import os
import json
from contextlib import contextmanager
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import psycopg2
from psycopg2 import pool as pg_pool
from psycopg2 import sql
from psycopg2.extras import RealDictCursor


_POOL: Optional[pg_pool.AbstractConnectionPool] = None

# Primary key column for every table the import/enrichment code may insert into.
_ID_COLUMNS = {
    "people": "person_id",
    "organizations": "organization_id",
    "venues": "venue_id",
    "disciplines": "discipline_id",
    "categories": "category_id",
    "athletes": "athlete_id",
    "competitions": "competition_id",
    "events": "event_id",
    "performances": "performance_id",
    "results": "result_id",
}

_VENUE_COLUMNS = {
    "name", "short_name", "venue_type", "street", "city", "state", "postal_code",
    "country", "latitude", "longitude", "elevation", "website", "description",
}

INDEXED_TABLES = (
    "users", "user_activity", "user_athlete_links", "athletes", "people",
    "competitions", "events", "results", "performances",
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _env_int(name: str, default: Optional[int] = None) -> Optional[int]:
    val = os.environ.get(name)
    if val is None:
        return default
    try:
        return int(val)
    except ValueError:
        return default


def _connect_kwargs() -> Dict[str, Any]:
    """Common connection kwargs: connect_timeout + TCP keepalives.

    Defaults:
      - connect_timeout: 10 seconds (overridable via DB_CONNECT_TIMEOUT)
      - keepalives: enabled unless DB_KEEPALIVES is 0/false
      - keepalive tunables applied if provided (IDLE/INTERVAL/COUNT)
    """
    kwargs: Dict[str, Any] = {"connect_timeout": _env_int("DB_CONNECT_TIMEOUT", 10)}
    ka_env = os.environ.get("DB_KEEPALIVES")
    kwargs["keepalives"] = 0 if ka_env is not None and ka_env.lower() in ("0", "false") else 1
    for env_name, key in (
        ("DB_KEEPALIVES_IDLE", "keepalives_idle"),
        ("DB_KEEPALIVES_INTERVAL", "keepalives_interval"),
        ("DB_KEEPALIVES_COUNT", "keepalives_count"),
    ):
        val = _env_int(env_name)
        if val is not None:
            kwargs[key] = val
    return kwargs


def init_pool(minconn: int = 1, maxconn: int = 10) -> None:
    """Initialize the global connection pool from DATABASE_URL.

    Safe to call multiple times; later calls are ignored once a pool exists.
    """
    global _POOL
    if _POOL is not None:
        return
    url = os.environ.get("DATABASE_URL")
    if not url:
        return
    _POOL = pg_pool.ThreadedConnectionPool(minconn, maxconn, dsn=url, **_connect_kwargs())


def _is_healthy(conn) -> bool:
    try:
        with conn.cursor() as cur:
            cur.execute("SELECT 1")
        if not getattr(conn, "autocommit", False):
            conn.rollback()
        return True
    except (psycopg2.OperationalError, psycopg2.InterfaceError):
        return False


def _rollback_quietly(conn) -> None:
    try:
        conn.rollback()
    except psycopg2.Error:
        pass


@contextmanager
def _get_conn():
    """Yield a pooled connection when a pool exists, else a direct one.

    Pooled connections are pinged first; a broken one is discarded and the
    checkout retried once before giving up.
    """
    url = os.environ.get("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL not set; configure a PostgreSQL connection string")
    if _POOL is None:
        conn = psycopg2.connect(url, **_connect_kwargs())
        try:
            yield conn
        except Exception:
            _rollback_quietly(conn)
            raise
        finally:
            conn.close()
        return

    conn = None
    for _attempt in range(2):
        candidate = _POOL.getconn()
        if _is_healthy(candidate):
            conn = candidate
            break
        _POOL.putconn(candidate, close=True)
    if conn is None:
        raise psycopg2.OperationalError("Failed to acquire healthy DB connection after retry")
    try:
        yield conn
    except Exception:
        _rollback_quietly(conn)
        raise
    finally:
        # status 1 = active, 2 = in transaction, 3 = in error
        if getattr(conn, "closed", 0) == 0 and getattr(conn, "status", 0) in (1, 2, 3):
            _rollback_quietly(conn)
        _POOL.putconn(conn)


def _iso(val) -> Optional[str]:
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date().isoformat()
    if isinstance(val, date):
        return val.isoformat()
    return str(val)


def _fetch_all(query, params: Iterable[Any] = ()) -> List[Dict[str, Any]]:
    with _get_conn() as conn, conn.cursor(cursor_factory=RealDictCursor) as cur:
        cur.execute(query, tuple(params) or None)
        return [dict(r) for r in cur.fetchall() or []]


def _fetch_one(query, params: Iterable[Any] = ()) -> Optional[Dict[str, Any]]:
    rows = _fetch_all(query, params)
    return rows[0] if rows else None


def _scalar(query, params: Iterable[Any] = ()) -> Any:
    with _get_conn() as conn, conn.cursor() as cur:
        cur.execute(query, tuple(params) or None)
        row = cur.fetchone()
    return row[0] if row else None


def _execute(query, params: Iterable[Any] = ()) -> int:
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(query, tuple(params) or None)
            count = cur.rowcount
        conn.commit()
    return count


# ---------------------------------------------------------------- health


def server_info() -> Dict[str, Any]:
    row = _fetch_one("SELECT current_user AS user, current_database() AS database, version() AS version")
    row = row or {}
    return {
        "user": row.get("user"),
        "database": row.get("database"),
        "server_version": (row.get("version") or "").split("\n")[0],
    }


def list_indexes(tables: Iterable[str] = INDEXED_TABLES) -> List[Dict[str, Any]]:
    return _fetch_all(
        """
        SELECT tablename, indexname, indexdef
        FROM pg_indexes
        WHERE schemaname = 'public' AND tablename = ANY(%s)
        ORDER BY tablename, indexname
        """,
        (list(tables),),
    )


# ---------------------------------------------------------------- users


_USER_COLUMNS = "id::text AS id, email, password_hash, first_name, last_name, tier, is_active, created_at"


def get_user_by_email(email: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        f"SELECT {_USER_COLUMNS} FROM users WHERE lower(email) = lower(%s)",
        ((email or "").strip(),),
    )


def insert_user(
    email: str,
    password_hash: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    tier: str = "free",
) -> Dict[str, Any]:
    with _get_conn() as conn:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                f"""
                INSERT INTO users (email, password_hash, first_name, last_name, tier)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING {_USER_COLUMNS}
                """,
                (email, password_hash, first_name, last_name, tier),
            )
            row = dict(cur.fetchone())
        conn.commit()
    return row


def count_user_activity(user_id: str, activity_type: str, since: datetime) -> int:
    val = _scalar(
        """
        SELECT count(*) FROM user_activity
        WHERE user_id::text = %s AND activity_type = %s AND created_at >= %s
        """,
        (str(user_id), activity_type, since),
    )
    return int(val or 0)


def insert_user_activity(
    user_id: str,
    activity_type: str,
    resource_id: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    _execute(
        """
        INSERT INTO user_activity (user_id, activity_type, resource_id, metadata, created_at)
        VALUES (%s, %s, %s, %s, %s)
        """,
        (
            str(user_id),
            activity_type,
            resource_id,
            json.dumps(metadata) if metadata else None,
            _utcnow(),
        ),
    )


def find_user_athlete_link(user_id: str, athlete_id: int) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        """
        SELECT id::text AS id, user_id::text AS user_id, athlete_id, is_owner, is_verified, claimed_at
        FROM user_athlete_links
        WHERE user_id::text = %s AND athlete_id = %s
        LIMIT 1
        """,
        (str(user_id), int(athlete_id)),
    )


def insert_user_athlete_link(user_id: str, athlete_id: int, is_owner: bool = False) -> Dict[str, Any]:
    with _get_conn() as conn:
        with conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(
                """
                INSERT INTO user_athlete_links (user_id, athlete_id, is_owner)
                VALUES (%s, %s, %s)
                RETURNING id::text AS id, user_id::text AS user_id, athlete_id, is_owner, is_verified, claimed_at
                """,
                (str(user_id), int(athlete_id), bool(is_owner)),
            )
            row = dict(cur.fetchone())
        conn.commit()
    return row


# ---------------------------------------------------------------- athletes


def get_athlete(athlete_id: int) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        """
        SELECT a.athlete_id, a.person_id, a.status, a.is_public, a.biography,
               a.website, a.instagram,
               p.first_name, p.last_name, p.display_name, p.gender,
               p.city, p.state, p.country
        FROM athletes a JOIN people p ON p.person_id = a.person_id
        WHERE a.athlete_id = %s
        """,
        (int(athlete_id),),
    )


def search_athletes(query: Optional[str] = None, limit: int = 50) -> List[Dict[str, Any]]:
    params: List[Any] = []
    where = ""
    if query:
        where = "WHERE coalesce(p.display_name, p.first_name || ' ' || p.last_name) ILIKE %s"
        params.append(f"%{query.strip()}%")
    params.append(int(limit))
    return _fetch_all(
        f"""
        SELECT a.athlete_id, p.first_name, p.last_name, p.display_name, p.gender, p.city, p.state,
               (SELECT count(*) FROM results r WHERE r.athlete_id = a.athlete_id) AS results_count
        FROM athletes a JOIN people p ON p.person_id = a.person_id
        {where}
        ORDER BY p.last_name, p.first_name, a.athlete_id
        LIMIT %s
        """,
        params,
    )


def list_athlete_results(athlete_id: int, limit: int) -> List[Dict[str, Any]]:
    rows = _fetch_all(
        """
        SELECT r.result_id, r.overall_place, r.division_place, r.raw_time, r.raw_category,
               pf.ranking_points, pf.time_milliseconds,
               e.name AS event_name,
               coalesce(e.actual_start_time, e.scheduled_start_time) AS event_date,
               c.competition_id, c.name AS competition_name
        FROM results r
        JOIN events e ON e.event_id = r.event_id
        JOIN competitions c ON c.competition_id = e.competition_id
        LEFT JOIN performances pf ON pf.performance_id = r.performance_id
        WHERE r.athlete_id = %s
        ORDER BY event_date DESC NULLS LAST, r.result_id DESC
        LIMIT %s
        """,
        (int(athlete_id), int(limit)),
    )
    for row in rows:
        row["event_date"] = _iso(row.get("event_date"))
    return rows


def count_athlete_results(athlete_id: int) -> int:
    return int(_scalar("SELECT count(*) FROM results WHERE athlete_id = %s", (int(athlete_id),)) or 0)


# ---------------------------------------------------------------- dashboard


def list_recent_competitions(limit: int = 10) -> List[Dict[str, Any]]:
    rows = _fetch_all(
        """
        SELECT competition_id, name, short_name, year, start_date, end_date,
               level, status, promotion_provider, created_at
        FROM competitions
        ORDER BY created_at DESC
        LIMIT %s
        """,
        (int(limit),),
    )
    for row in rows:
        row["start_date"] = _iso(row.get("start_date"))
        row["end_date"] = _iso(row.get("end_date"))
    return rows


def count_disciplines() -> int:
    return int(_scalar("SELECT count(*) FROM disciplines") or 0)


# ---------------------------------------------------------------- import


def insert_row(table: str, fields: Dict[str, Any]) -> int:
    """Insert ``fields`` into ``table`` and return the new primary key."""
    id_column = _ID_COLUMNS.get(table)
    if id_column is None:
        raise ValueError(f"Unsupported table for insert: {table}")
    cols = list(fields.keys())
    query = sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING {}").format(
        sql.Identifier(table),
        sql.SQL(", ").join(sql.Identifier(c) for c in cols),
        sql.SQL(", ").join(sql.Placeholder() * len(cols)),
        sql.Identifier(id_column),
    )
    with _get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute(query, [fields[c] for c in cols])
            new_id = cur.fetchone()[0]
        conn.commit()
    return int(new_id)


def find_discipline_id(code: str) -> Optional[int]:
    return _scalar("SELECT discipline_id FROM disciplines WHERE code = %s", (code,))


def find_category_id(code: str) -> Optional[int]:
    return _scalar("SELECT category_id FROM categories WHERE code = %s", (code,))


def find_venue_id(name: str) -> Optional[int]:
    return _scalar("SELECT venue_id FROM venues WHERE name = %s ORDER BY venue_id LIMIT 1", (name,))


def find_organization_id(email: str) -> Optional[int]:
    return _scalar(
        "SELECT organization_id FROM organizations WHERE email = %s ORDER BY organization_id LIMIT 1",
        (email,),
    )


def find_competition_id(name: str) -> Optional[int]:
    return _scalar(
        "SELECT competition_id FROM competitions WHERE name = %s ORDER BY competition_id LIMIT 1",
        (name,),
    )


def find_event_id(competition_id: int, name: str) -> Optional[int]:
    return _scalar(
        "SELECT event_id FROM events WHERE competition_id = %s AND name = %s ORDER BY event_id LIMIT 1",
        (int(competition_id), name),
    )


def find_person_id(first_name: str, last_name: str) -> Optional[int]:
    return _scalar(
        "SELECT person_id FROM people WHERE first_name = %s AND last_name = %s ORDER BY person_id LIMIT 1",
        (first_name, last_name),
    )


def find_athlete_id_for_person(person_id: int) -> Optional[int]:
    return _scalar(
        "SELECT athlete_id FROM athletes WHERE person_id = %s ORDER BY athlete_id LIMIT 1",
        (int(person_id),),
    )


def table_counts() -> Dict[str, int]:
    out: Dict[str, int] = {}
    for table in ("competitions", "events", "athletes", "results", "performances"):
        out[table] = int(_scalar(sql.SQL("SELECT count(*) FROM {}").format(sql.Identifier(table))) or 0)
    return out


def sample_results(limit: int = 3) -> List[Dict[str, Any]]:
    return _fetch_all(
        """
        SELECT r.raw_time, r.raw_name, pf.calculated_overall_position, pf.ranking_points
        FROM results r LEFT JOIN performances pf ON pf.performance_id = r.performance_id
        ORDER BY r.result_id
        LIMIT %s
        """,
        (int(limit),),
    )


# ---------------------------------------------------------------- weather

# Events inherit their competition's venue when they have none of their own.
_EVENT_VENUE_SELECT = """
    SELECT e.event_id, e.name AS event_name, e.scheduled_start_time AS event_date,
           e.actual_start_time, c.name AS competition_name,
           v.name AS venue_name, v.latitude, v.longitude, v.city, v.state
    FROM events e
    JOIN competitions c ON c.competition_id = e.competition_id
    JOIN venues v ON v.venue_id = coalesce(e.venue_id, c.venue_id)
    WHERE v.latitude IS NOT NULL AND v.longitude IS NOT NULL
      AND e.name NOT ILIKE %s
"""
_VIRTUAL_PATTERN = "%virtual%"


def list_events_needing_weather(limit: int = 1000) -> List[Dict[str, Any]]:
    return _fetch_all(
        _EVENT_VENUE_SELECT + " AND e.weather_conditions IS NULL ORDER BY e.event_id LIMIT %s",
        (_VIRTUAL_PATTERN, int(limit)),
    )


def first_event_with_coordinates() -> Optional[Dict[str, Any]]:
    return _fetch_one(_EVENT_VENUE_SELECT + " ORDER BY e.event_id LIMIT 1", (_VIRTUAL_PATTERN,))


def count_virtual_events() -> int:
    return int(_scalar("SELECT count(*) FROM events WHERE name ILIKE %s", (_VIRTUAL_PATTERN,)) or 0)


def update_event_weather(
    event_id: int,
    weather: Dict[str, Any],
    temperature: Optional[float],
    wind_speed: Optional[float],
    wind_direction: Optional[str],
) -> None:
    _execute(
        """
        UPDATE events
        SET weather_conditions = %s, temperature = %s, wind_speed = %s,
            wind_direction = %s, updated_at = %s
        WHERE event_id = %s
        """,
        (json.dumps(weather), temperature, wind_speed, wind_direction, _utcnow(), int(event_id)),
    )


def count_events_with_weather() -> Dict[str, int]:
    row = _fetch_one(
        """
        SELECT count(*) FILTER (WHERE weather_conditions IS NOT NULL) AS with_weather,
               count(*) AS total
        FROM events
        """
    ) or {}
    return {"with_weather": int(row.get("with_weather") or 0), "total": int(row.get("total") or 0)}


def sample_weather_events(limit: int = 5) -> List[Dict[str, Any]]:
    return _fetch_all(
        """
        SELECT e.name AS event_name, e.temperature, e.wind_speed, e.wind_direction
        FROM events e
        WHERE e.temperature IS NOT NULL
        ORDER BY e.event_id
        LIMIT %s
        """,
        (int(limit),),
    )


# ---------------------------------------------------------------- venues


def find_competition_by_website(url: str) -> Optional[Dict[str, Any]]:
    return _fetch_one(
        "SELECT competition_id, venue_id, name FROM competitions WHERE website = %s ORDER BY competition_id LIMIT 1",
        (url,),
    )


def update_venue(venue_id: int, fields: Dict[str, Any]) -> None:
    unknown = set(fields) - _VENUE_COLUMNS
    if unknown:
        raise ValueError(f"Unknown venue columns: {', '.join(sorted(unknown))}")
    cols = list(fields.keys())
    query = sql.SQL("UPDATE venues SET {}, updated_at = %s WHERE venue_id = %s").format(
        sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(c)) for c in cols)
    )
    _execute(query, [fields[c] for c in cols] + [_utcnow(), int(venue_id)])


def sample_venues(limit: int = 5) -> List[Dict[str, Any]]:
    return _fetch_all(
        """
        SELECT venue_id, name, city, state, latitude, longitude
        FROM venues WHERE latitude IS NOT NULL
        ORDER BY venue_id LIMIT %s
        """,
        (int(limit),),
    )


# ---------------------------------------------------------------- reconciliation


def list_event_keys() -> List[Dict[str, Any]]:
    rows = _fetch_all(
        "SELECT event_id, name, description, scheduled_start_time FROM events ORDER BY event_id"
    )
    return [
        {
            "event_id": r["event_id"],
            "name": r.get("name") or "",
            "description": r.get("description") or "",
            "start_date": _iso(r.get("scheduled_start_time")),
        }
        for r in rows
    ]
