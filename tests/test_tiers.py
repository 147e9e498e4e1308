import math
import pathlib
import sys
from datetime import datetime

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from paddleperf import tiers


def _session(tier="free", user_id="u-1"):
    return {"user_id": user_id, "email": "p@example.com", "tier": tier, "first_name": None, "last_name": None}


def _views(memory_store, user_id, n, when):
    for _ in range(n):
        memory_store["user_activity"].append(
            {"user_id": user_id, "activity_type": "athlete_view", "resource_id": "1",
             "metadata": None, "created_at": when}
        )


def test_tier_limits_table():
    assert tiers.TIER_LIMITS["free"] == {"athlete_views": 10, "comparisons": 0, "virtual_series": 0}
    assert math.isinf(tiers.TIER_LIMITS["premium"]["athlete_views"])
    assert tiers.TIER_LIMITS["premium"]["virtual_series"] == 5
    assert all(math.isinf(v) for v in tiers.TIER_LIMITS["pro"].values())


def test_check_view_limit_counts_only_today(memory_store):
    now = datetime(2025, 7, 18, 15, 30)
    _views(memory_store, "u-1", 9, datetime(2025, 7, 18, 0, 0))
    _views(memory_store, "u-1", 5, datetime(2025, 7, 17, 23, 59))
    assert tiers.check_view_limit(_session(), "athlete_view", now=now) is True
    _views(memory_store, "u-1", 1, datetime(2025, 7, 18, 9, 0))
    assert tiers.check_view_limit(_session(), "athlete_view", now=now) is False


def test_check_view_limit_is_per_user(memory_store):
    now = datetime(2025, 7, 18, 12)
    _views(memory_store, "someone-else", 10, now)
    assert tiers.check_view_limit(_session(), "athlete_view", now=now) is True


def test_free_tier_has_no_comparisons(memory_store):
    assert tiers.check_view_limit(_session(), "comparison_view") is False


def test_paid_tiers_are_unlimited(memory_store):
    now = datetime(2025, 7, 18, 12)
    _views(memory_store, "u-1", 50, now)
    assert tiers.check_view_limit(_session("premium"), "athlete_view", now=now) is True
    assert tiers.check_view_limit(_session("pro"), "comparison_view", now=now) is True


def test_check_view_limit_rejects_unlimited_activity_type():
    with pytest.raises(ValueError):
        tiers.check_view_limit(_session(), "result_view")


def test_views_remaining(memory_store):
    now = datetime(2025, 7, 18, 12)
    assert math.isinf(tiers.views_remaining(None))
    assert math.isinf(tiers.views_remaining(_session("pro")))
    assert tiers.views_remaining(_session(), now=now) == 10
    _views(memory_store, "u-1", 7, now)
    assert tiers.views_remaining(_session(), now=now) == 3
    _views(memory_store, "u-1", 5, now)
    assert tiers.views_remaining(_session(), now=now) == 0


def test_track_activity_records_row(memory_store):
    tiers.track_activity(_session(), "athlete_view", resource_id=42, metadata={"source": "search"})
    row = memory_store["user_activity"][0]
    assert row["user_id"] == "u-1"
    assert row["resource_id"] == "42"
    assert row["metadata"] == {"source": "search"}


def test_track_activity_rejects_unknown_type():
    with pytest.raises(ValueError):
        tiers.track_activity(_session(), "profile_edit")


def test_can_user_view_athlete_reasons(memory_store):
    now = datetime(2025, 7, 18, 12)
    assert tiers.can_user_view_athlete(None, 999) == (False, "not_found")
    assert tiers.can_user_view_athlete(None, 1) == (True, None)
    assert tiers.can_user_view_athlete(None, 2) == (False, "private_athlete")
    assert tiers.can_user_view_athlete(_session(), 2, now=now) == (True, None)


def test_can_user_view_athlete_limit_and_link(memory_store):
    now = datetime(2025, 7, 18, 12)
    _views(memory_store, "u-1", 10, now)
    assert tiers.can_user_view_athlete(_session(), 1, now=now) == (False, "view_limit_exceeded")
    memory_store["user_athlete_links"].append({"user_id": "u-1", "athlete_id": 1})
    assert tiers.can_user_view_athlete(_session(), 1, now=now) == (True, None)
    assert tiers.can_user_view_athlete(_session("premium"), 2, now=now) == (True, None)


def test_banner_state_thresholds():
    assert tiers.banner_state(0) == "exhausted"
    assert tiers.banner_state(-1) == "exhausted"
    assert tiers.banner_state(3) == "warning"
    assert tiers.banner_state(1) == "warning"
    assert tiers.banner_state(4) is None


def test_result_limit_for():
    assert tiers.result_limit_for(None) == 10
    assert tiers.result_limit_for(_session()) == 10
    assert tiers.result_limit_for(_session("premium")) == 100
