import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from paddleperf import create_app


def _signed_in_client(memory_store, tier="free", email="paddler@example.com"):
    app = create_app()
    app.config.update(TESTING=True)
    client = app.test_client()
    client.post("/auth/register", data={"email": email, "password": "correct-horse"})
    if tier != "free":
        for u in memory_store["users"]:
            if u["email"] == email:
                u["tier"] = tier
        client.post("/auth/logout")
        client.post("/auth/login", data={"email": email, "password": "correct-horse"})
    return client


def _row_count(res, competition_name="Return to the Pier 2025"):
    return res.get_data(as_text=True).count(competition_name)


def test_anonymous_can_view_public_athlete(client, memory_store, add_results):
    add_results(1, 3)
    res = client.get("/athlete/1")
    assert res.status_code == 200
    body = res.get_data(as_text=True)
    assert "Kai Lenny" in body
    assert _row_count(res) == 3
    # anonymous views are not tracked
    assert memory_store["user_activity"] == []


def test_anonymous_blocked_from_private_athlete(client):
    res = client.get("/athlete/2")
    assert res.status_code == 200
    body = res.get_data(as_text=True)
    assert "Fiona Wylde" not in body
    assert 'id="login-required"' in body
    assert "redirectTo=/athlete/2" in body or "redirectTo=%2Fathlete%2F2" in body


def test_unknown_athlete_is_404(client):
    assert client.get("/athlete/999").status_code == 404


def test_signed_in_user_can_view_private_athlete(memory_store):
    client = _signed_in_client(memory_store)
    res = client.get("/athlete/2")
    assert res.status_code == 200
    assert "Fiona Wylde" in res.get_data(as_text=True)


def test_free_views_are_tracked(memory_store):
    client = _signed_in_client(memory_store)
    client.get("/athlete/1")
    client.get("/athlete/2")
    acts = memory_store["user_activity"]
    assert [a["activity_type"] for a in acts] == ["athlete_view", "athlete_view"]
    assert [a["resource_id"] for a in acts] == ["1", "2"]


def test_warning_banner_when_three_views_left(memory_store):
    client = _signed_in_client(memory_store)
    for _ in range(6):
        res = client.get("/athlete/1")
        assert 'id="view-limit-banner"' not in res.get_data(as_text=True)
    res = client.get("/athlete/1")
    body = res.get_data(as_text=True)
    assert 'id="view-limit-banner"' in body
    assert "3 athlete views remaining today" in body


def test_eleventh_view_is_blocked_for_free_user(memory_store, caplog):
    client = _signed_in_client(memory_store)
    for _ in range(10):
        assert "Kai Lenny" in client.get("/athlete/1").get_data(as_text=True)
    caplog.set_level("INFO")
    res = client.get("/athlete/1")
    assert res.status_code == 200
    body = res.get_data(as_text=True)
    assert "Daily limit reached" in body
    assert "Kai Lenny" not in body
    assert len(memory_store["user_activity"]) == 10
    assert any("reason=view_limit_exceeded" in r.getMessage() for r in caplog.records)


def test_views_from_previous_days_do_not_count(memory_store):
    from datetime import datetime, timedelta

    client = _signed_in_client(memory_store)
    user_id = memory_store["users"][0]["id"]
    yesterday = datetime(2000, 1, 1) + timedelta(hours=12)
    for _ in range(10):
        memory_store["user_activity"].append(
            {"user_id": user_id, "activity_type": "athlete_view", "resource_id": "1",
             "metadata": None, "created_at": yesterday}
        )
    res = client.get("/athlete/1")
    assert "Kai Lenny" in res.get_data(as_text=True)


def test_linked_athlete_bypasses_view_limit(memory_store):
    client = _signed_in_client(memory_store)
    res = client.post("/athlete/1/claim")
    assert res.status_code == 302
    assert len(memory_store["user_athlete_links"]) == 1
    for _ in range(12):
        res = client.get("/athlete/1")
        assert "Kai Lenny" in res.get_data(as_text=True)
    assert "Linked to your account" in res.get_data(as_text=True)
    # the limit still applies to everyone else
    assert "Daily limit reached" in client.get("/athlete/2").get_data(as_text=True)


def test_claim_is_idempotent_and_requires_login(client, memory_store):
    res = client.post("/athlete/1/claim")
    assert res.status_code == 302
    assert "/auth/login" in res.headers["Location"]
    assert memory_store["user_athlete_links"] == []

    signed_in = _signed_in_client(memory_store)
    signed_in.post("/athlete/1/claim")
    signed_in.post("/athlete/1/claim")
    assert len(memory_store["user_athlete_links"]) == 1
    assert signed_in.post("/athlete/999/claim").status_code == 404


def test_free_users_see_ten_results_with_upgrade_note(memory_store, add_results):
    add_results(1, 15)
    client = _signed_in_client(memory_store)
    res = client.get("/athlete/1")
    assert _row_count(res) == 10
    assert 'id="upgrade-note"' in res.get_data(as_text=True)


def test_premium_users_see_full_history_without_limits(memory_store, add_results):
    add_results(1, 15)
    client = _signed_in_client(memory_store, tier="premium")
    for _ in range(12):
        res = client.get("/athlete/1")
        body = res.get_data(as_text=True)
        assert 'id="view-limit-banner"' not in body
    assert _row_count(res) == 15
    assert 'id="upgrade-note"' not in body
