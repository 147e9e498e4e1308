import pathlib
import sys

from flask import Blueprint

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from paddleperf import create_app
from paddleperf.auth import require_premium, safe_redirect_target


def _register(client, email="paddler@example.com", password="correct-horse"):
    return client.post(
        "/auth/register",
        data={"email": email, "password": password, "first_name": "Pat", "last_name": "Paddler"},
    )


def test_register_creates_free_user_and_signs_in(client, memory_store):
    res = _register(client, email="Paddler@Example.com")
    assert res.status_code == 302
    assert res.headers["Location"].endswith("/dashboard")
    assert len(memory_store["users"]) == 1
    user = memory_store["users"][0]
    assert user["email"] == "paddler@example.com"
    assert user["tier"] == "free"
    assert user["password_hash"] != "correct-horse"

    with client.session_transaction() as sess:
        assert sess["user"]["email"] == "paddler@example.com"
        assert sess["user"]["tier"] == "free"
        assert sess["user"]["user_id"] == user["id"]


def test_session_cookie_attributes(client):
    res = _register(client)
    cookie = res.headers.get("Set-Cookie", "")
    assert cookie.startswith("__paddle_session=")
    assert "HttpOnly" in cookie
    assert "SameSite=Lax" in cookie
    assert "Secure" not in cookie
    assert "Expires=" in cookie


def test_session_cookie_secure_in_production(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    app = create_app()
    assert app.config["SESSION_COOKIE_SECURE"] is True
    assert app.config["PERMANENT_SESSION_LIFETIME"].days == 30


def test_register_rejects_duplicate_email(client, memory_store):
    _register(client)
    client.post("/auth/logout")
    res = _register(client, email="PADDLER@example.com")
    assert res.status_code == 400
    assert b"already exists" in res.data
    assert len(memory_store["users"]) == 1


def test_register_validates_password_length(client, memory_store):
    res = _register(client, password="short")
    assert res.status_code == 400
    assert b"at least 8 characters" in res.data
    assert memory_store["users"] == []


def test_login_with_valid_credentials(client):
    _register(client)
    client.post("/auth/logout")
    res = client.post("/auth/login", data={"email": "paddler@example.com", "password": "correct-horse"})
    assert res.status_code == 302
    assert res.headers["Location"].endswith("/dashboard")


def test_login_rejects_wrong_password(client, caplog):
    _register(client)
    client.post("/auth/logout")
    caplog.set_level("INFO")
    res = client.post("/auth/login", data={"email": "paddler@example.com", "password": "wrong-pass"})
    assert res.status_code == 400
    assert b"Invalid email or password" in res.data
    with client.session_transaction() as sess:
        assert "user" not in sess
    assert any(r.getMessage().startswith("login_rejected") for r in caplog.records)


def test_login_rejects_unknown_email(client):
    res = client.post("/auth/login", data={"email": "nobody@example.com", "password": "whatever1"})
    assert res.status_code == 400


def test_login_requires_both_fields(client):
    res = client.post("/auth/login", data={"email": "paddler@example.com"})
    assert res.status_code == 400
    assert b"required" in res.data


def test_inactive_user_cannot_login(client, memory_store):
    _register(client)
    client.post("/auth/logout")
    memory_store["users"][0]["is_active"] = False
    res = client.post("/auth/login", data={"email": "paddler@example.com", "password": "correct-horse"})
    assert res.status_code == 400


def test_login_honours_local_redirect_target(client):
    _register(client)
    client.post("/auth/logout")
    res = client.post(
        "/auth/login",
        data={"email": "paddler@example.com", "password": "correct-horse", "redirectTo": "/athlete/1"},
    )
    assert res.headers["Location"].endswith("/athlete/1")


def test_login_ignores_offsite_redirect_target(client):
    _register(client)
    client.post("/auth/logout")
    res = client.post(
        "/auth/login",
        data={"email": "paddler@example.com", "password": "correct-horse", "redirectTo": "//evil.example/x"},
    )
    assert res.headers["Location"].endswith("/dashboard")


def test_safe_redirect_target():
    assert safe_redirect_target(None) == "/dashboard"
    assert safe_redirect_target("/athletes?q=kai") == "/athletes?q=kai"
    assert safe_redirect_target("https://evil.example/") == "/dashboard"
    assert safe_redirect_target("//evil.example/") == "/dashboard"
    assert safe_redirect_target("athletes") == "/dashboard"


def test_login_page_redirects_when_signed_in(client):
    _register(client)
    res = client.get("/auth/login")
    assert res.status_code == 302
    assert res.headers["Location"].endswith("/dashboard")


def test_logout_clears_session(client):
    _register(client)
    res = client.post("/auth/logout")
    assert res.status_code == 302
    assert res.headers["Location"].endswith("/")
    with client.session_transaction() as sess:
        assert "user" not in sess


def test_tier_is_captured_at_login(client, memory_store):
    _register(client)
    memory_store["users"][0]["tier"] = "premium"
    with client.session_transaction() as sess:
        assert sess["user"]["tier"] == "free"
    client.post("/auth/logout")
    client.post("/auth/login", data={"email": "paddler@example.com", "password": "correct-horse"})
    with client.session_transaction() as sess:
        assert sess["user"]["tier"] == "premium"


def test_require_premium_sends_free_users_to_upgrade(memory_store):
    app = create_app()
    app.config.update(TESTING=True)
    extra = Blueprint("extra", __name__)

    @extra.route("/compare")
    @require_premium
    def compare():
        return "compare"

    app.register_blueprint(extra)
    with app.test_client() as client:
        res = client.get("/compare")
        assert res.status_code == 302
        assert "/auth/login" in res.headers["Location"]

        _register(client)
        res = client.get("/compare")
        assert res.status_code == 302
        assert res.headers["Location"].endswith("/upgrade")

        memory_store["users"][0]["tier"] = "pro"
        client.post("/auth/logout")
        client.post("/auth/login", data={"email": "paddler@example.com", "password": "correct-horse"})
        res = client.get("/compare")
        assert res.status_code == 200
        assert res.data == b"compare"
