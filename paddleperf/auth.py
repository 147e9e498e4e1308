"""Session-cookie authentication.

The signed Flask session cookie carries a small ``UserSession`` dict under the
``user`` key::

    {"user_id": ..., "email": ..., "tier": "free" | "premium" | "pro",
     "first_name": ..., "last_name": ...}

The tier is captured at login time.
"""

from __future__ import annotations

from functools import wraps
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from flask import redirect, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from .datastore import get_user_by_email as ds_get_user_by_email
from .datastore import insert_user as ds_insert_user

SESSION_KEY = "user"
COOKIE_NAME = "__paddle_session"
SESSION_MAX_AGE_DAYS = 30
TIERS = ("free", "premium", "pro")


class UserExistsError(ValueError):
    """Raised when registering an email that already has an account."""


def _user_session_from(user: Dict[str, Any]) -> Dict[str, Any]:
    tier = user.get("tier") or "free"
    return {
        "user_id": str(user.get("id")),
        "email": user.get("email"),
        "tier": tier if tier in TIERS else "free",
        "first_name": user.get("first_name"),
        "last_name": user.get("last_name"),
    }


def safe_redirect_target(target: Optional[str], default: str = "/dashboard") -> str:
    """Return ``target`` only when it is a same-site absolute path."""
    if not target:
        return default
    parsed = urlparse(target)
    if parsed.scheme or parsed.netloc or not target.startswith("/") or target.startswith("//"):
        return default
    return target


def create_user_session(user: Dict[str, Any], redirect_to: str = "/dashboard"):
    session.clear()
    session.permanent = True
    session[SESSION_KEY] = _user_session_from(user)
    return redirect(safe_redirect_target(redirect_to))


def get_user_session() -> Optional[Dict[str, Any]]:
    return session.get(SESSION_KEY) or None


def logout():
    session.clear()
    return redirect("/")


def require_user(view):
    """Redirect anonymous visitors to the login page."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if get_user_session() is None:
            return redirect(url_for("main.login"))
        return view(*args, **kwargs)

    return wrapped


def require_premium(view):
    """Like ``require_user`` but also sends free-tier users to /upgrade."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        user_session = get_user_session()
        if user_session is None:
            return redirect(url_for("main.login"))
        if user_session.get("tier") == "free":
            return redirect(url_for("main.upgrade"))
        return view(*args, **kwargs)

    return wrapped


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    return check_password_hash(password_hash, password)


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(email: str, password: str, first_name: Optional[str] = None,
                last_name: Optional[str] = None) -> Dict[str, Any]:
    email = _normalize_email(email)
    if ds_get_user_by_email(email):
        raise UserExistsError("User already exists")
    return ds_insert_user(
        email,
        hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
    )


def authenticate_user(email: str, password: str) -> Optional[Dict[str, Any]]:
    user = ds_get_user_by_email(_normalize_email(email))
    if not user or user.get("is_active") is False:
        return None
    if not verify_password(password, user.get("password_hash") or ""):
        return None
    return user
