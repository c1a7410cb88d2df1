from __future__ import annotations

import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import check_password_hash

from app.caixa.db import db_session
from app.caixa.models import User
from app.caixa.security import ensure_csrf_token, safe_next_url

bp = Blueprint("auth", __name__)


class LoginThrottle:
    """In-process sliding window of login attempts per client address."""

    def __init__(self, limit: int, window_seconds: int):
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._attempts: dict[str, deque[datetime]] = defaultdict(deque)

    def _prune(self, key: str, now: datetime) -> int:
        attempts = self._attempts.get(key)
        if attempts is None:
            return 0
        while attempts and attempts[0] <= now - self.window:
            attempts.popleft()
        if not attempts:
            del self._attempts[key]
        return len(attempts)

    def blocked(self, key: str) -> bool:
        return self._prune(key, datetime.utcnow()) >= self.limit

    def record(self, key: str) -> None:
        self._attempts[key].append(datetime.utcnow())

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)

    def clear(self) -> None:
        self._attempts.clear()


_login_attempts = LoginThrottle(limit=5, window_seconds=300)


def load_current_user() -> None:
    """
    Resolve g.current_user from the signed session cookie and tag the request
    with g.request_id (log correlation, shown on the 500 page).
    """
    g.request_id = getattr(g, "request_id", None) or uuid.uuid4().hex
    g.current_user = None

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        user = db_session().get(User, int(user_id))
    except (SQLAlchemyError, ValueError) as e:
        current_app.logger.error("Could not load session user (clearing session) request_id=%s: %s", g.request_id, e)
        user = None
    if user is None or not user.is_active:
        session.pop("user_id", None)
        return
    g.current_user = user


@bp.get("/login")
def login_get():
    if getattr(g, "current_user", None):
        return redirect(url_for("finance.dashboard"))
    return render_template("auth/login.html", next=safe_next_url(request.args.get("next")) or "")


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = safe_next_url(request.form.get("next"))
    ip = request.remote_addr or "unknown"

    if _login_attempts.blocked(ip):
        current_app.logger.warning("Login throttled ip=%s email=%s", ip, email)
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    _login_attempts.record(ip)

    user = db_session().query(User).filter(User.email == email).one_or_none()
    if user is None or not user.is_active or not check_password_hash(user.password_hash, password):
        current_app.logger.info("Login failed email=%s ip=%s", email, ip)
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get", next=nxt))

    # Fresh session (and CSRF token) for the signed-in user.
    session.clear()
    session["user_id"] = user.id
    ensure_csrf_token()
    _login_attempts.reset(ip)
    current_app.logger.info("Login ok user_id=%s role=%s", user.id, user.role_key)
    return redirect(nxt or url_for("finance.dashboard"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        current_app.logger.info("Logout user_id=%s", user.id)
    session.clear()
    return redirect(url_for("auth.login_get"))
