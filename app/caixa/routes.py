from flask import Blueprint, current_app, g, redirect, url_for
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    if getattr(g, "current_user", None):
        return redirect(url_for("finance.dashboard"))
    return redirect(url_for("auth.login_get"))


@bp.get("/health")
def health():
    """Liveness plus a `SELECT 1` against the database. 503 when the DB is unreachable."""
    try:
        with current_app.extensions["sqlalchemy_engine"].connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        current_app.logger.error("Health check: database unreachable: %s", e)
        return {"ok": False, "db": "error"}, 503
    return {"ok": True, "db": "ok"}


@bp.get("/healthz")
def healthz():
    """Container probe. No DB access."""
    return "ok", 200
