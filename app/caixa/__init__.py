import logging
import os

from dotenv import load_dotenv
from flask import Flask, flash, g, redirect, render_template, request, session, url_for
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from app.caixa.config import PRODUCTION_ENVS, load_config
from app.caixa.db import init_db, teardown_db_session

logger = logging.getLogger(__name__)

# Tables (and late-added columns) the running code depends on.
_EXPECTED_SCHEMA = {
    "users": ("name", "updated_at"),
    "roles": (),
    "permissions": (),
    "categories": (),
    "transactions": ("status", "updated_at"),
    "payment_plans": ("proof_url", "proof_storage_key"),
}

_PUBLIC_PREFIXES = ("/static/", "/health", "/healthz")
_REQUIRED_S3_KEYS = ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL") or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("app.caixa").setLevel(level)
    app.logger.setLevel(level)


def _check_settings(app: Flask) -> None:
    """Refuse to boot production on sqlite or the default secret; warn on half-configured S3."""
    if app.config["ENV"] in PRODUCTION_ENVS:
        db_url = str(app.config.get("DATABASE_URL") or "")
        if not db_url:
            raise RuntimeError("DATABASE_URL is required in production.")
        if db_url.startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if str(app.config.get("SECRET_KEY") or "") in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    if app.config.get("STORAGE_BACKEND") == "s3":
        missing = [key for key in _REQUIRED_S3_KEYS if not app.config.get(key)]
        if missing:
            app.logger.error("S3 storage selected but missing: %s; proof uploads will fail", ", ".join(missing))


def _register_template_helpers(app: Flask) -> None:
    from app.caixa.rbac import user_has_permission
    from app.caixa.security import ensure_csrf_token
    from app.caixa.utils import format_brl

    @app.context_processor
    def _inject_globals() -> dict:
        user = getattr(g, "current_user", None)
        return {
            "csrf_token": ensure_csrf_token(),
            "current_user": user,
            "has_perm": lambda key: user_has_permission(user, key),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "—"
        return value.strftime(format) if hasattr(value, "strftime") else str(value)

    @app.template_filter("money")
    def _money_filter(value) -> str:
        return format_brl(value)


def _register_blueprints(app: Flask) -> None:
    from app.caixa.admin import bp as admin_bp
    from app.caixa.auth import bp as auth_bp
    from app.caixa.modules.categories.admin import bp as categories_bp
    from app.caixa.modules.finance.admin import bp as finance_bp
    from app.caixa.modules.planning.admin import bp as planning_bp
    from app.caixa.routes import bp as routes_bp

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(finance_bp, url_prefix="/dashboard")
    app.register_blueprint(categories_bp, url_prefix="/dashboard")
    app.register_blueprint(admin_bp, url_prefix="/dashboard")
    app.register_blueprint(planning_bp, url_prefix="/planning")


def _missing_schema(app: Flask) -> list[str] | None:
    """Missing tables/columns, or None when the database could not be inspected."""
    try:
        insp = sa_inspect(app.extensions["sqlalchemy_engine"])
        missing: list[str] = []
        for table, columns in _EXPECTED_SCHEMA.items():
            if not insp.has_table(table):
                missing.append(f"{table} (table)")
                continue
            present = {c["name"] for c in insp.get_columns(table)}
            missing.extend(f"{table}.{col}" for col in columns if col not in present)
        return missing
    except SQLAlchemyError:
        app.logger.exception("Schema health check failed")
        return None


def _register_request_hooks(app: Flask) -> None:
    from app.caixa.auth import load_current_user
    from app.caixa.security import csrf_required, ensure_csrf_token, validate_csrf

    # Checked on the first real request so scripts and tests can create tables after create_app().
    schema_state: dict[str, object] = {"checked": False, "missing": []}

    @app.before_request
    def _load_user():
        if request.path.startswith(_PUBLIC_PREFIXES):
            g.current_user = None
            return None
        load_current_user()
        return None

    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        session.permanent = True
        ensure_csrf_token()
        if csrf_required(request) and not validate_csrf(request):
            app.logger.warning("CSRF rejected path=%s request_id=%s", request.path, getattr(g, "request_id", None))
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    @app.before_request
    def _schema_guard():
        if request.path.startswith(_PUBLIC_PREFIXES):
            return None
        if not schema_state["checked"]:
            missing = _missing_schema(app)
            if missing is None:
                return None
            schema_state.update(checked=True, missing=missing)
            if missing:
                app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
        if schema_state["missing"] and getattr(g, "current_user", None):
            return render_template("errors/schema_out_of_date.html", missing=schema_state["missing"]), 500
        return None

    app.teardown_appcontext(teardown_db_session)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def _err_403(e):
        missing = getattr(g, "missing_permission", None)
        app.logger.warning(
            "Forbidden path=%s missing_permission=%s request_id=%s",
            request.path,
            missing,
            getattr(g, "request_id", None),
        )
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _err_413(e):
        flash("File too large. Maximum size is 10MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer)
        return redirect(url_for("planning.plans_list"))

    @app.errorhandler(500)
    def _err_500(e):
        rid = getattr(g, "request_id", None)
        app.logger.error("Unhandled error request_id=%s path=%s", rid, request.path, exc_info=getattr(e, "original_exception", e))
        return render_template("errors/500.html", request_id=rid), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    _configure_logging(app)
    _check_settings(app)

    init_db(app)
    if hasattr(os, "register_at_fork"):
        # gunicorn --preload forks workers; pooled connections must not cross the fork.
        os.register_at_fork(after_in_child=app.extensions["sqlalchemy_engine"].dispose)

    _register_template_helpers(app)
    _register_blueprints(app)
    _register_request_hooks(app)
    _register_error_handlers(app)

    logger.info("create_app() complete env=%s storage=%s", app.config["ENV"], app.config["STORAGE_BACKEND"])
    return app
