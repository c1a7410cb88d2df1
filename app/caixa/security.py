import secrets
from urllib.parse import urlsplit

from flask import Request, session

# Login/logout run before a session (and its token) is trusted.
CSRF_EXEMPT_BLUEPRINTS = frozenset({"auth"})
_MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def csrf_required(req: Request) -> bool:
    return req.method in _MUTATING_METHODS and req.blueprint not in CSRF_EXEMPT_BLUEPRINTS


def validate_csrf(req: Request) -> bool:
    """Token from the X-CSRF-Token header, the form, or a JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        token = (req.get_json(silent=True) or {}).get("csrf_token")

    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def safe_next_url(target: str | None) -> str | None:
    """Return target only if it is a path on this site (no scheme, host or `//`)."""
    target = (target or "").strip()
    if not target.startswith("/") or target.startswith("//") or "\\" in target:
        return None
    parts = urlsplit(target)
    if parts.scheme or parts.netloc:
        return None
    return target
