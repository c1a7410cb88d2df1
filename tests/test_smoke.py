from datetime import timedelta

import pytest

from app.caixa import create_app
from app.caixa.auth import LoginThrottle, _login_attempts
from app.caixa.constants import ROLE_ADMIN
from app.caixa.db import session_scope
from app.caixa.models import Base
from app.caixa.seed import ensure_user


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY"):
        monkeypatch.delenv(k, raising=False)
    _login_attempts.clear()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        ensure_user(s, email="admin@example.com", password="password1", name="Admin", role_key=ROLE_ADMIN)

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json["ok"] is True

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_root_redirects_to_login_when_anonymous(client):
    r = client.get("/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]


def test_dashboard_requires_login(client):
    r = client.get("/dashboard/")
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert "next=" in r.headers["Location"]


def test_login_and_dashboard_access(client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "password1"}, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard/")

    r = client.get("/dashboard/")
    assert r.status_code == 200
    assert b"Cash balance" in r.data
    assert b"No transactions yet." in r.data

    r = client.get("/")
    assert r.status_code == 302
    assert "/dashboard/" in r.headers["Location"]


def test_login_wrong_password(client):
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "nope"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Invalid credentials." in r.data

    r = client.get("/dashboard/")
    assert r.status_code == 302


def test_login_next_only_allows_local_paths(client):
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "password1", "next": "//evil.example.com/"},
        follow_redirects=False,
    )
    assert r.status_code == 302
    assert "evil.example.com" not in r.headers["Location"]

    client.get("/auth/logout")
    r = client.post(
        "/auth/login",
        data={"email": "admin@example.com", "password": "password1", "next": "/dashboard/categories"},
        follow_redirects=False,
    )
    assert r.headers["Location"].endswith("/dashboard/categories")


def test_login_rate_limited(client):
    for _ in range(5):
        client.post("/auth/login", data={"email": "admin@example.com", "password": "wrong"})
    r = client.post("/auth/login", data={"email": "admin@example.com", "password": "password1"}, follow_redirects=True)
    assert b"Too many login attempts" in r.data


def test_login_throttle_forgets_expired_addresses():
    throttle = LoginThrottle(limit=2, window_seconds=60)
    throttle.record("10.0.0.1")
    throttle.record("10.0.0.1")
    assert throttle.blocked("10.0.0.1")

    for i in range(2):
        throttle._attempts["10.0.0.1"][i] -= timedelta(minutes=5)
    assert not throttle.blocked("10.0.0.1")
    assert "10.0.0.1" not in throttle._attempts

    assert not throttle.blocked("10.0.0.2")
    assert not throttle._attempts


def test_logout_clears_session(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "password1"})
    r = client.get("/auth/logout")
    assert r.status_code == 302
    r = client.get("/dashboard/")
    assert r.status_code == 302


def test_post_without_csrf_token_rejected(client):
    client.post("/auth/login", data={"email": "admin@example.com", "password": "password1"})
    r = client.post("/dashboard/categories/new", data={"name": "Office"})
    assert r.status_code == 400
    assert b"CSRF" in r.data


def test_unknown_page_404(client):
    r = client.get("/does-not-exist")
    assert r.status_code == 404
