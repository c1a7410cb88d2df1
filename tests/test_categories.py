"""Tests for the Categories module."""
import pytest

from app.caixa import create_app
from app.caixa.auth import _login_attempts
from app.caixa.constants import ROLE_ADMIN, TX_INCOME
from app.caixa.db import session_scope
from app.caixa.models import Base, User
from app.caixa.modules.categories.models import Category
from app.caixa.modules.categories.service import CategoryError, create_category, delete_category
from app.caixa.modules.finance.service import create_transaction
from app.caixa.seed import ensure_user

CSRF = "test-csrf-token"


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
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        ensure_user(s, email="admin@example.com", password="password1", name="Admin", role_key=ROLE_ADMIN)
        ensure_user(s, email="user@example.com", password="password1", name="Regular User")

    return app.test_client()


def _login(client, email):
    client.post("/auth/login", data={"email": email, "password": "password1"}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _user(s, email) -> User:
    return s.query(User).filter(User.email == email).one()


def test_categories_list_requires_auth(client):
    r = client.get("/dashboard/categories")
    assert r.status_code == 302


def test_category_create(client):
    _login(client, "user@example.com")
    r = client.post("/dashboard/categories/new", data={"csrf_token": CSRF, "name": "Office supplies"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Office supplies" in r.data
    assert b"created" in r.data

    with session_scope(client.application) as s:
        cat = s.query(Category).one()
        assert cat.created_by_user_id == _user(s, "user@example.com").id


def test_category_name_unique_per_user_case_insensitive(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        create_category(s, user, "Rent")
        with pytest.raises(CategoryError, match="already exists"):
            create_category(s, user, "  rENT ")

        # Another user may reuse the name
        admin = _user(s, "admin@example.com")
        assert create_category(s, admin, "Rent").id


def test_category_name_validation(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        with pytest.raises(CategoryError, match="required"):
            create_category(s, user, "   ")
        with pytest.raises(CategoryError, match="too long"):
            create_category(s, user, "x" * 101)
        assert create_category(s, user, "x" * 100).name == "x" * 100
        assert create_category(s, user, "<b>Events</b>").name == "Events"


def test_category_with_transactions_cannot_be_deleted(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        cat = create_category(s, user, "Donations")
        create_transaction(s, user, tx_type=TX_INCOME, amount="10", category_id=cat.id)
        cat_id = cat.id

    _login(client, "user@example.com")
    r = client.post(f"/dashboard/categories/{cat_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"Cannot delete a category that has transactions linked to it." in r.data

    with session_scope(client.application) as s:
        assert s.get(Category, cat_id) is not None


def test_category_delete_by_creator(client):
    with session_scope(client.application) as s:
        cat_id = create_category(s, _user(s, "user@example.com"), "Snacks").id

    _login(client, "user@example.com")
    r = client.post(f"/dashboard/categories/{cat_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Category deleted." in r.data

    with session_scope(client.application) as s:
        assert s.get(Category, cat_id) is None


def test_category_delete_by_other_user_forbidden(client):
    with session_scope(client.application) as s:
        cat_id = create_category(s, _user(s, "admin@example.com"), "Payroll").id

    _login(client, "user@example.com")
    r = client.post(f"/dashboard/categories/{cat_id}/delete", data={"csrf_token": CSRF})
    assert r.status_code == 403

    with session_scope(client.application) as s:
        assert s.get(Category, cat_id) is not None
        with pytest.raises(CategoryError, match="not found"):
            delete_category(s, _user(s, "user@example.com"), 9999)
