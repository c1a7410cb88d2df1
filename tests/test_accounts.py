"""Tests for account management and the own-profile page."""
import pytest
from werkzeug.security import check_password_hash

from app.caixa import create_app
from app.caixa.auth import _login_attempts
from app.caixa.constants import ROLE_ADMIN, ROLE_USER, TX_INCOME
from app.caixa.db import session_scope
from app.caixa.models import Base, User
from app.caixa.modules.categories.models import Category
from app.caixa.modules.categories.service import create_category
from app.caixa.modules.finance.service import create_transaction
from app.caixa.modules.planning.models import PaymentPlan
from app.caixa.modules.planning.service import attach_proof, create_payment_plan
from app.caixa.modules.users.service import (
    AccountError,
    create_user,
    delete_user,
    list_users,
    set_user_active,
    update_my_profile,
    update_user,
)
from app.caixa.seed import ensure_user
from app.caixa.storage import storage_from_config

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


def _login(client, email, password="password1"):
    client.post("/auth/login", data={"email": email, "password": password}, follow_redirects=True)
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF


def _user(s, email) -> User:
    return s.query(User).filter(User.email == email).one()


# ---------- Access ----------
def test_users_page_admin_only(client):
    _login(client, "user@example.com")
    assert client.get("/dashboard/users").status_code == 403

    with session_scope(client.application) as s:
        with pytest.raises(PermissionError):
            list_users(s, _user(s, "user@example.com"))


def test_users_page_lists_accounts(client):
    _login(client, "admin@example.com")
    r = client.get("/dashboard/users")
    assert r.status_code == 200
    assert b"user@example.com" in r.data
    assert b"admin@example.com" in r.data


# ---------- Create ----------
def test_admin_creates_user(client):
    _login(client, "admin@example.com")
    r = client.post(
        "/dashboard/users/new",
        data={
            "csrf_token": CSRF,
            "name": "Treasurer",
            "email": "Treasurer@Example.com",
            "password": "s3cretpass",
            "password_confirm": "s3cretpass",
            "role": "admin",
        },
        follow_redirects=True,
    )
    assert r.status_code == 200
    assert b"Account created for treasurer@example.com." in r.data

    with session_scope(client.application) as s:
        u = _user(s, "treasurer@example.com")
        assert u.role_key == ROLE_ADMIN
        assert check_password_hash(u.password_hash, "s3cretpass")

    client.get("/auth/logout")
    r = client.post("/auth/login", data={"email": "treasurer@example.com", "password": "s3cretpass"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard/")


def test_create_user_password_mismatch(client):
    _login(client, "admin@example.com")
    r = client.post(
        "/dashboard/users/new",
        data={
            "csrf_token": CSRF,
            "name": "X",
            "email": "x@example.com",
            "password": "password1",
            "password_confirm": "password2",
        },
        follow_redirects=True,
    )
    assert b"Passwords do not match." in r.data


@pytest.mark.parametrize(
    "fields,message",
    [
        ({"email": "not-an-email"}, "Invalid email."),
        ({"email": "USER@example.com"}, "already in use"),
        ({"password": "short"}, "at least 8 characters"),
        ({"password": "p" * 129}, "too long"),
        ({"name": ""}, "Name is required."),
        ({"role": "owner"}, "Invalid role."),
    ],
)
def test_create_user_validation(client, fields, message):
    data = {"name": "New", "email": "new@example.com", "password": "password1", "role": ROLE_USER}
    data.update(fields)
    with session_scope(client.application) as s:
        admin = _user(s, "admin@example.com")
        with pytest.raises(AccountError, match=message):
            create_user(s, admin, **data)


# ---------- Update / delete ----------
def test_admin_updates_user(client):
    with session_scope(client.application) as s:
        user_id = _user(s, "user@example.com").id

    _login(client, "admin@example.com")
    r = client.get(f"/dashboard/users/{user_id}")
    assert r.status_code == 200

    r = client.post(
        f"/dashboard/users/{user_id}/update",
        data={
            "csrf_token": CSRF,
            "name": "Renamed",
            "email": "user@example.com",
            "password": "newpassword",
            "role": "admin",
            "is_active": "0",
        },
        follow_redirects=True,
    )
    assert b"Account updated for user@example.com." in r.data

    with session_scope(client.application) as s:
        u = s.get(User, user_id)
        assert u.name == "Renamed"
        assert u.role_key == ROLE_ADMIN
        assert u.is_active is False
        assert check_password_hash(u.password_hash, "newpassword")


def test_admin_cannot_demote_or_deactivate_self(client):
    with session_scope(client.application) as s:
        admin = _user(s, "admin@example.com")
        with pytest.raises(AccountError, match="own administrator role"):
            update_user(s, admin, admin.id, name="Admin", email="admin@example.com", role=ROLE_USER)
        with pytest.raises(AccountError, match="deactivate your own"):
            set_user_active(s, admin, admin.id, False)
        with pytest.raises(AccountError, match="delete your own"):
            delete_user(s, admin, admin.id)


def test_deactivated_user_cannot_log_in(client):
    with session_scope(client.application) as s:
        admin = _user(s, "admin@example.com")
        set_user_active(s, admin, _user(s, "user@example.com").id, False)
        assert s.query(User).filter(User.is_active.is_(False)).count() == 1

    r = client.post("/auth/login", data={"email": "user@example.com", "password": "password1"}, follow_redirects=True)
    assert b"Invalid credentials." in r.data


def test_delete_user_removes_plans_and_categories(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        create_category(s, user, "Misc")
        create_payment_plan(s, user, {"name": "Venue", "value": "100", "due_date": "2026-06-01"})
        user_id = user.id

    _login(client, "admin@example.com")
    r = client.post(f"/dashboard/users/{user_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"User deleted." in r.data

    with session_scope(client.application) as s:
        assert s.get(User, user_id) is None
        assert s.query(Category).count() == 0
        assert s.query(PaymentPlan).count() == 0


def test_delete_user_removes_stored_proofs(client, tmp_path):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        plan = create_payment_plan(s, user, {"name": "Venue", "value": "100", "due_date": "2026-06-01"})
        attach_proof(
            s,
            user,
            plan.id,
            file_bytes=b"%PDF-1.4 venue",
            filename="venue.pdf",
            content_type="application/pdf",
            storage=storage_from_config(client.application.config),
        )
        key = plan.proof_storage_key
        user_id = user.id
    assert (tmp_path / "storage" / key).exists()

    _login(client, "admin@example.com")
    r = client.post(f"/dashboard/users/{user_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"User deleted." in r.data
    assert not (tmp_path / "storage" / key).exists()


def test_delete_user_with_transactions_refused(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        cat = create_category(s, user, "Misc")
        create_transaction(s, user, tx_type=TX_INCOME, amount="5", category_id=cat.id)
        user_id = user.id

    _login(client, "admin@example.com")
    r = client.post(f"/dashboard/users/{user_id}/delete", data={"csrf_token": CSRF}, follow_redirects=True)
    assert b"Cannot delete a user who has recorded transactions." in r.data

    with session_scope(client.application) as s:
        assert s.get(User, user_id) is not None


# ---------- Own profile ----------
def test_profile_update_name_and_email(client):
    _login(client, "user@example.com")
    r = client.get("/dashboard/me")
    assert r.status_code == 200
    assert b"transactions.create" in r.data

    r = client.post(
        "/dashboard/me",
        data={"csrf_token": CSRF, "name": "Jo", "email": "jo@example.com"},
        follow_redirects=True,
    )
    assert b"Profile updated." in r.data

    with session_scope(client.application) as s:
        assert _user(s, "jo@example.com").name == "Jo"


def test_profile_password_change_requires_current_password(client):
    with session_scope(client.application) as s:
        user = _user(s, "user@example.com")
        with pytest.raises(AccountError, match="Current password is required"):
            update_my_profile(s, user, name="U", email=user.email, new_password="brandnewpw")
        with pytest.raises(AccountError, match="Current password is incorrect."):
            update_my_profile(s, user, name="U", email=user.email, current_password="wrong", new_password="brandnewpw")
        with pytest.raises(AccountError, match="already in use"):
            update_my_profile(s, user, name="U", email="admin@example.com")

    _login(client, "user@example.com")
    r = client.post(
        "/dashboard/me",
        data={
            "csrf_token": CSRF,
            "name": "Regular User",
            "email": "user@example.com",
            "current_password": "password1",
            "new_password": "brandnewpw",
        },
        follow_redirects=True,
    )
    assert b"Profile updated." in r.data

    client.get("/auth/logout")
    r = client.post("/auth/login", data={"email": "user@example.com", "password": "brandnewpw"})
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/dashboard/")
