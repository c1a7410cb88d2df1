from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.security import check_password_hash, generate_password_hash

from app.caixa.constants import PASSWORD_MAX, PASSWORD_MIN, ROLE_ADMIN, ROLE_KEYS, ROLE_USER, USER_NAME_MAX
from app.caixa.models import Role, User
from app.caixa.modules.categories.models import Category
from app.caixa.modules.finance.models import Transaction
from app.caixa.modules.planning.models import PaymentPlan
from app.caixa.rbac import user_has_permission
from app.caixa.utils import is_valid_email, sanitize_text

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class AccountError(ValueError):
    pass


def _require_admin(actor: User) -> None:
    if not user_has_permission(actor, "users.manage"):
        raise PermissionError("You do not have permission to manage users.")


def _validate_name(name: str | None) -> str:
    raw = (name or "").strip()
    if not raw:
        raise AccountError("Name is required.")
    if len(raw) > USER_NAME_MAX:
        raise AccountError(f"Name is too long (maximum {USER_NAME_MAX} characters).")
    return sanitize_text(raw, USER_NAME_MAX)


def _validate_email(s: "Session", email: str | None, *, exclude_user_id: int | None = None) -> str:
    clean = (email or "").strip().lower()
    if not is_valid_email(clean):
        raise AccountError("Invalid email.")
    q = s.query(User).filter(User.email == clean)
    if exclude_user_id is not None:
        q = q.filter(User.id != exclude_user_id)
    if q.first():
        raise AccountError("This email is already in use by another user.")
    return clean


def _validate_password(password: str, label: str = "Password") -> None:
    if len(password) < PASSWORD_MIN:
        raise AccountError(f"{label} must be at least {PASSWORD_MIN} characters.")
    if len(password) > PASSWORD_MAX:
        raise AccountError(f"{label} is too long (maximum {PASSWORD_MAX} characters).")


def _role(s: "Session", role_key: str) -> Role:
    if role_key not in ROLE_KEYS:
        raise AccountError("Invalid role. Must be user or admin.")
    role = s.query(Role).filter(Role.key == role_key).one_or_none()
    if not role:
        raise AccountError(f"Role {role_key!r} is not seeded; run scripts/init_db.py.")
    return role


def _set_role(s: "Session", user: User, role_key: str) -> None:
    role = _role(s, role_key)
    user.roles.clear()
    user.roles.append(role)


def list_users(s: "Session", actor: User) -> list[User]:
    _require_admin(actor)
    return s.query(User).order_by(User.created_at.desc(), User.id.desc()).all()


def create_user(
    s: "Session",
    actor: User,
    *,
    name: str | None,
    email: str | None,
    password: str | None,
    role: str | None = None,
) -> User:
    _require_admin(actor)
    clean_name = _validate_name(name)
    clean_email = _validate_email(s, email)
    _validate_password(password or "")
    role_key = (role or ROLE_USER).strip().lower()
    role_obj = _role(s, role_key)

    now = datetime.utcnow()
    user = User(
        name=clean_name,
        email=clean_email,
        password_hash=generate_password_hash(password or ""),
        is_active=True,
        created_at=now,
        updated_at=now,
    )
    user.roles.append(role_obj)
    s.add(user)
    s.flush()
    logger.info("User created id=%s role=%s by user_id=%s", user.id, role_key, actor.id)
    return user


def update_user(
    s: "Session",
    actor: User,
    user_id: int,
    *,
    name: str | None,
    email: str | None,
    password: str | None = None,
    role: str | None = None,
) -> User:
    _require_admin(actor)
    user = s.get(User, user_id)
    if not user:
        raise AccountError("User not found.")

    clean_name = _validate_name(name)
    clean_email = _validate_email(s, email, exclude_user_id=user.id)
    if password:
        _validate_password(password)

    role_key = (role or "").strip().lower()
    if role_key:
        _role(s, role_key)
        if user.id == actor.id and role_key != ROLE_ADMIN:
            raise AccountError("You cannot remove your own administrator role.")

    user.name = clean_name
    user.email = clean_email
    if role_key and role_key != user.role_key:
        _set_role(s, user, role_key)
    if password:
        user.password_hash = generate_password_hash(password)
    user.updated_at = datetime.utcnow()
    s.flush()
    logger.info("User updated id=%s by user_id=%s password_changed=%s", user.id, actor.id, bool(password))
    return user


def delete_user(s: "Session", actor: User, user_id: int) -> list[str]:
    """
    Delete an account without transactions, together with its plans and
    categories. Returns the proof storage keys of the deleted plans, to be
    removed after commit.
    """
    _require_admin(actor)
    user = s.get(User, user_id)
    if not user:
        raise AccountError("User not found.")
    if user.id == actor.id:
        raise AccountError("You cannot delete your own account.")
    if s.query(Transaction.id).filter(Transaction.created_by_user_id == user.id).first():
        raise AccountError("Cannot delete a user who has recorded transactions. Deactivate the account instead.")

    proof_keys = [
        key
        for (key,) in s.query(PaymentPlan.proof_storage_key)
        .filter(PaymentPlan.created_by_user_id == user.id)
        .filter(PaymentPlan.proof_storage_key.isnot(None))
    ]
    s.query(PaymentPlan).filter(PaymentPlan.created_by_user_id == user.id).delete(synchronize_session=False)
    s.query(Category).filter(Category.created_by_user_id == user.id).delete(synchronize_session=False)
    user.roles.clear()
    s.delete(user)
    s.flush()
    logger.info("User deleted id=%s by user_id=%s proofs=%s", user_id, actor.id, len(proof_keys))
    return proof_keys


def set_user_active(s: "Session", actor: User, user_id: int, is_active: bool) -> User:
    _require_admin(actor)
    user = s.get(User, user_id)
    if not user:
        raise AccountError("User not found.")
    if user.id == actor.id and not is_active:
        raise AccountError("You cannot deactivate your own account.")
    user.is_active = is_active
    user.updated_at = datetime.utcnow()
    s.flush()
    return user


def update_my_profile(
    s: "Session",
    user: User,
    *,
    name: str | None,
    email: str | None,
    current_password: str | None = None,
    new_password: str | None = None,
) -> User:
    clean_name = _validate_name(name)
    clean_email = _validate_email(s, email, exclude_user_id=user.id)
    if new_password:
        _validate_password(new_password, "New password")
        if not current_password:
            raise AccountError("Current password is required to change the password.")
        if not check_password_hash(user.password_hash, current_password):
            raise AccountError("Current password is incorrect.")

    user.name = clean_name
    user.email = clean_email
    if new_password:
        user.password_hash = generate_password_hash(new_password)
    user.updated_at = datetime.utcnow()
    s.flush()
    logger.info("Profile updated user_id=%s password_changed=%s", user.id, bool(new_password))
    return user
