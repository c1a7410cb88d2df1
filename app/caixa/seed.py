from __future__ import annotations

from sqlalchemy.orm import Session
from werkzeug.security import generate_password_hash

from app.caixa.constants import PERMISSIONS, ROLE_ADMIN, ROLE_USER, USER_PERMISSIONS
from app.caixa.models import Permission, Role, User

_ROLE_NAMES = {ROLE_ADMIN: "Administrator", ROLE_USER: "User"}


def ensure_roles(s: Session) -> dict[str, Role]:
    """
    Create the permission rows and the two roles, idempotently.
    Returns roles keyed by role key.
    """
    perms: dict[str, Permission] = {}
    for key, name in PERMISSIONS.items():
        p = s.query(Permission).filter(Permission.key == key).one_or_none()
        if not p:
            p = Permission(key=key, name=name)
            s.add(p)
        perms[key] = p

    roles: dict[str, Role] = {}
    for role_key, role_name in _ROLE_NAMES.items():
        r = s.query(Role).filter(Role.key == role_key).one_or_none()
        if not r:
            r = Role(key=role_key, name=role_name)
            s.add(r)
        wanted = PERMISSIONS.keys() if role_key == ROLE_ADMIN else USER_PERMISSIONS
        for key in wanted:
            if perms[key] not in r.permissions:
                r.permissions.append(perms[key])
        roles[role_key] = r
    s.flush()
    return roles


def ensure_user(s: Session, *, email: str, password: str, name: str, role_key: str = ROLE_USER) -> User:
    """Create the user if missing. Never overwrites an existing password."""
    roles = ensure_roles(s)
    email = email.strip().lower()
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        user = User(name=name, email=email, password_hash=generate_password_hash(password), is_active=True)
        s.add(user)
    if roles[role_key] not in user.roles:
        user.roles.append(roles[role_key])
    s.flush()
    return user
