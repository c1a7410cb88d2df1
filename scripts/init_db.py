import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.caixa.constants import ROLE_ADMIN
from app.caixa.models import User
from app.caixa.seed import ensure_roles, ensure_user
from scripts._db_utils import script_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed permissions/roles/bootstrap admin in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@caixa.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or ""
    is_production = (os.environ.get("ENV") or "").strip().lower() in ("prod", "production")
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = script_database_url(database_url)

    with script_session(db_url) as s:
        ensure_roles(s)
        exists = s.query(User.id).filter(User.email == admin_email).first() is not None
        if not exists and not admin_password:
            if is_production:
                raise RuntimeError("ADMIN_PASSWORD must be set to create the first admin in production.")
            admin_password = "change-me-now"
        ensure_user(s, email=admin_email, password=admin_password, name=admin_name, role_key=ROLE_ADMIN)

    print(f"Seeded roles (admin, user) and admin account {admin_email}.")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
