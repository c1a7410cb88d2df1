#!/usr/bin/env python3
"""Create a user, or set the role of an existing one (idempotent).

Usage:
  python scripts/create_user.py --email ana@example.com --name "Ana" --role admin
  (password is read from --password or CREATE_USER_PASSWORD)
"""

import argparse
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.caixa.constants import PASSWORD_MIN, ROLE_KEYS, ROLE_USER
from app.caixa.models import User
from app.caixa.seed import ensure_roles, ensure_user
from app.caixa.utils import is_valid_email
from scripts._db_utils import script_database_url, script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="Login email")
    parser.add_argument("--name", default="", help="Display name")
    parser.add_argument("--password", default=None, help="Initial password (new users only)")
    parser.add_argument("--role", choices=ROLE_KEYS, default=ROLE_USER)
    args = parser.parse_args()

    email = args.email.strip().lower()
    if not is_valid_email(email):
        print(f"Invalid email: {args.email}")
        sys.exit(2)

    db_url = script_database_url()
    with script_session(db_url) as s:
        roles = ensure_roles(s)
        user = s.query(User).filter(User.email == email).one_or_none()
        if user:
            user.roles.clear()
            user.roles.append(roles[args.role])
            print(f"User already exists; role set to {args.role}: {email}")
            return

        password = args.password or os.environ.get("CREATE_USER_PASSWORD") or ""
        if len(password) < PASSWORD_MIN:
            print(f"Password must be at least {PASSWORD_MIN} characters.")
            sys.exit(2)
        ensure_user(s, email=email, password=password, name=args.name or email, role_key=args.role)
        print(f"User created ({args.role}): {email}")


if __name__ == "__main__":
    main()
