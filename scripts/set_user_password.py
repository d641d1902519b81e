"""Utility to seed or update user account passwords for local development."""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure the project root is on sys.path so ``bookhub`` can be imported when the script is executed directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bookhub import create_app
from bookhub.extensions import db
from bookhub.models import USER_ROLES, AuthAccount, User
from bookhub.timeutils import utc_naive_now

DEFAULT_NAMES = {
    "customer": "Customer User",
    "staff": "Staff User",
    "manager": "Manager User",
    "admin": "Admin User",
}


def set_password(email: str, password: str, role: str = "admin") -> None:
    app = create_app()

    with app.app_context():
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(full_name=DEFAULT_NAMES[role], email=email, role=role, email_verified=True)
            db.session.add(user)
            db.session.flush()
            print(f"Created new {role} user: {email}")
        elif user.role != role:
            print(f"Updating user role from '{user.role}' to '{role}'")
            user.role = role

        account = db.session.get(AuthAccount, user.id)
        if account is None:
            account = AuthAccount(user_id=user.id, password_hash="")
            db.session.add(account)
            print(f"Created auth account for user: {email}")

        account.password_hash = generate_password_hash(password)
        # Accounts set up from the command line skip email confirmation
        account.confirmed_at = account.confirmed_at or utc_naive_now()
        db.session.commit()

        print(f"Password for {role} user '{email}' has been set successfully.")


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Set a user password for local testing.")
    parser.add_argument("email", help="User email address")
    parser.add_argument("password", help="Plain-text password to hash and store")
    parser.add_argument(
        "--role",
        choices=USER_ROLES,
        default="admin",
        help="User role (default: admin)",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    set_password(args.email, args.password, args.role)


if __name__ == "__main__":
    main()
