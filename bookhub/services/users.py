"""User administration and profiles."""
from __future__ import annotations

import logging
import re
import secrets
import string
import time

from werkzeug.security import generate_password_hash

from .. import messages
from ..errors import Conflict, InvalidPayload, NotFound
from ..extensions import db
from ..models import USER_ROLES, AuthAccount, User
from ..timeutils import parse_date, utc_naive_now
from .email import is_fake_email

logger = logging.getLogger(__name__)

ROLE_GROUPS = {
    "staff_admin": ("staff", "admin"),
    "staff_manager": ("staff", "manager"),
    "providers": ("staff", "manager", "admin"),
}

PROFILE_FIELDS = (
    "full_name",
    "phone_number",
    "post_code",
    "birthday",
    "gender",
    "address",
    "emergency_contact",
    "location_id",
)

TEMP_PASSWORD_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*"
MIN_PASSWORD_LENGTH = 6


def generate_temporary_password(length: int = 12) -> str:
    return "".join(secrets.choice(TEMP_PASSWORD_ALPHABET) for _ in range(length))


def placeholder_email(seed: str) -> str:
    """Address for accounts created without a mailbox, e.g. phone sign-ups."""
    slug = re.sub(r"[^a-z0-9]+", "", (seed or "user").lower()) or "user"
    return f"{slug}_{int(time.time() * 1000)}@temp.local"


def validate_password(password: str | None) -> str:
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidPayload(messages.PASSWORD_TOO_SHORT)
    return password


class UserService:
    def __init__(self, auth=None):
        self.auth = auth

    def get_user(self, user_id: int) -> User:
        user = db.session.get(User, user_id)
        if user is None:
            raise NotFound("user not found")
        return user

    def list_users(self, role: str | None = None) -> list[User]:
        query = User.query
        if role and role != "all":
            roles = ROLE_GROUPS.get(role, (role,))
            if any(name not in USER_ROLES for name in roles):
                raise InvalidPayload(f"unknown role filter: {role}")
            query = query.filter(User.role.in_(roles))
        return query.order_by(User.created_at.desc(), User.id.desc()).all()

    def list_staff(self) -> list[User]:
        return self.list_users("providers")

    def _apply_profile(self, user: User, payload: dict) -> None:
        for field in PROFILE_FIELDS:
            if field not in payload:
                continue
            value = payload[field]
            if field == "birthday":
                parsed = parse_date(value)
                if value not in (None, "") and parsed is None:
                    raise InvalidPayload(messages.INVALID_DATE)
                value = parsed
            elif field == "location_id":
                value = int(value) if value not in (None, "") else None
            elif isinstance(value, str):
                value = value.strip() or None
            setattr(user, field, value)

    def _check_required(self, user: User, required_fields) -> None:
        missing = [field for field in required_fields or [] if hasattr(user, field) and not getattr(user, field)]
        if missing:
            raise InvalidPayload(f"{', '.join(missing)} {messages.FIELD_REQUIRED}")

    def _ensure_unique_email(self, email: str, exclude_id: int | None = None) -> None:
        query = User.query.filter(db.func.lower(User.email) == email.lower())
        if exclude_id is not None:
            query = query.filter(User.id != exclude_id)
        if query.first() is not None:
            raise Conflict(messages.DUPLICATE_EMAIL)

    def create_user(self, payload: dict, required_fields=None, confirmed: bool = True) -> tuple[User, str | None]:
        """Create a user with an auth account; returns the user and any generated password."""
        full_name = (payload.get("full_name") or "").strip()
        if not full_name:
            raise InvalidPayload("full_name is required")
        role = (payload.get("role") or "customer").strip().lower()
        if role not in USER_ROLES:
            raise InvalidPayload(f"role must be one of {', '.join(USER_ROLES)}")

        email = (payload.get("email") or "").strip().lower()
        if not email:
            email = placeholder_email(payload.get("phone_number") or full_name)
        self._ensure_unique_email(email)

        generated = None
        password = payload.get("password")
        if not password:
            password = generated = generate_temporary_password()
        validate_password(password)

        user = User(email=email, full_name=full_name, role=role)
        self._apply_profile(user, {key: value for key, value in payload.items() if key != "full_name"})
        if role == "customer":
            self._check_required(user, [field for field in required_fields or [] if field != "email"])
        user.email_verified = confirmed and not is_fake_email(email)

        db.session.add(user)
        db.session.flush()
        db.session.add(
            AuthAccount(
                user_id=user.id,
                password_hash=generate_password_hash(password),
                confirmed_at=utc_naive_now() if confirmed else None,
            )
        )
        db.session.commit()
        logger.info("Created %s user %s", role, user.id)
        return user, generated

    def update_user(self, user_id: int, payload: dict) -> User:
        user = self.get_user(user_id)
        if "email" in payload:
            email = (payload.get("email") or "").strip().lower()
            if not email:
                raise InvalidPayload(messages.INVALID_EMAIL)
            self._ensure_unique_email(email, exclude_id=user.id)
            user.email = email
        if "role" in payload:
            if payload["role"] not in USER_ROLES:
                raise InvalidPayload(f"role must be one of {', '.join(USER_ROLES)}")
            user.role = payload["role"]
        if "full_name" in payload:
            name = (payload.get("full_name") or "").strip()
            if not name:
                raise InvalidPayload("full_name must not be empty")
            user.full_name = name
        self._apply_profile(user, {key: value for key, value in payload.items() if key != "full_name"})
        db.session.commit()
        return user

    def update_profile(self, user_id: int, payload: dict, required_fields=None) -> User:
        user = self.get_user(user_id)
        if "full_name" in payload:
            name = (payload.get("full_name") or "").strip()
            user.full_name = name
        self._apply_profile(user, {key: value for key, value in payload.items() if key != "full_name"})
        self._check_required(user, required_fields)
        db.session.commit()
        return user

    def delete_users(self, user_ids) -> int:
        if not isinstance(user_ids, (list, tuple)) or not user_ids:
            raise InvalidPayload("ids must be a non-empty list")
        try:
            ids = [int(user_id) for user_id in user_ids]
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("ids must be integers") from exc
        users = User.query.filter(User.id.in_(ids)).all()
        for user in users:
            db.session.delete(user)
        db.session.commit()
        logger.info("Deleted %d user(s)", len(users))
        return len(users)

    def manual_password_reset(self, user_id: int, new_password: str | None = None) -> str:
        """Set a new password directly; a temporary one is generated when none is given."""
        user = self.get_user(user_id)
        password = validate_password(new_password or generate_temporary_password())
        account = user.auth_account
        if account is None:
            account = AuthAccount(user_id=user.id, password_hash="", confirmed_at=utc_naive_now())
            db.session.add(account)
        account.password_hash = generate_password_hash(password)
        db.session.commit()
        logger.info("Password manually reset for user %s", user.id)
        return password

    def send_password_reset(self, user_id: int) -> None:
        user = self.get_user(user_id)
        if is_fake_email(user.email):
            raise InvalidPayload("this account has no real email address; use a manual reset instead")
        self.auth.send_recovery_email(user)
