"""Signed tokens and request authentication helpers."""
from __future__ import annotations

from functools import wraps

from flask import current_app, request
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from .errors import Forbidden, Unauthorized
from .extensions import db
from .models import User

# purpose -> (salt, max age in seconds)
TOKEN_PURPOSES = {
    "auth": ("auth-token", 86400),
    "confirm": ("email-confirmation", 86400),
    "recovery": ("password-recovery", 3600),
    "refresh": ("refresh-token", 30 * 86400),
}

STAFF_ROLES = ("staff", "manager", "admin")
ADMIN_ROLES = ("manager", "admin")

ROLE_ROUTES = {
    "customer": "/booking",
    "staff": "/staff",
    "manager": "/admin",
    "admin": "/admin",
}


def _serializer(purpose: str) -> URLSafeTimedSerializer:
    salt, _ = TOKEN_PURPOSES[purpose]
    return URLSafeTimedSerializer(current_app.config["SECRET_KEY"], salt=salt)


def build_token(payload: dict[str, object], purpose: str = "auth") -> str:
    return _serializer(purpose).dumps(payload)


def load_token(token: str, purpose: str = "auth") -> dict[str, object]:
    """Decode a token; raises ``SignatureExpired`` or ``BadSignature``."""
    _, max_age = TOKEN_PURPOSES[purpose]
    return _serializer(purpose).loads(token, max_age=max_age)


def issue_session_tokens(user: User) -> dict[str, object]:
    claims = {"user_id": user.id, "role": user.role}
    return {
        "token": build_token(claims, "auth"),
        "refresh_token": build_token(claims, "refresh"),
        "expires_in": TOKEN_PURPOSES["auth"][1],
    }


def get_jwt_identity() -> int | None:
    """Extract the user id from the ``Authorization: Bearer`` header.

    Returns ``None`` when the header is missing or the token is invalid or
    expired.
    """
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    try:
        payload = load_token(auth_header[7:], "auth")
    except (BadSignature, SignatureExpired):
        return None
    return payload.get("user_id")


def current_user() -> User | None:
    user_id = get_jwt_identity()
    return db.session.get(User, user_id) if user_id is not None else None


def require_user() -> User:
    user = current_user()
    if user is None:
        raise Unauthorized("authentication required")
    return user


def require_roles(*roles: str):
    """Route decorator: the caller must be signed in, with one of ``roles`` if given."""

    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            user = require_user()
            if roles and user.role not in roles:
                raise Forbidden(f"role '{user.role}' may not perform this action")
            return view(*args, **kwargs)

        return wrapper

    return decorator


def ensure_self_or_roles(user_id: int, *roles: str) -> User:
    user = require_user()
    if user.id != user_id and user.role not in roles:
        raise Forbidden("you may only access your own records")
    return user
