"""pytest fixtures: an app over in-memory SQLite plus user and token helpers."""
from __future__ import annotations

import sys
from datetime import datetime, time, timedelta
from pathlib import Path

import pytest
from werkzeug.security import generate_password_hash

# Ensure the project root is available on sys.path so tests can import the app package.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from bookhub import create_app  # noqa: E402
from bookhub.auth import build_token  # noqa: E402
from bookhub.config import TestingConfig  # noqa: E402
from bookhub.extensions import db  # noqa: E402
from bookhub.models import AuthAccount, Location, Service, User  # noqa: E402
from bookhub.timeutils import local_now, utc_naive_now  # noqa: E402

PASSWORD = "secret123"


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def services(app):
    return app.extensions["bookhub"]


@pytest.fixture
def make_user(app):
    counter = {"n": 0}

    def _make_user(role="customer", email=None, full_name=None, confirmed=True, **fields):
        counter["n"] += 1
        user = User(
            email=email or f"{role}{counter['n']}@example.com",
            full_name=full_name or f"{role.title()} {counter['n']}",
            role=role,
            email_verified=confirmed,
            **fields,
        )
        db.session.add(user)
        db.session.flush()
        db.session.add(
            AuthAccount(
                user_id=user.id,
                password_hash=generate_password_hash(PASSWORD),
                confirmed_at=utc_naive_now() if confirmed else None,
            )
        )
        db.session.commit()
        return user

    return _make_user


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = build_token({"user_id": user.id, "role": user.role}, "auth")
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def admin(make_user):
    return make_user("admin", email="admin@example.com", full_name="Ada Admin")


@pytest.fixture
def staff_member(make_user):
    return make_user("staff", email="sam@example.com", full_name="Sam Stylist")


@pytest.fixture
def customer(make_user):
    return make_user(
        "customer",
        email="carla@example.com",
        full_name="Carla Customer",
        phone_number="+61400000001",
        post_code="2000",
    )


@pytest.fixture
def location(app):
    location = Location(name="Main Studio")
    db.session.add(location)
    db.session.commit()
    return location


@pytest.fixture
def service(app, staff_member):
    service = Service(name="Haircut", description="Wash and cut", price=45, duration=30)
    service.staff = [staff_member]
    db.session.add(service)
    db.session.commit()
    return service


@pytest.fixture
def tomorrow_at():
    """Naive business-local datetime tomorrow at ``hour:minute``."""

    def _at(hour: int, minute: int = 0, days: int = 1) -> datetime:
        return datetime.combine(local_now().date() + timedelta(days=days), time(hour, minute))

    return _at
