"""Tests for presence sessions and the connected users report."""
from __future__ import annotations

import re
from datetime import timedelta

from bookhub.extensions import db
from bookhub.models import UserSession
from bookhub.services.sessions import new_session_id
from bookhub.timeutils import utc_naive_now


def test_session_id_format() -> None:
    assert re.fullmatch(r"42_\d{13}_[a-z0-9]{9}", new_session_id(42))


def test_session_lifecycle(client, customer, auth_headers):
    headers = {**auth_headers(customer), "User-Agent": "pytest-browser"}

    created = client.post("/sessions", headers=headers)
    session_id = created.get_json()["session"]["session_id"]
    beat = client.put(f"/sessions/{session_id}/heartbeat", headers=headers)
    ended = client.post(f"/sessions/{session_id}/end", headers=headers)

    assert created.status_code == 201
    assert created.get_json()["session"]["browser_info"] == "pytest-browser"
    assert beat.get_json()["session"]["is_active"] is True
    assert ended.get_json()["session"]["is_active"] is False


def test_cannot_touch_other_users_session(client, services, customer, make_user, admin, auth_headers):
    session = services.sessions.create_session(customer)
    other = make_user("customer")

    assert client.put(f"/sessions/{session.session_id}/heartbeat", headers=auth_headers(other)).status_code == 403
    assert client.post(f"/sessions/{session.session_id}/end", headers=auth_headers(admin)).status_code == 200
    assert client.put("/sessions/missing/heartbeat", headers=auth_headers(other)).status_code == 404


def test_connected_users_keeps_latest_session_per_user(client, services, customer, staff_member, admin, auth_headers):
    older = services.sessions.create_session(customer, "laptop")
    newer = services.sessions.create_session(customer, "phone")
    older.last_activity = utc_naive_now() - timedelta(minutes=10)
    staff_session = services.sessions.create_session(staff_member)
    services.sessions.deactivate(staff_session.session_id)
    db.session.commit()

    report = client.get("/reports/connected-users", headers=auth_headers(admin)).get_json()

    assert [entry["session_id"] for entry in report["connected"]] == [newer.session_id]
    assert [entry["session_id"] for entry in report["disconnected"]] == [staff_session.session_id]


def test_report_is_admin_only(client, staff_member, auth_headers):
    assert client.get("/reports/connected-users", headers=auth_headers(staff_member)).status_code == 403


def test_delete_sessions(client, services, customer, staff_member, admin, auth_headers):
    first = services.sessions.create_session(customer)
    second = services.sessions.create_session(staff_member)
    third = services.sessions.create_session(admin)
    services.sessions.deactivate(third.session_id)
    headers = auth_headers(admin)

    bulk = client.delete("/reports/sessions", json={"session_ids": [first.session_id, "missing"]}, headers=headers)
    single = client.delete(f"/reports/sessions/{second.session_id}", headers=headers)
    cleared = client.delete("/reports/sessions/disconnected", headers=headers)
    invalid = client.delete("/reports/sessions", json={"session_ids": "all"}, headers=headers)

    assert bulk.get_json()["deleted"] == 1
    assert single.get_json()["deleted"] == 1
    assert cleared.get_json()["deleted"] == 1
    assert invalid.status_code == 400
    assert UserSession.query.count() == 0


def test_signout_without_session_id_ends_all(client, services, customer, auth_headers):
    services.sessions.create_session(customer)
    services.sessions.create_session(customer)

    client.post("/auth/signout", json={}, headers=auth_headers(customer))

    assert UserSession.query.filter_by(is_active=True).count() == 0
