"""Tests for user administration and profiles."""
from __future__ import annotations

from unittest.mock import patch

from werkzeug.security import check_password_hash

from bookhub.extensions import db
from bookhub.models import User
from bookhub.services.users import generate_temporary_password, placeholder_email


def test_admin_creates_user_with_generated_password(client, admin, auth_headers):
    response = client.post(
        "/users",
        json={"email": "Kim@Example.com", "full_name": "Kim Colour", "role": "staff"},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    body = response.get_json()
    assert body["user"]["email"] == "kim@example.com"
    assert body["user"]["email_verified"] is True
    password = body["temporary_password"]
    assert len(password) == 12
    user = db.session.get(User, body["user"]["id"])
    assert check_password_hash(user.auth_account.password_hash, password)
    assert user.auth_account.confirmed_at is not None


def test_customer_creation_checks_required_fields(client, admin, auth_headers):
    missing = client.post("/users", json={"email": "new@example.com", "full_name": "New Person"}, headers=auth_headers(admin))
    staff = client.post(
        "/users", json={"email": "crew@example.com", "full_name": "Crew Member", "role": "staff"}, headers=auth_headers(admin)
    )

    assert missing.status_code == 400
    assert missing.get_json()["message"] == "post_code is required"
    assert staff.status_code == 201


def test_user_without_email_gets_placeholder(client, admin, auth_headers):
    response = client.post(
        "/users",
        json={"full_name": "Walk In", "phone_number": "+61400000123", "post_code": "2000", "password": "secret123"},
        headers=auth_headers(admin),
    )

    body = response.get_json()
    assert body["user"]["email"].startswith("61400000123_")
    assert body["user"]["email"].endswith("@temp.local")
    assert body["user"]["email_verified"] is False
    assert "temporary_password" not in body


def test_create_user_rejects_bad_input(client, admin, customer, auth_headers):
    headers = auth_headers(admin)

    assert client.post("/users", json={"full_name": "X", "email": customer.email}, headers=headers).status_code == 409
    assert client.post("/users", json={"full_name": "X", "email": "x@example.com", "role": "owner"}, headers=headers).status_code == 400
    assert client.post("/users", json={"email": "x@example.com"}, headers=headers).status_code == 400
    assert client.post("/users", json={"full_name": "X", "role": "staff", "password": "abc"}, headers=headers).status_code == 400


def test_user_admin_requires_admin_role(client, staff_member, customer, auth_headers):
    assert client.get("/users", headers=auth_headers(staff_member)).status_code == 403
    assert client.get("/users").status_code == 401
    assert client.get(f"/users/{customer.id}", headers=auth_headers(customer)).status_code == 200
    assert client.get(f"/users/{staff_member.id}", headers=auth_headers(customer)).status_code == 403


def test_list_users_by_role_group(client, admin, staff_member, customer, make_user, auth_headers):
    manager = make_user("manager")
    headers = auth_headers(admin)

    def ids(role):
        return sorted(user["id"] for user in client.get(f"/users?role={role}", headers=headers).get_json()["users"])

    assert ids("customer") == [customer.id]
    assert ids("staff_admin") == sorted([admin.id, staff_member.id])
    assert ids("providers") == sorted([admin.id, staff_member.id, manager.id])
    assert len(ids("all")) == 4
    assert client.get("/users?role=owner", headers=headers).status_code == 400


def test_update_user_and_delete(client, admin, customer, staff_member, auth_headers):
    headers = auth_headers(admin)

    updated = client.put(f"/users/{customer.id}", json={"role": "staff", "full_name": "Carla Cutter"}, headers=headers)
    taken = client.put(f"/users/{customer.id}", json={"email": staff_member.email}, headers=headers)
    deleted = client.delete("/users", json={"ids": [customer.id]}, headers=headers)

    assert updated.get_json()["user"]["role"] == "staff"
    assert updated.get_json()["user"]["full_name"] == "Carla Cutter"
    assert taken.status_code == 409
    assert deleted.get_json()["deleted"] == 1
    assert db.session.get(User, customer.id) is None


def test_profile_update_enforces_required_fields_for_customers(client, customer, staff_member, auth_headers):
    headers = auth_headers(customer)

    ok = client.put(
        f"/users/{customer.id}/profile",
        json={"birthday": "1990-02-03", "gender": "female", "address": " 1 Main St "},
        headers=headers,
    )
    cleared = client.put(f"/users/{customer.id}/profile", json={"post_code": ""}, headers=headers)
    bad_date = client.put(f"/users/{customer.id}/profile", json={"birthday": "03/02/1990"}, headers=headers)
    staff_clear = client.put(f"/users/{staff_member.id}/profile", json={"post_code": ""}, headers=auth_headers(staff_member))

    profile = ok.get_json()["profile"]
    assert profile["birthday"] == "1990-02-03"
    assert profile["address"] == "1 Main St"
    assert cleared.status_code == 400
    assert bad_date.status_code == 400
    assert staff_clear.status_code == 200


def test_profile_lists_required_fields(client, customer, auth_headers):
    body = client.get(f"/users/{customer.id}/profile", headers=auth_headers(customer)).get_json()

    assert body["required_fields"] == ["email", "full_name", "post_code"]
    assert body["profile"]["post_code"] == "2000"


def test_manual_password_reset(client, admin, customer, auth_headers):
    response = client.post(f"/users/{customer.id}/reset-password", json={"mode": "manual"}, headers=auth_headers(admin))

    password = response.get_json()["password"]
    assert check_password_hash(db.session.get(User, customer.id).auth_account.password_hash, password)
    assert client.post("/auth/signin", json={"email": customer.email, "password": password}).status_code == 200


def test_email_password_reset(client, services, admin, customer, make_user, auth_headers):
    placeholder = make_user("customer", email="61400000555_1700000000000@temp.local")

    with patch.object(services.email, "send_template") as send_template:
        sent = client.post(f"/users/{customer.id}/reset-password", json={"mode": "email"}, headers=auth_headers(admin))
    refused = client.post(f"/users/{placeholder.id}/reset-password", json={"mode": "email"}, headers=auth_headers(admin))

    assert sent.status_code == 200
    assert send_template.call_args.args[0] == customer.email
    assert refused.status_code == 400


def test_staff_listing(client, customer, staff_member, admin, auth_headers):
    staff = client.get("/staff", headers=auth_headers(customer)).get_json()["staff"]

    assert sorted(member["id"] for member in staff) == sorted([staff_member.id, admin.id])
    assert set(staff[0]) == {"id", "full_name", "email", "role", "phone_number"}


def test_password_helpers() -> None:
    assert len(generate_temporary_password()) == 12
    assert placeholder_email("+61 400 000 999").startswith("61400000999_")
