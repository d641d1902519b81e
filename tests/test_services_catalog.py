"""Tests for the service catalog and locations."""
from __future__ import annotations

import pytest

from bookhub.extensions import db
from bookhub.models import Location, Service
from bookhub.services.catalog import BLOCKED_SERVICE_NAME
from bookhub.settings import save_settings


def test_create_service_with_staff(client, admin, staff_member, auth_headers):
    response = client.post(
        "/services",
        json={"name": " Colour ", "price": "80.50", "duration": 90, "staff_ids": [staff_member.id, admin.id]},
        headers=auth_headers(admin),
    )

    assert response.status_code == 201
    service = response.get_json()["service"]
    assert service["name"] == "Colour"
    assert service["price"] == 80.5
    assert service["duration"] == 90
    assert sorted(service["staff_ids"]) == sorted([staff_member.id, admin.id])


def test_create_service_uses_settings_defaults(client, admin, auth_headers):
    save_settings("service", {"defaultServiceDuration": 45, "defaultServicePrice": "30"})

    service = client.post("/services", json={"name": "Trim"}, headers=auth_headers(admin)).get_json()["service"]

    assert service["duration"] == 45
    assert service["price"] == 30.0
    assert service["staff_ids"] == []


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"name": BLOCKED_SERVICE_NAME},
        {"name": "Trim", "price": -1},
        {"name": "Trim", "price": "free"},
        {"name": "Trim", "duration": 0},
        {"name": "Trim", "duration": "long"},
        {"name": "Trim", "staff_ids": "all"},
    ],
)
def test_create_service_rejects_bad_payload(client, admin, auth_headers, payload):
    response = client.post("/services", json=payload, headers=auth_headers(admin))

    assert response.status_code == 400
    assert Service.query.count() == 0


def test_staff_ids_must_reference_staff(client, admin, customer, auth_headers):
    customer_assigned = client.post("/services", json={"name": "Trim", "staff_ids": [customer.id]}, headers=auth_headers(admin))
    missing = client.post("/services", json={"name": "Trim", "staff_ids": [9999]}, headers=auth_headers(admin))

    assert customer_assigned.status_code == 400
    assert missing.status_code == 400


def test_update_and_reassign_service(client, admin, staff_member, service, auth_headers):
    headers = auth_headers(admin)

    updated = client.put(f"/services/{service.id}", json={"price": 50, "description": "Deluxe"}, headers=headers)
    reassigned = client.put(f"/services/{service.id}/staff", json={"staff_ids": [admin.id]}, headers=headers)
    blank = client.put(f"/services/{service.id}", json={"name": "  "}, headers=headers)

    assert updated.get_json()["service"]["price"] == 50.0
    assert updated.get_json()["service"]["description"] == "Deluxe"
    assert reassigned.get_json()["service"]["staff_ids"] == [admin.id]
    assert blank.status_code == 400


def test_delete_service(client, admin, service, auth_headers):
    response = client.delete(f"/services/{service.id}", headers=auth_headers(admin))

    assert response.status_code == 200
    assert db.session.get(Service, service.id) is None
    assert client.get(f"/services/{service.id}").status_code == 404


def test_catalog_changes_require_admin(client, staff_member, service, auth_headers):
    assert client.post("/services", json={"name": "Trim"}, headers=auth_headers(staff_member)).status_code == 403
    assert client.delete(f"/services/{service.id}", headers=auth_headers(staff_member)).status_code == 403
    assert client.post("/services", json={"name": "Trim"}).status_code == 401


def test_blocked_sentinel_only_listed_for_staff(client, services, service, customer, staff_member, auth_headers):
    services.catalog.blocked_service()
    db.session.commit()

    def names(**kwargs):
        return [entry["name"] for entry in client.get("/services?include_blocked=1", **kwargs).get_json()["services"]]

    assert names() == ["Haircut"]
    assert names(headers=auth_headers(customer)) == ["Haircut"]
    assert names(headers=auth_headers(staff_member)) == ["Haircut", BLOCKED_SERVICE_NAME]
    assert [entry["name"] for entry in client.get("/services", headers=auth_headers(staff_member)).get_json()["services"]] == [
        "Haircut"
    ]


def test_blocked_service_is_created_once(app, services) -> None:
    first = services.catalog.blocked_service()
    second = services.catalog.blocked_service()

    assert first.id == second.id
    assert Service.query.filter_by(name=BLOCKED_SERVICE_NAME).count() == 1


def test_location_crud(client, admin, auth_headers):
    headers = auth_headers(admin)

    created = client.post("/locations", json={"name": "Harbour Branch"}, headers=headers)
    location_id = created.get_json()["location"]["id"]
    renamed = client.put(f"/locations/{location_id}", json={"name": "Harbour Studio"}, headers=headers)
    listed = client.get("/locations").get_json()["locations"]
    deleted = client.delete(f"/locations/{location_id}", headers=headers)

    assert created.status_code == 201
    assert renamed.get_json()["location"]["name"] == "Harbour Studio"
    assert listed == [{"id": location_id, "name": "Harbour Studio"}]
    assert deleted.status_code == 200
    assert Location.query.count() == 0


def test_location_validation(client, admin, staff_member, auth_headers):
    assert client.post("/locations", json={"name": " "}, headers=auth_headers(admin)).status_code == 400
    assert client.post("/locations", json={"name": "Annex"}, headers=auth_headers(staff_member)).status_code == 403
    assert client.put("/locations/42", json={"name": "Annex"}, headers=auth_headers(admin)).status_code == 404


def test_location_name(services, location) -> None:
    assert services.locations.location_name(location.id) == "Main Studio"
    assert services.locations.location_name(str(location.id)) == "Main Studio"
    assert services.locations.location_name(None) == "N/A"
    assert services.locations.location_name("") == "N/A"
    assert services.locations.location_name(999) == "Unknown Location"
    assert services.locations.location_name("abc") == "Unknown Location"
