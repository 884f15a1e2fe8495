from __future__ import annotations

from collections.abc import Generator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine, select

from app import main as app_main
from app.domain.models import AuditLog
from app.infra import audit, db, events


@pytest.fixture()
def sqlite_engine(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Engine:
    db_path = tmp_path / "business_test.db"
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(engine)
    monkeypatch.setattr(db, "engine", engine)
    monkeypatch.setattr(audit, "engine", engine)
    monkeypatch.setattr(events, "engine", engine)
    return engine


@pytest.fixture()
def business_client(sqlite_engine: Engine) -> Generator[TestClient, None, None]:
    client = TestClient(app_main.app)
    yield client
    client.close()


def _business_body(name: str, **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "name": name,
        "email": f"{name}@example.com",
        "phone": "555-0100",
        "address": {"street": "1 Main St", "city": "Springfield", "state": "IL", "zip_code": "62701"},
        "lat": 0.0,
        "lng": 0.01,
        "services": ["General"],
        "coverage_radius_km": 5,
        "capacity": 3,
        "contact_person": {"name": "Alex", "title": "Manager", "email": f"alex@{name}.example.com", "phone": "555-0199"},
    }
    body.update(overrides)
    return body


def _register(client: TestClient, name: str, **overrides: Any) -> dict[str, Any]:
    response = client.post("/api/business", json=_business_body(name, **overrides))
    assert response.status_code == 201, response.text
    return response.json()


def _create_task(client: TestClient, **overrides: Any) -> dict[str, Any]:
    body: dict[str, Any] = {
        "title": "Move boxes",
        "category": "General",
        "urgency": "Urgent",
        "lat": 0.0,
        "lng": 0.0,
        "requester_name": "Riley",
    }
    body.update(overrides)
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201, response.text
    return response.json()


def test_register_and_fetch_business(business_client: TestClient) -> None:
    created = _register(business_client, "corner-helpers")
    assert created["current_load"] == 0
    assert created["total_assigned"] == 0
    assert created["operating_hours"]["sunday"]["is_open"] is False
    assert created["operating_hours"]["monday"] == {"open": "09:00", "close": "18:00", "is_open": True}

    fetched = business_client.get(f"/api/business/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["contact_person"]["email"] == "alex@corner-helpers.example.com"

    missing = business_client.get("/api/business/does-not-exist")
    assert missing.status_code == 404


def test_register_rejects_duplicates_and_invalid_payloads(business_client: TestClient) -> None:
    _register(business_client, "dup")
    duplicate = business_client.post("/api/business", json=_business_body("dup"))
    assert duplicate.status_code == 409

    no_services = business_client.post("/api/business", json=_business_body("empty", services=[]))
    assert no_services.status_code == 422

    unknown_service = business_client.post("/api/business", json=_business_body("odd", services=["Juggling"]))
    assert unknown_service.status_code == 422

    too_wide = business_client.post("/api/business", json=_business_body("wide", coverage_radius_km=80))
    assert too_wide.status_code == 422


def test_custom_operating_hours_override_defaults(business_client: TestClient) -> None:
    created = _register(
        business_client,
        "weekend-crew",
        operating_hours={"sunday": {"open": "08:00", "close": "12:00", "is_open": True}},
    )
    assert created["operating_hours"]["sunday"] == {"open": "08:00", "close": "12:00", "is_open": True}
    assert created["operating_hours"]["saturday"]["open"] == "10:00"


@pytest.mark.parametrize(
    "hours",
    [
        {"open": "9:00", "close": "18:00"},
        {"open": "banana", "close": "25:99"},
        {"open": "18:00", "close": "09:00"},
    ],
)
def test_register_rejects_malformed_operating_hours(business_client: TestClient, hours: dict[str, str]) -> None:
    response = business_client.post(
        "/api/business",
        json=_business_body("bad-hours", operating_hours={"monday": {**hours, "is_open": True}}),
    )
    assert response.status_code == 422

    created = _register(business_client, "good-hours")
    update = business_client.put(
        f"/api/business/{created['id']}",
        json={"operating_hours": {"monday": {**hours, "is_open": True}}},
    )
    assert update.status_code == 422
    fetched = business_client.get(f"/api/business/{created['id']}").json()
    assert fetched["operating_hours"]["monday"]["open"] == "09:00"


def test_register_rejects_malformed_email_and_phone(business_client: TestClient) -> None:
    bad_email = business_client.post("/api/business", json=_business_body("mail", email="not-an-email"))
    assert bad_email.status_code == 422

    bad_phone = business_client.post("/api/business", json=_business_body("phone", phone="call me maybe"))
    assert bad_phone.status_code == 422

    bad_contact = business_client.post(
        "/api/business",
        json=_business_body("contact", contact_person={"name": "Alex", "email": "alex-at-example"}),
    )
    assert bad_contact.status_code == 422

    created = _register(business_client, "intl", phone="+1 (555) 010-0100")
    assert created["phone"] == "+1 (555) 010-0100"
    update = business_client.put(f"/api/business/{created['id']}", json={"phone": "ext. 12"})
    assert update.status_code == 422


def test_list_filters_by_service_and_paginates(business_client: TestClient) -> None:
    for index in range(3):
        _register(business_client, f"general-{index}")
    _register(business_client, "movers", services=["Delivery", "General"])
    _register(business_client, "cleaners", services=["Cleaning"])

    page_one = business_client.get("/api/business", params={"service": "General", "limit": 3})
    assert page_one.status_code == 200
    body = page_one.json()
    assert body["total"] == 4
    assert body["total_pages"] == 2
    assert len(body["items"]) == 3
    assert body["items"][0]["name"] == "movers"

    page_two = business_client.get("/api/business", params={"service": "General", "limit": 3, "page": 2})
    assert len(page_two.json()["items"]) == 1

    cleaning = business_client.get("/api/business", params={"service": "Cleaning"}).json()
    assert [item["name"] for item in cleaning["items"]] == ["cleaners"]


def test_update_keeps_counters_read_only(business_client: TestClient) -> None:
    created = _register(business_client, "editable")
    response = business_client.put(
        f"/api/business/{created['id']}",
        json={"capacity": 5, "reliability": 4.2, "current_load": 3, "total_assigned": 9},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["capacity"] == 5
    assert body["reliability"] == 4.2
    assert body["current_load"] == 0
    assert body["total_assigned"] == 0

    missing = business_client.put("/api/business/nope", json={"capacity": 5})
    assert missing.status_code == 404


def test_suitable_businesses_for_task(business_client: TestClient) -> None:
    near = _register(business_client, "near", reliability=4.0)
    _register(business_client, "far", lng=1.0)
    _register(business_client, "delivery", services=["Delivery"])
    task = _create_task(business_client)

    response = business_client.get(f"/api/business/suitable/{task['id']}")
    assert response.status_code == 200
    items = response.json()
    assert [item["id"] for item in items] == [near["id"]]
    assert items[0]["distance_km"] == pytest.approx(1.11, abs=0.01)
    assert items[0]["available_capacity"] == 3
    assert items[0]["success_rate"] == 100

    assert business_client.get("/api/business/suitable/unknown").status_code == 404


def test_manual_contact_accept_flow(business_client: TestClient) -> None:
    business = _register(business_client, "helpers")
    other = _register(business_client, "others")
    task = _create_task(business_client)

    contact = business_client.post(f"/api/business/{business['id']}/tasks/{task['id']}/contact")
    assert contact.status_code == 200
    assert contact.json() == {
        "task_id": task["id"],
        "business_id": business["id"],
        "success": True,
        "message": "Contacted helpers successfully",
    }

    again = business_client.post(f"/api/business/{other['id']}/tasks/{task['id']}/contact")
    assert again.status_code == 409

    wrong = business_client.post(
        f"/api/business/{other['id']}/tasks/{task['id']}/accept",
        json={"volunteer_name": "Jordan", "volunteer_phone": "555-0142"},
    )
    assert wrong.status_code == 409

    accepted = business_client.post(
        f"/api/business/{business['id']}/tasks/{task['id']}/accept",
        json={"volunteer_name": "Jordan", "volunteer_phone": "555-0142", "volunteer_email": "j@example.com"},
    )
    assert accepted.status_code == 200
    info = accepted.json()["business_volunteer_info"]
    assert info["volunteer_name"] == "Jordan"
    assert info["business_name"] == "helpers"

    refreshed = business_client.get(f"/api/business/{business['id']}").json()
    assert refreshed["current_load"] == 1
    assert refreshed["total_assigned"] == 1
    assert refreshed["successful_assignments"] == 1

    missing_volunteer = business_client.post(
        f"/api/business/{business['id']}/tasks/{task['id']}/accept",
        json={"volunteer_name": "Jordan"},
    )
    assert missing_volunteer.status_code == 422


def test_decline_reopens_task(business_client: TestClient) -> None:
    business = _register(business_client, "helpers")
    task = _create_task(business_client)
    business_client.post(f"/api/business/{business['id']}/tasks/{task['id']}/contact")

    declined = business_client.post(
        f"/api/business/{business['id']}/tasks/{task['id']}/decline",
        json={"reason": "fully booked"},
    )
    assert declined.status_code == 200
    assert declined.json()["contacted"] is False
    assert declined.json()["assigned_business_id"] is None
    assert business_client.get(f"/api/business/{business['id']}").json()["current_load"] == 0

    second = business_client.post(
        f"/api/business/{business['id']}/tasks/{task['id']}/decline",
        json={},
    )
    assert second.status_code == 409

    unknown = business_client.post(f"/api/business/{business['id']}/tasks/nope/decline", json={})
    assert unknown.status_code == 404


def test_write_requests_are_audited(business_client: TestClient, sqlite_engine: Engine) -> None:
    created = _register(business_client, "audited")
    business_client.put(f"/api/business/{created['id']}", json={"capacity": 4})
    business_client.get(f"/api/business/{created['id']}")

    with Session(sqlite_engine) as session:
        rows = session.exec(select(AuditLog)).all()

    actions = sorted(item.action for item in rows)
    assert actions == ["business.register", "business.update"]
    register_row = next(item for item in rows if item.action == "business.register")
    assert register_row.resource == f"business:{created['id']}"
    assert register_row.detail["result"]["outcome"] == "success"
