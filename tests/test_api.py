from __future__ import annotations

import datetime

import pytest
from fastapi.testclient import TestClient

import api
from api import build_services, get_services

DAY = datetime.date(2025, 3, 10)


@pytest.fixture()
def client(gateway, settings):
    api.app.dependency_overrides[get_services] = lambda: build_services(gateway, settings)
    yield TestClient(api.app)
    api.app.dependency_overrides.clear()


@pytest.fixture()
def seeded(roster):
    shift = roster.shift()
    senior = roster.officer("Dana Reyes", vacation=12.0)
    ppo = roster.officer("Kim Park", "Probationary")
    roster.pair(senior, ppo, shift)
    return shift, senior, ppo


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_daily_schedule_payload(client, seeded):
    shift, senior, ppo = seeded

    response = client.get(f"/api/v1/schedule/{DAY.isoformat()}", params={"shift_type_id": shift.id})

    assert response.status_code == 200
    body = response.json()
    assert [item["officer_id"] for item in body["officers"]] == [senior.id]
    assert [item["officer_id"] for item in body["probationary"]] == [ppo.id]
    assert body["probationary"][0]["rank"] == "Probationary"
    assert body["probationary"][0]["position_group"] == "Partner"
    assert body["officers"][0]["start_time"] == "08:00:00"
    assert body["officers"][0]["partner_officer_id"] == ppo.id


def test_pto_lifecycle_over_http(client, seeded, gateway):
    shift, senior, ppo = seeded
    payload = {
        "officer_id": senior.id,
        "date": DAY.isoformat(),
        "shift_type_id": shift.id,
        "pto_type": "vacation",
        "start_time": "10:00",
        "end_time": "14:00",
        "actor": "sgt.grant",
    }

    created = client.post("/api/v1/pto", json=payload)
    assert created.status_code == 201
    assert created.json()["hours_used"] == 4.0
    assert created.json()["remainder"] == "14:00-17:00"
    assert created.json()["partnership_impacted"] is True

    duplicate = client.post("/api/v1/pto", json=payload)
    assert duplicate.status_code == 409
    assert duplicate.json()["error"] == "ConflictError"

    removed = client.delete(f"/api/v1/pto/{senior.id}/{DAY.isoformat()}/{shift.id}")
    assert removed.status_code == 200
    assert removed.json()["restoration"]["status"] == "restored"
    assert gateway.get_officer(senior.id).vacation_hours == 12.0


def test_insufficient_balance_maps_to_conflict(client, seeded):
    shift, senior, _ = seeded
    senior_payload = {
        "officer_id": senior.id,
        "date": DAY.isoformat(),
        "shift_type_id": shift.id,
        "pto_type": "comp",
    }

    response = client.post("/api/v1/pto", json=senior_payload)

    assert response.status_code == 409
    body = response.json()
    assert body["error"] == "InsufficientBalanceError"
    assert body["available"] == 0.0
    assert body["required"] == 9.0


def test_error_mapping(client, seeded):
    shift, senior, _ = seeded

    assert client.get("/api/v1/schedule/not-a-date").status_code == 400
    assert client.get(f"/api/v1/schedule/{DAY.isoformat()}", params={"shift_type_id": 999}).status_code == 404
    bad_range = client.post(
        "/api/v1/pto",
        json={
            "officer_id": senior.id,
            "date": DAY.isoformat(),
            "shift_type_id": shift.id,
            "pto_type": "sick",
            "start_time": "10:00",
            "end_time": "10:00",
        },
    )
    assert bad_range.status_code == 400
    assert client.post("/api/v1/pto", json={"officer_id": senior.id}).status_code == 400


def test_partnerships_and_emergency_endpoints(client, seeded, roster):
    shift, senior, ppo = seeded
    spare = roster.officer("Amy Zimmer")
    roster.recurring(spare, shift)

    pairs = client.get(f"/api/v1/partnerships/{DAY.isoformat()}", params={"shift_type_id": shift.id}).json()
    assert len(pairs) == 1 and pairs[0]["is_reciprocal"]

    client.post(
        "/api/v1/pto",
        json={"officer_id": senior.id, "date": DAY.isoformat(), "shift_type_id": shift.id, "pto_type": "sick"},
    )
    candidates = client.get(
        f"/api/v1/emergency/{DAY.isoformat()}/{shift.id}", params={"officer_id": ppo.id}
    ).json()
    assert [item["officer_id"] for item in candidates] == [spare.id]

    assigned = client.post(
        "/api/v1/emergency/assign",
        json={
            "officer_id": ppo.id,
            "partner_officer_id": spare.id,
            "date": DAY.isoformat(),
            "shift_type_id": shift.id,
        },
    )
    assert assigned.status_code == 201
    assert assigned.json()["is_emergency"] is True

    report = client.get("/api/v1/validate", params={"start": DAY.isoformat()}).json()
    assert report["issues"] == []


def test_staffing_endpoint(client, seeded, gateway):
    shift, _, _ = seeded
    gateway.set_minimums(DAY.weekday(), shift.id, minimum_officers=2, minimum_supervisors=0)

    body = client.get(f"/api/v1/staffing/{DAY.isoformat()}/{shift.id}").json()

    assert body["status"] == "understaffed"
    assert body["officer_shortfall"] == 1
