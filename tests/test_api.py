from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from fastapi.testclient import TestClient

from tourbook.main import app, get_service
from tourbook.service import BookingService
from tourbook.storage import InMemoryBookingStorage

ADMIN = {"X-Actor-Id": "admin_1", "X-Actor-Role": "admin"}
GUIDE = {"X-Actor-Id": "guide_1", "X-Actor-Role": "guide"}
OTHER_GUIDE = {"X-Actor-Id": "guide_2", "X-Actor-Role": "guide"}
TOURIST = {"X-Actor-Id": "tourist_1", "X-Actor-Role": "tourist", "X-Actor-Name": "Ana", "X-Actor-Email": "ana@example.com"}
OTHER_TOURIST = {"X-Actor-Id": "tourist_2", "X-Actor-Role": "tourist", "X-Actor-Email": "bia@example.com"}


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    storage = InMemoryBookingStorage()
    service = BookingService(storage=storage)
    app.dependency_overrides[get_service] = lambda: service
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _tour_payload(offset_hours: int = 48, **overrides) -> dict:
    start = datetime.now(timezone.utc) + timedelta(hours=offset_hours)
    end = start + timedelta(hours=3)
    payload = {
        "title": "Old town walk",
        "capacity": 10,
        "price_cents": 2500,
        "starts_at": start.isoformat().replace("+00:00", "Z"),
        "ends_at": end.isoformat().replace("+00:00", "Z"),
    }
    payload.update(overrides)
    return payload


def _create_tour(client: TestClient, **overrides) -> dict:
    response = client.post("/v1/tours", json=_tour_payload(**overrides), headers=GUIDE)
    assert response.status_code == 201
    return response.json()


def test_only_guides_and_admins_create_tours(client: TestClient) -> None:
    assert client.post("/v1/tours", json=_tour_payload(), headers=GUIDE).status_code == 201
    assert client.post("/v1/tours", json=_tour_payload(), headers=ADMIN).status_code == 201

    denied = client.post("/v1/tours", json=_tour_payload(), headers=TOURIST)
    assert denied.status_code == 403
    assert denied.json()["code"] == "PERMISSION_DENIED"

    assert client.post("/v1/tours", json=_tour_payload()).status_code == 403


def test_booking_over_capacity_lists_errors(client: TestClient) -> None:
    tour = _create_tour(client)

    first = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 7}, headers=TOURIST)
    assert first.status_code == 201
    body = first.json()
    assert body["total_cents"] == 7 * 2500
    assert body["created_via"] == "user_portal"

    rejected = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 4}, headers=OTHER_TOURIST)
    assert rejected.status_code == 422
    assert rejected.json()["code"] == "BOOKING_REJECTED"
    assert [e["kind"] for e in rejected.json()["errors"]] == ["CAPACITY_EXCEEDED"]

    bookable = client.get(f"/v1/tours/{tour['id']}/bookable")
    assert bookable.json()["can_book"] is True


def test_booking_with_add_ons(client: TestClient) -> None:
    tour = _create_tour(client)
    add_on = client.post(
        f"/v1/tours/{tour['id']}/add-ons",
        json={"name": "Photo package", "price_cents": 5000, "pricing_mode": "flat_fee"},
        headers=GUIDE,
    )
    assert add_on.status_code == 201

    response = client.post(
        f"/v1/tours/{tour['id']}/bookings",
        json={"spots": 4, "add_ons": [{"add_on_id": add_on.json()["id"], "quantity": 1}]},
        headers=TOURIST,
    )

    assert response.status_code == 201
    assert response.json()["add_ons_total_cents"] == 5000
    assert response.json()["total_cents"] == 4 * 2500 + 5000


def test_magic_link_manage_access(client: TestClient) -> None:
    tour = _create_tour(client)
    booking = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST).json()

    allowed = client.get(f"/v1/bookings/{booking['id']}", params={"email": "ANA@example.com"})
    assert allowed.status_code == 200
    assert allowed.json()["spots"] == 2

    assert client.get(f"/v1/bookings/{booking['id']}", params={"email": "x@example.com"}).status_code == 403
    assert client.get(f"/v1/bookings/{booking['id']}", headers=OTHER_TOURIST).status_code == 403


def test_cancel_twice_reports_already_cancelled(client: TestClient) -> None:
    tour = _create_tour(client)
    booking = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST).json()

    first = client.post(f"/v1/bookings/{booking['id']}/cancel", headers=TOURIST)
    assert first.status_code == 200
    assert first.json()["status"] == "cancelled"

    second = client.post(f"/v1/bookings/{booking['id']}/cancel", headers=TOURIST)
    assert second.status_code == 409
    assert second.json()["code"] == "ALREADY_CANCELLED"


def test_guide_sees_bookings_for_own_tours(client: TestClient) -> None:
    tour = _create_tour(client)
    client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST)

    assert len(client.get("/v1/bookings", headers=GUIDE).json()) == 1
    assert len(client.get("/v1/bookings", headers=OTHER_TOURIST).json()) == 0
    assert len(client.get("/v1/bookings").json()) == 0


def test_sweep_requires_admin(client: TestClient) -> None:
    assert client.post("/v1/lifecycle/sweep", headers=GUIDE).status_code == 403

    response = client.post("/v1/lifecycle/sweep", headers=ADMIN)
    assert response.status_code == 200
    assert response.json() == {"changed_tour_ids": []}


def test_unknown_role_is_rejected(client: TestClient) -> None:
    response = client.get("/v1/tours", headers={"X-Actor-Id": "u1", "X-Actor-Role": "pilot"})

    assert response.status_code == 400
    assert response.json()["field"] == "X-Actor-Role"


def test_other_guides_read_tour_and_active_add_ons(client: TestClient) -> None:
    tour = _create_tour(client)
    for name in ("Lunch", "Old bus"):
        client.post(f"/v1/tours/{tour['id']}/add-ons", json={"name": name, "price_cents": 1000}, headers=GUIDE)
    retired = client.get(f"/v1/tours/{tour['id']}/add-ons", headers=GUIDE).json()[1]
    client.delete(f"/v1/add-ons/{retired['id']}", headers=GUIDE)

    shown = client.get(f"/v1/tours/{tour['id']}", headers=OTHER_GUIDE)
    assert shown.status_code == 200
    assert shown.json()["id"] == tour["id"]

    names = [a["name"] for a in client.get(f"/v1/tours/{tour['id']}/add-ons", headers=OTHER_GUIDE).json()]
    assert names == ["Lunch"]
    assert len(client.get(f"/v1/tours/{tour['id']}/add-ons", headers=GUIDE).json()) == 2
    assert client.get("/v1/tours", headers=OTHER_GUIDE).json() == []


def test_update_booking_spots(client: TestClient) -> None:
    tour = _create_tour(client)
    booking = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST).json()

    response = client.patch(f"/v1/bookings/{booking['id']}", json={"spots": 3}, headers=TOURIST)
    assert response.status_code == 200
    assert response.json()["spots"] == 3
    assert response.json()["total_cents"] == 3 * 2500

    too_many = client.patch(f"/v1/bookings/{booking['id']}", json={"spots": 11}, headers=TOURIST)
    assert too_many.status_code == 422
    assert [e["kind"] for e in too_many.json()["errors"]] == ["CAPACITY_EXCEEDED"]

    assert client.patch(f"/v1/bookings/{booking['id']}", json={"spots": 1}, headers=OTHER_TOURIST).status_code == 403


def test_review_through_booking_email(client: TestClient) -> None:
    tour = _create_tour(client)
    booking = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST).json()
    url = f"/v1/bookings/{booking['id']}/review"

    too_early = client.post(url, params={"email": "ana@example.com"}, json={"rating": 5})
    assert too_early.status_code == 409

    service = app.dependency_overrides[get_service]()
    service.run_lifecycle_sweep(datetime.now(timezone.utc) + timedelta(days=5))

    assert client.post(url, params={"email": "x@example.com"}, json={"rating": 5}).status_code == 403

    response = client.post(url, params={"email": "Ana@Example.com"}, json={"rating": 5, "comment": "Great guide"})
    assert response.status_code == 201
    assert response.json()["booking_id"] == booking["id"]
    assert response.json()["rating"] == 5

    assert client.post(url, params={"email": "ana@example.com"}, json={"rating": 4}).status_code == 409


def test_guide_cancels_booking_on_own_tour(client: TestClient) -> None:
    tour = _create_tour(client)
    booking = client.post(f"/v1/tours/{tour['id']}/bookings", json={"spots": 2}, headers=TOURIST).json()

    assert client.post(f"/v1/bookings/{booking['id']}/cancel", headers=OTHER_GUIDE).status_code == 403

    response = client.post(f"/v1/bookings/{booking['id']}/cancel", headers=GUIDE)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
