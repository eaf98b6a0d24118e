from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone
from typing import Callable

import pytest

from tourbook.models import Actor, Booking, BookingStatus, Role, Tour, TourKind
from tourbook.service import BookingService
from tourbook.storage import InMemoryBookingStorage

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_tour() -> Callable[..., Tour]:
    def _make(**overrides) -> Tour:
        values = {
            "id": "tour_1",
            "guide_id": "guide_1",
            "title": "Old town walk",
            "capacity": 10,
            "starts_at": NOW + timedelta(days=2),
            "ends_at": NOW + timedelta(days=2, hours=3),
            "price_cents": 5000,
        }
        values.update(overrides)
        return Tour(**values)

    return _make


@pytest.fixture
def make_private_tour(make_tour) -> Callable[..., Tour]:
    def _make(**overrides) -> Tour:
        values = {"kind": TourKind.PRIVATE, "capacity": 6, "booking_deadline_hours": 24}
        values.update(overrides)
        return make_tour(**values)

    return _make


@pytest.fixture
def make_booking() -> Callable[..., Booking]:
    ids = itertools.count(1)

    def _make(spots: int, **overrides) -> Booking:
        values = {
            "id": f"booking_{next(ids)}",
            "tour_id": "tour_1",
            "spots": spots,
            "booked_name": "Ana",
            "booked_email": "ana@example.com",
            "user_id": "tourist_1",
            "status": BookingStatus.CONFIRMED,
        }
        values.update(overrides)
        return Booking(**values)

    return _make


@pytest.fixture
def tourist() -> Actor:
    return Actor(role=Role.TOURIST, id="tourist_1", name="Ana", email="ana@example.com")


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def service(events) -> BookingService:
    return BookingService(storage=InMemoryBookingStorage(), clock=lambda: NOW, publisher=events.append)
