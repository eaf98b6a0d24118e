from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Union

from .models import TourStatus, utc_now


@dataclass(frozen=True)
class BookingConfirmed:
    booking_id: str
    tour_id: str
    spots: int
    total_cents: int
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class BookingUpdated:
    booking_id: str
    tour_id: str
    previous_spots: int
    spots: int
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class BookingCancelled:
    booking_id: str
    tour_id: str
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True)
class TourStatusChanged:
    tour_id: str
    previous: TourStatus
    current: TourStatus
    occurred_at: datetime = field(default_factory=utc_now)


DomainEvent = Union[BookingConfirmed, BookingUpdated, BookingCancelled, TourStatusChanged]
EventPublisher = Callable[[DomainEvent], None]
