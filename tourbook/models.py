from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TourStatus(str, Enum):
    SCHEDULED = "scheduled"
    ONGOING = "ongoing"
    DONE = "done"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (TourStatus.DONE, TourStatus.CANCELLED)


class TourKind(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class BookingSource(str, Enum):
    GUEST_BOOKING = "guest_booking"
    USER_PORTAL = "user_portal"


class PricingMode(str, Enum):
    PER_PERSON = "per_person"
    FLAT_FEE = "flat_fee"


class AddOnType(str, Enum):
    TRANSPORTATION = "transportation"
    FOOD_BEVERAGE = "food_beverage"
    PHOTOGRAPHY = "photography"
    EQUIPMENT = "equipment"


class Role(str, Enum):
    ADMIN = "admin"
    GUIDE = "guide"
    TOURIST = "tourist"
    ANONYMOUS = "anonymous"


@dataclass
class Actor:
    """Whoever is calling into the engine: a signed-in user or an anonymous visitor."""

    role: Role
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def anonymous(cls, email: Optional[str] = None) -> "Actor":
        return cls(role=Role.ANONYMOUS, email=email)

    @property
    def is_authenticated(self) -> bool:
        return self.role != Role.ANONYMOUS and self.id is not None


@dataclass
class Tour:
    id: str
    guide_id: str
    title: str
    capacity: int
    starts_at: datetime
    ends_at: datetime
    price_cents: Optional[int] = None
    currency: str = "BRL"
    kind: TourKind = TourKind.PUBLIC
    booking_deadline_hours: Optional[int] = None
    status: TourStatus = TourStatus.SCHEDULED
    bookings_count: int = 0
    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_private(self) -> bool:
        return self.kind == TourKind.PRIVATE

    def booking_deadline(self) -> Optional[datetime]:
        """Last instant a private tour accepts its buyout; ``None`` for public tours."""
        if not self.is_private or self.booking_deadline_hours is None:
            return None
        return self.starts_at - timedelta(hours=self.booking_deadline_hours)


@dataclass
class Booking:
    id: str
    tour_id: str
    spots: int
    booked_name: str
    booked_email: str
    user_id: Optional[str] = None
    status: BookingStatus = BookingStatus.CONFIRMED
    created_via: BookingSource = BookingSource.GUEST_BOOKING
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_active(self) -> bool:
        return self.status == BookingStatus.CONFIRMED

    def cancel(self, now: Optional[datetime] = None) -> bool:
        if self.status == BookingStatus.CANCELLED:
            return False
        self.status = BookingStatus.CANCELLED
        self.updated_at = now or utc_now()
        return True

    def matches_email(self, email: Optional[str]) -> bool:
        if not email:
            return False
        return self.booked_email.strip().lower() == email.strip().lower()


@dataclass
class TourAddOn:
    id: str
    tour_id: str
    name: str
    price_cents: int
    pricing_mode: PricingMode = PricingMode.PER_PERSON
    addon_type: AddOnType = AddOnType.TRANSPORTATION
    maximum_quantity: Optional[int] = None
    active: bool = True
    position: int = 0
    currency: str = "BRL"
    description: Optional[str] = None


@dataclass
class BookingAddOn:
    id: str
    booking_id: str
    tour_add_on_id: str
    quantity: int
    price_cents_at_booking: int
    pricing_mode: PricingMode


@dataclass
class Review:
    id: str
    booking_id: str
    tour_id: str
    user_id: Optional[str]
    rating: int
    comment: Optional[str] = None
    created_at: datetime = field(default_factory=utc_now)


@dataclass
class GuideProfile:
    id: str
    user_id: str
    bio: Optional[str] = None


@dataclass(frozen=True)
class AddOnSelection:
    add_on_id: str
    quantity: int = 1
