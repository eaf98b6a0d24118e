from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from .models import AddOnType, BookingAddOn, PricingMode, Review, Tour, TourAddOn, TourKind
from .service import PricedBooking


class TourCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=100)
    capacity: int = Field(..., gt=0)
    starts_at: datetime
    ends_at: datetime
    price_cents: Optional[int] = Field(default=None, ge=0)
    currency: Optional[str] = None
    kind: TourKind = TourKind.PUBLIC
    booking_deadline_hours: Optional[int] = Field(default=None, gt=0)
    guide_id: Optional[str] = None


class TourResponse(BaseModel):
    id: str
    guide_id: str
    title: str
    status: str
    kind: str
    capacity: int
    price_cents: Optional[int]
    currency: str
    starts_at: datetime
    ends_at: datetime
    booking_deadline: Optional[datetime]
    bookings_count: int

    @classmethod
    def from_domain(cls, tour: Tour) -> "TourResponse":
        return cls(
            id=tour.id,
            guide_id=tour.guide_id,
            title=tour.title,
            status=tour.status.value,
            kind=tour.kind.value,
            capacity=tour.capacity,
            price_cents=tour.price_cents,
            currency=tour.currency,
            starts_at=tour.starts_at,
            ends_at=tour.ends_at,
            booking_deadline=tour.booking_deadline(),
            bookings_count=tour.bookings_count,
        )


class CanBookResponse(BaseModel):
    tour_id: str
    can_book: bool


class AddOnCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    price_cents: int = Field(..., gt=0)
    pricing_mode: PricingMode = PricingMode.PER_PERSON
    addon_type: AddOnType = AddOnType.TRANSPORTATION
    maximum_quantity: Optional[int] = Field(default=None, gt=0)
    position: Optional[int] = Field(default=None, ge=0)
    description: Optional[str] = Field(default=None, max_length=1000)


class AddOnPriceUpdateRequest(BaseModel):
    price_cents: int = Field(..., gt=0)


class AddOnResponse(BaseModel):
    id: str
    tour_id: str
    name: str
    price_cents: int
    pricing_mode: str
    addon_type: str
    maximum_quantity: Optional[int]
    active: bool
    position: int

    @classmethod
    def from_domain(cls, add_on: TourAddOn) -> "AddOnResponse":
        return cls(
            id=add_on.id,
            tour_id=add_on.tour_id,
            name=add_on.name,
            price_cents=add_on.price_cents,
            pricing_mode=add_on.pricing_mode.value,
            addon_type=add_on.addon_type.value,
            maximum_quantity=add_on.maximum_quantity,
            active=add_on.active,
            position=add_on.position,
        )


class AddOnSelectionRequest(BaseModel):
    add_on_id: str
    quantity: int = 1


class BookingCreateRequest(BaseModel):
    spots: int
    add_ons: List[AddOnSelectionRequest] = Field(default_factory=list)
    name: Optional[str] = None
    email: Optional[str] = None


class BookingUpdateRequest(BaseModel):
    spots: int


class BookingAddOnResponse(BaseModel):
    tour_add_on_id: str
    quantity: int
    price_cents_at_booking: int
    pricing_mode: str

    @classmethod
    def from_domain(cls, line: BookingAddOn) -> "BookingAddOnResponse":
        return cls(
            tour_add_on_id=line.tour_add_on_id,
            quantity=line.quantity,
            price_cents_at_booking=line.price_cents_at_booking,
            pricing_mode=line.pricing_mode.value,
        )


class BookingResponse(BaseModel):
    id: str
    tour_id: str
    spots: int
    status: str
    booked_name: str
    booked_email: str
    created_via: str
    add_ons: List[BookingAddOnResponse]
    tour_total_cents: int
    add_ons_total_cents: int
    total_cents: int

    @classmethod
    def from_priced(cls, priced: PricedBooking) -> "BookingResponse":
        booking = priced.booking
        return cls(
            id=booking.id,
            tour_id=booking.tour_id,
            spots=booking.spots,
            status=booking.status.value,
            booked_name=booking.booked_name,
            booked_email=booking.booked_email,
            created_via=booking.created_via.value,
            add_ons=[BookingAddOnResponse.from_domain(line) for line in priced.add_ons],
            tour_total_cents=priced.tour_total_cents,
            add_ons_total_cents=priced.add_ons_total_cents,
            total_cents=priced.total_cents,
        )


class ReviewCreateRequest(BaseModel):
    rating: int = Field(..., ge=0, le=5)
    comment: Optional[str] = Field(default=None, max_length=1000)


class ReviewResponse(BaseModel):
    id: str
    booking_id: str
    tour_id: str
    rating: int
    comment: Optional[str]

    @classmethod
    def from_domain(cls, review: Review) -> "ReviewResponse":
        return cls(
            id=review.id,
            booking_id=review.booking_id,
            tour_id=review.tour_id,
            rating=review.rating,
            comment=review.comment,
        )


class SweepResponse(BaseModel):
    changed_tour_ids: List[str]


class ErrorResponse(BaseModel):
    code: str
    message: str
    field: Optional[str] = None
