"""Admission rules for a new or updated booking."""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Iterable, List, Optional, Sequence

from .capacity import active_bookings, available_spots
from .errors import ValidationIssue, ValidationKind
from .models import AddOnSelection, Booking, Tour, TourAddOn, TourStatus

BookingRule = Callable[[Tour, Booking, Sequence[Booking], datetime], Optional[ValidationIssue]]


def booking_deadline(tour: Tour) -> Optional[datetime]:
    return tour.booking_deadline()


def booking_deadline_passed(tour: Tour, as_of: datetime) -> bool:
    deadline = booking_deadline(tour)
    return deadline is not None and as_of >= deadline


def _others(tour: Tour, booking: Booking, bookings: Sequence[Booking]) -> list[Booking]:
    return [b for b in active_bookings(bookings, excluding_booking_id=booking.id) if b.tour_id == tour.id]


def check_spot_count(tour: Tour, booking: Booking, bookings: Sequence[Booking], as_of: datetime) -> Optional[ValidationIssue]:
    if booking.spots > 0:
        return None
    return ValidationIssue(ValidationKind.INVALID_SPOT_COUNT, "spots must be greater than 0", field="spots")


def check_private_exclusivity(tour: Tour, booking: Booking, bookings: Sequence[Booking], as_of: datetime) -> Optional[ValidationIssue]:
    if not tour.is_private or not _others(tour, booking, bookings):
        return None
    return ValidationIssue(ValidationKind.PRIVATE_TOUR_ALREADY_BOOKED, "this private tour has already been booked")


def check_private_full_capacity(tour: Tour, booking: Booking, bookings: Sequence[Booking], as_of: datetime) -> Optional[ValidationIssue]:
    if not tour.is_private or booking.spots == tour.capacity:
        return None
    return ValidationIssue(
        ValidationKind.PRIVATE_TOUR_PARTIAL_BUYOUT_NOT_ALLOWED,
        f"spots must be {tour.capacity} for private tours (full capacity required)",
        field="spots",
    )


def check_deadline(tour: Tour, booking: Booking, bookings: Sequence[Booking], as_of: datetime) -> Optional[ValidationIssue]:
    if not booking_deadline_passed(tour, as_of):
        return None
    return ValidationIssue(ValidationKind.BOOKING_DEADLINE_PASSED, "booking deadline has passed for this private tour")


def check_capacity(tour: Tour, booking: Booking, bookings: Sequence[Booking], as_of: datetime) -> Optional[ValidationIssue]:
    available = available_spots(tour, bookings, excluding_booking_id=booking.id)
    if booking.spots <= available:
        return None
    return ValidationIssue(
        ValidationKind.CAPACITY_EXCEEDED,
        f"spots exceeds available spots ({available} left)",
        field="spots",
    )


# private-tour exclusivity is checked before capacity
BOOKING_RULES: List[BookingRule] = [
    check_spot_count,
    check_private_exclusivity,
    check_private_full_capacity,
    check_deadline,
    check_capacity,
]


def validate_booking(
    tour: Tour,
    booking: Booking,
    bookings: Sequence[Booking],
    as_of: datetime,
    rules: Iterable[BookingRule] = BOOKING_RULES,
) -> list[ValidationIssue]:
    issues = []
    for rule in rules:
        issue = rule(tour, booking, bookings, as_of)
        if issue is not None:
            issues.append(issue)
    return issues


def check_tour_accepts_bookings(tour: Tour, as_of: datetime) -> Optional[ValidationIssue]:
    """Status gate evaluated by the caller inside the admission transaction."""
    if tour.status == TourStatus.SCHEDULED and tour.starts_at > as_of:
        return None
    return ValidationIssue(ValidationKind.TOUR_NOT_BOOKABLE, f"tour is not accepting bookings (status {tour.status.value})")


def can_book(tour: Tour, bookings: Sequence[Booking], as_of: datetime) -> bool:
    if tour.status != TourStatus.SCHEDULED or tour.starts_at <= as_of:
        return False
    if tour.is_private:
        if any(b.tour_id == tour.id for b in active_bookings(bookings)):
            return False
        deadline = booking_deadline(tour)
        return deadline is not None and as_of < deadline
    return available_spots(tour, bookings) > 0


def validate_add_on_selections(
    tour: Tour,
    selections: Sequence[AddOnSelection],
    catalog: Sequence[TourAddOn],
) -> list[ValidationIssue]:
    issues = []
    by_id = {add_on.id: add_on for add_on in catalog}
    seen = set()
    for selection in selections:
        field_name = f"add_ons.{selection.add_on_id}"
        if selection.add_on_id in seen:
            issues.append(
                ValidationIssue(
                    ValidationKind.DUPLICATE_ADD_ON_ON_BOOKING,
                    "add-on has already been added to this booking",
                    field=field_name,
                )
            )
            continue
        seen.add(selection.add_on_id)

        add_on = by_id.get(selection.add_on_id)
        if add_on is None or add_on.tour_id != tour.id or not add_on.active:
            issues.append(
                ValidationIssue(ValidationKind.ADD_ON_UNAVAILABLE, "add-on is not available for this tour", field=field_name)
            )
            continue
        if selection.quantity <= 0:
            issues.append(
                ValidationIssue(ValidationKind.INVALID_ADD_ON_QUANTITY, "quantity must be greater than 0", field=field_name)
            )
        elif add_on.maximum_quantity is not None and selection.quantity > add_on.maximum_quantity:
            issues.append(
                ValidationIssue(
                    ValidationKind.ADD_ON_QUANTITY_EXCEEDS_MAXIMUM,
                    f"quantity cannot exceed maximum of {add_on.maximum_quantity}",
                    field=field_name,
                )
            )
    return issues
