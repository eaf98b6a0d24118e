"""Integer minor-unit price arithmetic for tours and add-ons."""
from __future__ import annotations

from typing import Iterable
from uuid import uuid4

from .models import Booking, BookingAddOn, PricingMode, Tour, TourAddOn


def tour_line_total(tour: Tour, spots: int) -> int:
    if tour.price_cents is None:
        return 0
    return tour.price_cents * spots


def add_on_line_total(line: BookingAddOn, spots: int) -> int:
    if line.pricing_mode == PricingMode.PER_PERSON:
        return line.price_cents_at_booking * spots * line.quantity
    if line.pricing_mode == PricingMode.FLAT_FEE:
        return line.price_cents_at_booking * line.quantity
    raise ValueError(f"unknown pricing mode: {line.pricing_mode!r}")


def add_ons_total(lines: Iterable[BookingAddOn], spots: int) -> int:
    return sum(add_on_line_total(line, spots) for line in lines)


def grand_total(tour: Tour, booking: Booking, lines: Iterable[BookingAddOn]) -> int:
    return tour_line_total(tour, booking.spots) + add_ons_total(lines, booking.spots)


def freeze_add_on(booking_id: str, add_on: TourAddOn, quantity: int) -> BookingAddOn:
    return BookingAddOn(
        id=f"bao_{uuid4().hex[:12]}",
        booking_id=booking_id,
        tour_add_on_id=add_on.id,
        quantity=quantity,
        price_cents_at_booking=add_on.price_cents,
        pricing_mode=add_on.pricing_mode,
    )
