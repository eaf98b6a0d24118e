from __future__ import annotations

from typing import Iterable, Optional

from .models import Booking, Tour


def active_bookings(bookings: Iterable[Booking], excluding_booking_id: Optional[str] = None) -> list[Booking]:
    return [
        booking
        for booking in bookings
        if booking.is_active and booking.id != excluding_booking_id
    ]


def booked_spots(bookings: Iterable[Booking], excluding_booking_id: Optional[str] = None) -> int:
    return sum(booking.spots for booking in active_bookings(bookings, excluding_booking_id))


def available_spots(
    tour: Tour,
    bookings: Iterable[Booking],
    excluding_booking_id: Optional[str] = None,
) -> int:
    """Capacity left on ``tour``; cancelled bookings never consume spots."""
    tour_bookings = (booking for booking in bookings if booking.tour_id == tour.id)
    return tour.capacity - booked_spots(tour_bookings, excluding_booking_id)


def is_fully_booked(tour: Tour, bookings: Iterable[Booking]) -> bool:
    bookings = list(bookings)
    if tour.is_private:
        return any(booking.tour_id == tour.id for booking in active_bookings(bookings))
    return available_spots(tour, bookings) <= 0
