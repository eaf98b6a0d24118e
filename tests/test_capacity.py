from __future__ import annotations

from tourbook.capacity import available_spots, booked_spots, is_fully_booked
from tourbook.models import BookingStatus


def test_cancelled_bookings_never_consume_capacity(make_tour, make_booking) -> None:
    tour = make_tour(capacity=10)
    bookings = [
        make_booking(4, status=BookingStatus.CANCELLED),
        make_booking(6, status=BookingStatus.CANCELLED),
    ]

    assert booked_spots(bookings) == 0
    assert available_spots(tour, bookings) == 10


def test_available_spots_can_exclude_the_booking_being_updated(make_tour, make_booking) -> None:
    tour = make_tour(capacity=10)
    first = make_booking(7)
    second = make_booking(2)

    assert available_spots(tour, [first, second]) == 1
    assert available_spots(tour, [first, second], excluding_booking_id=first.id) == 8


def test_bookings_for_other_tours_are_ignored(make_tour, make_booking) -> None:
    tour = make_tour(capacity=5)
    bookings = [make_booking(3), make_booking(5, tour_id="tour_other")]

    assert available_spots(tour, bookings) == 2


def test_public_tour_fully_booked_when_no_spots_left(make_tour, make_booking) -> None:
    tour = make_tour(capacity=4)

    assert not is_fully_booked(tour, [make_booking(3)])
    assert is_fully_booked(tour, [make_booking(3), make_booking(1)])


def test_private_tour_fully_booked_after_any_confirmed_booking(make_private_tour, make_booking) -> None:
    tour = make_private_tour()

    assert not is_fully_booked(tour, [make_booking(6, status=BookingStatus.CANCELLED)])
    assert is_fully_booked(tour, [make_booking(6)])
