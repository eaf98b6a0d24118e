from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from threading import RLock
from typing import Dict, Iterator, Optional, Sequence

from .errors import ConcurrencyConflictError, ConflictError
from .models import Booking, BookingAddOn, Review, Tour, TourAddOn


@dataclass
class TourSnapshot:
    tour: Tour
    bookings: list[Booking]
    add_ons: list[TourAddOn]
    version: int


class InMemoryBookingStorage:
    """Thread-safe in-memory storage for tours, bookings and their add-ons.

    Admission for one tour is serialized through a per-tour re-entrant lock;
    ``transaction`` holds it for the whole read-validate-commit sequence.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._tour_locks: Dict[str, RLock] = {}
        self._tours: Dict[str, Tour] = {}
        self._bookings: Dict[str, Booking] = {}
        self._tour_add_ons: Dict[str, TourAddOn] = {}
        self._booking_add_ons: Dict[str, BookingAddOn] = {}
        self._reviews: Dict[str, Review] = {}

    def tour_lock(self, tour_id: str) -> RLock:
        with self._lock:
            # unknown ids get a throwaway lock; only stored tours are tracked
            if tour_id not in self._tours:
                return RLock()
            return self._tour_locks.setdefault(tour_id, RLock())

    @contextmanager
    def transaction(self, tour_id: str) -> Iterator[Optional[TourSnapshot]]:
        with self.tour_lock(tour_id):
            yield self.snapshot(tour_id)

    def snapshot(self, tour_id: str) -> Optional[TourSnapshot]:
        with self._lock:
            tour = self._tours.get(tour_id)
            if not tour:
                return None
            return TourSnapshot(
                tour=tour,
                bookings=self.bookings_for_tour(tour_id),
                add_ons=self.add_ons_for_tour(tour_id),
                version=tour.version,
            )

    # tours

    def get_tour(self, tour_id: str) -> Optional[Tour]:
        with self._lock:
            return self._tours.get(tour_id)

    def save_tour(self, tour: Tour) -> None:
        with self._lock:
            self._tours[tour.id] = tour

    def list_tours(self) -> list[Tour]:
        with self._lock:
            return list(self._tours.values())

    def delete_tour(self, tour_id: str) -> None:
        with self._lock:
            booking_ids = {b.id for b in self._bookings.values() if b.tour_id == tour_id}
            add_on_ids = {a.id for a in self._tour_add_ons.values() if a.tour_id == tour_id}
            for line_id in [
                line.id
                for line in self._booking_add_ons.values()
                if line.booking_id in booking_ids or line.tour_add_on_id in add_on_ids
            ]:
                del self._booking_add_ons[line_id]
            for review_id in [r.id for r in self._reviews.values() if r.tour_id == tour_id]:
                del self._reviews[review_id]
            for booking_id in booking_ids:
                del self._bookings[booking_id]
            for add_on_id in add_on_ids:
                del self._tour_add_ons[add_on_id]
            self._tours.pop(tour_id, None)
            self._tour_locks.pop(tour_id, None)

    # bookings

    def get_booking(self, booking_id: str) -> Optional[Booking]:
        with self._lock:
            return self._bookings.get(booking_id)

    def list_bookings(self) -> list[Booking]:
        with self._lock:
            return list(self._bookings.values())

    def bookings_for_tour(self, tour_id: str, include_cancelled: bool = False) -> list[Booking]:
        with self._lock:
            return [
                booking
                for booking in self._bookings.values()
                if booking.tour_id == tour_id and (include_cancelled or booking.is_active)
            ]

    def find_booking_by_email(self, booking_id: str, email: str) -> Optional[Booking]:
        booking = self.get_booking(booking_id)
        if booking and booking.matches_email(email):
            return booking
        return None

    def commit_booking(
        self,
        booking: Booking,
        lines: Sequence[BookingAddOn],
        expected_version: int,
    ) -> None:
        """Insert or update ``booking`` with its add-on lines as one unit."""
        with self._lock:
            tour = self._tours.get(booking.tour_id)
            if tour is None or tour.version != expected_version:
                raise ConcurrencyConflictError()
            taken = {
                (line.booking_id, line.tour_add_on_id)
                for line in self._booking_add_ons.values()
            }
            for line in lines:
                if (line.booking_id, line.tour_add_on_id) in taken:
                    raise ConflictError("add-on has already been added to this booking")
                taken.add((line.booking_id, line.tour_add_on_id))
            self._bookings[booking.id] = booking
            for line in lines:
                self._booking_add_ons[line.id] = line
            self._touch(tour)

    def commit_cancellation(self, booking: Booking) -> None:
        with self._lock:
            self._bookings[booking.id] = booking
            tour = self._tours.get(booking.tour_id)
            if tour is not None:
                self._touch(tour)

    def _touch(self, tour: Tour) -> None:
        tour.bookings_count = sum(
            1 for b in self._bookings.values() if b.tour_id == tour.id and b.is_active
        )
        tour.version += 1

    # add-ons

    def get_add_on(self, add_on_id: str) -> Optional[TourAddOn]:
        with self._lock:
            return self._tour_add_ons.get(add_on_id)

    def save_add_on(self, add_on: TourAddOn) -> None:
        with self._lock:
            self._tour_add_ons[add_on.id] = add_on

    def add_ons_for_tour(self, tour_id: str) -> list[TourAddOn]:
        with self._lock:
            add_ons = [a for a in self._tour_add_ons.values() if a.tour_id == tour_id]
        return sorted(add_ons, key=lambda a: a.position)

    def lines_for_booking(self, booking_id: str) -> list[BookingAddOn]:
        with self._lock:
            return [line for line in self._booking_add_ons.values() if line.booking_id == booking_id]

    # reviews

    def save_review(self, review: Review) -> None:
        with self._lock:
            if any(r.booking_id == review.booking_id and r.id != review.id for r in self._reviews.values()):
                raise ConflictError("booking already has a review")
            self._reviews[review.id] = review
