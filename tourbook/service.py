from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from . import config, lifecycle
from .errors import (
    AlreadyCancelledError,
    BadRequestError,
    BookingRejectedError,
    ConflictError,
    NotFoundError,
    ValidationIssue,
)
from .events import BookingCancelled, BookingConfirmed, BookingUpdated, DomainEvent, EventPublisher, TourStatusChanged
from .models import (
    Actor,
    AddOnSelection,
    AddOnType,
    Booking,
    BookingAddOn,
    BookingSource,
    PricingMode,
    Review,
    Tour,
    TourAddOn,
    TourKind,
    TourStatus,
    utc_now,
)
from .pricing import add_ons_total, freeze_add_on, tour_line_total
from .storage import InMemoryBookingStorage
from .validation import (
    can_book,
    check_tour_accepts_bookings,
    validate_add_on_selections,
    validate_booking,
)

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def ensure_utc(dt: datetime, field: str) -> datetime:
    if dt.tzinfo is None:
        raise BadRequestError("timestamp must be timezone-aware", field=field)
    return dt.astimezone(timezone.utc)


@dataclass
class PricedBooking:
    booking: Booking
    add_ons: List[BookingAddOn]
    tour_total_cents: int
    add_ons_total_cents: int
    events: List[DomainEvent] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return self.tour_total_cents + self.add_ons_total_cents


def collect_issues(
    tour: Tour,
    booking: Booking,
    selections: Sequence[AddOnSelection],
    bookings: Sequence[Booking],
    catalog: Sequence[TourAddOn],
    as_of: datetime,
) -> list[ValidationIssue]:
    return validate_booking(tour, booking, bookings, as_of) + validate_add_on_selections(tour, selections, catalog)


def price_booking(
    tour: Tour,
    booking: Booking,
    selections: Sequence[AddOnSelection],
    catalog: Sequence[TourAddOn],
) -> PricedBooking:
    by_id = {add_on.id: add_on for add_on in catalog}
    lines = [freeze_add_on(booking.id, by_id[s.add_on_id], s.quantity) for s in selections]
    return PricedBooking(
        booking=booking,
        add_ons=lines,
        tour_total_cents=tour_line_total(tour, booking.spots),
        add_ons_total_cents=add_ons_total(lines, booking.spots),
    )


def validate_and_price(
    tour: Tour,
    booking: Booking,
    selections: Sequence[AddOnSelection],
    bookings: Sequence[Booking],
    catalog: Sequence[TourAddOn],
    as_of: datetime,
) -> PricedBooking:
    """Admit ``booking`` against the given snapshot and freeze its add-on prices.

    Raises ``BookingRejectedError`` listing every violated rule; nothing is
    persisted here.
    """
    issues = collect_issues(tour, booking, selections, bookings, catalog, as_of)
    if issues:
        raise BookingRejectedError(issues)
    return price_booking(tour, booking, selections, catalog)


class BookingService:
    def __init__(
        self,
        storage: InMemoryBookingStorage,
        clock: Callable[[], datetime] = utc_now,
        publisher: Optional[EventPublisher] = None,
    ) -> None:
        self._storage = storage
        self._clock = clock
        self._publisher = publisher

    @property
    def storage(self) -> InMemoryBookingStorage:
        return self._storage

    # tours

    def create_tour(
        self,
        *,
        guide_id: str,
        title: str,
        capacity: int,
        starts_at: datetime,
        ends_at: datetime,
        price_cents: Optional[int] = None,
        currency: Optional[str] = None,
        kind: TourKind = TourKind.PUBLIC,
        booking_deadline_hours: Optional[int] = None,
    ) -> Tour:
        title = (title or "").strip()
        if not title:
            raise BadRequestError("title can't be blank", field="title")
        if len(title) > config.MAX_TITLE_LENGTH:
            raise BadRequestError(f"title is too long (maximum is {config.MAX_TITLE_LENGTH})", field="title")
        if capacity <= 0:
            raise BadRequestError("capacity must be greater than 0", field="capacity")
        if price_cents is not None and price_cents < 0:
            raise BadRequestError("price must be greater than or equal to 0", field="price_cents")
        starts_at_utc = ensure_utc(starts_at, "starts_at")
        ends_at_utc = ensure_utc(ends_at, "ends_at")
        if ends_at_utc <= starts_at_utc:
            raise BadRequestError("ends_at must be after starts_at", field="ends_at")
        if kind == TourKind.PRIVATE and booking_deadline_hours is None:
            raise BadRequestError("booking deadline is required for private tours", field="booking_deadline_hours")
        if booking_deadline_hours is not None and booking_deadline_hours <= 0:
            raise BadRequestError("booking deadline must be a positive number of hours", field="booking_deadline_hours")

        now = self._clock()
        tour = Tour(
            id=f"tour_{uuid4().hex[:12]}",
            guide_id=guide_id,
            title=title,
            capacity=capacity,
            starts_at=starts_at_utc,
            ends_at=ends_at_utc,
            price_cents=price_cents,
            currency=currency or config.DEFAULT_CURRENCY,
            kind=kind,
            booking_deadline_hours=booking_deadline_hours,
            created_at=now,
            updated_at=now,
        )
        self._storage.save_tour(tour)
        logger.info("Tour created", extra={"tour_id": tour.id, "guide_id": guide_id, "kind": kind.value})
        return tour

    def get_tour(self, tour_id: str) -> Tour:
        tour = self._storage.get_tour(tour_id)
        if not tour:
            raise NotFoundError("tour not found")
        return tour

    def list_tours(self) -> list[Tour]:
        return sorted(self._storage.list_tours(), key=lambda t: t.starts_at)

    def cancel_tour(self, tour_id: str, now: Optional[datetime] = None) -> Tour:
        now = now or self._clock()
        with self._storage.tour_lock(tour_id):
            tour = self.get_tour(tour_id)
            change = lifecycle.cancel(tour, now)
            self._storage.save_tour(tour)
        if change:
            self._publish([change])
        return tour

    def destroy_tour(self, tour_id: str) -> None:
        with self._storage.tour_lock(tour_id):
            self.get_tour(tour_id)
            self._storage.delete_tour(tour_id)
        logger.info("Tour destroyed", extra={"tour_id": tour_id})

    def can_book(self, tour_id: str, now: Optional[datetime] = None) -> bool:
        tour = self.get_tour(tour_id)
        return can_book(tour, self._storage.bookings_for_tour(tour_id), now or self._clock())

    # add-on catalog

    def add_tour_add_on(
        self,
        tour_id: str,
        *,
        name: str,
        price_cents: int,
        pricing_mode: PricingMode = PricingMode.PER_PERSON,
        addon_type: AddOnType = AddOnType.TRANSPORTATION,
        maximum_quantity: Optional[int] = None,
        position: Optional[int] = None,
        description: Optional[str] = None,
    ) -> TourAddOn:
        if not name or not name.strip():
            raise BadRequestError("name can't be blank", field="name")
        if price_cents <= 0:
            raise BadRequestError("price must be greater than 0", field="price_cents")
        if maximum_quantity is not None and maximum_quantity <= 0:
            raise BadRequestError("maximum quantity must be greater than 0", field="maximum_quantity")
        if position is not None and position < 0:
            raise BadRequestError("position must be greater than or equal to 0", field="position")

        with self._storage.tour_lock(tour_id):
            tour = self.get_tour(tour_id)
            existing = self._storage.add_ons_for_tour(tour_id)
            if len(existing) >= config.MAX_ADD_ONS_PER_TOUR:
                raise ConflictError(f"cannot add more than {config.MAX_ADD_ONS_PER_TOUR} add-ons per tour")
            if position is None:
                position = max((a.position for a in existing), default=-1) + 1
            add_on = TourAddOn(
                id=f"addon_{uuid4().hex[:12]}",
                tour_id=tour_id,
                name=name.strip(),
                price_cents=price_cents,
                pricing_mode=pricing_mode,
                addon_type=addon_type,
                maximum_quantity=maximum_quantity,
                position=position,
                currency=tour.currency,
                description=description,
            )
            self._storage.save_add_on(add_on)
        logger.info("Add-on created", extra={"tour_id": tour_id, "add_on_id": add_on.id})
        return add_on

    def get_add_on(self, add_on_id: str) -> TourAddOn:
        add_on = self._storage.get_add_on(add_on_id)
        if not add_on:
            raise NotFoundError("add-on not found")
        return add_on

    def update_add_on_price(self, add_on_id: str, price_cents: int) -> TourAddOn:
        if price_cents <= 0:
            raise BadRequestError("price must be greater than 0", field="price_cents")
        add_on = self.get_add_on(add_on_id)
        add_on.price_cents = price_cents
        self._storage.save_add_on(add_on)
        return add_on

    def deactivate_add_on(self, add_on_id: str) -> TourAddOn:
        add_on = self.get_add_on(add_on_id)
        add_on.active = False
        self._storage.save_add_on(add_on)
        return add_on

    # bookings

    def create_booking(
        self,
        tour_id: str,
        *,
        spots: int,
        selections: Sequence[AddOnSelection] = (),
        user: Optional[Actor] = None,
        name: Optional[str] = None,
        email: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PricedBooking:
        now = now or self._clock()
        booking = self._build_booking(tour_id, spots, user, name, email, now)

        with self._storage.transaction(tour_id) as snapshot:
            if snapshot is None:
                raise NotFoundError("tour not found")
            issues = []
            gate = check_tour_accepts_bookings(snapshot.tour, now)
            if gate:
                issues.append(gate)
            issues.extend(
                collect_issues(snapshot.tour, booking, selections, snapshot.bookings, snapshot.add_ons, now)
            )
            if issues:
                logger.warning(
                    "Booking rejected",
                    extra={"tour_id": tour_id, "kinds": [issue.kind.value for issue in issues]},
                )
                raise BookingRejectedError(issues)

            priced = price_booking(snapshot.tour, booking, selections, snapshot.add_ons)
            self._storage.commit_booking(priced.booking, priced.add_ons, expected_version=snapshot.version)

        priced.events.append(
            BookingConfirmed(
                booking_id=booking.id,
                tour_id=tour_id,
                spots=booking.spots,
                total_cents=priced.total_cents,
                occurred_at=now,
            )
        )
        logger.info(
            "Booking created",
            extra={"booking_id": booking.id, "tour_id": tour_id, "spots": booking.spots, "total_cents": priced.total_cents},
        )
        self._publish(priced.events)
        return priced

    def update_booking_spots(self, booking_id: str, spots: int, now: Optional[datetime] = None) -> PricedBooking:
        now = now or self._clock()
        booking = self.get_booking(booking_id)

        with self._storage.transaction(booking.tour_id) as snapshot:
            if snapshot is None:
                raise NotFoundError("tour not found")
            current = self.get_booking(booking_id)
            if not current.is_active:
                raise ConflictError("a cancelled booking cannot be changed")
            candidate = replace(current, spots=spots, updated_at=now)
            issues = []
            gate = check_tour_accepts_bookings(snapshot.tour, now)
            if gate:
                issues.append(gate)
            issues.extend(validate_booking(snapshot.tour, candidate, snapshot.bookings, now))
            if issues:
                logger.warning(
                    "Booking update rejected",
                    extra={"booking_id": booking_id, "kinds": [issue.kind.value for issue in issues]},
                )
                raise BookingRejectedError(issues)
            self._storage.commit_booking(candidate, [], expected_version=snapshot.version)

        priced = self.booking_summary(booking_id)
        priced.events.append(
            BookingUpdated(
                booking_id=booking_id,
                tour_id=candidate.tour_id,
                previous_spots=current.spots,
                spots=spots,
                occurred_at=now,
            )
        )
        logger.info("Booking updated", extra={"booking_id": booking_id, "spots": spots})
        self._publish(priced.events)
        return priced

    def cancel_booking(self, booking_id: str, now: Optional[datetime] = None) -> Booking:
        now = now or self._clock()
        tour_id = self.get_booking(booking_id).tour_id
        with self._storage.tour_lock(tour_id):
            booking = self.get_booking(booking_id)
            if not booking.cancel(now):
                raise AlreadyCancelledError()
            self._storage.commit_cancellation(booking)
        logger.info("Booking cancelled", extra={"booking_id": booking.id, "tour_id": booking.tour_id})
        self._publish([BookingCancelled(booking_id=booking.id, tour_id=booking.tour_id, occurred_at=now)])
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        booking = self._storage.get_booking(booking_id)
        if not booking:
            raise NotFoundError("booking not found")
        return booking

    def find_booking_by_email(self, booking_id: str, email: str) -> Booking:
        booking = self._storage.find_booking_by_email(booking_id, email)
        if not booking:
            raise NotFoundError("booking not found")
        return booking

    def booking_summary(self, booking_id: str) -> PricedBooking:
        """Totals for a stored booking, computed from the prices frozen at booking time."""
        booking = self.get_booking(booking_id)
        tour = self.get_tour(booking.tour_id)
        lines = self._storage.lines_for_booking(booking_id)
        return PricedBooking(
            booking=booking,
            add_ons=lines,
            tour_total_cents=tour_line_total(tour, booking.spots),
            add_ons_total_cents=add_ons_total(lines, booking.spots),
        )

    # reviews

    def create_review(
        self,
        booking_id: str,
        *,
        rating: int,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Review:
        booking = self.get_booking(booking_id)
        tour = self.get_tour(booking.tour_id)
        if tour.status != TourStatus.DONE:
            raise ConflictError("tour must be done to review")
        if not 0 <= rating <= 5:
            raise BadRequestError("rating must be between 0 and 5", field="rating")
        if comment and len(comment) > config.MAX_REVIEW_COMMENT_LENGTH:
            raise BadRequestError("comment is too long", field="comment")
        review = Review(
            id=f"review_{uuid4().hex[:12]}",
            booking_id=booking.id,
            tour_id=tour.id,
            user_id=booking.user_id,
            rating=rating,
            comment=comment,
            created_at=now or self._clock(),
        )
        self._storage.save_review(review)
        return review

    # lifecycle

    def run_lifecycle_sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Advance every non-terminal tour to the status ``now`` implies.

        Returns the ids of tours whose status changed.
        """
        now = now or self._clock()
        changes: list[TourStatusChanged] = []
        for tour in self._storage.list_tours():
            if tour.status.is_terminal:
                continue
            with self._storage.tour_lock(tour.id):
                change = lifecycle.advance(tour, now)
                if change:
                    self._storage.save_tour(tour)
                    changes.append(change)
        if changes:
            logger.info("Lifecycle sweep moved %d tour(s)", len(changes), extra={"tour_ids": [c.tour_id for c in changes]})
        self._publish(changes)
        return [change.tour_id for change in changes]

    def _build_booking(
        self,
        tour_id: str,
        spots: int,
        user: Optional[Actor],
        name: Optional[str],
        email: Optional[str],
        now: datetime,
    ) -> Booking:
        signed_in = user is not None and user.is_authenticated
        if signed_in:
            email = email or user.email
            name = name or user.name or user.email
        name = (name or "").strip()
        email = (email or "").strip()
        if not name:
            raise BadRequestError("name can't be blank", field="booked_name")
        if len(name) > config.MAX_NAME_LENGTH:
            raise BadRequestError("name is too long", field="booked_name")
        if not EMAIL_PATTERN.match(email):
            raise BadRequestError("email is invalid", field="booked_email")
        return Booking(
            id=f"booking_{uuid4().hex[:12]}",
            tour_id=tour_id,
            spots=spots,
            booked_name=name,
            booked_email=email,
            user_id=user.id if signed_in else None,
            created_via=BookingSource.USER_PORTAL if signed_in else BookingSource.GUEST_BOOKING,
            created_at=now,
            updated_at=now,
        )

    def _publish(self, events: Sequence[DomainEvent]) -> None:
        if not self._publisher:
            return
        for event in events:
            self._publisher(event)
