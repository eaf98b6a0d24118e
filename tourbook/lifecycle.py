from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from .errors import ConflictError
from .events import TourStatusChanged
from .models import Tour, TourStatus

logger = logging.getLogger(__name__)


def next_status(tour: Tour, now: datetime) -> TourStatus:
    """Status ``tour`` should hold at ``now``; only ever moves forward."""
    status = tour.status
    if status == TourStatus.SCHEDULED and now >= tour.starts_at:
        status = TourStatus.ONGOING
    # strict: a tour ending exactly now is still ongoing
    if status == TourStatus.ONGOING and now > tour.ends_at:
        status = TourStatus.DONE
    return status


def advance(tour: Tour, now: datetime) -> Optional[TourStatusChanged]:
    if tour.status.is_terminal:
        return None
    target = next_status(tour, now)
    if target == tour.status:
        return None
    previous = tour.status
    tour.status = target
    tour.updated_at = now
    return TourStatusChanged(tour_id=tour.id, previous=previous, current=target, occurred_at=now)


def cancel(tour: Tour, now: datetime) -> Optional[TourStatusChanged]:
    if tour.status == TourStatus.CANCELLED:
        return None
    if tour.status == TourStatus.DONE:
        raise ConflictError("a finished tour cannot be cancelled")
    previous = tour.status
    tour.status = TourStatus.CANCELLED
    tour.updated_at = now
    logger.info("Tour cancelled", extra={"tour_id": tour.id, "previous_status": previous.value})
    return TourStatusChanged(tour_id=tour.id, previous=previous, current=TourStatus.CANCELLED, occurred_at=now)
