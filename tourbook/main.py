from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, suppress
from types import SimpleNamespace
from typing import AsyncIterator, List, Optional

from fastapi import Depends, FastAPI, Header, Request, Response, status
from fastapi.responses import JSONResponse

from . import config
from .authorization import Action, AuthorizationScope, Entity
from .errors import AppError, BadRequestError, PermissionDeniedError
from .models import Actor, AddOnSelection, Role
from .schemas import (
    AddOnCreateRequest,
    AddOnPriceUpdateRequest,
    AddOnResponse,
    BookingCreateRequest,
    BookingResponse,
    BookingUpdateRequest,
    CanBookResponse,
    ReviewCreateRequest,
    ReviewResponse,
    SweepResponse,
    TourCreateRequest,
    TourResponse,
)
from .service import BookingService
from .storage import InMemoryBookingStorage

logging.basicConfig(level=config.LOG_LEVEL)

logger = logging.getLogger(__name__)


def get_service() -> BookingService:
    if not hasattr(get_service, "_instance"):
        storage = InMemoryBookingStorage()
        get_service._instance = BookingService(storage=storage)
    return get_service._instance  # type: ignore[attr-defined]


def get_scope(service: BookingService = Depends(get_service)) -> AuthorizationScope:
    return AuthorizationScope(tour_lookup=service.storage.get_tour)


def get_actor(
    actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
    role: Optional[str] = Header(default=None, alias="X-Actor-Role"),
    email: Optional[str] = Header(default=None, alias="X-Actor-Email"),
    name: Optional[str] = Header(default=None, alias="X-Actor-Name"),
) -> Actor:
    if not actor_id or not role:
        return Actor.anonymous(email=email)
    try:
        parsed = Role(role.lower())
    except ValueError:
        raise BadRequestError("unknown role", field="X-Actor-Role")
    return Actor(role=parsed, id=actor_id, name=name, email=email)


async def _sweep_periodically(interval: int) -> None:
    while True:
        await asyncio.sleep(interval)
        changed = get_service().run_lifecycle_sweep()
        logger.debug("Periodic sweep finished", extra={"changed": len(changed)})


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    task = None
    if config.SWEEP_INTERVAL_SECONDS > 0:
        task = asyncio.create_task(_sweep_periodically(config.SWEEP_INTERVAL_SECONDS))
    yield
    if task:
        task.cancel()
        with suppress(asyncio.CancelledError):
            await task


app = FastAPI(title="Tour Booking API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(AppError)
async def handle_app_error(_: Request, exc: AppError) -> JSONResponse:
    logger.warning("Request failed", extra={"code": exc.code, "error_message": exc.message})
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.post("/v1/tours", response_model=TourResponse, status_code=status.HTTP_201_CREATED)
async def create_tour(
    payload: TourCreateRequest,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> TourResponse:
    guide_id = payload.guide_id or actor.id
    scope.authorize(actor, Action.CREATE, Entity.TOUR, SimpleNamespace(guide_id=guide_id))
    tour = service.create_tour(
        guide_id=guide_id,
        title=payload.title,
        capacity=payload.capacity,
        starts_at=payload.starts_at,
        ends_at=payload.ends_at,
        price_cents=payload.price_cents,
        currency=payload.currency,
        kind=payload.kind,
        booking_deadline_hours=payload.booking_deadline_hours,
    )
    return TourResponse.from_domain(tour)


@app.get("/v1/tours", response_model=List[TourResponse])
async def list_tours(
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> List[TourResponse]:
    tours = scope.visible(actor, Entity.TOUR, service.list_tours())
    return [TourResponse.from_domain(tour) for tour in tours]


@app.get("/v1/tours/{tour_id}", response_model=TourResponse)
async def get_tour(
    tour_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> TourResponse:
    tour = service.get_tour(tour_id)
    scope.authorize(actor, Action.SHOW, Entity.TOUR, tour)
    return TourResponse.from_domain(tour)


@app.get("/v1/tours/{tour_id}/bookable", response_model=CanBookResponse)
async def tour_bookable(tour_id: str, service: BookingService = Depends(get_service)) -> CanBookResponse:
    return CanBookResponse(tour_id=tour_id, can_book=service.can_book(tour_id))


@app.post("/v1/tours/{tour_id}/cancel", response_model=TourResponse)
async def cancel_tour(
    tour_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> TourResponse:
    scope.authorize(actor, Action.CANCEL, Entity.TOUR, service.get_tour(tour_id))
    return TourResponse.from_domain(service.cancel_tour(tour_id))


@app.delete("/v1/tours/{tour_id}", status_code=status.HTTP_204_NO_CONTENT)
async def destroy_tour(
    tour_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> Response:
    scope.authorize(actor, Action.DESTROY, Entity.TOUR, service.get_tour(tour_id))
    service.destroy_tour(tour_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/v1/tours/{tour_id}/add-ons", response_model=AddOnResponse, status_code=status.HTTP_201_CREATED)
async def create_add_on(
    tour_id: str,
    payload: AddOnCreateRequest,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> AddOnResponse:
    service.get_tour(tour_id)
    scope.authorize(actor, Action.CREATE, Entity.ADD_ON, SimpleNamespace(tour_id=tour_id))
    add_on = service.add_tour_add_on(
        tour_id,
        name=payload.name,
        price_cents=payload.price_cents,
        pricing_mode=payload.pricing_mode,
        addon_type=payload.addon_type,
        maximum_quantity=payload.maximum_quantity,
        position=payload.position,
        description=payload.description,
    )
    return AddOnResponse.from_domain(add_on)


@app.get("/v1/tours/{tour_id}/add-ons", response_model=List[AddOnResponse])
async def list_add_ons(
    tour_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> List[AddOnResponse]:
    service.get_tour(tour_id)
    add_ons = scope.visible(
        actor, Entity.ADD_ON, service.storage.add_ons_for_tour(tour_id), action=Action.SHOW
    )
    return [AddOnResponse.from_domain(add_on) for add_on in add_ons]


@app.patch("/v1/add-ons/{add_on_id}", response_model=AddOnResponse)
async def update_add_on_price(
    add_on_id: str,
    payload: AddOnPriceUpdateRequest,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> AddOnResponse:
    scope.authorize(actor, Action.UPDATE, Entity.ADD_ON, service.get_add_on(add_on_id))
    return AddOnResponse.from_domain(service.update_add_on_price(add_on_id, payload.price_cents))


@app.delete("/v1/add-ons/{add_on_id}", response_model=AddOnResponse)
async def deactivate_add_on(
    add_on_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> AddOnResponse:
    scope.authorize(actor, Action.DESTROY, Entity.ADD_ON, service.get_add_on(add_on_id))
    return AddOnResponse.from_domain(service.deactivate_add_on(add_on_id))


@app.post("/v1/tours/{tour_id}/bookings", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    tour_id: str,
    payload: BookingCreateRequest,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> BookingResponse:
    service.get_tour(tour_id)
    scope.authorize(actor, Action.CREATE, Entity.BOOKING, SimpleNamespace(user_id=actor.id, tour_id=tour_id))
    priced = service.create_booking(
        tour_id,
        spots=payload.spots,
        selections=[AddOnSelection(add_on_id=s.add_on_id, quantity=s.quantity) for s in payload.add_ons],
        user=actor,
        name=payload.name,
        email=payload.email,
    )
    return BookingResponse.from_priced(priced)


@app.get("/v1/bookings", response_model=List[BookingResponse])
async def list_bookings(
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> List[BookingResponse]:
    bookings = scope.visible(actor, Entity.BOOKING, service.storage.list_bookings())
    return [BookingResponse.from_priced(service.booking_summary(booking.id)) for booking in bookings]


@app.get("/v1/bookings/{booking_id}", response_model=BookingResponse)
async def manage_booking(
    booking_id: str,
    email: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> BookingResponse:
    booking = service.get_booking(booking_id)
    scope.authorize(actor, Action.MANAGE, Entity.BOOKING, booking, email=email)
    return BookingResponse.from_priced(service.booking_summary(booking_id))


@app.patch("/v1/bookings/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    payload: BookingUpdateRequest,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> BookingResponse:
    scope.authorize(actor, Action.UPDATE, Entity.BOOKING, service.get_booking(booking_id))
    return BookingResponse.from_priced(service.update_booking_spots(booking_id, payload.spots))


@app.post("/v1/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> BookingResponse:
    scope.authorize(actor, Action.CANCEL, Entity.BOOKING, service.get_booking(booking_id))
    service.cancel_booking(booking_id)
    return BookingResponse.from_priced(service.booking_summary(booking_id))


@app.post("/v1/bookings/{booking_id}/review", response_model=ReviewResponse, status_code=status.HTTP_201_CREATED)
async def review_booking(
    booking_id: str,
    payload: ReviewCreateRequest,
    email: Optional[str] = None,
    actor: Actor = Depends(get_actor),
    scope: AuthorizationScope = Depends(get_scope),
    service: BookingService = Depends(get_service),
) -> ReviewResponse:
    scope.authorize(actor, Action.REVIEW, Entity.BOOKING, service.get_booking(booking_id), email=email)
    review = service.create_review(booking_id, rating=payload.rating, comment=payload.comment)
    return ReviewResponse.from_domain(review)


@app.post("/v1/lifecycle/sweep", response_model=SweepResponse)
async def run_sweep(
    actor: Actor = Depends(get_actor),
    service: BookingService = Depends(get_service),
) -> SweepResponse:
    if actor.role != Role.ADMIN:
        raise PermissionDeniedError("only admins may trigger a lifecycle sweep")
    return SweepResponse(changed_tour_ids=service.run_lifecycle_sweep())
