"""Role based visibility and mutation rules."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, Optional

from .errors import PermissionDeniedError
from .models import Actor, Booking, Review, Role, Tour, TourAddOn, TourStatus

logger = logging.getLogger(__name__)


class Entity(str, Enum):
    TOUR = "tour"
    BOOKING = "booking"
    ADD_ON = "add_on"
    REVIEW = "review"
    PROFILE = "profile"


class Action(str, Enum):
    # VIEW scopes listings; SHOW reads a single record
    VIEW = "view"
    SHOW = "show"
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"
    CANCEL = "cancel"
    MANAGE = "manage"
    REVIEW = "review"


class Access(str, Enum):
    ALL = "all"
    OWN = "own"
    OWN_OR_TOUR = "own_or_tour"
    ACTIVE = "active"
    OWN_OR_ACTIVE = "own_or_active"
    NONE = "none"


V, S, C, U, D = Action.VIEW, Action.SHOW, Action.CREATE, Action.UPDATE, Action.DESTROY

PERMISSIONS: Dict[Role, Dict[Entity, Dict[Action, Access]]] = {
    Role.ADMIN: {entity: {action: Access.ALL for action in Action} for entity in Entity},
    Role.GUIDE: {
        Entity.TOUR: {
            V: Access.OWN,
            S: Access.ALL,
            C: Access.OWN,
            U: Access.OWN,
            D: Access.OWN,
            Action.CANCEL: Access.OWN,
        },
        Entity.BOOKING: {
            V: Access.OWN_OR_TOUR,
            C: Access.OWN,
            U: Access.OWN,
            D: Access.OWN,
            Action.CANCEL: Access.OWN_OR_TOUR,
            Action.MANAGE: Access.OWN_OR_TOUR,
            Action.REVIEW: Access.OWN,
        },
        Entity.ADD_ON: {V: Access.OWN, S: Access.OWN_OR_ACTIVE, C: Access.OWN, U: Access.OWN, D: Access.OWN},
        Entity.REVIEW: {V: Access.OWN},
        Entity.PROFILE: {V: Access.OWN, S: Access.ALL, U: Access.OWN},
    },
    Role.TOURIST: {
        Entity.TOUR: {V: Access.ALL, S: Access.ALL},
        Entity.BOOKING: {
            V: Access.OWN,
            C: Access.OWN,
            U: Access.OWN,
            D: Access.OWN,
            Action.CANCEL: Access.OWN,
            Action.MANAGE: Access.OWN,
            Action.REVIEW: Access.OWN,
        },
        Entity.ADD_ON: {V: Access.ACTIVE, S: Access.ACTIVE},
        Entity.REVIEW: {V: Access.OWN, C: Access.OWN, U: Access.OWN, D: Access.OWN},
        Entity.PROFILE: {V: Access.ALL, S: Access.ALL},
    },
    Role.ANONYMOUS: {
        Entity.TOUR: {V: Access.ALL, S: Access.ALL},
        Entity.ADD_ON: {V: Access.ACTIVE, S: Access.ACTIVE},
        Entity.PROFILE: {V: Access.ALL, S: Access.ALL},
    },
}

MAGIC_LINK_ACTIONS = frozenset({Action.MANAGE, Action.REVIEW})


def access_for(role: Role, entity: Entity, action: Action) -> Access:
    return PERMISSIONS.get(role, {}).get(entity, {}).get(action, Access.NONE)


class AuthorizationScope:
    def __init__(self, tour_lookup: Callable[[str], Optional[Tour]]) -> None:
        self._tour_lookup = tour_lookup

    def visible(
        self,
        actor: Actor,
        entity: Entity,
        records: Iterable[Any],
        action: Action = Action.VIEW,
    ) -> list[Any]:
        access = access_for(actor.role, entity, action)
        return [record for record in records if self._grants(access, actor, entity, record)]

    def can(
        self,
        actor: Actor,
        action: Action,
        entity: Entity,
        record: Any,
        email: Optional[str] = None,
    ) -> bool:
        if entity == Entity.BOOKING and action in MAGIC_LINK_ACTIONS and record.matches_email(email):
            return True
        access = access_for(actor.role, entity, action)
        if not self._grants(access, actor, entity, record):
            return False
        if entity == Entity.REVIEW and action == Action.CREATE and access != Access.ALL:
            return self._tour_status(record) == TourStatus.DONE
        return True

    def can_create(self, actor: Actor, entity: Entity, record: Any) -> bool:
        return self.can(actor, Action.CREATE, entity, record)

    def can_update(self, actor: Actor, entity: Entity, record: Any) -> bool:
        return self.can(actor, Action.UPDATE, entity, record)

    def can_destroy(self, actor: Actor, entity: Entity, record: Any) -> bool:
        return self.can(actor, Action.DESTROY, entity, record)

    def authorize(
        self,
        actor: Actor,
        action: Action,
        entity: Entity,
        record: Any,
        email: Optional[str] = None,
    ) -> None:
        if self.can(actor, action, entity, record, email=email):
            return
        logger.warning(
            "Permission denied",
            extra={"actor_id": actor.id, "role": actor.role.value, "entity": entity.value, "action": action.value},
        )
        raise PermissionDeniedError(f"{actor.role.value} may not {action.value} this {entity.value}")

    def _grants(self, access: Access, actor: Actor, entity: Entity, record: Any) -> bool:
        if access == Access.ALL:
            return True
        if access == Access.NONE:
            return False
        if access == Access.ACTIVE:
            return bool(getattr(record, "active", False))
        if access == Access.OWN_OR_ACTIVE:
            return bool(getattr(record, "active", False)) or self._owns(actor, entity, record)
        if access == Access.OWN:
            return self._owns(actor, entity, record)
        if access == Access.OWN_OR_TOUR:
            return self._owns(actor, entity, record) or self._guides_tour_of(actor, record)
        raise ValueError(f"unknown access level: {access!r}")

    def _owns(self, actor: Actor, entity: Entity, record: Any) -> bool:
        if actor.id is None:
            return False
        if entity == Entity.TOUR:
            return record.guide_id == actor.id
        if entity == Entity.ADD_ON:
            return self._guides_tour_of(actor, record)
        if entity in (Entity.BOOKING, Entity.REVIEW, Entity.PROFILE):
            return record.user_id == actor.id
        raise ValueError(f"unknown entity: {entity!r}")

    def _guides_tour_of(self, actor: Actor, record: Booking | TourAddOn | Review) -> bool:
        if actor.role not in (Role.GUIDE, Role.ADMIN) or actor.id is None:
            return False
        tour = self._tour_lookup(record.tour_id)
        return tour is not None and tour.guide_id == actor.id

    def _tour_status(self, record: Review) -> Optional[TourStatus]:
        tour = self._tour_lookup(record.tour_id)
        return tour.status if tour else None
