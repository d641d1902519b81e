"""Service catalog with staff assignment."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from ..errors import InvalidPayload, NotFound
from ..extensions import db
from ..models import Service, User

logger = logging.getLogger(__name__)

BLOCKED_SERVICE_NAME = "__Blocked"
BOOKABLE_ROLES = ("staff", "manager", "admin")


def _price(raw) -> Decimal:
    try:
        value = Decimal(str(raw))
    except (InvalidOperation, TypeError) as exc:
        raise InvalidPayload("price must be a number") from exc
    if value < 0:
        raise InvalidPayload("price must not be negative")
    return value


def _duration(raw) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidPayload("duration must be a whole number of minutes") from exc
    if value <= 0:
        raise InvalidPayload("duration must be positive")
    return value


class CatalogService:
    def list_services(self, include_blocked: bool = False) -> list[Service]:
        query = Service.query
        if not include_blocked:
            query = query.filter(Service.name != BLOCKED_SERVICE_NAME)
        return query.order_by(Service.name.asc()).all()

    def get_service(self, service_id: int) -> Service:
        service = db.session.get(Service, service_id)
        if service is None:
            raise NotFound("service not found")
        return service

    def _staff_members(self, staff_ids) -> list[User]:
        if staff_ids is None:
            return []
        if not isinstance(staff_ids, (list, tuple)):
            raise InvalidPayload("staff_ids must be a list")
        try:
            ids = {int(staff_id) for staff_id in staff_ids}
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("staff_ids must be integers") from exc
        members = User.query.filter(User.id.in_(ids)).all() if ids else []
        if len(members) != len(ids) or any(member.role not in BOOKABLE_ROLES for member in members):
            raise InvalidPayload("staff_ids must reference staff members")
        return members

    def create_service(self, payload: dict, defaults=None) -> Service:
        name = (payload.get("name") or "").strip()
        if not name:
            raise InvalidPayload("name is required")
        if name == BLOCKED_SERVICE_NAME:
            raise InvalidPayload(f"{BLOCKED_SERVICE_NAME} is reserved")

        default_duration = defaults.get("service", "defaultServiceDuration") if defaults else 60
        default_price = defaults.get("service", "defaultServicePrice") if defaults else 0
        service = Service(
            name=name,
            description=payload.get("description"),
            price=_price(payload.get("price", default_price)),
            duration=_duration(payload.get("duration", default_duration)),
        )
        service.staff = self._staff_members(payload.get("staff_ids"))
        db.session.add(service)
        db.session.commit()
        logger.info("Created service %s (%s)", service.id, name)
        return service

    def update_service(self, service_id: int, payload: dict) -> Service:
        service = self.get_service(service_id)
        if "name" in payload:
            name = (payload.get("name") or "").strip()
            if not name:
                raise InvalidPayload("name must not be empty")
            service.name = name
        if "description" in payload:
            service.description = payload.get("description")
        if "price" in payload:
            service.price = _price(payload["price"])
        if "duration" in payload:
            service.duration = _duration(payload["duration"])
        if "staff_ids" in payload:
            service.staff = self._staff_members(payload["staff_ids"])
        db.session.commit()
        return service

    def set_service_staff(self, service_id: int, staff_ids) -> Service:
        service = self.get_service(service_id)
        service.staff = self._staff_members(staff_ids)
        db.session.commit()
        return service

    def delete_service(self, service_id: int) -> None:
        service = self.get_service(service_id)
        db.session.delete(service)
        db.session.commit()

    def blocked_service(self) -> Service:
        """Return the sentinel service used for blocked slots, creating it if needed."""
        service = Service.query.filter_by(name=BLOCKED_SERVICE_NAME).first()
        if service is None:
            service = Service(name=BLOCKED_SERVICE_NAME, description="Blocked time slot", price=0, duration=60)
            db.session.add(service)
            db.session.flush()
            logger.info("Created %s sentinel service", BLOCKED_SERVICE_NAME)
        return service
