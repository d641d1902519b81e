"""Business locations."""
from __future__ import annotations

import logging

from .. import messages
from ..errors import InvalidPayload, NotFound
from ..extensions import db
from ..models import Location

logger = logging.getLogger(__name__)


class LocationService:
    def list_locations(self) -> list[Location]:
        return Location.query.order_by(Location.name.asc()).all()

    def get_location(self, location_id: int) -> Location:
        location = db.session.get(Location, location_id)
        if location is None:
            raise NotFound("location not found")
        return location

    def location_name(self, location_id) -> str:
        if location_id in (None, ""):
            return messages.NOT_AVAILABLE
        try:
            location = db.session.get(Location, int(location_id))
        except (TypeError, ValueError):
            location = None
        return location.name if location else messages.UNKNOWN_LOCATION

    def create_location(self, payload: dict) -> Location:
        name = (payload.get("name") or "").strip()
        if not name:
            raise InvalidPayload("name is required")
        location = Location(name=name)
        db.session.add(location)
        db.session.commit()
        logger.info("Created location %s (%s)", location.id, name)
        return location

    def update_location(self, location_id: int, payload: dict) -> Location:
        location = self.get_location(location_id)
        name = (payload.get("name") or "").strip()
        if not name:
            raise InvalidPayload("name is required")
        location.name = name
        db.session.commit()
        return location

    def delete_location(self, location_id: int) -> None:
        location = self.get_location(location_id)
        db.session.delete(location)
        db.session.commit()
