"""Presence sessions behind the connected users report."""
from __future__ import annotations

import logging
import secrets
import string
import time

from ..errors import InvalidPayload, NotFound
from ..extensions import db
from ..models import User, UserSession
from ..timeutils import utc_naive_now

logger = logging.getLogger(__name__)

_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def new_session_id(user_id: int) -> str:
    """``<user>_<epoch ms>_<9 random base36 chars>``"""
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(9))
    return f"{user_id}_{int(time.time() * 1000)}_{suffix}"


class SessionService:
    def create_session(self, user: User, browser_info: str | None = None) -> UserSession:
        session = UserSession(
            session_id=new_session_id(user.id),
            user_id=user.id,
            user_name=user.full_name,
            user_role=user.role,
            last_activity=utc_naive_now(),
            browser_info=(browser_info or "")[:500] or None,
            is_active=True,
        )
        db.session.add(session)
        db.session.commit()
        return session

    def get_session(self, session_id: str) -> UserSession:
        session = UserSession.query.filter_by(session_id=session_id).first()
        if session is None:
            raise NotFound("session not found")
        return session

    def heartbeat(self, session_id: str) -> UserSession:
        session = self.get_session(session_id)
        session.last_activity = utc_naive_now()
        session.is_active = True
        db.session.commit()
        return session

    def deactivate(self, session_id: str) -> UserSession:
        session = self.get_session(session_id)
        session.is_active = False
        db.session.commit()
        return session

    def connected_users(self) -> list[UserSession]:
        """Active sessions, keeping only the most recent one per user."""
        sessions = (
            UserSession.query.filter(UserSession.is_active.is_(True))
            .order_by(UserSession.last_activity.desc(), UserSession.id.desc())
            .all()
        )
        latest: dict[int, UserSession] = {}
        for session in sessions:
            latest.setdefault(session.user_id, session)
        return list(latest.values())

    def disconnected_sessions(self) -> list[UserSession]:
        return (
            UserSession.query.filter(UserSession.is_active.is_(False))
            .order_by(UserSession.last_activity.desc())
            .all()
        )

    def delete_session(self, session_id: str) -> None:
        db.session.delete(self.get_session(session_id))
        db.session.commit()

    def delete_sessions(self, session_ids) -> int:
        if not isinstance(session_ids, (list, tuple)) or not session_ids:
            raise InvalidPayload("session_ids must be a non-empty list")
        deleted = UserSession.query.filter(UserSession.session_id.in_(session_ids)).delete(
            synchronize_session=False
        )
        db.session.commit()
        return deleted

    def clear_disconnected(self) -> int:
        deleted = UserSession.query.filter(UserSession.is_active.is_(False)).delete(synchronize_session=False)
        db.session.commit()
        logger.info("Cleared %d disconnected session(s)", deleted)
        return deleted

    def deactivate_for_user(self, user_id: int) -> int:
        updated = UserSession.query.filter_by(user_id=user_id, is_active=True).update(
            {"is_active": False}, synchronize_session=False
        )
        db.session.commit()
        return updated
