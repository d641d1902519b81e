"""Fire-and-forget booking emails triggered by booking changes."""
from __future__ import annotations

import atexit
import logging
from concurrent.futures import Future, ThreadPoolExecutor

from sqlalchemy.exc import SQLAlchemyError

from ..errors import ServiceError
from ..settings import load_settings

logger = logging.getLogger(__name__)


class NotificationDispatcher:
    """Hands booking emails to a small worker pool.

    Failures are logged and never reach the request that triggered them.
    With ``run_async`` off the email is sent inline, which keeps tests
    deterministic.
    """

    def __init__(self, app, booking_emails, run_async: bool = True, max_workers: int = 2):
        self.app = app
        self.booking_emails = booking_emails
        self.run_async = run_async
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="bookhub-mail") if run_async else None
        if self._executor is not None:
            atexit.register(self.shutdown)

    def _recipients(self) -> tuple[str, str]:
        settings = load_settings()
        return (
            settings.get("booking", "emailRecipients"),
            settings.get("booking", "customEmailAddresses"),
        )

    def _run(self, description: str, send, *args) -> None:
        with self.app.app_context():
            try:
                mode, custom = self._recipients()
                sent = send(*args, recipients=mode, custom=custom)
                logger.info("%s: %d email(s) sent", description, sent)
            except (ServiceError, SQLAlchemyError) as exc:
                logger.error("%s failed: %s", description, exc)
            except Exception:
                logger.exception("%s failed unexpectedly", description)

    def _dispatch(self, description: str, send, *args) -> Future | None:
        if self._executor is None:
            self._run(description, send, *args)
            return None
        return self._executor.submit(self._run, description, send, *args)

    def booking_created(self, booking_id: int) -> Future | None:
        return self._dispatch(
            f"Booking {booking_id} created email",
            self.booking_emails.send_created_email,
            booking_id,
        )

    def booking_status_changed(self, booking_id: int, old_status: str, new_status: str) -> Future | None:
        return self._dispatch(
            f"Booking {booking_id} status email ({old_status} -> {new_status})",
            self.booking_emails.send_status_email,
            booking_id,
            old_status,
            new_status,
        )

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
