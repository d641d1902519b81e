"""SMS delivery through the Twilio REST API."""
from __future__ import annotations

import logging

import httpx

from ..errors import SmsError

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{account_sid}/Messages.json"


class SmsService:
    def __init__(self, account_sid: str | None, auth_token: str | None, from_number: str | None, timeout: float = 10.0):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.from_number)

    def send(self, to_phone: str, body: str) -> str | None:
        """Send one message and return its Twilio SID."""
        if not self.configured:
            logger.warning("Twilio credentials missing; skipping SMS to %s", to_phone)
            return None

        logger.info("Sending SMS to %s", to_phone)
        try:
            response = httpx.post(
                TWILIO_MESSAGES_URL.format(account_sid=self.account_sid),
                auth=(self.account_sid, self.auth_token),
                data={"To": to_phone, "From": self.from_number, "Body": body},
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Twilio request failed for %s: %s", to_phone, exc)
            raise SmsError(f"Failed to send SMS: {exc}") from exc

        if response.status_code not in (200, 201):
            try:
                message = response.json().get("message", "Unknown error")
            except ValueError:
                message = response.text
            logger.error("Twilio API error %s for %s: %s", response.status_code, to_phone, message)
            raise SmsError(f"Failed to send SMS: {message}")

        sid = response.json().get("sid")
        logger.info("SMS sent to %s (SID: %s)", to_phone, sid)
        return sid
