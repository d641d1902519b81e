"""Explicit state machine for sign-up, OTP and password recovery flows."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable
from urllib.parse import parse_qs

from itsdangerous import BadSignature, SignatureExpired

from . import messages
from .errors import Conflict
from .models import AuthFlowRecord
from .timeutils import utc_naive_now


class AuthState(str, Enum):
    IDLE = "idle"
    AWAITING_EMAIL_CONFIRMATION = "awaiting_email_confirmation"
    AWAITING_OTP = "awaiting_otp"
    VERIFYING = "verifying"
    SIGNED_IN = "signed_in"
    RECOVERY_READY = "recovery_ready"
    PASSWORD_UPDATED = "password_updated"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


S = AuthState

TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    S.IDLE: frozenset(
        {S.AWAITING_EMAIL_CONFIRMATION, S.AWAITING_OTP, S.VERIFYING, S.RECOVERY_READY, S.FAILED}
    ),
    S.AWAITING_EMAIL_CONFIRMATION: frozenset({S.VERIFYING, S.FAILED, S.IDLE}),
    # resending a code stays in awaiting_otp
    S.AWAITING_OTP: frozenset({S.AWAITING_OTP, S.VERIFYING, S.FAILED, S.IDLE}),
    S.VERIFYING: frozenset({S.SIGNED_IN, S.AWAITING_OTP, S.TIMED_OUT, S.FAILED}),
    S.SIGNED_IN: frozenset({S.IDLE}),
    S.RECOVERY_READY: frozenset({S.PASSWORD_UPDATED, S.FAILED}),
    S.PASSWORD_UPDATED: frozenset({S.IDLE}),
    S.TIMED_OUT: frozenset({S.VERIFYING, S.IDLE}),
    S.FAILED: frozenset({S.IDLE}),
}


class IllegalTransition(Conflict):
    code = "illegal_transition"

    def __init__(self, current: AuthState, target: AuthState):
        super().__init__(f"cannot move auth flow from {current.value} to {target.value}")
        self.current = current
        self.target = target


class AuthFlow:
    """In-memory view of one flow; persisted through :class:`AuthFlowRecord`."""

    def __init__(
        self,
        kind: str,
        state: AuthState = AuthState.IDLE,
        timeout_seconds: int = 60,
        verifying_since: datetime | None = None,
        error: str | None = None,
    ):
        self.kind = kind
        self.state = AuthState(state)
        self.timeout = timedelta(seconds=timeout_seconds)
        self.verifying_since = verifying_since
        self.error = error

    def can_transition(self, target: AuthState) -> bool:
        return AuthState(target) in TRANSITIONS[self.state]

    def transition(self, target: AuthState, now: datetime | None = None, error: str | None = None) -> AuthState:
        target = AuthState(target)
        if not self.can_transition(target):
            raise IllegalTransition(self.state, target)
        self.state = target
        self.error = error if target in (AuthState.FAILED, AuthState.TIMED_OUT) else None
        self.verifying_since = (now or utc_naive_now()) if target is AuthState.VERIFYING else None
        return self.state

    def fail(self, error: str, now: datetime | None = None) -> AuthState:
        return self.transition(AuthState.FAILED, now=now, error=error)

    def check_timeout(self, now: datetime | None = None) -> bool:
        """Move a stuck ``verifying`` flow to ``timed_out``; True when that happened."""
        if self.state is not AuthState.VERIFYING or self.verifying_since is None:
            return False
        if (now or utc_naive_now()) - self.verifying_since < self.timeout:
            return False
        self.transition(AuthState.TIMED_OUT, now=now, error=messages.VERIFICATION_TIMEOUT)
        return True

    @classmethod
    def from_record(cls, record: AuthFlowRecord, timeout_seconds: int = 60) -> "AuthFlow":
        return cls(
            record.kind,
            AuthState(record.state),
            timeout_seconds=timeout_seconds,
            verifying_since=record.verifying_since,
            error=record.error,
        )

    def apply_to(self, record: AuthFlowRecord) -> AuthFlowRecord:
        record.kind = self.kind
        record.state = self.state.value
        record.error = self.error
        record.verifying_since = self.verifying_since
        return record

    def to_dict(self) -> dict[str, object]:
        data: dict[str, object] = {"kind": self.kind, "state": self.state.value}
        if self.error:
            data["error"] = self.error
        if self.state is AuthState.TIMED_OUT:
            data["refresh_prompt"] = True
        return data


@dataclass
class RecoveryResult:
    ready: bool
    user_id: int | None = None
    error: str | None = None


def parse_recovery_fragment(fragment: str, verify: Callable[[str, str], dict]) -> RecoveryResult:
    """Interpret the URL fragment of a password recovery link.

    ``verify(token, purpose)`` decodes a signed token and raises
    ``SignatureExpired``/``BadSignature`` on failure.
    """
    params = {key: values[0] for key, values in parse_qs((fragment or "").lstrip("#")).items()}

    if "error" in params or "error_description" in params:
        return RecoveryResult(False, error=params.get("error_description") or params.get("error"))

    if params.get("type") != "recovery":
        return RecoveryResult(False, error=messages.INVALID_RECOVERY_LINK)

    access_token = params.get("access_token")
    refresh_token = params.get("refresh_token")
    if not access_token or not refresh_token:
        return RecoveryResult(False, error=messages.INVALID_RECOVERY_LINK)

    try:
        access = verify(access_token, "recovery")
        refresh = verify(refresh_token, "refresh")
    except SignatureExpired:
        return RecoveryResult(False, error=messages.EXPIRED_EMAIL_LINK)
    except BadSignature:
        return RecoveryResult(False, error=messages.INVALID_RECOVERY_LINK)

    if access.get("user_id") is None or access.get("user_id") != refresh.get("user_id"):
        return RecoveryResult(False, error=messages.INVALID_RECOVERY_LINK)
    return RecoveryResult(True, user_id=access["user_id"])
