"""Sign-up, sign-in, phone OTP and password recovery flows."""
from __future__ import annotations

import logging
import re
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from itsdangerous import BadSignature, SignatureExpired
from werkzeug.security import check_password_hash, generate_password_hash

from .. import messages
from ..auth import ROLE_ROUTES, TOKEN_PURPOSES, build_token, issue_session_tokens, load_token
from ..auth_flow import AuthFlow, AuthState, parse_recovery_fragment
from ..errors import Conflict, EmailError, Forbidden, InvalidPayload, NotFound, RateLimited, SmsError, Unauthorized
from ..extensions import db
from ..models import AuthFlowRecord, OtpChallenge, User, new_flow_token
from ..settings import load_settings
from ..timeutils import utc_naive_now
from .email import is_fake_email
from .users import validate_password

logger = logging.getLogger(__name__)

OTP_PURPOSES = ("signin", "signup")
PHONE_PATTERN = re.compile(r"^\+?[0-9]{8,15}$")


def generate_otp() -> str:
    return f"{secrets.randbelow(10 ** 6):06d}"


def normalize_phone(raw) -> str:
    phone = re.sub(r"[\s()-]", "", str(raw or ""))
    if not PHONE_PATTERN.match(phone):
        raise InvalidPayload("Please enter a valid phone number")
    return phone


class AuthService:
    def __init__(
        self,
        email,
        sms,
        users,
        sessions,
        frontend_url: str,
        verification_timeout: int = 60,
        otp_resend_seconds: int = 120,
        otp_ttl_seconds: int = 600,
        require_verified_fake_email: bool = False,
    ):
        self.email = email
        self.sms = sms
        self.users = users
        self.sessions = sessions
        self.frontend_url = frontend_url.rstrip("/")
        self.verification_timeout = verification_timeout
        self.otp_resend = timedelta(seconds=otp_resend_seconds)
        self.otp_ttl = timedelta(seconds=otp_ttl_seconds)
        self.require_verified_fake_email = require_verified_fake_email

    # --- flow persistence -------------------------------------------------

    def _new_flow(self, kind: str, **fields) -> tuple[AuthFlowRecord, AuthFlow]:
        record = AuthFlowRecord(kind=kind, state=AuthState.IDLE.value, flow_token=new_flow_token(), **fields)
        db.session.add(record)
        return record, AuthFlow(kind, timeout_seconds=self.verification_timeout)

    def _load_flow(self, flow_id, flow_token: str | None) -> tuple[AuthFlowRecord, AuthFlow]:
        """Load a flow for the client that started it.

        The flow id is sequential, so the caller must also present the
        ``flow_token`` handed out when the flow was created.
        """
        try:
            record = db.session.get(AuthFlowRecord, int(flow_id))
        except (TypeError, ValueError) as exc:
            raise InvalidPayload("flow_id must be an integer") from exc
        presented = str(flow_token or "").encode()
        if record is None or not secrets.compare_digest(presented, (record.flow_token or "").encode()):
            logger.warning("Rejected access to auth flow %s", flow_id)
            raise NotFound("auth flow not found")
        flow = AuthFlow.from_record(record, timeout_seconds=self.verification_timeout)
        if flow.check_timeout():
            logger.warning("Auth flow %s timed out while verifying", record.id)
            flow.apply_to(record)
            db.session.commit()
        return record, flow

    def _save(self, record: AuthFlowRecord, flow: AuthFlow) -> AuthFlowRecord:
        flow.apply_to(record)
        db.session.commit()
        return record

    @staticmethod
    def flow_payload(record: AuthFlowRecord, flow: AuthFlow | None = None) -> dict[str, object]:
        flow = flow or AuthFlow.from_record(record)
        return {"flow_id": record.id, "flow_token": record.flow_token, **flow.to_dict()}

    def get_flow(self, flow_id, flow_token: str | None) -> dict[str, object]:
        record, flow = self._load_flow(flow_id, flow_token)
        return self.flow_payload(record, flow)

    def refresh_flow(self, flow_id, flow_token: str | None) -> dict[str, object]:
        """Reset a timed out or failed flow so the client can start over."""
        record, flow = self._load_flow(flow_id, flow_token)
        if flow.state in (AuthState.TIMED_OUT, AuthState.FAILED, AuthState.SIGNED_IN, AuthState.PASSWORD_UPDATED):
            flow.transition(AuthState.IDLE)
            self._save(record, flow)
        return self.flow_payload(record, flow)

    # --- email sign-up and sign-in ----------------------------------------

    def _business_name(self) -> str:
        return load_settings().get("system", "businessName")

    def _session_response(self, user: User, browser_info: str | None = None) -> dict[str, object]:
        redirect = ROLE_ROUTES.get(user.role)
        if redirect is None:
            raise Forbidden(messages.UNKNOWN_USER_ROLE)
        session = self.sessions.create_session(user, browser_info)
        data = issue_session_tokens(user)
        data.update({"user": user.to_dict(), "redirect": redirect, "session_id": session.session_id})
        return data

    def send_confirmation_email(self, user: User) -> None:
        token = build_token({"user_id": user.id, "email": user.email}, "confirm")
        link = f"{self.frontend_url}/auth#{urlencode({'access_token': token, 'type': 'signup'})}"
        business = self._business_name()
        self.email.send_template(
            user.email,
            f"Confirm your {business} account",
            "emails/confirm_email.html",
            full_name=user.full_name,
            business_name=business,
            link=link,
        )

    def signup(self, payload: dict, required_fields=None) -> dict[str, object]:
        email = (payload.get("email") or "").strip().lower()
        if not email or is_fake_email(email):
            raise InvalidPayload(messages.INVALID_EMAIL)
        if User.query.filter(db.func.lower(User.email) == email).first() is not None:
            raise Conflict(messages.DUPLICATE_EMAIL)
        if not payload.get("password"):
            raise InvalidPayload(messages.PASSWORD_TOO_SHORT)

        fields = {key: value for key, value in payload.items() if key not in ("role", "email")}
        user, _ = self.users.create_user({**fields, "email": email, "role": "customer"}, required_fields, confirmed=False)

        record, flow = self._new_flow("signup", user_id=user.id, email=email)
        flow.transition(AuthState.AWAITING_EMAIL_CONFIRMATION)
        self._save(record, flow)
        self.send_confirmation_email(user)
        logger.info("User %s signed up; awaiting email confirmation", user.id)
        return {**self.flow_payload(record, flow), "message": messages.CHECK_EMAIL_CONFIRMATION}

    def resend_confirmation(self, email: str | None) -> None:
        user = User.query.filter(db.func.lower(User.email) == (email or "").strip().lower()).first()
        if user is None or user.auth_account is None or user.auth_account.confirmed_at is not None:
            logger.info("No pending confirmation for %s", email)
            return
        self.send_confirmation_email(user)

    def confirm_email(
        self, token: str | None, flow_id=None, flow_token: str | None = None, browser_info: str | None = None
    ) -> dict[str, object]:
        if flow_id is not None:
            record, flow = self._load_flow(flow_id, flow_token)
        else:
            record, flow = self._new_flow("signup")

        try:
            claims = load_token(token or "", "confirm")
        except (SignatureExpired, BadSignature) as exc:
            flow.fail(messages.EXPIRED_EMAIL_LINK)
            self._save(record, flow)
            raise InvalidPayload(messages.EXPIRED_EMAIL_LINK) from exc

        user = db.session.get(User, claims.get("user_id"))
        if user is None or user.auth_account is None or user.email.lower() != str(claims.get("email", "")).lower():
            flow.fail(messages.EXPIRED_EMAIL_LINK)
            self._save(record, flow)
            raise InvalidPayload(messages.EXPIRED_EMAIL_LINK)

        record.user_id = user.id
        record.email = user.email
        if user.auth_account.confirmed_at is not None:
            if flow.state is not AuthState.IDLE and flow.can_transition(AuthState.IDLE):
                flow.transition(AuthState.IDLE)
            self._save(record, flow)
            return {**self.flow_payload(record, flow), "message": messages.EMAIL_ALREADY_VERIFIED}

        flow.transition(AuthState.VERIFYING)
        self._save(record, flow)

        user.auth_account.confirmed_at = utc_naive_now()
        user.email_verified = True
        user.last_sign_in = utc_naive_now()
        flow.transition(AuthState.SIGNED_IN)
        self._save(record, flow)
        logger.info("Email confirmed for user %s", user.id)
        return {
            **self.flow_payload(record, flow),
            **self._session_response(user, browser_info),
            "message": messages.EMAIL_VERIFIED,
        }

    def signin(self, email: str | None, password: str | None, browser_info: str | None = None) -> dict[str, object]:
        email = (email or "").strip().lower()
        user = User.query.filter(db.func.lower(User.email) == email).first() if email else None
        account = user.auth_account if user is not None else None
        if account is None or not password or not check_password_hash(account.password_hash, password):
            raise Unauthorized(messages.INVALID_CREDENTIALS)

        if is_fake_email(user.email):
            if not user.email_verified:
                if self.require_verified_fake_email:
                    raise Forbidden(messages.EMAIL_NOT_CONFIRMED)
                logger.info("Skipping email verification check for placeholder account %s", user.id)
        else:
            if account.confirmed_at is None:
                raise Forbidden(messages.EMAIL_NOT_CONFIRMED)
            user.last_sign_in = utc_naive_now()

        response = self._session_response(user, browser_info)
        response["state"] = AuthState.SIGNED_IN.value
        return response

    def signout(self, user: User, session_id: str | None = None) -> None:
        if session_id:
            self.sessions.deactivate(session_id)
        else:
            self.sessions.deactivate_for_user(user.id)
        logger.info("User %s signed out", user.id)

    def refresh(self, refresh_token: str | None) -> dict[str, object]:
        try:
            claims = load_token(refresh_token or "", "refresh")
        except (SignatureExpired, BadSignature) as exc:
            raise Unauthorized("refresh token is invalid or has expired") from exc
        user = db.session.get(User, claims.get("user_id"))
        if user is None:
            raise Unauthorized("refresh token is invalid or has expired")
        return issue_session_tokens(user)

    # --- phone OTP --------------------------------------------------------

    def send_otp(
        self, phone, purpose: str = "signin", full_name: str | None = None, flow_id=None, flow_token: str | None = None
    ) -> dict[str, object]:
        if purpose not in OTP_PURPOSES:
            raise InvalidPayload(f"purpose must be one of {', '.join(OTP_PURPOSES)}")
        settings = load_settings()
        if not settings.get("system", "enableMobileAuth"):
            raise Forbidden(messages.MOBILE_SIGNUP_DISABLED if purpose == "signup" else messages.MOBILE_SIGNIN_DISABLED)

        phone = normalize_phone(phone)
        existing_user = User.query.filter_by(phone_number=phone).first()
        if purpose == "signin" and existing_user is None:
            raise NotFound("No account is registered with this phone number")
        if purpose == "signup":
            if existing_user is not None:
                raise Conflict("This phone number is already registered. Please sign in instead.")
            if not (full_name or "").strip():
                raise InvalidPayload(f"full_name {messages.FIELD_REQUIRED}")

        now = utc_naive_now()
        latest = (
            OtpChallenge.query.filter_by(phone=phone, consumed_at=None)
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .first()
        )
        if latest is not None and latest.resend_after > now:
            raise RateLimited(messages.OTP_COOLDOWN)

        if flow_id is not None:
            record, flow = self._load_flow(flow_id, flow_token)
            if flow.state in (AuthState.FAILED, AuthState.TIMED_OUT):
                flow.transition(AuthState.IDLE)
        else:
            record, flow = self._new_flow(f"otp_{purpose}", phone=phone)
        resend = flow.state is AuthState.AWAITING_OTP

        code = generate_otp()
        db.session.add(
            OtpChallenge(
                phone=phone,
                code_hash=generate_password_hash(code),
                purpose=purpose,
                full_name=(full_name or "").strip() or None,
                expires_at=now + self.otp_ttl,
                resend_after=now + self.otp_resend,
            )
        )
        flow.transition(AuthState.AWAITING_OTP)
        record.phone = phone
        flow.apply_to(record)
        db.session.flush()
        try:
            self.sms.send(phone, f"Your {settings.get('system', 'businessName')} verification code is {code}")
        except SmsError:
            db.session.rollback()
            raise
        db.session.commit()

        payload = self.flow_payload(record, flow)
        if resend:
            payload["message"] = messages.NEW_OTP_SENT
        return payload

    def verify_otp(
        self, flow_id, flow_token: str | None, code: str | None, browser_info: str | None = None
    ) -> dict[str, object]:
        record, flow = self._load_flow(flow_id, flow_token)
        if flow.state is not AuthState.AWAITING_OTP:
            raise InvalidPayload(f"flow is {flow.state.value}, not awaiting a code")

        flow.transition(AuthState.VERIFYING)
        self._save(record, flow)

        now = utc_naive_now()
        challenge = (
            OtpChallenge.query.filter_by(phone=record.phone, consumed_at=None)
            .order_by(OtpChallenge.created_at.desc(), OtpChallenge.id.desc())
            .first()
        )
        if (
            challenge is None
            or challenge.expires_at <= now
            or not code
            or not check_password_hash(challenge.code_hash, str(code).strip())
        ):
            flow.transition(AuthState.AWAITING_OTP)
            flow.error = messages.INVALID_OTP
            self._save(record, flow)
            raise InvalidPayload(messages.INVALID_OTP)

        challenge.consumed_at = now
        if challenge.purpose == "signup":
            user, _ = self.users.create_user(
                {"full_name": challenge.full_name or record.phone, "phone_number": record.phone, "role": "customer"}
            )
        else:
            user = User.query.filter_by(phone_number=record.phone).first()
            if user is None:
                flow.fail("No account is registered with this phone number")
                self._save(record, flow)
                raise NotFound("No account is registered with this phone number")

        record.user_id = user.id
        flow.transition(AuthState.SIGNED_IN)
        self._save(record, flow)
        logger.info("Phone %s verified for user %s", record.phone, user.id)
        return {**self.flow_payload(record, flow), **self._session_response(user, browser_info)}

    # --- password recovery ------------------------------------------------

    def send_recovery_email(self, user: User) -> None:
        claims = {"user_id": user.id}
        fragment = urlencode(
            {
                "access_token": build_token(claims, "recovery"),
                "refresh_token": build_token(claims, "refresh"),
                "type": "recovery",
            }
        )
        business = self._business_name()
        try:
            self.email.send_template(
                user.email,
                f"Reset your {business} password",
                "emails/password_reset.html",
                full_name=user.full_name,
                business_name=business,
                link=f"{self.frontend_url}/reset-password#{fragment}",
            )
        except EmailError:
            logger.error("Password reset email to user %s failed", user.id)
            raise
        logger.info("Password reset email sent to user %s", user.id)

    def forgot_password(self, email: str | None) -> str:
        email = (email or "").strip().lower()
        if not email:
            raise InvalidPayload(messages.EMAIL_REQUIRED_RESET)
        user = User.query.filter(db.func.lower(User.email) == email).first()
        if user is None or is_fake_email(user.email):
            logger.info("Password reset requested for unknown address %s", email)
        else:
            self.send_recovery_email(user)
        return messages.PASSWORD_RESET_SENT

    def begin_recovery(self, fragment: str | None) -> tuple[dict[str, object], bool]:
        record, flow = self._new_flow("recovery")
        result = parse_recovery_fragment(fragment or "", load_token)
        if result.ready and db.session.get(User, result.user_id) is not None:
            record.user_id = result.user_id
            flow.transition(AuthState.RECOVERY_READY)
            self._save(record, flow)
            return {**self.flow_payload(record, flow), "message": messages.SET_NEW_PASSWORD}, True

        flow.fail(result.error or messages.INVALID_RECOVERY_LINK)
        self._save(record, flow)
        return self.flow_payload(record, flow), False

    def reset_password(
        self, flow_id, flow_token: str | None, password: str | None, confirm_password: str | None
    ) -> dict[str, object]:
        record, flow = self._load_flow(flow_id, flow_token)
        max_age = timedelta(seconds=TOKEN_PURPOSES["recovery"][1])
        if (
            flow.state is not AuthState.RECOVERY_READY
            or record.user_id is None
            or utc_naive_now() - record.updated_at.replace(tzinfo=None) > max_age
        ):
            raise InvalidPayload(messages.RECOVERY_NOT_READY)
        if password != confirm_password:
            raise InvalidPayload(messages.PASSWORDS_DO_NOT_MATCH)
        validate_password(password)

        self.users.manual_password_reset(record.user_id, password)
        flow.transition(AuthState.PASSWORD_UPDATED)
        self._save(record, flow)
        return {**self.flow_payload(record, flow), "message": messages.PASSWORD_UPDATED}
