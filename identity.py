"""Identity provider: credentials, signed sessions and the per-request
``AuthSession``.

Views never read a global "current user". Each request resolves its own
``AuthSession`` from the signed cookie, and sign-in/sign-out move that object
through ``anonymous -> authenticating -> authenticated | failed``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from itsdangerous import BadData, URLSafeTimedSerializer
from passlib.context import CryptContext
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

import config
from errors import AuthError, StoreError, ValidationError, is_unique_violation
from logs import get_logger
from models import Profile, UserRole
from schemas import SignUpData

logger = get_logger("identity")

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256"],
    deprecated="auto",
)

SIGNED_UP = "SIGNED_UP"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
EMAIL_CONFIRMED = "EMAIL_CONFIRMED"

AuthListener = Callable[[str, Optional[Profile]], None]
_listeners: List[AuthListener] = []


class SessionStatus(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    FAILED = "failed"


@dataclass
class AuthSession:
    status: SessionStatus = SessionStatus.ANONYMOUS
    profile: Optional[Profile] = None
    error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED

    @property
    def role(self) -> Optional[UserRole]:
        return self.profile.role if self.profile is not None else None

    def begin(self) -> None:
        if self.status not in (SessionStatus.ANONYMOUS, SessionStatus.FAILED):
            raise RuntimeError(f"cannot start authenticating from {self.status.value}")
        self.status = SessionStatus.AUTHENTICATING
        self.error = None

    def succeed(self, profile: Profile) -> None:
        if self.status is not SessionStatus.AUTHENTICATING:
            raise RuntimeError(f"cannot authenticate from {self.status.value}")
        self.status = SessionStatus.AUTHENTICATED
        self.profile = profile

    def fail(self, reason: str) -> None:
        if self.status is not SessionStatus.AUTHENTICATING:
            raise RuntimeError(f"cannot fail from {self.status.value}")
        self.status = SessionStatus.FAILED
        self.profile = None
        self.error = reason

    def clear(self) -> None:
        self.status = SessionStatus.ANONYMOUS
        self.profile = None
        self.error = None


def on_auth_state_change(listener: AuthListener) -> Callable[[], None]:
    """Register ``listener(event, profile)``; returns an unsubscribe callable."""
    _listeners.append(listener)

    def unsubscribe() -> None:
        if listener in _listeners:
            _listeners.remove(listener)

    return unsubscribe


def _emit(event: str, profile: Optional[Profile]) -> None:
    for listener in list(_listeners):
        listener(event, profile)


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def _serializer(salt: str) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(config.SECRET_KEY, salt=salt)


def create_session_token(profile_id: int) -> str:
    """
    Only the profile id goes into the token. The role is always read
    from the profile row, never trusted from the cookie.
    """
    return _serializer("session").dumps({"profile_id": profile_id})


def verify_session_token(token: str, max_age_seconds: Optional[int] = None) -> Optional[dict]:
    """
    Returns {'profile_id': ...} if valid, or None if the token is
    invalid/expired.
    """
    if max_age_seconds is None:
        max_age_seconds = config.SESSION_MAX_AGE
    try:
        return _serializer("session").loads(token, max_age=max_age_seconds)
    except BadData:
        return None


def create_verification_token(email: str) -> str:
    return _serializer("verify-email").dumps(email)


def _find_by_email(db: Session, email: str) -> Optional[Profile]:
    return db.exec(select(Profile).where(Profile.email == email.lower())).first()


def sign_up(db: Session, data: SignUpData) -> Profile:
    if data.password != data.confirm_password:
        raise ValidationError("Passwords do not match.")
    if not data.full_name:
        raise ValidationError("Full name is required.")

    email = str(data.email).lower()
    if _find_by_email(db, email) is not None:
        raise ValidationError("Email already registered")

    profile = Profile(
        email=email,
        full_name=data.full_name,
        phone=data.phone,
        address=data.address,
        role=data.role,
        password_hash=hash_password(data.password),
        email_confirmed=not config.REQUIRE_EMAIL_VERIFICATION,
    )
    db.add(profile)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if is_unique_violation(exc):
            raise ValidationError("Email already registered") from exc
        logger.exception("sign up failed for %s", email)
        raise StoreError("Failed to create account") from exc
    db.refresh(profile)

    logger.info("profile %s signed up as %s", profile.id, profile.role.value)
    if not profile.email_confirmed:
        # no mailer; the link goes to the log for the operator to forward
        logger.info(
            "verification link for %s: /auth/verify?token=%s",
            email,
            create_verification_token(email),
        )
    _emit(SIGNED_UP, profile)
    return profile


def confirm_email(db: Session, token: str) -> Profile:
    try:
        email = _serializer("verify-email").loads(token, max_age=config.VERIFY_MAX_AGE)
    except BadData as exc:
        raise AuthError("Verification link is invalid or has expired") from exc

    profile = _find_by_email(db, email)
    if profile is None:
        raise AuthError("Verification link is invalid or has expired")
    if not profile.email_confirmed:
        profile.email_confirmed = True
        db.add(profile)
        db.commit()
        db.refresh(profile)
        logger.info("profile %s confirmed email", profile.id)
        _emit(EMAIL_CONFIRMED, profile)
    return profile


def sign_in(db: Session, auth: AuthSession, email: str, password: str) -> Profile:
    if auth.is_authenticated:
        # signing in over a live session switches accounts
        auth.clear()
    auth.begin()

    profile = _find_by_email(db, email)
    if profile is None or not verify_password(password, profile.password_hash):
        auth.fail("Invalid login credentials")
        logger.warning("failed sign in for %s", email)
        raise AuthError("Invalid login credentials")
    if not profile.email_confirmed:
        auth.fail("Email not confirmed")
        logger.warning("sign in before email confirmation for profile %s", profile.id)
        raise AuthError("Email not confirmed")

    auth.succeed(profile)
    logger.info("profile %s signed in", profile.id)
    _emit(SIGNED_IN, profile)
    return profile


def sign_out(auth: AuthSession) -> None:
    profile = auth.profile
    auth.clear()
    if profile is not None:
        logger.info("profile %s signed out", profile.id)
    _emit(SIGNED_OUT, profile)


def resolve_session(db: Session, token: Optional[str]) -> AuthSession:
    """Build the AuthSession for one HTTP request from its session cookie."""
    auth = AuthSession()
    if token is None:
        return auth

    auth.begin()
    data = verify_session_token(token)
    if not data:
        auth.fail("Invalid or expired session")
        return auth

    profile = db.get(Profile, data["profile_id"])
    if profile is None:
        auth.fail("User not found for this session")
        return auth

    auth.succeed(profile)
    return auth
