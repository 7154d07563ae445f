"""Authentication and account self-service (Postgres/SQLAlchemy)."""
from __future__ import annotations

from typing import Optional, Tuple, Dict, Any
from datetime import timedelta
from uuid import UUID

import logging
from sqlalchemy import select, delete, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.errors import (
    AuthenticationError, AuthorizationError, ConflictError, NotFoundError, ValidationError,
)
from portal.models.user import User, utcnow
from portal.models.password_reset import PasswordReset
from portal.schemas.auth import UserCreate, ProfileUpdate, Role, UserResponse
from portal.services.captcha_service import RecaptchaVerifier
from portal.services.notification_service import NotificationService
from portal.utils.security import (
    hash_password, verify_password, create_access_token, decode_token,
    generate_reset_token, as_utc,
)

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class AuthService:
    def __init__(
        self,
        session: Session,
        captcha: Optional[RecaptchaVerifier] = None,
        notifier: Optional[NotificationService] = None,
    ):
        self.session = session
        self.captcha = captcha
        self.notifier = notifier

    def get_by_email(self, email: str) -> Optional[User]:
        res = self.session.execute(select(User).where(User.email == normalize_email(email)))
        return res.scalar_one_or_none()

    def _check_captcha(self, token: Optional[str], required: bool, remote_ip: Optional[str] = None) -> None:
        if self.captcha is not None:
            self.captcha.verify(token, required=required, remote_ip=remote_ip)

    @staticmethod
    def token_for(u: User) -> str:
        return create_access_token({
            "sub": str(u.id),
            "email": u.email,
            "role": Role.normalize(u.role).value,
        })

    def _record_login(self, u: User) -> None:
        u.previous_login_at = u.last_login_at
        u.last_login_at = utcnow()
        self.session.commit()
        self.session.refresh(u)

    # -------------------------
    # Registration / login
    # -------------------------

    def register(self, data: UserCreate, remote_ip: Optional[str] = None) -> User:
        """Create a pending member. No session token is issued here."""
        self._check_captcha(data.recaptcha_token, required=True, remote_ip=remote_ip)

        email = normalize_email(data.email)
        if self.get_by_email(email) is not None:
            raise ConflictError()

        u = User(
            email=email,
            password_hash=hash_password(data.password),
            full_name=data.full_name,
            organization_name=data.organization_name,
            role_job_title=data.role_job_title,
            role=Role.USER.value,
            is_approved=False,
            approval_status="pending",
        )
        self.session.add(u)
        try:
            self.session.commit()
        except IntegrityError:
            # lost the race against a concurrent registration
            self.session.rollback()
            raise ConflictError()

        self.session.refresh(u)
        logger.info("Registered user %s (pending approval)", u.id)

        if self.notifier is not None:
            self.notifier.welcome(u)
            self.notifier.registration_alert(u)
        return u

    def login(self, email: str, password: str, recaptcha_token: Optional[str] = None,
              remote_ip: Optional[str] = None) -> Tuple[User, str]:
        """Authenticate and return (user, token). Unknown email and bad password look the same."""
        self._check_captcha(recaptcha_token, required=False, remote_ip=remote_ip)

        u = self.get_by_email(email)
        if not u or not verify_password(password, u.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS)

        self._record_login(u)
        return u, self.token_for(u)

    def admin_login(self, email: str, password: str, recaptcha_token: Optional[str],
                    remote_ip: Optional[str] = None) -> Tuple[User, str]:
        self._check_captcha(recaptcha_token, required=True, remote_ip=remote_ip)

        u = self.get_by_email(email)
        if not u or not verify_password(password, u.password_hash):
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not u.is_staff:
            raise AuthorizationError("Admin access required")

        self._record_login(u)
        return u, self.token_for(u)

    def verify(self, token: str) -> Dict[str, Any]:
        """Token check used for session restore. Never raises for a bad token."""
        try:
            claims = decode_token(token)
        except AuthenticationError as e:
            return {"valid": False, "error": e.message}

        try:
            u = self.session.get(User, UUID(str(claims["sub"])))
        except ValueError:
            u = None
        if u is None:
            return {"valid": False, "error": "User not found"}

        user = UserResponse.model_validate(u).model_dump(mode="json")
        return {"valid": True, "user": user}

    # -------------------------
    # Self-service
    # -------------------------

    def update_profile(self, u: User, data: ProfileUpdate) -> User:
        changes = data.model_dump(exclude_unset=True)
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise ValidationError("No profile fields provided")

        for field, value in changes.items():
            setattr(u, field, value)
        self.session.commit()
        self.session.refresh(u)
        return u

    def change_password(self, u: User, new_password: str, current_password: Optional[str] = None) -> None:
        """First-time users may set a password without the current one."""
        if u.is_first_time:
            u.password_hash = hash_password(new_password)
            u.is_first_time = False
            self.session.commit()
            return

        if not current_password:
            raise ValidationError("Current password is required")
        if not verify_password(current_password, u.password_hash):
            raise AuthenticationError("Current password is incorrect")

        u.password_hash = hash_password(new_password)
        self.session.commit()

    def send_password_reset(self, email: str) -> Optional[str]:
        """Store a reset token for a known email and queue the link. Returns the token (or None)."""
        u = self.get_by_email(email)
        if u is None:
            logger.info("Password reset requested for unknown email")
            return None

        token = generate_reset_token()
        self.session.add(PasswordReset(
            email=u.email,
            token=token,
            expires_at=utcnow() + timedelta(minutes=settings.password_reset_expire_minutes),
        ))
        self.session.commit()

        if self.notifier is not None:
            self.notifier.password_reset(u, token)
        return token

    def reset_password(self, token: str, password: str) -> None:
        now = utcnow()
        self.session.execute(delete(PasswordReset).where(PasswordReset.expires_at < now))
        self.session.commit()

        reset = self.session.execute(
            select(PasswordReset).where(PasswordReset.token == token)
        ).scalar_one_or_none()
        if reset is None:
            raise ValidationError("Invalid or expired reset token")
        if as_utc(reset.expires_at) < now:
            raise ValidationError("Reset token has expired")

        u = self.get_by_email(reset.email)
        if u is None:
            raise NotFoundError("User not found")

        u.password_hash = hash_password(password)
        self.session.delete(reset)
        self.session.commit()
        logger.info("Password reset completed for user %s", u.id)

    # -------------------------
    # First-run setup
    # -------------------------

    def setup_super_admin(self, email: str, password: str, full_name: str) -> User:
        count = self.session.execute(select(func.count()).select_from(User)).scalar_one()
        if count > 0:
            raise AuthorizationError("Setup has already been completed")

        u = User(
            email=normalize_email(email),
            password_hash=hash_password(password),
            full_name=full_name,
            role=Role.SUPER_ADMIN.value,
            is_approved=True,
            approval_status="approved",
            approved_at=utcnow(),
            is_first_time=False,
        )
        self.session.add(u)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError()
        self.session.refresh(u)
        logger.info("Created initial super admin %s", u.id)
        return u
