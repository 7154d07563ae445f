"""
Notification Service: renders and queues outbound email.

Messages are rendered while the request still has a database session
(after the state change has been committed) and delivered after the
response has been sent, through FastAPI ``BackgroundTasks``. Delivery is
best-effort: each message gets ``EMAIL_MAX_ATTEMPTS`` tries, then the
failure is logged and the message dropped.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from string import Template
from typing import Any, Dict, List, Optional, Protocol
from uuid import UUID

from fastapi import BackgroundTasks, Depends
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.database import get_db
from portal.models.user import User
from portal.services import email_templates as tpl
from portal.services.email_service import get_mailer
from portal.services.settings_service import SettingsService

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to: str, subject: str, text: str, html: str) -> None:
        ...


@dataclass
class OutboundEmail:
    to: str
    subject: str
    text: str
    html: str
    kind: str


def deliver(mailer: Mailer, messages: List[OutboundEmail], max_attempts: int) -> int:
    """Send messages one after another. Returns how many were delivered."""
    delivered = 0
    for message in messages:
        for attempt in range(1, max_attempts + 1):
            try:
                mailer.send(message.to, message.subject, message.text, message.html)
                delivered += 1
                break
            except Exception:
                if attempt >= max_attempts:
                    logger.exception(
                        "Dropping %s email to %s after %d attempt(s)", message.kind, message.to, attempt
                    )
                else:
                    logger.warning(
                        "Sending %s email to %s failed (attempt %d/%d), retrying",
                        message.kind, message.to, attempt, max_attempts,
                    )
    return delivered


class OutboundQueue:
    """
    Per-request outbox.

    The first enqueue registers one background task that drains the whole
    outbox, so every message queued during the request goes out in order.
    Without ``background_tasks`` messages are delivered immediately.
    """

    def __init__(self, mailer: Mailer, background_tasks: Optional[BackgroundTasks] = None,
                 max_attempts: Optional[int] = None):
        self.mailer = mailer
        self.background_tasks = background_tasks
        self.max_attempts = max(1, max_attempts or settings.email_max_attempts)
        self.pending: List[OutboundEmail] = []
        self._scheduled = False

    def enqueue(self, message: OutboundEmail) -> None:
        if self.background_tasks is None:
            deliver(self.mailer, [message], self.max_attempts)
            return

        self.pending.append(message)
        if not self._scheduled:
            self.background_tasks.add_task(deliver, self.mailer, self.pending, self.max_attempts)
            self._scheduled = True


def render(template: Dict[str, str], variables: Dict[str, Any]) -> Dict[str, str]:
    plain = {k: "" if v is None else str(v) for k, v in variables.items()}
    escaped = {k: html.escape(v) for k, v in plain.items()}
    return {
        "subject": Template(template["subject"]).safe_substitute(plain),
        "text": Template(template["body_text"]).safe_substitute(plain),
        "html": Template(template["body_html"]).safe_substitute(escaped),
    }


class NotificationService:
    def __init__(self, session: Session, queue: OutboundQueue):
        self.session = session
        self.queue = queue
        self.settings_service = SettingsService(session)

    def _base_vars(self) -> Dict[str, Any]:
        site = settings.site_url.rstrip("/")
        return {
            "year": datetime.now(timezone.utc).year,
            "login_url": f"{site}/",
            "admin_login_url": f"{site}/admin/login",
            "dashboard_url": f"{site}/admin/dashboard",
        }

    def _queue(self, key: str, to: str, **variables: Any) -> Optional[OutboundEmail]:
        """Render and queue one message. Runs after the commit, so a template lookup failure is only logged."""
        values = self._base_vars()
        values.update(variables)
        try:
            rendered = render(self.settings_service.get_template(key), values)
        except SQLAlchemyError:
            logger.exception("Could not render %s email for %s; not sent", key, to)
            self.session.rollback()
            return None
        message = OutboundEmail(to=to, kind=key, **rendered)
        self.queue.enqueue(message)
        return message

    @staticmethod
    def _name(full_name: Optional[str], fallback: str = "User") -> str:
        return full_name or fallback

    def enabled(self, toggle: str, admin_id: Optional[UUID]) -> bool:
        try:
            return self.settings_service.is_enabled(toggle, admin_id)
        except SQLAlchemyError:
            # every toggle defaults to on
            logger.exception("Could not read notification settings; using defaults")
            self.session.rollback()
            return True

    # -------------------------
    # Member lifecycle
    # -------------------------

    def welcome(self, user: User) -> Optional[OutboundEmail]:
        return self._queue(tpl.WELCOME, user.email, full_name=self._name(user.full_name), email=user.email)

    def registration_alert(self, user: User) -> int:
        """Alert every admin whose effective settings ask for it."""
        try:
            admins = self.session.execute(
                select(User).where(User.role.in_(("admin", "super_admin")))
            ).scalars().all()
        except SQLAlchemyError:
            logger.exception("Could not load admins for registration alert")
            self.session.rollback()
            return 0

        sent = 0
        for admin in admins:
            if not self.enabled("notify_on_registration", admin.id):
                continue
            queued = self._queue(
                tpl.REGISTRATION_ALERT,
                admin.email,
                full_name=self._name(user.full_name),
                email=user.email,
                organization_name=user.organization_name or "",
            )
            if queued is not None:
                sent += 1
        return sent

    def approval(self, user: User) -> Optional[OutboundEmail]:
        return self._queue(tpl.APPROVAL, user.email, full_name=self._name(user.full_name), email=user.email)

    def rejection(self, user: User, reason: Optional[str]) -> Optional[OutboundEmail]:
        return self._queue(
            tpl.REJECTION,
            user.email,
            full_name=self._name(user.full_name),
            email=user.email,
            reason=reason or "No specific reason provided.",
        )

    def deletion(self, email: str, full_name: Optional[str]) -> Optional[OutboundEmail]:
        # plain values: the row is already gone by the time this runs
        return self._queue(tpl.DELETION, email, full_name=self._name(full_name), email=email)

    # -------------------------
    # Accounts
    # -------------------------

    def admin_welcome(self, user: User, password: str) -> Optional[OutboundEmail]:
        return self._queue(
            tpl.ADMIN_WELCOME,
            user.email,
            full_name=self._name(user.full_name, "Administrator"),
            email=user.email,
            password=password,
        )

    def password_reset(self, user: User, token: str) -> Optional[OutboundEmail]:
        site = settings.site_url.rstrip("/")
        return self._queue(
            tpl.PASSWORD_RESET,
            user.email,
            full_name=self._name(user.full_name),
            email=user.email,
            reset_url=f"{site}/reset-password?token={token}",
            expires_minutes=settings.password_reset_expire_minutes,
        )


def get_outbound_queue(
    background_tasks: BackgroundTasks,
    mailer: Mailer = Depends(get_mailer),
) -> OutboundQueue:
    return OutboundQueue(mailer, background_tasks)


def get_notifier(
    db: Session = Depends(get_db),
    queue: OutboundQueue = Depends(get_outbound_queue),
) -> NotificationService:
    return NotificationService(db, queue)
