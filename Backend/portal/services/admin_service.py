"""Admin dashboard queries and staff account management (Postgres/SQLAlchemy)."""
from __future__ import annotations

from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta
from uuid import UUID

import logging
from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.errors import ConflictError, NotFoundError, ValidationError
from portal.models.user import User, utcnow
from portal.schemas.auth import Role, UserResponse
from portal.schemas.users import AdminCreate
from portal.services.notification_service import NotificationService
from portal.utils.security import hash_password, as_utc

logger = logging.getLogger(__name__)

STAFF_ROLES = (Role.ADMIN.value, Role.SUPER_ADMIN.value)
USER_STATUSES = ("pending", "approved", "rejected", "all")


def start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class AdminService:
    def __init__(self, session: Session, notifier: Optional[NotificationService] = None):
        self.session = session
        self.notifier = notifier

    # -------------------------
    # Member listing
    # -------------------------

    def list_users(self, status: Optional[str] = None) -> List[Dict[str, Any]]:
        """Members (never staff), newest first, with the reviewer's display name."""
        status = (status or "all").lower()
        if status not in USER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(USER_STATUSES)}")

        q = select(User).where(User.role == Role.USER.value)
        if status != "all":
            q = q.where(User.approval_status == status)
        users = self.session.execute(q.order_by(User.created_at.desc())).scalars().all()

        reviewer_ids = {u.approved_by for u in users if u.approved_by}
        names: Dict[UUID, str] = {}
        if reviewer_ids:
            reviewers = self.session.execute(
                select(User.id, User.full_name, User.email).where(User.id.in_(reviewer_ids))
            ).all()
            names = {r.id: r.full_name or r.email for r in reviewers}

        rows = []
        for u in users:
            row = UserResponse.model_validate(u).model_dump()
            row["approved_by_name"] = names.get(u.approved_by) if u.approved_by else None
            rows.append(row)
        return rows

    def stats(self, admin: User) -> Dict[str, int]:
        now = utcnow()
        today = start_of_day(now)
        # registrations since the admin's previous session, not the current one
        since = as_utc(admin.previous_login_at) or (now - timedelta(hours=24))

        def count(*criteria) -> int:
            q = select(func.count()).select_from(User).where(User.role == Role.USER.value, *criteria)
            return self.session.execute(q).scalar_one()

        return {
            "approved_today": count(User.approval_status == "approved", User.approved_at >= today),
            "rejected_today": count(User.approval_status == "rejected", User.approved_at >= today),
            "total_pending": count(
                User.approval_status == "pending",
                or_(User.is_approved.is_(None), User.is_approved.is_(False)),
            ),
            "new_since_last_login": count(User.created_at > since),
            "total_users": count(),
        }

    # -------------------------
    # Staff accounts
    # -------------------------

    def list_admins(self) -> List[User]:
        return list(self.session.execute(
            select(User).where(User.role.in_(STAFF_ROLES)).order_by(User.created_at)
        ).scalars())

    def create_admin(self, data: AdminCreate, created_by: Optional[UUID]) -> User:
        role = Role.normalize(data.role)
        if not role.is_staff:
            raise ValidationError("Role must be admin or super_admin")

        email = data.email.strip().lower()
        exists = self.session.execute(select(User.id).where(User.email == email)).first()
        if exists:
            raise ConflictError()

        u = User(
            email=email,
            password_hash=hash_password(data.password),
            full_name=data.full_name,
            organization_name=data.organization_name,
            role=role.value,
            is_approved=True,
            approval_status="approved",
            approved_by=created_by,
            approved_at=utcnow(),
            is_first_time=True,
        )
        self.session.add(u)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise ConflictError()
        self.session.refresh(u)
        logger.info("Admin %s (%s) created by %s", u.id, role.value, created_by)

        if self.notifier is not None:
            self.notifier.admin_welcome(u, data.password)
        return u

    def delete_admin(self, admin_id: UUID, requested_by: UUID) -> None:
        if admin_id == requested_by:
            raise ValidationError("Cannot delete your own account")

        u = self.session.get(User, admin_id)
        if u is None or Role.normalize(u.role) == Role.USER:
            raise NotFoundError("Admin not found")

        self.session.delete(u)
        self.session.commit()
        logger.info("Admin %s deleted by %s", admin_id, requested_by)
