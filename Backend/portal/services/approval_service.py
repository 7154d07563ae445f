"""
Approval workflow for member accounts (Postgres/SQLAlchemy).

A member moves pending -> approved | rejected, can be flipped between the
two by a later decision, and leaves the table only by a hard delete.
Staff accounts are never touched here; they are managed by AdminService.

Bulk approve/reject run in fixed-size batches. Each batch selects the
eligible rows, updates them and commits on its own, so a failing batch is
rolled back and reported while the remaining batches still run.
"""
from __future__ import annotations

from typing import Optional, List, Dict, Any, Iterable, Iterator, Sequence, Tuple
from uuid import UUID

import logging
from sqlalchemy import select, update, delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.errors import DependencyError, NotFoundError, ValidationError
from portal.models.user import User, utcnow
from portal.schemas.auth import Role
from portal.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

MEMBER_ROLE = Role.USER.value


def chunked(items: Sequence, size: int) -> Iterator[List]:
    if size < 1:
        raise ValueError("batch size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


def unique_ids(ids: Iterable[UUID]) -> List[UUID]:
    """Drop repeats, keep first-seen order."""
    seen = set()
    out = []
    for i in ids:
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


# Eligibility: which rows a bulk action may touch
APPROVABLE = (
    User.role == MEMBER_ROLE,
    or_(User.is_approved.is_(None), User.is_approved.is_(False)),
)
REJECTABLE = (
    User.role == MEMBER_ROLE,
    User.approval_status != "rejected",
)


def approved_values(admin_id: Optional[UUID]) -> Dict[str, Any]:
    return {
        "is_approved": True,
        "approval_status": "approved",
        "approved_by": admin_id,
        "approved_at": utcnow(),
        "rejection_reason": None,
        "updated_at": utcnow(),
    }


def rejected_values(admin_id: Optional[UUID], reason: Optional[str]) -> Dict[str, Any]:
    return {
        "is_approved": False,
        "approval_status": "rejected",
        "approved_by": admin_id,
        "approved_at": utcnow(),
        "rejection_reason": reason,
        "updated_at": utcnow(),
    }


class ApprovalService:
    def __init__(self, session: Session, notifier: Optional[NotificationService] = None,
                 batch_size: Optional[int] = None):
        self.session = session
        self.notifier = notifier
        self.batch_size = batch_size or settings.bulk_batch_size

    def _get_member(self, user_id: UUID) -> User:
        u = self.session.get(User, user_id)
        if u is None:
            raise NotFoundError("User not found")
        if Role.normalize(u.role) != Role.USER:
            raise ValidationError("Admin accounts cannot be managed from the user list")
        return u

    def _notify_enabled(self, toggle: str, admin_id: Optional[UUID]) -> bool:
        return self.notifier is not None and self.notifier.enabled(toggle, admin_id)

    def _commit(self, what: str) -> None:
        try:
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("Failed to %s", what)
            raise DependencyError(f"Failed to {what}: {e}")

    # -------------------------
    # Single user
    # -------------------------

    def approve(self, user_id: UUID, admin_id: Optional[UUID]) -> User:
        """Approving twice leaves the same final state."""
        u = self._get_member(user_id)
        for field, value in approved_values(admin_id).items():
            setattr(u, field, value)
        self._commit("approve user")
        self.session.refresh(u)

        logger.info("User %s approved by %s", u.id, admin_id)
        if self._notify_enabled("notify_on_approve", admin_id):
            self.notifier.approval(u)
        return u

    def reject(self, user_id: UUID, admin_id: Optional[UUID], reason: Optional[str] = None) -> User:
        u = self._get_member(user_id)
        for field, value in rejected_values(admin_id, reason).items():
            setattr(u, field, value)
        self._commit("reject user")
        self.session.refresh(u)

        logger.info("User %s rejected by %s", u.id, admin_id)
        if self._notify_enabled("notify_on_reject", admin_id):
            self.notifier.rejection(u, reason)
        return u

    def decide(self, user_id: UUID, action: str, admin_id: Optional[UUID], reason: Optional[str] = None) -> User:
        if action == "approve":
            return self.approve(user_id, admin_id)
        if action == "reject":
            return self.reject(user_id, admin_id, reason)
        raise ValidationError("Invalid request parameters")

    def delete_user(self, user_id: UUID, admin_id: Optional[UUID]) -> None:
        if admin_id is not None and user_id == admin_id:
            raise ValidationError("Cannot delete your own account")
        u = self._get_member(user_id)
        email, full_name = u.email, u.full_name

        self.session.delete(u)
        self._commit("delete user")
        logger.info("User %s deleted by %s", user_id, admin_id)

        if self._notify_enabled("notify_on_delete", admin_id):
            self.notifier.deletion(email, full_name)

    # -------------------------
    # Bulk
    # -------------------------

    def _apply_batch(self, batch: List[UUID], values: Dict[str, Any], eligibility: Tuple) -> List[UUID]:
        """Update the eligible rows of one batch and commit. Returns the ids updated."""
        target = list(self.session.execute(
            select(User.id).where(User.id.in_(batch), *eligibility)
        ).scalars())
        if target:
            self.session.execute(update(User).where(User.id.in_(target)).values(**values))
        self.session.commit()
        return target

    def _run_batches(self, ids: List[UUID], values: Dict[str, Any], eligibility: Tuple, label: str) -> Dict[str, Any]:
        updated: List[UUID] = []
        batches: List[Dict[str, Any]] = []
        failed_batches: List[int] = []
        failed_ids: List[UUID] = []

        for index, batch in enumerate(chunked(ids, self.batch_size)):
            try:
                done = self._apply_batch(batch, values, eligibility)
            except SQLAlchemyError as e:
                self.session.rollback()
                logger.exception("%s batch %d (%d ids) failed", label, index, len(batch))
                batches.append({"index": index, "requested": len(batch), "updated": 0, "error": str(e.__class__.__name__)})
                failed_batches.append(index)
                failed_ids.extend(batch)
                continue

            updated.extend(done)
            batches.append({"index": index, "requested": len(batch), "updated": len(done), "error": None})

        logger.info(
            "%s: requested=%d updated=%d failed_batches=%s", label, len(ids), len(updated), failed_batches
        )
        return {
            "updated_ids": updated,
            "updated_count": len(updated),
            "requested_count": len(ids),
            "batches": batches,
            "failed_batches": failed_batches,
            "failed_ids": failed_ids,
        }

    def _load(self, ids: List[UUID]) -> List[User]:
        users: List[User] = []
        for batch in chunked(ids, self.batch_size):
            users.extend(self.session.execute(select(User).where(User.id.in_(batch))).scalars())
        return users

    def bulk_approve(self, user_ids: List[UUID], admin_id: Optional[UUID]) -> Dict[str, Any]:
        """Approve the pending/unset members among ``user_ids``; already approved ids are skipped."""
        ids = unique_ids(user_ids)
        result = self._run_batches(ids, approved_values(admin_id), APPROVABLE, "bulk approve")

        if result["updated_ids"] and self._notify_enabled("notify_on_approve", admin_id):
            for u in self._load(result["updated_ids"]):
                self.notifier.approval(u)
        return result

    def bulk_reject(self, user_ids: List[UUID], reason: str, admin_id: Optional[UUID]) -> Dict[str, Any]:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required")

        ids = unique_ids(user_ids)
        result = self._run_batches(ids, rejected_values(admin_id, reason.strip()), REJECTABLE, "bulk reject")

        if result["updated_ids"] and self._notify_enabled("notify_on_reject", admin_id):
            for u in self._load(result["updated_ids"]):
                self.notifier.rejection(u, reason.strip())
        return result

    def bulk_delete(self, user_ids: List[UUID], admin_id: Optional[UUID]) -> int:
        """All-or-nothing: any staff target or the caller's own id rejects the whole request."""
        ids = unique_ids(user_ids)
        if admin_id is not None and admin_id in ids:
            raise ValidationError("Cannot delete your own account")

        targets = self._load(ids)
        staff = [u for u in targets if Role.normalize(u.role) != Role.USER]
        if staff:
            raise ValidationError(
                "Cannot delete admin users. Please contact a super administrator.",
                extra={"adminEmails": [u.email for u in staff]},
            )

        recipients = [(u.email, u.full_name) for u in targets]
        found = [u.id for u in targets]
        try:
            for batch in chunked(found, self.batch_size):
                self.session.execute(delete(User).where(User.id.in_(batch)))
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.exception("bulk delete failed")
            raise DependencyError(f"Failed to delete users: {e}")

        logger.info("bulk delete: requested=%d deleted=%d by %s", len(ids), len(found), admin_id)

        if self.notifier is not None:
            for email, full_name in recipients:
                self.notifier.deletion(email, full_name)
        return len(found)
