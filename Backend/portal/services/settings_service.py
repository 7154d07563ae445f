"""Notification settings and editable email templates (Postgres/SQLAlchemy)."""
from __future__ import annotations

from typing import Optional, Dict, Any, List
from uuid import UUID

import logging
from sqlalchemy import select
from sqlalchemy.orm import Session

from portal.errors import ValidationError
from portal.models.settings import NotificationSettings
from portal.models.email_template import EmailTemplate
from portal.services.email_templates import DEFAULT_TEMPLATES

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS: Dict[str, bool] = {
    "notify_on_approve": True,
    "notify_on_reject": True,
    "notify_on_delete": True,
    "notify_on_registration": True,
}
TOGGLES = tuple(DEFAULT_SETTINGS)


class SettingsService:
    def __init__(self, session: Session):
        self.session = session

    # -------------------------
    # Notification toggles
    # -------------------------

    def _row(self, admin_id: Optional[UUID]) -> Optional[NotificationSettings]:
        q = select(NotificationSettings)
        if admin_id is None:
            q = q.where(NotificationSettings.admin_id.is_(None))
        else:
            q = q.where(NotificationSettings.admin_id == admin_id)
        return self.session.execute(q.order_by(NotificationSettings.id).limit(1)).scalar_one_or_none()

    def effective(self, admin_id: Optional[UUID] = None) -> Dict[str, bool]:
        """Global row over built-in defaults, then the admin's own row field by field."""
        merged = dict(DEFAULT_SETTINGS)
        rows = [self._row(None)]
        if admin_id is not None:
            rows.append(self._row(admin_id))

        for row in rows:
            if row is None:
                continue
            for field in TOGGLES:
                value = getattr(row, field)
                if value is not None:
                    merged[field] = bool(value)
        return merged

    def is_enabled(self, toggle: str, admin_id: Optional[UUID] = None) -> bool:
        return self.effective(admin_id)[toggle]

    def update(self, values: Dict[str, Any], scope: str = "global", admin_id: Optional[UUID] = None) -> Dict[str, bool]:
        changes = {k: bool(v) for k, v in values.items() if k in TOGGLES and v is not None}
        if not changes:
            raise ValidationError("No valid settings provided")
        if scope == "personal" and admin_id is None:
            raise ValidationError("Personal settings require an admin account")

        owner = admin_id if scope == "personal" else None
        row = self._row(owner)
        if row is None:
            row = NotificationSettings(admin_id=owner)
            self.session.add(row)

        for field, value in changes.items():
            setattr(row, field, value)

        self.session.commit()
        logger.info("Notification settings updated scope=%s owner=%s fields=%s", scope, owner, sorted(changes))
        return self.effective(admin_id)

    # -------------------------
    # Email templates
    # -------------------------

    def _stored_templates(self) -> Dict[str, EmailTemplate]:
        rows = self.session.execute(select(EmailTemplate)).scalars().all()
        return {r.key: r for r in rows}

    def list_templates(self) -> List[Dict[str, str]]:
        stored = self._stored_templates()
        keys = sorted(set(DEFAULT_TEMPLATES) | set(stored))
        return [self._template_dict(k, stored.get(k)) for k in keys]

    def get_template(self, key: str) -> Dict[str, str]:
        row = self.session.execute(
            select(EmailTemplate).where(EmailTemplate.key == key)
        ).scalar_one_or_none()
        if row is None and key not in DEFAULT_TEMPLATES:
            raise ValidationError(f"Unknown template key: {key}")
        return self._template_dict(key, row)

    @staticmethod
    def _template_dict(key: str, row: Optional[EmailTemplate]) -> Dict[str, str]:
        if row is not None:
            return {"key": key, "subject": row.subject, "body_html": row.body_html, "body_text": row.body_text}
        default = DEFAULT_TEMPLATES[key]
        return {"key": key, **default}

    def upsert_template(self, key: str, subject: str, body_html: str, body_text: str) -> Dict[str, str]:
        if key not in DEFAULT_TEMPLATES:
            raise ValidationError(f"Unknown template key: {key}")

        row = self.session.execute(
            select(EmailTemplate).where(EmailTemplate.key == key)
        ).scalar_one_or_none()
        if row is None:
            row = EmailTemplate(key=key, subject=subject, body_html=body_html, body_text=body_text)
            self.session.add(row)
        else:
            row.subject = subject
            row.body_html = body_html
            row.body_text = body_text

        self.session.commit()
        return self._template_dict(key, row)
