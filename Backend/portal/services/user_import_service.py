"""Bulk member creation from JSON rows, CSV or XLSX uploads."""
from __future__ import annotations

import csv
import io
import logging
import re
from typing import Any, Dict, List, Optional
from uuid import UUID

from email_validator import validate_email, EmailNotValidError
from openpyxl import load_workbook
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from portal.config import settings
from portal.errors import ValidationError
from portal.models.user import User, utcnow
from portal.schemas.auth import Role
from portal.utils.security import hash_password

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("email", "full_name", "organization_name")

# spreadsheet header -> row key
HEADER_ALIASES = {
    "email": "email",
    "email_address": "email",
    "full_name": "full_name",
    "name": "full_name",
    "organization": "organization_name",
    "organisation": "organization_name",
    "organization_name": "organization_name",
    "organisation_name": "organization_name",
    "role_job_title": "role_job_title",
    "job_title": "role_job_title",
    "title": "role_job_title",
    "password": "password",
    "status": "status",
    "approval_status": "status",
    "role": "role",
    "is_admin": "is_admin",
}


def normalize_header(value: Any) -> str:
    key = re.sub(r"[^a-z0-9]+", "_", str(value or "").strip().lower()).strip("_")
    return HEADER_ALIASES.get(key, key)


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _rows_from_table(header: List[Any], body) -> List[Dict[str, Any]]:
    keys = [normalize_header(h) for h in header]
    rows = []
    for raw in body:
        values = list(raw)
        if not any(_clean(v) is not None for v in values):
            continue
        row = {k: _clean(v) for k, v in zip(keys, values) if k}
        rows.append(row)
    return rows


def parse_csv(content: bytes) -> List[Dict[str, Any]]:
    text = content.decode("utf-8-sig")
    reader = csv.reader(io.StringIO(text))
    try:
        header = next(reader)
    except StopIteration:
        return []
    return _rows_from_table(header, reader)


def parse_xlsx(content: bytes) -> List[Dict[str, Any]]:
    wb = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    try:
        ws = wb.active
        rows = ws.iter_rows(values_only=True)
        try:
            header = next(rows)
        except StopIteration:
            return []
        return _rows_from_table(list(header), rows)
    finally:
        wb.close()


def parse_upload(filename: str, content: bytes) -> List[Dict[str, Any]]:
    name = (filename or "").lower()
    if name.endswith(".csv"):
        return parse_csv(content)
    if name.endswith(".xlsx"):
        try:
            return parse_xlsx(content)
        except Exception as e:
            # openpyxl raises a mix of zipfile/KeyError/InvalidFileException on junk input
            raise ValidationError(f"Could not read spreadsheet: {e}")
    raise ValidationError("Unsupported file type, upload a .csv or .xlsx file")


class UserImportService:
    def __init__(self, session: Session, default_password: Optional[str] = None):
        self.session = session
        self.default_password = default_password or settings.default_user_password
        self._default_hash: Optional[str] = None

    def _default_password_hash(self) -> str:
        # bcrypt is slow; hash the shared default once per import
        if self._default_hash is None:
            self._default_hash = hash_password(self.default_password)
        return self._default_hash

    def _exists(self, email: str) -> bool:
        return self.session.execute(select(User.id).where(User.email == email)).first() is not None

    def create_row(self, row: Dict[str, Any], admin_id: Optional[UUID] = None) -> Dict[str, Any]:
        email_raw = row.get("email")
        email = str(email_raw).strip().lower() if email_raw else None

        missing = [f for f in REQUIRED_FIELDS if not _clean(row.get(f))]
        if missing:
            return {"email": email, "success": False, "error": f"Missing fields: {', '.join(missing)}"}

        try:
            email = validate_email(email, check_deliverability=False).normalized.lower()
        except EmailNotValidError as e:
            return {"email": email, "success": False, "error": str(e)}

        if Role.normalize(row.get("role"), row.get("is_admin")) != Role.USER:
            return {"email": email, "success": False,
                    "error": "Admin accounts must be created from the admin management page"}

        if self._exists(email):
            return {"email": email, "success": False, "error": "User with this email already exists"}

        password = _clean(row.get("password"))
        password_hash = hash_password(str(password)) if password else self._default_password_hash()

        approved = str(row.get("status") or "").strip().lower() == "approved"
        u = User(
            email=email,
            password_hash=password_hash,
            full_name=_clean(row.get("full_name")),
            organization_name=_clean(row.get("organization_name")),
            role_job_title=_clean(row.get("role_job_title")),
            role=Role.USER.value,
            is_approved=approved,
            approval_status="approved" if approved else "pending",
            approved_by=admin_id if approved else None,
            approved_at=utcnow() if approved else None,
            is_first_time=False,
        )
        self.session.add(u)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            return {"email": email, "success": False, "error": "User with this email already exists"}
        return {"email": email, "success": True, "error": None}

    def bulk_create(self, rows: List[Dict[str, Any]], admin_id: Optional[UUID] = None) -> Dict[str, Any]:
        """Each row succeeds or fails on its own; partial success is normal."""
        results = [self.create_row(row, admin_id) for row in rows]
        created = sum(1 for r in results if r["success"])
        logger.info("Bulk create: %d rows, %d created, %d failed", len(rows), created, len(rows) - created)
        return {"results": results, "created": created, "failed": len(results) - created}
