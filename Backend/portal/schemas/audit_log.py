"""Audit trail entries as listed on the admin dashboard."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AuditLogResponse(BaseModel):
    """
    One row of ``GET /api/admin/audit-logs``.

    The endpoint filters on ``actor_id``, ``resource_type``, ``decision``,
    an ``action`` prefix (``user.`` lists every member decision) and
    ``since`` (ISO timestamp, inclusive).
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    timestamp: datetime
    action: str = Field(description="e.g. user.approve, user.bulk_delete, auth.login")

    # anonymous login attempts carry the submitted email as actor_id
    actor_id: Optional[str] = None
    actor_type: Literal["user", "anonymous", "system"]

    resource_type: str
    resource_id: Optional[str] = None

    decision: Literal["allowed", "denied"]
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = Field(None, description="request fields, credentials redacted")

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
