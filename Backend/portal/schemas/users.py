"""
Schemas for administrator user management (approval workflow, bulk
operations, import/export, admin accounts).
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from portal.schemas.auth import Role, UserResponse


class ApprovalAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(..., alias="userId")
    action: Literal["approve", "reject"]
    reason: Optional[str] = None


class DeleteUserRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: UUID = Field(..., alias="userId")


class BulkApproveRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[UUID] = Field(..., min_length=1, alias="userIds")


class BulkRejectRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[UUID] = Field(..., min_length=1, alias="userIds")
    reason: str = Field(..., min_length=1)


class BulkDeleteRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_ids: List[UUID] = Field(..., min_length=1, alias="userIds")


class BulkUploadRequest(BaseModel):
    # Rows stay loosely typed: each one is validated independently so that
    # one bad row never rejects the whole upload.
    users: List[Dict[str, Any]] = Field(..., min_length=1)


# -------------------------
# Responses
# -------------------------

class UserListResponse(BaseModel):
    users: List[UserResponse]


class ApprovalResponse(BaseModel):
    message: str
    user: UserResponse


class BatchResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int
    requested: int
    updated: int
    error: Optional[str] = None


class BulkUpdateResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    updated_count: int = Field(..., alias="updatedCount")
    requested_count: int = Field(..., alias="requestedCount")
    batches: List[BatchResult] = Field(default_factory=list)
    failed_batches: List[int] = Field(default_factory=list, alias="failedBatches")
    failed_ids: List[UUID] = Field(default_factory=list, alias="failedIds")


class BulkDeleteResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    deleted_count: int = Field(..., alias="deletedCount")


class RowResult(BaseModel):
    email: Optional[str] = None
    success: bool
    error: Optional[str] = None


class BulkUploadResponse(BaseModel):
    results: List[RowResult]
    created: int
    failed: int


class UserStatsResponse(BaseModel):
    approved_today: int
    rejected_today: int
    total_pending: int
    new_since_last_login: int
    total_users: int


# -------------------------
# Admin accounts (super_admin surface)
# -------------------------

class AdminCreate(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    password: str = Field(..., min_length=8)
    organization_name: Optional[str] = None
    role: Role = Role.ADMIN


class AdminSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    role: Role
    created_at: Any = None
    last_login_at: Any = None


class AdminListResponse(BaseModel):
    admins: List[AdminSummary]


class SetupRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: str
