"""
Pydantic schemas for Authentication and account self-service.

These define request/response payloads and JWT payload shapes.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, EmailStr, ConfigDict
from typing import Any, Optional
from datetime import datetime
from enum import Enum
from uuid import UUID


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def is_staff(self) -> bool:
        return self in (Role.ADMIN, Role.SUPER_ADMIN)

    @classmethod
    def normalize(cls, value: Any = None, is_admin: Any = None) -> "Role":
        """
        Map any stored/imported role representation onto Role.

        Older rows and spreadsheets carry a boolean ``is_admin`` instead of a
        role string; it is honoured only when no recognised role is given.
        """
        if isinstance(value, cls):
            return value
        if value:
            key = str(value).strip().lower().replace("-", "_").replace(" ", "_")
            if key == "superadmin":
                return cls.SUPER_ADMIN
            try:
                return cls(key)
            except ValueError:
                pass
        if is_admin is True or str(is_admin).strip().lower() in ("true", "1", "yes"):
            return cls.ADMIN
        return cls.USER


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


# -------------------------
# Requests
# -------------------------

class UserCreate(BaseModel):
    """Self-registration payload."""
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str = Field(..., min_length=8)
    full_name: Optional[str] = None
    organization_name: Optional[str] = None
    role_job_title: Optional[str] = None
    recaptcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class UserLogin(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    email: EmailStr
    password: str
    recaptcha_token: Optional[str] = Field(default=None, alias="recaptchaToken")


class VerifyRequest(BaseModel):
    token: str


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = None
    organization_name: Optional[str] = None
    role_job_title: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_password: Optional[str] = Field(default=None, alias="currentPassword")
    new_password: str = Field(..., min_length=8, alias="newPassword")


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    password: str = Field(..., min_length=8)


# -------------------------
# Responses
# -------------------------

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: EmailStr
    full_name: Optional[str] = None
    organization_name: Optional[str] = None
    role_job_title: Optional[str] = None
    role: Role
    is_approved: Optional[bool] = None
    approval_status: ApprovalStatus
    approved_by: Optional[UUID] = None
    approved_by_name: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    is_first_time: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: Optional[datetime] = None
    previous_login_at: Optional[datetime] = None


class LoginResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    expires_in: int = 3600  # seconds
    user: UserResponse


class VerifyResponse(BaseModel):
    valid: bool
    user: Optional[dict] = None
    error: Optional[str] = None


class MessageResponse(BaseModel):
    message: str
