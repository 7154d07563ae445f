"""
Admin dashboard routes: stats, audit trail, notification settings,
email templates and staff account management.
"""

from datetime import datetime
from typing import Optional, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.errors import AuthorizationError
from portal.schemas.auth import Role, UserResponse, MessageResponse
from portal.schemas.audit_log import AuditLogResponse
from portal.schemas.settings import (
    SettingsEnvelope, SettingsUpdate, EmailTemplateList, EmailTemplateResponse, EmailTemplateUpdate,
)
from portal.schemas.users import AdminCreate, AdminListResponse, AdminSummary, SetupRequest, UserStatsResponse
from portal.services.admin_service import AdminService
from portal.services.auth_service import AuthService
from portal.services.notification_service import NotificationService, get_notifier
from portal.services.settings_service import SettingsService
from portal.middleware.auth_middleware import AuthContext, require_admin, require_super_admin
from portal.middleware.audit_log import audit_logger, audit_log

router = APIRouter(prefix="/admin", tags=["Administration"])


def get_settings_service(db: Session = Depends(get_db)) -> SettingsService:
    return SettingsService(db)


def get_admin_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> AdminService:
    return AdminService(db, notifier=notifier)


@router.get("/stats", response_model=UserStatsResponse)
def get_stats(
    auth: AuthContext = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    return admin_service.stats(auth.user)


@router.get("/audit-logs", response_model=List[AuditLogResponse])
def get_audit_logs(
    actor_id: Optional[str] = None,
    resource_type: Optional[str] = None,
    action: Optional[str] = None,
    decision: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Query audit logs, newest first (admin only)."""
    return audit_logger.get_logs(
        db=db,
        actor_id=actor_id,
        resource_type=resource_type,
        action=action,
        decision=decision,
        since=since,
        limit=limit,
        offset=offset,
    )


# -------------------------
# Notification settings
# -------------------------

@router.get("/settings", response_model=SettingsEnvelope)
def get_settings(
    auth: AuthContext = Depends(require_admin),
    settings_service: SettingsService = Depends(get_settings_service),
):
    return {"settings": settings_service.effective(auth.identity_id)}


@router.post("/settings", response_model=SettingsEnvelope)
def update_settings(
    data: SettingsUpdate,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    settings_service: SettingsService = Depends(get_settings_service),
):
    """Global toggles need super_admin; personal overrides only affect the caller."""
    if data.scope == "global" and auth.role != Role.SUPER_ADMIN:
        raise AuthorizationError("Super admin access required to change global settings")

    effective = settings_service.update(
        data.model_dump(exclude={"scope"}),
        scope=data.scope,
        admin_id=auth.identity_id,
    )

    audit_log(
        action="settings.update",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="settings",
        resource_id=data.scope,
        details=data.model_dump(exclude_none=True),
        request=request,
    )
    return {"settings": effective}


# -------------------------
# Email templates
# -------------------------

@router.get("/email-templates", response_model=EmailTemplateList)
def list_email_templates(
    auth: AuthContext = Depends(require_admin),
    settings_service: SettingsService = Depends(get_settings_service),
):
    return {"templates": settings_service.list_templates()}


@router.put("/email-templates", response_model=EmailTemplateResponse)
def update_email_template(
    data: EmailTemplateUpdate,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    settings_service: SettingsService = Depends(get_settings_service),
):
    template = settings_service.upsert_template(data.key, data.subject, data.body_html, data.body_text)

    audit_log(
        action="email_template.update",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="email_template",
        resource_id=data.key,
        request=request,
    )
    return template


# -------------------------
# Staff accounts (super_admin)
# -------------------------

@router.get("/admins", response_model=AdminListResponse)
def list_admins(
    auth: AuthContext = Depends(require_super_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    return {"admins": [AdminSummary.model_validate(a) for a in admin_service.list_admins()]}


@router.post("/admins", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_admin(
    data: AdminCreate,
    request: Request,
    auth: AuthContext = Depends(require_super_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    admin = admin_service.create_admin(data, created_by=auth.identity_id)

    audit_log(
        action="admin.create",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=admin.id,
        details={"email": admin.email, "role": admin.role},
        request=request,
    )
    return admin


@router.delete("/admins/{admin_id}", response_model=MessageResponse)
def delete_admin(
    admin_id: UUID,
    request: Request,
    auth: AuthContext = Depends(require_super_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    admin_service.delete_admin(admin_id, requested_by=auth.identity_id)

    audit_log(
        action="admin.delete",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=admin_id,
        request=request,
    )
    return {"message": "Admin deleted successfully"}


@router.post("/setup", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def setup(data: SetupRequest, request: Request, db: Session = Depends(get_db)):
    """
    Create the first super admin.

    Only works when no users exist in the system.
    """
    user = AuthService(db).setup_super_admin(data.email, data.password, data.full_name)

    audit_log(
        action="admin.setup",
        actor_id=user.id,
        actor_type="system",
        resource_type="user",
        resource_id=user.id,
        request=request,
    )
    return user
