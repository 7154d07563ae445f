"""
Member administration routes (admin/super_admin only).

Staff accounts never appear here; they are managed under /admin/admins.
"""

from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Query, Request, Response, UploadFile
from sqlalchemy.orm import Session

from portal.database import get_db
from portal.schemas.users import (
    ApprovalAction, ApprovalResponse, DeleteUserRequest,
    BulkApproveRequest, BulkRejectRequest, BulkDeleteRequest, BulkUploadRequest,
    BulkUpdateResponse, BulkDeleteResponse, BulkUploadResponse, UserListResponse,
)
from portal.schemas.auth import UserResponse, MessageResponse
from portal.services.admin_service import AdminService
from portal.services.approval_service import ApprovalService
from portal.services.export_service import export_csv, export_pdf
from portal.services.notification_service import NotificationService, get_notifier
from portal.services.user_import_service import UserImportService, parse_upload
from portal.middleware.auth_middleware import AuthContext, require_admin
from portal.middleware.audit_log import audit_log

router = APIRouter(prefix="/admin/users", tags=["User Administration"])


def get_approval_service(
    db: Session = Depends(get_db),
    notifier: NotificationService = Depends(get_notifier),
) -> ApprovalService:
    return ApprovalService(db, notifier=notifier)


def get_admin_service(db: Session = Depends(get_db)) -> AdminService:
    return AdminService(db)


def get_import_service(db: Session = Depends(get_db)) -> UserImportService:
    return UserImportService(db)


def _bulk_response(message: str, result: dict) -> BulkUpdateResponse:
    return BulkUpdateResponse(
        message=message,
        updated_count=result["updated_count"],
        requested_count=result["requested_count"],
        batches=result["batches"],
        failed_batches=result["failed_batches"],
        failed_ids=result["failed_ids"],
    )


@router.get("", response_model=UserListResponse)
def list_users(
    status: Optional[str] = Query(None, description="pending | approved | rejected | all"),
    auth: AuthContext = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    return {"users": admin_service.list_users(status)}


@router.post("", response_model=ApprovalResponse)
def decide(
    data: ApprovalAction,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    approval_service: ApprovalService = Depends(get_approval_service),
):
    """Approve or reject one member. Either decision may later be reversed."""
    user = approval_service.decide(data.user_id, data.action, auth.identity_id, data.reason)

    audit_log(
        action=f"user.{data.action}",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=user.id,
        details={"reason": data.reason} if data.reason else None,
        request=request,
    )
    verb = "approved" if data.action == "approve" else "rejected"
    return {"message": f"User {verb} successfully", "user": UserResponse.model_validate(user)}


@router.delete("", response_model=MessageResponse)
def delete_user(
    data: DeleteUserRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    approval_service: ApprovalService = Depends(get_approval_service),
):
    approval_service.delete_user(data.user_id, auth.identity_id)

    audit_log(
        action="user.delete",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        resource_id=data.user_id,
        request=request,
    )
    return {"message": "User deleted successfully"}


@router.post("/bulk-approve", response_model=BulkUpdateResponse)
def bulk_approve(
    data: BulkApproveRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    approval_service: ApprovalService = Depends(get_approval_service),
):
    result = approval_service.bulk_approve(data.user_ids, auth.identity_id)

    audit_log(
        action="user.bulk_approve",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        details={
            "requested": result["requested_count"],
            "updated": result["updated_count"],
            "failed_batches": result["failed_batches"],
        },
        request=request,
    )
    return _bulk_response(f"Approved {result['updated_count']} user(s) successfully", result)


@router.post("/bulk-reject", response_model=BulkUpdateResponse)
def bulk_reject(
    data: BulkRejectRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    approval_service: ApprovalService = Depends(get_approval_service),
):
    result = approval_service.bulk_reject(data.user_ids, data.reason, auth.identity_id)

    audit_log(
        action="user.bulk_reject",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        details={
            "requested": result["requested_count"],
            "updated": result["updated_count"],
            "failed_batches": result["failed_batches"],
            "reason": data.reason,
        },
        request=request,
    )
    return _bulk_response(f"Rejected {result['updated_count']} user(s) successfully", result)


@router.delete("/bulk-delete", response_model=BulkDeleteResponse)
def bulk_delete(
    data: BulkDeleteRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    approval_service: ApprovalService = Depends(get_approval_service),
):
    deleted = approval_service.bulk_delete(data.user_ids, auth.identity_id)

    audit_log(
        action="user.bulk_delete",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        details={"requested": len(data.user_ids), "deleted": deleted},
        request=request,
    )
    return BulkDeleteResponse(
        message=f"Successfully deleted {deleted} user{'' if deleted == 1 else 's'}",
        deleted_count=deleted,
    )


@router.post("/bulk-upload", response_model=BulkUploadResponse)
def bulk_upload(
    data: BulkUploadRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    import_service: UserImportService = Depends(get_import_service),
):
    """Per-row results; a bad row never blocks the others."""
    result = import_service.bulk_create(data.users, admin_id=auth.identity_id)

    audit_log(
        action="user.bulk_upload",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        details={"rows": len(data.users), "created": result["created"], "failed": result["failed"]},
        request=request,
    )
    return result


@router.post("/import", response_model=BulkUploadResponse)
def import_users(
    request: Request,
    file: UploadFile = File(...),
    auth: AuthContext = Depends(require_admin),
    import_service: UserImportService = Depends(get_import_service),
):
    rows = parse_upload(file.filename, file.file.read())
    result = import_service.bulk_create(rows, admin_id=auth.identity_id)

    audit_log(
        action="user.import",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="user",
        details={"file": file.filename, "rows": len(rows), "created": result["created"]},
        request=request,
    )
    return result


@router.get("/export")
def export_users(
    format: Literal["csv", "pdf"] = Query("csv"),
    status: Optional[str] = Query(None),
    auth: AuthContext = Depends(require_admin),
    admin_service: AdminService = Depends(get_admin_service),
):
    rows = admin_service.list_users(status)
    label = status or "all"

    if format == "pdf":
        content = export_pdf(rows, title=f"Users ({label})")
        media_type = "application/pdf"
    else:
        content = export_csv(rows)
        media_type = "text/csv; charset=utf-8"

    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="users-{label}.{format}"'},
    )
