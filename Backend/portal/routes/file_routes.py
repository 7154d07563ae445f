"""
CDN file administration (admin/super_admin only).

Nothing here is transactional with local state: the CDN listing is the
only record of which files exist.
"""

import base64
import binascii
import re
import time

from fastapi import APIRouter, Depends, Request, Response

from portal.errors import ValidationError
from portal.schemas.documents import (
    FileList, UploadRequest, UploadResponse, DeleteFileRequest, MoveFileRequest,
    RenameFileRequest, FileOperationResponse,
)
from portal.services.blob_store import ImageKitClient, get_blob_store, normalize_folder
from portal.middleware.auth_middleware import AuthContext, require_admin
from portal.middleware.audit_log import audit_log

router = APIRouter(prefix="/admin/files", tags=["File Administration"])

DATA_URL = re.compile(r"^data:[^;,]+;base64,", re.IGNORECASE)
NO_STORE = {
    "Cache-Control": "no-store, no-cache, must-revalidate, proxy-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


def decode_upload(file_base64: str) -> bytes:
    """Accepts raw base64 or a data: URL."""
    payload = DATA_URL.sub("", file_base64.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("fileBase64 is not valid base64")


@router.get("", response_model=FileList)
def list_files(
    response: Response,
    prefix: str = "/",
    auth: AuthContext = Depends(require_admin),
    blob_store: ImageKitClient = Depends(get_blob_store),
):
    response.headers.update(NO_STORE)
    return {"files": blob_store.list_files(prefix, recursive=True)}


@router.post("/upload", response_model=UploadResponse)
def upload_file(
    data: UploadRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    blob_store: ImageKitClient = Depends(get_blob_store),
):
    content = decode_upload(data.file_base64)
    file_name = f"{int(time.time() * 1000)}-{data.file_name}"
    stored = blob_store.upload(content, file_name, normalize_folder(data.folder), tags=data.tags)

    audit_log(
        action="file.upload",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="file",
        resource_id=stored.file_id,
        details={"name": stored.name, "folder": stored.folder, "size": len(content)},
        request=request,
    )
    return {"message": "Upload successful", "file": stored}


@router.post("/delete", response_model=FileOperationResponse)
def delete_file(
    data: DeleteFileRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    blob_store: ImageKitClient = Depends(get_blob_store),
):
    blob_store.delete(data.file_id)

    audit_log(
        action="file.delete",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="file",
        resource_id=data.file_id,
        request=request,
    )
    return {"ok": True}


@router.post("/move", response_model=FileOperationResponse)
def move_file(
    data: MoveFileRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    blob_store: ImageKitClient = Depends(get_blob_store),
):
    blob_store.move(data.source_file_path, data.destination_path)

    audit_log(
        action="file.move",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="file",
        resource_id=data.source_file_path,
        details={"destination": data.destination_path},
        request=request,
    )
    return {"ok": True}


@router.post("/rename", response_model=FileOperationResponse)
def rename_file(
    data: RenameFileRequest,
    request: Request,
    auth: AuthContext = Depends(require_admin),
    blob_store: ImageKitClient = Depends(get_blob_store),
):
    stored = blob_store.rename(data.file_id, data.new_file_name)

    audit_log(
        action="file.rename",
        actor_id=auth.identity_id,
        actor_type="user",
        resource_type="file",
        resource_id=data.file_id,
        details={"new_name": data.new_file_name},
        request=request,
    )
    return {"ok": True, "file": stored}
