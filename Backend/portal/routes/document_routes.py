"""Member document library (approved members only)."""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from portal.schemas.documents import DocumentPage, SubfolderList
from portal.services.blob_store import ImageKitClient, get_blob_store, normalize_folder
from portal.services.document_service import DocumentService, DEFAULT_PAGE_SIZE, parse_year_filter
from portal.middleware.auth_middleware import AuthContext, require_approved

router = APIRouter(prefix="/documents", tags=["Documents"])


def get_document_service(blob_store: ImageKitClient = Depends(get_blob_store)) -> DocumentService:
    return DocumentService(blob_store)


@router.get("", response_model=DocumentPage)
def list_documents(
    folder: str = Query(..., min_length=1, description="Top-level collection, e.g. StrategicDocs"),
    subfolder: Optional[str] = None,
    search: Optional[str] = None,
    type: Optional[str] = Query(None, description="pdf | docx | all"),
    year: Optional[str] = Query(None, description="four-digit year | all"),
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=200),
    auth: AuthContext = Depends(require_approved),
    document_service: DocumentService = Depends(get_document_service),
):
    return document_service.page(
        folder,
        subfolder=subfolder,
        search=search,
        doc_type=type,
        year=parse_year_filter(year),
        page=page,
        page_size=page_size,
    )


@router.get("/subfolders", response_model=SubfolderList)
def list_subfolders(
    folder: str = Query(..., min_length=1),
    auth: AuthContext = Depends(require_approved),
    document_service: DocumentService = Depends(get_document_service),
):
    return {"folder": normalize_folder(folder), "subfolders": document_service.list_subfolders(folder)}
