"""Document library and blob administration schemas."""

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredFile(BaseModel):
    """A blob as reported by the CDN. Not owned by this service."""
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., alias="fileId")
    name: str
    file_path: str = Field(default="", alias="filePath")
    folder: str = ""
    url: str = ""
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    size: Optional[int] = None
    file_type: Optional[str] = Field(default=None, alias="fileType")


class Document(BaseModel):
    """View model derived from a StoredFile on every listing."""
    id: str
    title: str
    type: str
    year: int
    date: Optional[dt.date] = None
    folder_path: str
    category: str
    url: str
    size: Optional[int] = None


class DocumentPage(BaseModel):
    documents: List[Document]
    total: int
    page: int
    page_size: int
    total_pages: int
    years: List[int]
    types: List[str]
    categories: List[str]


class SubfolderList(BaseModel):
    folder: str
    subfolders: List[str]


class FileList(BaseModel):
    files: List[StoredFile]


class UploadRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_base64: str = Field(..., min_length=1, alias="fileBase64")
    file_name: str = Field(..., min_length=1, alias="fileName")
    folder: str = Field(..., min_length=1)
    tags: Optional[List[str]] = None


class UploadResponse(BaseModel):
    message: str
    file: StoredFile


class DeleteFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., min_length=1, alias="fileId")


class MoveFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    source_file_path: str = Field(..., min_length=1, alias="sourceFilePath")
    destination_path: str = Field(..., min_length=1, alias="destinationPath")


class RenameFileRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_id: str = Field(..., min_length=1, alias="fileId")
    new_file_name: str = Field(..., min_length=1, alias="newFileName")


class FileOperationResponse(BaseModel):
    ok: bool = True
    file: Optional[StoredFile] = None
