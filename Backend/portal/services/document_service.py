"""Document library: derives Document views from the CDN listing."""
from __future__ import annotations

import datetime as dt
import logging
import math
import posixpath
import re
from typing import Iterable, List, Optional, Protocol

from portal.errors import ValidationError
from portal.schemas.documents import Document, DocumentPage, StoredFile
from portal.services.blob_store import normalize_folder

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = ("pdf", "docx")
YEAR_PREFIX = re.compile(r"^(\d{4})\s*[-_]")
DEFAULT_PAGE_SIZE = 12


class BlobStore(Protocol):
    def list_files(self, prefix: str = "/", recursive: bool = False) -> List[StoredFile]:
        ...

    def list_folders(self, prefix: str) -> List[str]:
        ...


def extension(name: str) -> str:
    _, ext = posixpath.splitext(name)
    return ext[1:].lower()


def parse_created_at(value: Optional[str]) -> Optional[dt.datetime]:
    if not value:
        return None
    try:
        return dt.datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable createdAt %r", value)
        return None


def derive_year(name: str, created_at: Optional[dt.datetime]) -> Optional[int]:
    """A leading 'YYYY -' / 'YYYY_' in the file name wins over the upload date."""
    match = YEAR_PREFIX.match(name)
    if match:
        return int(match.group(1))
    return created_at.year if created_at else None


def to_document(f: StoredFile) -> Optional[Document]:
    doc_type = extension(f.name)
    if doc_type not in DOCUMENT_TYPES:
        return None

    created = parse_created_at(f.created_at)
    year = derive_year(f.name, created)
    if year is None:
        logger.warning("Skipping %s: no year in name and no creation date", f.file_id)
        return None

    folder = normalize_folder(f.folder)
    category = folder.rstrip("/").split("/")[-1] or "General"
    return Document(
        id=f.file_id,
        title=f.name,
        type=doc_type,
        year=year,
        date=created.date() if created else None,
        folder_path=folder,
        category=category,
        url=f.url,
        size=f.size,
    )


def to_documents(files: Iterable[StoredFile]) -> List[Document]:
    docs = [d for d in (to_document(f) for f in files) if d is not None]
    return sorted(docs, key=lambda d: d.title)


def parse_year_filter(value: Optional[str]) -> Optional[int]:
    """Year query value from the "All Years" menu: blank or 'all' means no filter."""
    if value is None or value.strip().lower() in ("", "all"):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"Invalid year filter: {value}")


def filter_documents(
    documents: List[Document],
    search: Optional[str] = None,
    doc_type: Optional[str] = None,
    year: Optional[int] = None,
) -> List[Document]:
    """Case-insensitive title substring, exact type, exact year. 'all' disables a filter."""
    needle = (search or "").strip().lower()
    if doc_type in (None, "", "all"):
        doc_type = None
    else:
        doc_type = doc_type.lower()

    return [
        d for d in documents
        if (not needle or needle in d.title.lower())
        and (doc_type is None or d.type == doc_type)
        and (year is None or d.year == year)
    ]


def paginate(documents: List[Document], page: int, page_size: int):
    page = max(1, page)
    page_size = max(1, page_size)
    start = (page - 1) * page_size
    total_pages = math.ceil(len(documents) / page_size) if documents else 0
    return documents[start:start + page_size], page, page_size, total_pages


class DocumentService:
    def __init__(self, blob_store: BlobStore):
        self.blob_store = blob_store

    def list_documents(self, folder: str, subfolder: Optional[str] = None) -> List[Document]:
        """
        Every pdf/docx under ``folder`` (subfolders included), or only the files
        directly inside ``folder/subfolder`` when a subfolder is picked.
        """
        prefix = normalize_folder(folder)
        if subfolder and subfolder != "all":
            files = self.blob_store.list_files(f"{prefix.rstrip('/')}/{subfolder.strip('/')}")
        else:
            files = self.blob_store.list_files(prefix, recursive=True)
        return to_documents(files)

    def list_subfolders(self, folder: str) -> List[str]:
        return sorted(set(self.blob_store.list_folders(normalize_folder(folder))))

    def page(
        self,
        folder: str,
        subfolder: Optional[str] = None,
        search: Optional[str] = None,
        doc_type: Optional[str] = None,
        year: Optional[int] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> DocumentPage:
        documents = self.list_documents(folder, subfolder)
        matched = filter_documents(documents, search=search, doc_type=doc_type, year=year)
        items, page, page_size, total_pages = paginate(matched, page, page_size)

        # filter menus reflect the whole folder, not the current filter
        return DocumentPage(
            documents=items,
            total=len(matched),
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            years=sorted({d.year for d in documents}, reverse=True),
            types=sorted({d.type for d in documents}),
            categories=sorted({d.category for d in documents}),
        )
