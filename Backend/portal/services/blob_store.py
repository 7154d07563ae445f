"""
ImageKit gateway.

Talks to the ImageKit REST API directly with httpx (HTTP basic auth, the
private key as username). The CDN is the source of truth for files; no
local table mirrors it.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Any, Dict, List, Optional

import httpx

from portal.config import settings
from portal.errors import DependencyError, NotFoundError
from portal.schemas.documents import StoredFile

logger = logging.getLogger(__name__)


def normalize_folder(folder: Optional[str]) -> str:
    """'StrategicDocs/' -> '/StrategicDocs', '' -> '/'."""
    folder = (folder or "").strip()
    if not folder.startswith("/"):
        folder = "/" + folder
    if len(folder) > 1:
        folder = folder.rstrip("/")
    return folder


def in_prefix(path: str, prefix: str) -> bool:
    prefix = normalize_folder(prefix)
    if prefix == "/":
        return True
    return path == prefix or path.startswith(prefix + "/")


def to_stored_file(item: Dict[str, Any]) -> StoredFile:
    file_path = item.get("filePath") or ""
    folder = posixpath.dirname(file_path) if file_path else ""
    return StoredFile(
        fileId=item.get("fileId") or "",
        name=item.get("name") or posixpath.basename(file_path),
        filePath=file_path,
        folder=normalize_folder(folder),
        url=item.get("url") or "",
        createdAt=item.get("createdAt"),
        size=item.get("size"),
        fileType=item.get("fileType"),
    )


class ImageKitClient:
    PAGE_SIZE = 100

    def __init__(
        self,
        private_key: str,
        api_base: str = "https://api.imagekit.io/v1",
        upload_url: str = "https://upload.imagekit.io/api/v1/files/upload",
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.upload_url = upload_url
        self._client = httpx.Client(
            base_url=api_base.rstrip("/"),
            auth=(private_key, ""),
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            resp = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error("ImageKit %s %s failed: %s", method, url, e)
            raise DependencyError(f"Blob store request failed: {e}")

        if resp.status_code == 404:
            raise NotFoundError("File not found")
        if resp.status_code >= 400:
            logger.error("ImageKit %s %s -> %s %s", method, url, resp.status_code, resp.text[:500])
            raise DependencyError(f"Blob store returned {resp.status_code}")
        return resp

    # -------------------------
    # Listing
    # -------------------------

    def list_entries(self, path: Optional[str] = None, entry_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """All raw entries, fetched PAGE_SIZE at a time until a short page."""
        entries: List[Dict[str, Any]] = []
        skip = 0
        while True:
            params: Dict[str, Any] = {"skip": skip, "limit": self.PAGE_SIZE}
            if path:
                params["path"] = normalize_folder(path)
            if entry_type:
                params["type"] = entry_type

            page = self._request("GET", "/files", params=params).json()
            entries.extend(page)
            if len(page) < self.PAGE_SIZE:
                break
            skip += self.PAGE_SIZE
        return entries

    def list_files(self, prefix: str = "/", recursive: bool = False) -> List[StoredFile]:
        """
        Files directly inside ``prefix``, or with ``recursive`` every file whose
        path starts with it (walks the whole account listing).
        """
        if recursive:
            raw = self.list_entries()
            return [
                to_stored_file(e) for e in raw
                if e.get("type", "file") == "file" and in_prefix(e.get("filePath") or "", prefix)
            ]
        raw = self.list_entries(path=prefix)
        return [to_stored_file(e) for e in raw if e.get("type", "file") == "file"]

    def list_folders(self, prefix: str) -> List[str]:
        raw = self.list_entries(path=prefix, entry_type="folder")
        names = {e.get("name") for e in raw if e.get("type") == "folder" and e.get("name")}
        return sorted(names)

    def get_details(self, file_id: str) -> StoredFile:
        return to_stored_file(self._request("GET", f"/files/{file_id}/details").json())

    # -------------------------
    # Mutations
    # -------------------------

    def upload(self, content: bytes, file_name: str, folder: str, tags: Optional[List[str]] = None) -> StoredFile:
        data = {
            "fileName": file_name,
            "folder": normalize_folder(folder),
            "useUniqueFileName": "true",
        }
        if tags:
            data["tags"] = ",".join(tags)

        resp = self._request("POST", self.upload_url, data=data, files={"file": (file_name, content)})
        stored = to_stored_file(resp.json())
        logger.info("Uploaded %s to %s as %s", file_name, data["folder"], stored.file_id)
        return stored

    def delete(self, file_id: str) -> None:
        self._request("DELETE", f"/files/{file_id}")
        logger.info("Deleted file %s", file_id)

    def rename(self, file_id: str, new_file_name: str) -> StoredFile:
        """fileId is unchanged by a rename; only the name/path move."""
        current = self.get_details(file_id)
        self._request(
            "PUT",
            "/files/rename",
            json={"filePath": current.file_path, "newFileName": new_file_name, "purgeCache": False},
        )
        logger.info("Renamed %s (%s) to %s", file_id, current.file_path, new_file_name)
        return self.get_details(file_id)

    def move(self, source_file_path: str, destination_path: str) -> None:
        self._request(
            "POST",
            "/files/move",
            json={"sourceFilePath": source_file_path, "destinationPath": normalize_folder(destination_path)},
        )
        logger.info("Moved %s to %s", source_file_path, destination_path)


def get_blob_store():
    client = ImageKitClient(
        private_key=settings.imagekit_private_key,
        api_base=settings.imagekit_api_base,
        upload_url=settings.imagekit_upload_url,
        timeout=settings.imagekit_timeout_seconds,
    )
    try:
        yield client
    finally:
        client.close()
