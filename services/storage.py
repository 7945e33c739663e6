"""
Client for the external file-storage service.

Every call goes through httpx.AsyncClient. Uploads are awaited (a record
must never point at a file that was not stored) and run concurrently;
deletes are best-effort and only logged on failure.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

import httpx
from fastapi import Request, UploadFile

from forms.answers import extract_filename, removed_file_urls
from settings import Settings

log = logging.getLogger(__name__)


class StorageError(Exception):
    """Upload to the storage service failed."""


@dataclass
class StoredFile:
    url: str
    filename: str
    original_name: Optional[str] = None
    content_type: Optional[str] = None


class StorageClient:
    def __init__(
        self,
        base_url: str,
        public_url: str = "",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.public_url = public_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageClient":
        return cls(settings.storage_url, settings.public_storage_url, settings.storage_timeout)

    def file_url(self, filename: str) -> str:
        return f"{self.public_url}/storage/file/{filename}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    # ─── Upload ────────────────────────────────────────────────────────────────

    async def upload(self, upload: UploadFile) -> StoredFile:
        if not self.base_url:
            raise StorageError("STORAGE_URL not configured")

        content = await upload.read()
        files = {"file": (upload.filename or "file", content, upload.content_type or "application/octet-stream")}
        try:
            async with self._client() as client:
                response = await client.post(f"{self.base_url}/storage/upload", files=files)
                body: Dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise StorageError(f"Failed to upload file {upload.filename}: {e}") from e

        data = body.get("data") or {}
        if not body.get("success") or not data.get("filename"):
            raise StorageError(f"Failed to upload file {upload.filename}: {body.get('msg', 'unknown error')}")

        filename = data["filename"]
        url = self.file_url(filename) if self.public_url else data.get("url", "")
        log.info("Uploaded %s as %s", upload.filename, filename)
        return StoredFile(
            url=url,
            filename=filename,
            original_name=data.get("originalName", upload.filename),
            content_type=data.get("type", upload.content_type),
        )

    async def upload_many(self, uploads: Dict[str, UploadFile]) -> Dict[str, StoredFile]:
        """
        Upload every file concurrently. If any upload fails, the ones that
        succeeded are deleted again and the first failure is raised.
        """
        keys = list(uploads)
        results = await asyncio.gather(*(self.upload(uploads[key]) for key in keys), return_exceptions=True)

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            await self.delete_urls([r.url for r in results if isinstance(r, StoredFile)])
            raise failures[0]
        return dict(zip(keys, results))

    # ─── Delete ────────────────────────────────────────────────────────────────

    async def delete(self, filename: str) -> bool:
        if not self.base_url:
            log.warning("STORAGE_URL not configured, cannot delete %s", filename)
            return False
        try:
            async with self._client() as client:
                response = await client.delete(f"{self.base_url}/storage/file/{filename}")
                response.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("Failed to delete stored file %s: %s", filename, e)
            return False
        return True

    async def delete_urls(self, urls: Iterable[str]) -> int:
        """Delete each distinct URL once, concurrently. Returns how many deletions succeeded."""
        filenames = []
        for url in dict.fromkeys(urls):
            filename = extract_filename(url)
            if filename:
                filenames.append(filename)
        if not filenames:
            return 0
        results = await asyncio.gather(*(self.delete(name) for name in filenames))
        return sum(1 for ok in results if ok)

    async def cleanup_removed_files(self, old_form_data: Any, new_form_data: Any) -> int:
        """Delete the files old_form_data referenced that new_form_data no longer does."""
        return await self.delete_urls(removed_file_urls(old_form_data, new_form_data))


def get_storage(request: Request) -> StorageClient:
    """Storage client dependency, built once by create_app()"""
    return request.app.state.storage
