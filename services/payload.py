"""
Request body parsing for endpoints that accept either JSON or multipart.

Multipart non-file entries are JSON-decoded when they parse (so a
"form_data" entry can carry the whole nested object as a string). File
entries are keyed by their destination path inside form_data,
"{field_id}.{question_id}", and are replaced by their stored URL there.
"""

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Tuple, Type, TypeVar

from fastapi import HTTPException, Request, status
from pydantic import BaseModel
from starlette.datastructures import UploadFile

from services.storage import StorageClient

log = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def _decode(value: str) -> Any:
    try:
        return json.loads(value)
    except ValueError:
        return value


def set_nested_value(target: Dict[str, Any], key: str, value: Any) -> None:
    """Assign value at a dotted path, creating (or replacing non-dict) parents."""
    parts = key.split(".")
    current = target
    for part in parts[:-1]:
        if not isinstance(current.get(part), dict):
            current[part] = {}
        current = current[part]
    current[parts[-1]] = value


async def read_body(request: Request) -> Tuple[Dict[str, Any], Dict[str, UploadFile]]:
    """(decoded fields, uploaded files by key) from a JSON or multipart request."""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data"):
        form = await request.form()
        data: Dict[str, Any] = {}
        uploads: Dict[str, UploadFile] = {}
        for key, value in form.multi_items():
            if isinstance(value, UploadFile):
                uploads[key] = value
            else:
                data[key] = _decode(value)
        return data, uploads

    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body must be a JSON object")
    return body, {}


async def read_form_payload(request: Request, model: Type[ModelT]) -> Tuple[ModelT, Dict[str, UploadFile]]:
    """
    Validate the body against model. Files are returned unstored, keyed by
    their form_data path, so callers can finish their own checks before
    anything reaches storage.
    """
    data, uploads = await read_body(request)
    return model.model_validate(data), uploads


async def store_uploads(storage: StorageClient, uploads: Dict[str, UploadFile]) -> Dict[str, Any]:
    """Upload the files and return them as a nested {field_id: {question_id: url}} map."""
    file_values: Dict[str, Any] = {}
    if uploads:
        stored = await storage.upload_many(uploads)
        for key, stored_file in stored.items():
            set_nested_value(file_values, key, stored_file.url)
    return file_values


@asynccontextmanager
async def discard_uploads_on_error(storage: StorageClient, urls: List[str]):
    """Delete freshly uploaded files if the write that should reference them fails."""
    try:
        yield
    except Exception:
        if urls:
            log.warning("Discarding %d uploaded file(s) after a failed write", len(urls))
            await storage.delete_urls(urls)
        raise
