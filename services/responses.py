"""
Response envelope shared by every JSON endpoint: {success, msg, data}.
Errors are converted into the same shape by the handlers installed here.
"""

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from services.storage import StorageError

log = logging.getLogger(__name__)


def envelope(msg: str, data: Any = None) -> dict:
    return {"success": True, "msg": msg, "data": jsonable_encoder(data)}


def failure(status_code: int, msg: str, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "msg": msg, "data": None},
        headers=headers,
    )


def format_validation_errors(errors) -> str:
    """Human readable, comma separated list of pydantic error messages."""
    messages = []
    for error in errors:
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        messages.append(f"{'.'.join(loc)}: {error.get('msg')}" if loc else str(error.get("msg")))
    return ", ".join(messages)


async def _http_exception_handler(request: Request, exc: StarletteHTTPException):
    return failure(exc.status_code, str(exc.detail), getattr(exc, "headers", None))


async def _validation_exception_handler(request: Request, exc: RequestValidationError):
    return failure(status.HTTP_400_BAD_REQUEST, format_validation_errors(exc.errors()))


async def _pydantic_exception_handler(request: Request, exc: ValidationError):
    return failure(status.HTTP_400_BAD_REQUEST, format_validation_errors(exc.errors()))


async def _storage_exception_handler(request: Request, exc: StorageError):
    log.warning("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return failure(status.HTTP_502_BAD_GATEWAY, str(exc))


async def _unhandled_exception_handler(request: Request, exc: Exception):
    log.exception("Unhandled error on %s %s", request.method, request.url.path)
    return failure(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)
    app.add_exception_handler(RequestValidationError, _validation_exception_handler)
    app.add_exception_handler(ValidationError, _pydantic_exception_handler)
    app.add_exception_handler(StorageError, _storage_exception_handler)
    app.add_exception_handler(Exception, _unhandled_exception_handler)
