"""Error taxonomy and the JSON failure envelope.

Repository functions raise these; the handlers installed by
``install_error_handlers`` turn them into ``{"success": false, "error": ...}``.
"""

from __future__ import annotations

import logging

import psycopg
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

log = logging.getLogger(__name__)


class FamilyTreeError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(FamilyTreeError):
    status_code = 400


class NotFound(FamilyTreeError):
    status_code = 404


class Forbidden(FamilyTreeError):
    status_code = 403


class StorageError(FamilyTreeError):
    status_code = 500


def failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _validation_message(exc: RequestValidationError) -> str:
    parts: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(x) for x in err.get("loc", ()) if x not in ("body", "query", "path"))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts) or "invalid request"


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(FamilyTreeError)
    async def _family_tree_error(_request: Request, exc: FamilyTreeError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("%s: %s", type(exc).__name__, exc.message)
        return failure(exc.status_code, exc.message)

    @app.exception_handler(psycopg.Error)
    async def _storage_error(request: Request, exc: psycopg.Error) -> JSONResponse:
        log.exception("Storage failure on %s %s", request.method, request.url.path)
        return failure(StorageError.status_code, str(exc) or "storage error")

    @app.exception_handler(HTTPException)
    async def _http_error(_request: Request, exc: HTTPException) -> JSONResponse:
        return failure(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_request: Request, exc: RequestValidationError) -> JSONResponse:
        return failure(400, _validation_message(exc))
