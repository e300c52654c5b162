"""
FastAPI exception handlers.

Every error leaves the service as `{"detail", "code"}` plus `request_id` when
the caller sent an `X-Request-ID` header. Typed sync errors also carry `meta`.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.requests import Request
from starlette.responses import JSONResponse

from crm_sync.kernel.errors import CRMSyncError

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"


def _error_response(
    request: Request,
    status_code: int,
    *,
    detail: Any,
    code: str,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body: dict[str, Any] = {"detail": detail, "code": code}
    request_id = request.headers.get(REQUEST_ID_HEADER)
    if request_id:
        body["request_id"] = request_id
    return JSONResponse(status_code=status_code, content=body, headers=headers)


async def _on_sync_error(request: Request, exc: CRMSyncError) -> JSONResponse:
    request_id = request.headers.get(REQUEST_ID_HEADER)
    logger.warning(
        "Request failed with typed error",
        code=exc.code,
        error=exc.message,
        path=request.url.path,
        request_id=request_id,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_public_dict(request_id=request_id),
    )


async def _on_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    # `detail` may be a string, list or dict; it is passed through untouched.
    return _error_response(
        request,
        exc.status_code,
        detail=exc.detail,
        code=f"http.{exc.status_code}",
        headers=dict(exc.headers or {}),
    )


async def _on_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 422, detail=exc.errors(), code="http.validation_error")


async def _on_unhandled(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        request_id=request.headers.get(REQUEST_ID_HEADER),
        error=str(exc),
    )
    return _error_response(request, 500, detail="Internal Server Error", code="internal.unhandled")


def register_exception_handlers(app: FastAPI) -> None:
    """Install the service-wide handlers on `app`."""
    app.add_exception_handler(CRMSyncError, _on_sync_error)
    app.add_exception_handler(StarletteHTTPException, _on_http_exception)
    app.add_exception_handler(RequestValidationError, _on_validation_error)
    app.add_exception_handler(Exception, _on_unhandled)
