"""
Typed errors shared by the phone, identity, connector and sync layers.

Each subclass declares its default code, message and HTTP status; callers
override any of them by keyword. Codes are dot-separated lowercase tokens
such as `crm.unauthorized`.
"""

from __future__ import annotations

import re
from typing import Any, ClassVar

_CODE_PATTERN = re.compile(r"[a-z][a-z0-9_]*(?:\.[a-z][a-z0-9_]*)*")


class CRMSyncError(Exception):
    """Base error carrying a stable `code`, a readable `message` and public `meta`."""

    default_code: ClassVar[str] = "internal.error"
    default_message: ClassVar[str] = "Sync service error"
    default_status: ClassVar[int] = 500

    def __init__(
        self,
        *,
        code: str | None = None,
        message: str | None = None,
        status_code: int | None = None,
        meta: dict[str, Any] | None = None,
    ) -> None:
        code = code or self.default_code
        if not _CODE_PATTERN.fullmatch(code):
            raise ValueError(f"Error code must be dot-separated lowercase tokens, got {code!r}")
        self.code = code
        self.message = message or self.default_message
        self.status_code = int(status_code if status_code is not None else self.default_status)
        self.meta = dict(meta or {})
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"

    def to_public_dict(self, *, request_id: str | None) -> dict[str, Any]:
        payload: dict[str, Any] = {"detail": self.message, "code": self.code}
        if request_id:
            payload["request_id"] = request_id
        if self.meta:
            payload["meta"] = self.meta
        return payload


class InvalidInputError(CRMSyncError):
    default_code = "phone.invalid_input"
    default_message = "Invalid phone number input"
    default_status = 422


class ChunkRequestError(CRMSyncError):
    """A single CRM search or update request failed."""

    default_code = "crm.chunk_request_failed"
    default_message = "CRM request failed"
    default_status = 502

    def __init__(self, *, upstream_status: int | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.upstream_status = upstream_status


class AuthorizationError(CRMSyncError):
    default_code = "crm.unauthorized"
    default_message = "CRM rejected the access token"
    default_status = 401


class BatchFatalError(CRMSyncError):
    """The whole resolution or sync call for one CRM cannot proceed."""

    default_code = "sync.batch_fatal"
    default_message = "Batch failed"
    default_status = 502


class ConfigurationError(CRMSyncError):
    default_code = "config.invalid"
    default_message = "Service is not configured"
