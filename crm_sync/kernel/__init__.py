"""Shared primitives: typed errors and HTTP error rendering."""

from .errors import (
    AuthorizationError,
    BatchFatalError,
    ChunkRequestError,
    ConfigurationError,
    CRMSyncError,
    InvalidInputError,
)

__all__ = [
    "AuthorizationError",
    "BatchFatalError",
    "ChunkRequestError",
    "ConfigurationError",
    "CRMSyncError",
    "InvalidInputError",
]
