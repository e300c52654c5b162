"""
Contact Resolution Type Definitions

Types shared by the contact matcher, the resolution service and the CRM
search clients.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any

from crm_sync.kernel.errors import CRMSyncError


@dataclass(frozen=True)
class Contact:
    """A CRM contact as fetched during one resolution pass."""

    id: str
    fields: Mapping[str, str | None] = field(default_factory=dict)
    raw: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def phone_values(self, phone_fields: Sequence[str]) -> list[str]:
        """Non-empty values of the given phone-bearing fields, in field order."""
        values = []
        for name in phone_fields:
            value = self.fields.get(name)
            if value:
                values.append(str(value))
        return values


@dataclass(frozen=True)
class ContactMatch:
    """The contact resolved for one raw phone."""

    contact_id: str
    contact: Contact


PhoneToContactMap = dict[str, ContactMatch]


class ChunkingMode(str, Enum):
    """How a searcher wants the variation pool cut into requests."""

    # All variations of all phones flattened, cut every `size` values.
    POOL = "pool"
    # `size` phones per request, each phone keeping its own variation group.
    PER_PHONE = "per_phone"


@dataclass(frozen=True)
class ChunkingPolicy:
    mode: ChunkingMode
    size: int

    def __post_init__(self) -> None:
        if self.size < 1:
            raise ValueError("Chunk size must be at least 1")


@dataclass(frozen=True)
class SearchChunk:
    """One bounded search request.

    `groups` holds one variation list per phone in PER_PHONE mode, or a
    single slice of the flattened pool in POOL mode.
    """

    index: int
    groups: tuple[tuple[str, ...], ...]

    @property
    def values(self) -> list[str]:
        return [value for group in self.groups for value in group]

    @property
    def size(self) -> int:
        return len(self.values)


@dataclass
class ChunkResult:
    """Outcome of one search chunk."""

    index: int
    size: int
    contacts: list[Contact] = field(default_factory=list)
    error: CRMSyncError | None = None
    refreshed: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ResolutionResult:
    """Matches for a batch of phones plus what happened to each chunk."""

    matches: PhoneToContactMap = field(default_factory=dict)
    chunks: list[ChunkResult] = field(default_factory=list)

    @property
    def failed_chunks(self) -> list[ChunkResult]:
        return [chunk for chunk in self.chunks if not chunk.ok]


@dataclass
class CRMCredentials:
    """Access credential for one CRM workspace.

    `access_token` is replaced in place when a refresh succeeds so later
    chunks and later calls reuse the new token.
    """

    access_token: str
    refresh_token: str | None = None
