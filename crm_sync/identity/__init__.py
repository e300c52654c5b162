"""
Contact Resolution

Phone-based matching of warehouse chats to CRM contacts:
- types: Contact, ContactMatch, chunking and result types
- matcher: pure phone-to-contact matching
- resolution: chunked CRM search orchestration
"""

from .matcher import dedupe_contacts, match_contacts
from .resolution import ContactResolutionService, ContactSearcher, TokenRefresher, build_chunks
from .types import (
    ChunkingMode,
    ChunkingPolicy,
    ChunkResult,
    Contact,
    ContactMatch,
    CRMCredentials,
    PhoneToContactMap,
    ResolutionResult,
    SearchChunk,
)

__all__ = [
    "ChunkingMode",
    "ChunkingPolicy",
    "ChunkResult",
    "Contact",
    "ContactMatch",
    "ContactResolutionService",
    "ContactSearcher",
    "CRMCredentials",
    "PhoneToContactMap",
    "ResolutionResult",
    "SearchChunk",
    "TokenRefresher",
    "build_chunks",
    "dedupe_contacts",
    "match_contacts",
]
