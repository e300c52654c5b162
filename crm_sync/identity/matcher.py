"""
Phone-to-contact matching.

Pure function over already fetched contacts: no I/O, no logging of PII.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping, Sequence

from crm_sync.identity.types import Contact, ContactMatch, PhoneToContactMap

_NON_DIGIT_RE = re.compile(r"\D")


def _digits(value: str) -> str:
    return _NON_DIGIT_RE.sub("", value)


def dedupe_contacts(contacts: Iterable[Contact]) -> list[Contact]:
    """Drop repeated contact ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique = []
    for contact in contacts:
        if contact.id in seen:
            continue
        seen.add(contact.id)
        unique.append(contact)
    return unique


def _find_exact(
    variations: Iterable[str],
    contacts: Sequence[Contact],
    phone_fields: Sequence[str],
) -> Contact | None:
    wanted = set(variations)
    for contact in contacts:
        if any(value in wanted for value in contact.phone_values(phone_fields)):
            return contact
    return None


def _find_by_digits(
    variations: Iterable[str],
    contacts: Sequence[Contact],
    phone_fields: Sequence[str],
) -> Contact | None:
    wanted = {_digits(v) for v in variations} - {""}
    if not wanted:
        return None
    for contact in contacts:
        if any(_digits(value) in wanted for value in contact.phone_values(phone_fields)):
            return contact
    return None


def match_contacts(
    phone_to_variations: Mapping[str, Iterable[str]],
    contacts: Iterable[Contact],
    phone_fields: Sequence[str],
) -> PhoneToContactMap:
    """
    Pick at most one contact per raw phone.

    Exact string equality is tried first across all contacts; only when no
    contact matches exactly are values compared with separators stripped.
    Ties go to the first contact in deduplicated input order, so callers that
    care which duplicate wins must order `contacts` themselves.
    """
    unique = dedupe_contacts(contacts)
    matches: PhoneToContactMap = {}
    if not unique:
        return matches

    for phone, variations in phone_to_variations.items():
        variations = list(variations)
        if not variations:
            continue
        contact = _find_exact(variations, unique, phone_fields)
        if contact is None:
            contact = _find_by_digits(variations, unique, phone_fields)
        if contact is not None:
            matches[phone] = ContactMatch(contact_id=contact.id, contact=contact)

    return matches
