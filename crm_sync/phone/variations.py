"""
Phone number variation generation.

Produces every spelling under which a CRM contact record might store a
given phone number, for use as search values and match candidates.
"""

from __future__ import annotations

import re

import structlog

from crm_sync.kernel.errors import InvalidInputError
from crm_sync.phone.countries import SEPARATORS_RE, apply_country_heuristics
from crm_sync.phone.parsing import ParsedNumber, parse_phone

logger = structlog.get_logger()

_NON_DIGIT_RE = re.compile(r"\D")


def generate_variations(phone: str) -> set[str]:
    """
    Return the set of format variations for a raw phone string.

    The raw string is always a member. When the number cannot be parsed
    the set is just the raw string and the raw string without its `+`.

    Raises:
        InvalidInputError: `phone` is empty or not a string.
    """
    if not isinstance(phone, str) or not phone:
        raise InvalidInputError(
            message="Phone number is required",
            meta={"type": type(phone).__name__},
        )

    candidate = phone if "+" in phone else f"+{phone}"
    parsed = parse_phone(candidate)

    variations = {phone}
    if parsed is None:
        logger.warning("Could not parse phone number, searching with raw value", phone=phone)
        variations.add(phone.replace("+", "", 1))
        return variations

    national = parsed.national_number
    cc = parsed.country_calling_code

    variations.add(parsed.number)
    variations.add(national)
    variations.add(f"{cc}{national}")
    variations.add(parsed.format("INTERNATIONAL"))
    variations.add(parsed.format("NATIONAL"))

    variations.add(f"0{national}")
    if national.startswith("0"):
        variations.add(national[1:])

    variations.update(apply_country_heuristics(parsed))
    variations.update(_punctuation_variants(parsed))
    return variations


def _punctuation_variants(parsed: ParsedNumber) -> list[str]:
    """Spellings that come from hand entry in CRM forms."""
    national_fmt = parsed.format("NATIONAL")
    return [
        national_fmt.replace("-", "."),
        SEPARATORS_RE.sub("_", national_fmt),
        f"{parsed.country_calling_code}{parsed.national_number}",
        _NON_DIGIT_RE.sub("", parsed.format("INTERNATIONAL")),
    ]
