"""
Phone parsing primitive.

Thin wrapper over `phonenumbers` exposing the handful of values the
variation generator needs. Parsing never raises: unparseable input
yields None.
"""

from __future__ import annotations

from dataclasses import dataclass

import phonenumbers
from phonenumbers import PhoneNumberFormat

_FORMATS = {
    "E164": PhoneNumberFormat.E164,
    "INTERNATIONAL": PhoneNumberFormat.INTERNATIONAL,
    "NATIONAL": PhoneNumberFormat.NATIONAL,
}


@dataclass(frozen=True)
class ParsedNumber:
    """A successfully parsed phone number."""

    numobj: phonenumbers.PhoneNumber

    @property
    def national_number(self) -> str:
        # Includes any significant leading zeros (e.g. Italian fixed lines).
        return phonenumbers.national_significant_number(self.numobj)

    @property
    def country_calling_code(self) -> str:
        return str(self.numobj.country_code)

    @property
    def country(self) -> str | None:
        region = phonenumbers.region_code_for_number(self.numobj)
        if not region or region == phonenumbers.UNKNOWN_REGION:
            return None
        return region

    @property
    def number(self) -> str:
        return self.format("E164")

    def format(self, style: str) -> str:
        """Render as "E164", "INTERNATIONAL" or "NATIONAL"."""
        try:
            number_format = _FORMATS[style.upper()]
        except KeyError:
            raise ValueError(f"Unknown phone format style: {style!r}") from None
        return phonenumbers.format_number(self.numobj, number_format)


def parse_phone(text: str) -> ParsedNumber | None:
    """Parse an international (`+`-prefixed) phone string, or return None."""
    if not isinstance(text, str) or not text.strip():
        return None
    try:
        numobj = phonenumbers.parse(text, None)
    except phonenumbers.NumberParseException:
        return None
    return ParsedNumber(numobj)
