"""
Country-specific phone format heuristics.

Chat identifiers arrive close to E.164, while CRM records are typed by hand
in whatever is locally conventional. Each heuristic adds the extra spellings
a CRM user in that country is likely to have stored.

Heuristics are pure functions registered per ISO country code; countries
without an entry use the generic heuristic.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable

from crm_sync.phone.parsing import ParsedNumber, parse_phone

CountryHeuristic = Callable[[ParsedNumber], Iterable[str]]

COUNTRY_HEURISTICS: dict[str, CountryHeuristic] = {}

COLOMBIA_CARRIER_CODES = ("1", "2", "3", "4", "5")
VENEZUELA_AREA_CODES = ("212", "414", "416", "424", "426")
INDONESIA_AREA_CODES = ("21", "22", "24", "31", "341", "361")

SEPARATORS_RE = re.compile(r"[\s-]")
_PARENS_RE = re.compile(r"[()]")


def register_country_heuristic(country: str) -> Callable[[CountryHeuristic], CountryHeuristic]:
    """Register `func` as the heuristic for an ISO alpha-2 country code."""

    def decorator(func: CountryHeuristic) -> CountryHeuristic:
        COUNTRY_HEURISTICS[country.upper()] = func
        return func

    return decorator


def apply_country_heuristics(parsed: ParsedNumber) -> list[str]:
    """Return the extra variations for the parsed number's country."""
    heuristic = COUNTRY_HEURISTICS.get(parsed.country or "", generic_formats)
    return list(heuristic(parsed))


def _renderings(text: str) -> list[str]:
    """E.164, national number and pretty forms of `text`, if it parses."""
    parsed = parse_phone(text)
    if parsed is None:
        return []
    return [
        parsed.number,
        parsed.national_number,
        parsed.format("INTERNATIONAL"),
        parsed.format("NATIONAL"),
    ]


@register_country_heuristic("BR")
def brazil_formats(parsed: ParsedNumber) -> list[str]:
    """Mobile numbers gained a ninth digit; older records lack it."""
    cc, national = parsed.country_calling_code, parsed.national_number
    if len(national) != 10:
        return []
    with_ninth_digit = f"{national[:2]}9{national[2:]}"
    return _renderings(f"+{cc}{with_ninth_digit}")


@register_country_heuristic("MX")
def mexico_formats(parsed: ParsedNumber) -> list[str]:
    """Legacy `+52 1` mobile prefix, dropped in 2019."""
    cc, national = parsed.country_calling_code, parsed.national_number
    legacy = f"+{cc}1{national}"
    without_first_digit = national[1:]
    variations = _renderings(legacy) or [legacy]
    variations.extend(
        [
            f"{cc}1{national}",
            f"{cc}{without_first_digit}",
            f"+{cc}{without_first_digit}",
            without_first_digit,
        ]
    )
    return variations


@register_country_heuristic("AR")
def argentina_formats(parsed: ParsedNumber) -> list[str]:
    """Mobile `9` marker after the country code, and the local `15` prefix."""
    cc, national = parsed.country_calling_code, parsed.national_number
    with_marker = f"+{cc}9{national}"
    variations = _renderings(with_marker) or [with_marker]
    if national.startswith("15"):
        rest = national[2:]
        variations.extend([f"+{cc}{rest}", f"+{cc}9{rest}", rest])
    return variations


@register_country_heuristic("CO")
def colombia_formats(parsed: ParsedNumber) -> list[str]:
    """Carrier selection digit inserted after the 3-digit area code."""
    cc, national = parsed.country_calling_code, parsed.national_number
    if len(national) != 10:
        return []
    area_code, local = national[:3], national[3:]
    variations = []
    for carrier in COLOMBIA_CARRIER_CODES:
        with_carrier = f"{area_code}{carrier}{local}"
        variations.append(f"+{cc}{with_carrier}")
        variations.append(with_carrier)
    return variations


@register_country_heuristic("VE")
def venezuela_formats(parsed: ParsedNumber) -> list[str]:
    """Seven digits means the area code was dropped; try the common ones."""
    cc, national = parsed.country_calling_code, parsed.national_number
    if len(national) != 7:
        return []
    variations = []
    for area_code in VENEZUELA_AREA_CODES:
        variations.append(f"+{cc}{area_code}{national}")
        variations.append(f"{area_code}{national}")
    return variations


@register_country_heuristic("CI")
def ivory_coast_formats(parsed: ParsedNumber) -> list[str]:
    return [f"5{parsed.national_number}"]


@register_country_heuristic("ID")
def indonesia_formats(parsed: ParsedNumber) -> list[str]:
    national = parsed.national_number
    variations = []
    if not national.startswith("0"):
        variations.append(f"0{national}")
    for area_code in INDONESIA_AREA_CODES:
        if national.startswith(area_code):
            without_area_code = national[len(area_code):]
            variations.append(without_area_code)
            variations.append(f"0{area_code}{without_area_code}")
    return variations


@register_country_heuristic("IN")
def india_formats(parsed: ParsedNumber) -> list[str]:
    national = parsed.national_number
    if len(national) != 10:
        return []
    return [f"0{national}", f"{national[:4]} {national[4:]}"]


def generic_formats(parsed: ParsedNumber) -> list[str]:
    """Separator-stripped spellings of the pretty-printed forms."""
    national_fmt = parsed.format("NATIONAL")
    international_fmt = parsed.format("INTERNATIONAL")

    variations = []
    if "(" in national_fmt:
        variations.append(_PARENS_RE.sub("", national_fmt))
    variations.append(SEPARATORS_RE.sub("", national_fmt))
    variations.append(international_fmt.replace("+", "", 1))
    variations.append(SEPARATORS_RE.sub("", international_fmt))
    return variations
