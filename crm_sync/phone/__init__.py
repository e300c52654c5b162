"""
Phone number parsing and variation generation.
"""

from .countries import COUNTRY_HEURISTICS, apply_country_heuristics, register_country_heuristic
from .parsing import ParsedNumber, parse_phone
from .variations import generate_variations

__all__ = [
    "COUNTRY_HEURISTICS",
    "ParsedNumber",
    "apply_country_heuristics",
    "generate_variations",
    "parse_phone",
    "register_country_heuristic",
]
