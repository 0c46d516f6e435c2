"""
Event name normalization.

Organizers often mark a fully booked event by appending a marker to its
name ("Yoga Class - Ausgebucht", "Tantra Abend | sold out"). The marker is
stripped from the name and turned into the ``sold_out`` flag instead.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Tuple

# German and English terms
DEFAULT_SOLD_OUT_TERMS: Tuple[str, ...] = (
    "ausgebucht",
    "ausverkauft",
    "voll",
    "sold out",
    "vollbesetzt",
    "komplett ausgebucht",
    "restlos ausverkauft",
)

# Names containing any of these are stored but not listed
DEFAULT_UNLISTED_NAME_TERMS: Tuple[str, ...] = (
    "hatha yoga",
    "hatha-yoga",
    "yin yoga",
    "yin-yoga",
    "yoga im ",
    "yoga für ",
)

# whitespace, hyphen-minus, U+2010..U+2015 dashes, pipe, parentheses, brackets
_SEPARATORS = r"[\s\-‐-―|()\[\]]"


def build_sold_out_pattern(terms: Iterable[str]) -> re.Pattern:
    """Compile the end-anchored sold-out marker pattern for ``terms``."""
    # longest first so "komplett ausgebucht" wins over "ausgebucht"
    ordered = sorted({t.strip().lower() for t in terms if t.strip()}, key=len, reverse=True)
    if not ordered:
        raise ValueError("at least one sold-out term is required")
    alternatives = "|".join(r"\s+".join(re.escape(w) for w in t.split()) for t in ordered)
    return re.compile(
        rf"{_SEPARATORS}+(?:{alternatives}){_SEPARATORS}*$",
        re.IGNORECASE,
    )


@dataclass(frozen=True)
class NameNormalizer:
    """Strips trailing sold-out markers and decides whether a name is listed."""

    sold_out_terms: Tuple[str, ...] = DEFAULT_SOLD_OUT_TERMS
    unlisted_name_terms: Tuple[str, ...] = DEFAULT_UNLISTED_NAME_TERMS

    def __post_init__(self):
        object.__setattr__(self, "_pattern", build_sold_out_pattern(self.sold_out_terms))

    def normalize(self, name: str) -> Tuple[str, bool]:
        """
        Remove trailing sold-out markers from ``name``.

        Returns:
            Tuple of (cleaned_name, sold_out). ``sold_out`` is True iff a
            marker was removed. Markers in the middle of a name are kept.
        """
        if not name:
            return name, False

        original = name.strip()
        cleaned = original
        while True:
            stripped = self._pattern.sub("", cleaned).strip()
            if stripped == cleaned or not stripped:
                break
            cleaned = stripped

        return cleaned, cleaned != original

    def is_listed(self, name: str) -> bool:
        lowered = name.lower()
        return all(term not in lowered for term in self.unlisted_name_terms)


_DEFAULT_NORMALIZER = NameNormalizer()


def normalize_name(name: str) -> Tuple[str, bool]:
    """Normalize ``name`` with the default term list."""
    return _DEFAULT_NORMALIZER.normalize(name)


def should_be_listed(name: str) -> bool:
    return _DEFAULT_NORMALIZER.is_listed(name)
