"""
Identity slug derivation.

The slug is the event's natural primary key across runs and sources:
``slugify(name)-YYYY-MM-DD-HHMM`` with date and time taken in the
pipeline's local timezone.
"""

import re
import unicodedata
from datetime import datetime
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Europe/Berlin"

# Applied before generic diacritic stripping so "ü" becomes "ue", not "u".
TRANSLITERATIONS = {
    "ä": "ae",
    "ö": "oe",
    "ü": "ue",
    "ß": "ss",
}

_NOT_SLUG_CHAR = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")


def slugify(text: str) -> str:
    """
    Lowercase ASCII slug of ``text``.

    >>> slugify("Tantra für Paare & Singles")
    'tantra-fuer-paare-singles'
    """
    value = text.lower()
    for char, replacement in TRANSLITERATIONS.items():
        value = value.replace(char, replacement)
    value = unicodedata.normalize("NFKD", value)
    value = "".join(c for c in value if not unicodedata.combining(c))
    value = _NOT_SLUG_CHAR.sub("", value)
    return _WHITESPACE.sub("-", value.strip())


def generate_slug(name: str, start_at: datetime, timezone: str = DEFAULT_TIMEZONE) -> str:
    """
    Build the identity slug for an event.

    Args:
        name: Cleaned event name
        start_at: Timezone-aware start instant
        timezone: IANA zone whose calendar date and wall-clock time are used

    Returns:
        e.g. ``meditation-workshop-2025-07-04-1800``
    """
    if start_at.tzinfo is None:
        raise ValueError("start_at must be timezone-aware")
    local = start_at.astimezone(ZoneInfo(timezone))
    parts = [slugify(name), local.strftime("%Y-%m-%d"), local.strftime("%H%M")]
    return "-".join(p for p in parts if p)
