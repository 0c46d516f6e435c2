"""
Normalization helpers applied to every adapter record.

- slug: deterministic identity key from name + start time
- names: sold-out suffix stripping and the listed flag
- html: description sanitizing
"""

from .html import clean_prose_html
from .names import (
    DEFAULT_SOLD_OUT_TERMS,
    DEFAULT_UNLISTED_NAME_TERMS,
    NameNormalizer,
    normalize_name,
    should_be_listed,
)
from .slug import generate_slug, slugify

__all__ = [
    "DEFAULT_SOLD_OUT_TERMS",
    "DEFAULT_UNLISTED_NAME_TERMS",
    "NameNormalizer",
    "clean_prose_html",
    "generate_slug",
    "normalize_name",
    "should_be_listed",
    "slugify",
]
