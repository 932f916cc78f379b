"""
URL slugs for resources.

Strategy:
    Readable slugs with an incrementing numeric suffix on collision
    (`title`, `title-1`, `title-2`, ...). Every candidate is probed against the
    store and the search is bounded by `max_attempts`.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Callable

from backend.resources.errors import SlugExhausted

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

DEFAULT_MAX_ATTEMPTS = 50
FALLBACK_SLUG = "resource"


def slugify(title: str) -> str:
    """Return a lowercase slug of `[a-z0-9]` runs joined by single hyphens.

    Accented letters are folded to ASCII first so "Qurʾān" becomes "quran"
    rather than losing the vowels. May return an empty string.
    """
    normalized = unicodedata.normalize("NFKD", title or "")
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii").lower()
    return _NON_ALNUM.sub("-", ascii_value).strip("-")


def unique_slug(
    title: str,
    exists: Callable[[str], bool],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> str:
    """Return the first free slug derived from `title`.

    Parameters:
        exists: probe returning True when a slug is already taken.
        max_attempts: total number of candidates tried, base included.

    Raises:
        SlugExhausted when every candidate collides.
    """
    base = slugify(title) or FALLBACK_SLUG
    for attempt in range(max_attempts):
        candidate = base if attempt == 0 else f"{base}-{attempt}"
        if not exists(candidate):
            return candidate
    raise SlugExhausted(base, max_attempts)


__all__ = ["slugify", "unique_slug", "DEFAULT_MAX_ATTEMPTS"]
