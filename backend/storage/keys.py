"""
Helpers to generate standardized object keys for Supabase Storage.

Why:
    Keep path shapes consistent across upload slots and provide simple,
    testable sanitization that avoids path traversal and exotic characters.

Conventions:
    - Resource uploads: {owner}/{epoch_ms}-{token}.{ext}

Security:
    - Sanitization removes characters outside [A-Za-z0-9._-] from segments.
    - Filename extensions are lowercased and filtered to alphanumerics.
"""
from __future__ import annotations

import os
import re
import unicodedata

_SEGMENT_RE = re.compile(r"[^A-Za-z0-9._-]+")

DEFAULT_EXT = "bin"


def _sanitize_segment(value: str, *, fallback: str = "x") -> str:
    value = value or ""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    sanitized = _SEGMENT_RE.sub("-", ascii_value).strip("-_.")
    return sanitized or fallback


def extension_of(filename: str | None, default_ext: str = DEFAULT_EXT) -> str:
    """Return the lowercased alphanumeric extension of `filename` without the dot."""
    if not filename:
        return default_ext
    _, ext = os.path.splitext(os.path.basename(filename))
    ext = "".join(ch for ch in ext.lower() if ch.isalnum())
    return ext or default_ext


def make_upload_key(*, owner_id: str, filename: str, epoch_ms: int, token: str) -> str:
    """Build a storage key for a resource upload.

    Returns: {owner}/{epoch_ms}-{token}.{ext}
    """
    owner = _sanitize_segment(owner_id, fallback="owner")
    tok = _sanitize_segment(token, fallback="file")
    return f"{owner}/{int(epoch_ms)}-{tok}.{extension_of(filename)}"


__all__ = ["make_upload_key", "extension_of"]
