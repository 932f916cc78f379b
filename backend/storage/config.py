"""
Centralized storage configuration for buckets and upload limits.

Intent:
    Provide a single source of truth for the two resource buckets and their
    environment-variable overrides. Callers address buckets by their logical
    discriminator (`resource-files` / `resource-thumbnails`); deployments may
    map those onto differently named buckets.

Behavior:
    - FILES_BUCKET / THUMBNAILS_BUCKET are the logical discriminators and the
      default physical names.
    - resolve_bucket() maps a discriminator to the configured physical name
      (RESOURCE_FILES_BUCKET / RESOURCE_THUMBNAILS_BUCKET overrides).

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


FILES_BUCKET = "resource-files"
THUMBNAILS_BUCKET = "resource-thumbnails"
BUCKETS = (FILES_BUCKET, THUMBNAILS_BUCKET)


def get_files_bucket() -> str:
    """Return the physical bucket for attachment files.

    Env:
        RESOURCE_FILES_BUCKET – optional override; otherwise FILES_BUCKET.
    """
    return (os.getenv("RESOURCE_FILES_BUCKET") or FILES_BUCKET).strip()


def get_thumbnails_bucket() -> str:
    """Return the physical bucket for featured and additional images.

    Env:
        RESOURCE_THUMBNAILS_BUCKET – optional override; otherwise THUMBNAILS_BUCKET.
    """
    return (os.getenv("RESOURCE_THUMBNAILS_BUCKET") or THUMBNAILS_BUCKET).strip()


def resolve_bucket(discriminator: str) -> str:
    """Map a logical bucket discriminator to its configured bucket name.

    Raises:
        ValueError("invalid_bucket") for anything but the two known buckets.
    """
    if discriminator == FILES_BUCKET:
        return get_files_bucket()
    if discriminator == THUMBNAILS_BUCKET:
        return get_thumbnails_bucket()
    raise ValueError("invalid_bucket")


__all__ = [
    "FILES_BUCKET",
    "THUMBNAILS_BUCKET",
    "BUCKETS",
    "get_files_bucket",
    "get_thumbnails_bucket",
    "resolve_bucket",
]

# --- Size limits --------------------------------------------------------------

def _parse_int_env(name: str, default: int, *, contract_max: int | None = None) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value <= 0:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_resources_max_upload_bytes() -> int:
    """Maximum size of a single uploaded file (default/clamped 50 MiB)."""
    contract_max = 50 * 1024 * 1024
    return _parse_int_env("RESOURCES_MAX_UPLOAD_BYTES", contract_max, contract_max=contract_max)


__all__ += ["get_resources_max_upload_bytes"]
