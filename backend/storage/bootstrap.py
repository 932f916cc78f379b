"""
Supabase Storage bootstrap helpers.

Intent:
    Ensure the two public resource buckets exist on startup (dev friendly).

Security & Safety:
    - Controlled by `AUTO_CREATE_STORAGE_BUCKETS=true` env flag; the startup
      guard refuses this flag in prod/stage.
    - Requires server-side `SUPABASE_SERVICE_ROLE_KEY`.
    - Idempotent: lists buckets first, creates only missing ones.
    - Buckets are created public-read: thumbnails and files are linked
      directly from resource pages.

Usage:
    Call `ensure_buckets_from_env()` after wiring the storage adapter.
"""
from __future__ import annotations

import os
from typing import Iterable

import requests
import logging

from backend.storage.config import get_files_bucket, get_thumbnails_bucket

_log = logging.getLogger("corner.storage")

_TIMEOUT = (3, 10)


def _env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def _headers(key: str) -> dict:
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def _list_buckets(base_url: str, key: str) -> list[dict]:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    try:
        resp = requests.get(url, headers=_headers(key), timeout=_TIMEOUT)
        _log.debug("GET /storage/v1/bucket status=%s", resp.status_code)
        data = resp.json()
    except (requests.RequestException, ValueError) as exc:
        _log.warning("list buckets failed: error=%s", type(exc).__name__)
        return []
    return data if isinstance(data, list) else []


def _create_bucket(base_url: str, key: str, name: str, *, public: bool = True) -> bool:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    payload = {"id": name, "name": name, "public": public}
    try:
        resp = requests.post(url, headers=_headers(key), json=payload, timeout=_TIMEOUT)
    except requests.RequestException as exc:
        _log.warning("create bucket '%s' failed: error=%s", name, type(exc).__name__)
        return False
    if resp.status_code >= 300:
        # 409 conflict / 403 forbidden / 503 unavailable are the usual suspects
        _log.warning("create bucket '%s' failed: status=%s body=%s", name, resp.status_code, resp.text)
        return False
    _log.info("created storage bucket '%s' (public=%s)", name, public)
    return True


def ensure_buckets(base_url: str, key: str, buckets: Iterable[str]) -> list[str]:
    """Ensure each bucket exists; create missing ones as public buckets.

    Parameters:
        base_url: Supabase API base (e.g., http://127.0.0.1:54321)
        key: Service role key for server-side administration
        buckets: bucket names to ensure

    Returns:
        Names of buckets that were created by this call.
    """
    existing = {str(it.get("name") or it.get("id") or "") for it in _list_buckets(base_url, key)}
    created: list[str] = []
    for name in dict.fromkeys(buckets):
        if not name or name in existing:
            continue
        if _create_bucket(base_url, key, name, public=True):
            created.append(name)
    return created


def ensure_buckets_from_env() -> bool:
    """Read env and ensure buckets when AUTO_CREATE_STORAGE_BUCKETS=true.

    Env:
        - AUTO_CREATE_STORAGE_BUCKETS=true (opt-in safety)
        - SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY (server-side credentials)
        - RESOURCE_FILES_BUCKET / RESOURCE_THUMBNAILS_BUCKET (optional overrides)

    Returns:
        False when disabled or credentials are missing, otherwise True.
    """
    if not _env_flag("AUTO_CREATE_STORAGE_BUCKETS"):
        return False
    _log.warning(
        "AUTO_CREATE_STORAGE_BUCKETS=true detected (dev/test convenience only). Disable this flag in prod/stage environments."
    )
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        return False
    ensure_buckets(base, key, [get_files_bucket(), get_thumbnails_bucket()])
    return True


__all__ = ["ensure_buckets_from_env", "ensure_buckets"]
