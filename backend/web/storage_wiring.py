"""
Shared helper for wiring the Supabase-backed storage adapter.

Why:
    App startup may occur before Supabase is reachable locally, leaving the
    storage adapter unset and breaking uploads. This module provides an
    idempotent helper used both at startup and lazily from upload routes to
    (re)attempt wiring when configuration is present.

Security:
    Requires SUPABASE_SERVICE_ROLE_KEY and SUPABASE_URL environment variables.
    The helper only wires server-side adapters; no secrets are exposed to clients.
"""
from __future__ import annotations

import logging
import os
from urllib.parse import urlparse

from backend.storage.ports import NullStorageAdapter
from backend.storage.supabase_adapter import SupabaseStorageAdapter
from backend.web import deps

logger = logging.getLogger("corner.web")


def _is_local(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return host in {"127.0.0.1", "localhost"}


def _storage3_adapter(url: str, key: str) -> SupabaseStorageAdapter | None:
    """Build an adapter on a bare storage3 client (local `supabase start` keys are not JWTs)."""
    force = (os.getenv("SUPABASE_FALLBACK_STORAGE3", "false").lower() == "true")
    if not force and not _is_local(url):
        return None
    from storage3 import SyncStorageClient

    storage_url = f"{url.rstrip('/')}/storage/v1"
    headers = {"Authorization": f"Bearer {key}", "apikey": key}
    return SupabaseStorageAdapter(SyncStorageClient(storage_url, headers))


def wire_supabase_adapter_if_configured() -> bool:
    """Attempt to wire the Supabase storage adapter into the API.

    Behavior:
        - Returns True when wiring succeeds (or an adapter is already wired).
        - Returns False when not configured or any error occurs (keeps Null).
        - Safe and idempotent to call multiple times.

    Logging:
        - On success, logs an info message.
        - On failure, logs a warning including the exception class.
    """
    if not isinstance(deps.get_storage(), NullStorageAdapter):
        return True
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not url or not key:
        return False

    adapter: SupabaseStorageAdapter | None = None
    try:
        from supabase import create_client

        adapter = SupabaseStorageAdapter(create_client(url, key))
    except Exception as exc:
        # The official client rejects non-JWT dev keys; try storage3 directly.
        logger.warning("Supabase client unavailable: %s, trying storage3", exc.__class__.__name__)
        try:
            adapter = _storage3_adapter(url, key)
        except Exception as inner:
            logger.warning("storage3 client unavailable: %s", inner.__class__.__name__)
            adapter = None
    if adapter is None:
        return False

    deps.set_storage_adapter(adapter)
    logger.info("Storage adapter wired: Supabase")

    # Dev convenience: ensure buckets requested by env exist when helper is called.
    from backend.storage.bootstrap import ensure_buckets_from_env

    ensure_buckets_from_env()
    return True


__all__ = ["wire_supabase_adapter_if_configured"]
