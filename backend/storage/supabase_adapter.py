"""
Supabase Storage implementation of ObjectStorageProtocol for resource media.

Works with any client whose bucket proxy (`client.storage.from_(name)` or a
bare storage3 `client.from_(name)`) offers:

- upload(path, body, options) -> Any (raises on failure)
- get_public_url(path) -> str | { publicUrl | public_url | data: {...} }

Security:
- Writes need a client built with the service role key (server-side only).
- Resource buckets are public-read; writes happen only server-side.
"""
from __future__ import annotations

from typing import Any, Dict
import os
from urllib.parse import urlparse as _urlparse, urlunparse as _urlunparse

from .ports import ObjectStorageProtocol


class SupabaseStorageAdapter(ObjectStorageProtocol):
    """Write resource uploads to public Supabase buckets."""

    def __init__(self, client: Any, *, cache_control: str = "3600"):
        self._client = client
        self._cache_control = cache_control

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        storage = getattr(self._client, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(self._client, "from_"):
            return self._client.from_(bucket)  # storage3 SyncStorageClient
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _url_from(result: Dict[str, Any]) -> Any:
        for name in ("publicUrl", "public_url", "publicURL"):
            if result.get(name):
                return result[name]
        return None

    @staticmethod
    def _relative_key(bucket: str, key: str) -> str:
        # Storage APIs expect paths relative to the bucket
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    # --- Protocol methods --------------------------------------------------------

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        """Write one object; client exceptions propagate to the uploader's retry loop.

        Objects are never overwritten (`upsert=false`): upload keys carry a
        timestamp and random token, so a collision means a caller bug. The
        content type is sent under both option spellings used by storage3
        releases.
        """
        options = {
            "content-type": content_type,
            "contentType": content_type,
            "cache-control": self._cache_control,
            "upsert": "false",
        }
        self._bucket(bucket).upload(self._relative_key(bucket, key), body, options)

    def public_url(self, *, bucket: str, key: str) -> str:
        res = self._bucket(bucket).get_public_url(self._relative_key(bucket, key))
        url = None
        if isinstance(res, str):
            url = res
        elif isinstance(res, dict):
            url = self._url_from(res)
            if url is None and isinstance(res.get("data"), dict):
                url = self._url_from(res["data"])
        if not url:
            raise RuntimeError("failed_to_resolve_public_url")
        return self._normalize_public_url_host(str(url))

    # --- Local helpers ---------------------------------------------------------

    def _normalize_public_url_host(self, url: str) -> str:
        """Rewrite the public URL host to SUPABASE_PUBLIC_URL when configured.

        Why:
            Server-side clients often talk to Supabase through a container
            internal host. URLs stored on resources are rendered in browsers,
            so they must carry the public host instead.

        Behavior:
            - No-op unless SUPABASE_PUBLIC_URL is set.
            - Scheme and netloc are taken from SUPABASE_PUBLIC_URL; path and
              query are preserved; a missing "/storage/v1" prefix is added.
        """
        base = (os.getenv("SUPABASE_PUBLIC_URL") or "").strip()
        if not base:
            return url
        src = _urlparse(url)
        dst = _urlparse(base)
        if not src.scheme or not src.netloc or not dst.scheme or not dst.netloc:
            return url
        path = src.path or "/"
        if path.startswith("/object/"):
            path = "/storage/v1" + path
        while "//" in path:
            path = path.replace("//", "/")
        return _urlunparse((dst.scheme, dst.netloc, path, src.params, src.query, src.fragment))


__all__ = ["SupabaseStorageAdapter"]
