"""
Shared web security helpers for the API routers.

Contains the CSRF same-origin check used by every write endpoint (resources,
uploads, admin) and the private JSON response helpers. Keeping a single
implementation avoids security drift between routers.
"""
from __future__ import annotations

import os
from urllib.parse import urlparse

from fastapi import Request
from fastapi.responses import JSONResponse

from backend.web.config import env_flag, is_prod_like

PRIVATE_CACHE = "private, no-store"


def _default_port(scheme: str) -> int:
    return 443 if scheme == "https" else 80


def _parse_origin(url: str) -> tuple[str, str, int]:
    p = urlparse(url)
    if not p.scheme or not p.hostname:
        raise ValueError("invalid_origin")
    scheme = p.scheme.lower()
    port = p.port if p.port is not None else _default_port(scheme)
    return scheme, p.hostname.lower(), int(port)


def _server_origin(request: Request) -> tuple[str, str, int]:
    """Origin the server is reachable at; honours X-Forwarded-* only when trusted."""
    if (os.getenv("CORNER_TRUST_PROXY", "false") or "").lower() == "true":
        xf_proto = (request.headers.get("x-forwarded-proto") or request.url.scheme or "").split(",")[0].strip()
        xf_host = (request.headers.get("x-forwarded-host") or request.headers.get("host") or "").split(",")[0].strip()
        scheme = (xf_proto or request.url.scheme or "http").lower()
        if ":" in xf_host:
            host_only, port_str = xf_host.rsplit(":", 1)
            try:
                port = int(port_str)
            except ValueError:
                port = _default_port(scheme)
            host = host_only.lower()
        else:
            host = (xf_host or (request.url.hostname or "")).lower()
            port = int(request.url.port) if request.url.port else _default_port(scheme)
        xf_port_raw = request.headers.get("x-forwarded-port") or ""
        if xf_port_raw:
            try:
                port = int(xf_port_raw.split(",")[0].strip())
            except ValueError:
                port = _default_port(scheme)
        return scheme, host, port

    scheme = (request.url.scheme or "http").lower()
    host = (request.url.hostname or "").lower()
    port = int(request.url.port) if request.url.port else _default_port(scheme)
    return scheme, host, port


def _is_same_origin(request: Request) -> bool:
    """Verify same-origin using Origin or Referer headers.

    Behavior:
    - If Origin is present, require exact scheme/host/port match with server.
    - Else if Referer is present, validate its origin similarly.
    - Else (no headers): allow to not break non-browser clients.
    """
    try:
        server = _server_origin(request)
        origin_val = request.headers.get("origin")
        if origin_val:
            return _parse_origin(origin_val) == server
        referer_val = request.headers.get("referer")
        if referer_val:
            return _parse_origin(referer_val) == server
        return True
    except ValueError:
        return False


def _require_strict_same_origin() -> bool:
    return is_prod_like() or env_flag("STRICT_CSRF")


def json_private(payload, *, status_code: int = 200) -> JSONResponse:
    """JSON response that shared caches must never store."""
    return JSONResponse(content=payload, status_code=status_code, headers={"Cache-Control": PRIVATE_CACHE})


def private_error(payload: dict, *, status_code: int) -> JSONResponse:
    return json_private(payload, status_code=status_code)


def csrf_guard(request: Request) -> JSONResponse | None:
    """Reject cross-site writes; returns an error response or None.

    In prod-like environments (or with STRICT_CSRF=true) a write must carry an
    Origin or Referer header that matches the server.
    """
    if _require_strict_same_origin():
        if not (request.headers.get("origin") or request.headers.get("referer")):
            return private_error({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    if not _is_same_origin(request):
        return private_error({"error": "forbidden", "detail": "csrf_violation"}, status_code=403)
    return None


__all__ = ["csrf_guard", "json_private", "private_error", "PRIVATE_CACHE"]
