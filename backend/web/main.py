"""
Resource Corner API application.

Why:
    Assemble the FastAPI app: environment loading, startup guard, session
    middleware, security headers, routers and storage wiring.

Auth model:
    The hosted identity provider runs the login flow. Callers identify
    themselves with the provider's access token (`Authorization: Bearer` or
    its access token cookie, verified against SUPABASE_JWT_SECRET) or with an
    opaque `corner_session` cookie from SESSION_STORE; the session wins when
    both are present. Public reads (browse, home, taxonomy, resource detail,
    download counter) work anonymously; every other `/api/` path answers 401
    without an identity.
"""
from __future__ import annotations

import logging
import os
import re
import sys

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from backend.identity_access.stores import SessionStore
from backend.identity_access.tokens import (
    AccessTokenVerificationError,
    TokenConfig,
    bearer_token,
    verify_access_token,
)
from backend.web import config as _cfg
from backend.web.routes.admin import admin_router
from backend.web.routes.browse import browse_router
from backend.web.routes.profile import profile_router
from backend.web.routes.resources import resources_router
from backend.web.routes.security import PRIVATE_CACHE, private_error
from backend.web.storage_wiring import wire_supabase_adapter_if_configured


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out/opt-in via CORNER_ENABLE_DOTENV (default true
      outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("CORNER_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Minimal production safety checks (fail-fast on insecure config)
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("corner.web")
SESSION_COOKIE_NAME = "corner_session"
SESSION_STORE = SessionStore()

app = FastAPI(title="Resource Corner", description="Community resource sharing API", version="0.1.0")

app.include_router(browse_router)
app.include_router(resources_router)
app.include_router(admin_router)
app.include_router(profile_router)

# Call wiring early so routes receive the adapter before first request handling.
# If this fails (e.g., local Supabase still starting), the upload routes retry
# lazily on the first request that needs storage.
wire_supabase_adapter_if_configured()

# --- Auth Middleware ------------------------------------------------------------

_PUBLIC_GET_PREFIXES = ("/api/browse", "/api/home", "/api/taxonomy", "/api/resources/")
_PUBLIC_DOWNLOAD_RE = re.compile(r"^/api/resources/[^/]+/downloads$")


def _is_public(method: str, path: str) -> bool:
    if not path.startswith("/api/"):
        return True
    if method in ("GET", "HEAD") and path.startswith(_PUBLIC_GET_PREFIXES):
        return True
    return method == "POST" and bool(_PUBLIC_DOWNLOAD_RE.match(path))


def _load_session(request: Request):
    sid = request.cookies.get(SESSION_COOKIE_NAME)
    if not sid:
        return None
    try:
        return SESSION_STORE.get(sid)
    except Exception as exc:
        logger.warning("Session store get failed: %s", exc.__class__.__name__)
        return None


def _load_token_user(request: Request):
    """Identify the caller from the provider's access token (header first, then cookie)."""
    cfg = TokenConfig.from_env()
    if cfg is None:
        return None
    token = bearer_token(request.headers.get("authorization")) or request.cookies.get(cfg.cookie_name)
    if not token:
        return None
    try:
        ident = verify_access_token(token, cfg)
    except AccessTokenVerificationError as exc:
        logger.info("Access token rejected: %s", exc.code)
        return None
    return {"sub": ident.sub, "name": ident.name, "roles": list(ident.roles)}


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    rec = _load_session(request)
    if rec is not None:
        # Expose minimal, read-only user context for downstream handlers.
        request.state.user = {"sub": rec.sub, "name": rec.name, "roles": list(rec.roles)}
    else:
        request.state.user = _load_token_user(request)
        if request.state.user is None and not _is_public(request.method, request.url.path):
            headers = {"Cache-Control": PRIVATE_CACHE, "Vary": "Origin"}
            return JSONResponse({"error": "unauthenticated"}, status_code=401, headers=headers)
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    # JSON API only: nothing may be framed, sniffed or executed inline.
    response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    # Support Origin/Referer fallback in CSRF checks without leaking cross-site paths.
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    if _cfg.is_prod_like():
        response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.exception_handler(RequestValidationError)
async def request_validation_error(request: Request, exc: RequestValidationError):
    """Malformed bodies and params answer 400 like every other validation failure."""
    errors = exc.errors()
    loc = ".".join(str(p) for p in errors[0].get("loc", ())) if errors else None
    return private_error({"error": "Invalid request.", "field": loc}, status_code=400)


@app.get("/health")
async def health_check():
    # Security: include no-store to avoid caching any runtime status.
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": PRIVATE_CACHE})


__all__ = ["app", "SESSION_STORE", "SESSION_COOKIE_NAME"]
