"""
Access token sign-in: verification unit tests and token-only API requests.

Scenarios:
- A valid HS256 token yields sub, display name and app_metadata roles.
- Wrong secret, wrong audience, wrong issuer and expired tokens are rejected.
- `Authorization: Bearer` or the provider cookie alone authenticates API calls.
- Without SUPABASE_JWT_SECRET, tokens are ignored and writes answer 401.
"""
from __future__ import annotations

import time

import pytest
import httpx
from httpx import ASGITransport
from jose import jwt

from backend.identity_access.tokens import (
    AccessTokenVerificationError,
    TokenConfig,
    bearer_token,
    verify_access_token,
)
from backend.web import deps, main

pytestmark = pytest.mark.anyio("asyncio")

SECRET = "test-jwt-secret-with-enough-length"
ISSUER = "https://project.supabase.co/auth/v1"


def _token(secret: str = SECRET, **overrides) -> str:
    now = int(time.time())
    claims = {
        "sub": "user-alice",
        "aud": "authenticated",
        "iss": ISSUER,
        "iat": now,
        "exp": now + 300,
        "email": "alice@example.org",
        "user_metadata": {"full_name": "Alice Q"},
        "app_metadata": {"provider": "email"},
    }
    claims.update(overrides)
    return jwt.encode(claims, secret, algorithm="HS256")


def _cfg(**overrides) -> TokenConfig:
    base = {"secret": SECRET, "issuer": ISSUER}
    base.update(overrides)
    return TokenConfig(**base)


def _client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=ASGITransport(app=main.app), base_url="http://test")


@pytest.fixture
def token_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", SECRET)
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co")


# --- Verification -------------------------------------------------------------


def test_valid_token_yields_identity():
    ident = verify_access_token(_token(app_metadata={"roles": ["admin"]}), _cfg())
    assert ident.sub == "user-alice"
    assert ident.name == "Alice Q"
    assert ident.roles == ["admin"]


def test_single_role_and_email_fallback():
    ident = verify_access_token(_token(app_metadata={"role": "contributor"}, user_metadata={}), _cfg())
    assert ident.roles == ["contributor"]
    assert ident.name == "alice@example.org"


@pytest.mark.parametrize(
    "token,code",
    [
        (lambda: _token(secret="another-secret-of-decent-length"), "invalid_access_token"),
        (lambda: _token(aud="anon"), "invalid_access_token"),
        (lambda: _token(iss="https://evil.example/auth/v1"), "invalid_access_token"),
        (lambda: _token(exp=int(time.time()) - 60), "expired_access_token"),
        (lambda: _token(sub=""), "missing_sub"),
    ],
)
def test_invalid_tokens_are_rejected(token, code):
    with pytest.raises(AccessTokenVerificationError) as excinfo:
        verify_access_token(token(), _cfg())
    assert excinfo.value.code == code


def test_user_metadata_roles_are_ignored():
    ident = verify_access_token(_token(user_metadata={"roles": ["admin"]}), _cfg())
    assert ident.roles == []


@pytest.mark.parametrize(
    "header,expected",
    [("Bearer abc.def", "abc.def"), ("bearer  xyz ", "xyz"), ("Basic abc", None), ("Bearer ", None), (None, None)],
)
def test_bearer_token_parsing(header, expected):
    assert bearer_token(header) == expected


def test_config_from_env(monkeypatch: pytest.MonkeyPatch):
    assert TokenConfig.from_env() is None
    monkeypatch.setenv("SUPABASE_JWT_SECRET", SECRET)
    monkeypatch.setenv("SUPABASE_URL", "https://project.supabase.co/")
    cfg = TokenConfig.from_env()
    assert cfg.issuer == ISSUER
    assert cfg.audience == "authenticated"
    assert cfg.cookie_name == "sb-access-token"


# --- API ----------------------------------------------------------------------

_PAYLOAD = {
    "title": "Kindness Flash Cards",
    "shortDescription": "Twelve cards with everyday acts of kindness.",
    "targetGrades": ["Grade 1"],
    "resourceTypes": ["Flash cards"],
    "copyrightVerified": True,
    "previewImageUrl": "https://cdn.test/cards.png",
    "externalLinks": [{"title": "Printable", "url": "https://print.example.org/cards"}],
}


async def test_bearer_token_alone_authenticates_writes(token_env):
    headers = {"Authorization": f"Bearer {_token()}"}
    async with _client() as c:
        created = await c.post("/api/resources", json=_PAYLOAD, headers=headers)
        mine = await c.get("/api/me/resources", headers=headers)
    assert created.status_code == 201, created.text
    assert created.json()["resource"]["userId"] == "user-alice"
    assert [item["title"] for item in mine.json()["items"]] == ["Kindness Flash Cards"]


async def test_provider_cookie_authenticates(token_env):
    async with _client() as c:
        c.cookies.set("sb-access-token", _token())
        r = await c.get("/api/me/resources")
    assert r.status_code == 200


async def test_token_admin_role_reaches_admin_routes(token_env):
    async with _client() as c:
        admin = await c.get(
            "/api/admin/resources", headers={"Authorization": f"Bearer {_token(app_metadata={'roles': ['admin']})}"}
        )
        plain = await c.get("/api/admin/resources", headers={"Authorization": f"Bearer {_token()}"})
    assert admin.status_code == 200
    assert plain.status_code == 403


async def test_profile_role_overrides_token_roles(token_env):
    deps.get_repo().set_profile_role("user-alice", "contributor")
    async with _client() as c:
        r = await c.get(
            "/api/admin/resources", headers={"Authorization": f"Bearer {_token(app_metadata={'roles': ['admin']})}"}
        )
    assert r.status_code == 403


async def test_invalid_token_is_unauthenticated(token_env):
    async with _client() as c:
        bad = await c.get("/api/me/resources", headers={"Authorization": f"Bearer {_token(secret='x' * 40)}"})
        public = await c.get("/api/browse", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401
    assert bad.json() == {"error": "unauthenticated"}
    assert public.status_code == 200


async def test_tokens_ignored_without_secret():
    async with _client() as c:
        r = await c.get("/api/me/resources", headers={"Authorization": f"Bearer {_token()}"})
    assert r.status_code == 401
