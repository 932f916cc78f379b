"""
Access token verification for the hosted identity provider (Supabase Auth).

Why: The provider runs the login flow; the API only needs to learn who the
caller is. Clients send the provider's access token either as
`Authorization: Bearer <jwt>` or in the provider's access token cookie.
Verification lives outside the web adapter so it can be unit tested alone.

Security: Validates the HS256 signature with the project's JWT secret and
checks audience, expiry and (when configured) issuer. Roles come from
`app_metadata`, which only the service role can write; `user_metadata` is
user-editable and never consulted for roles.
"""
from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from jose import jwt
from jose.exceptions import JOSEError

DEFAULT_AUDIENCE = "authenticated"
DEFAULT_COOKIE_NAME = "sb-access-token"
MAX_CLOCK_SKEW_SECONDS = 5  # Allow minimal skew between servers


class AccessTokenVerificationError(Exception):
    """Raised when the access token fails verification."""

    def __init__(self, code: str):
        super().__init__(code)
        self.code = code


@dataclass(frozen=True)
class TokenConfig:
    secret: str
    audience: str = DEFAULT_AUDIENCE
    issuer: Optional[str] = None
    cookie_name: str = DEFAULT_COOKIE_NAME

    @classmethod
    def from_env(cls) -> Optional["TokenConfig"]:
        """Build the config from env; None disables token sign-in."""
        secret = (os.getenv("SUPABASE_JWT_SECRET") or "").strip()
        if not secret:
            return None
        issuer = (os.getenv("SUPABASE_JWT_ISSUER") or "").strip() or None
        if issuer is None:
            base = (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")
            issuer = f"{base}/auth/v1" if base else None
        return cls(
            secret=secret,
            audience=(os.getenv("SUPABASE_JWT_AUDIENCE") or DEFAULT_AUDIENCE).strip(),
            issuer=issuer,
            cookie_name=(os.getenv("SUPABASE_ACCESS_TOKEN_COOKIE") or DEFAULT_COOKIE_NAME).strip(),
        )


@dataclass(frozen=True)
class TokenIdentity:
    sub: str
    name: str = ""
    roles: List[str] = field(default_factory=list)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, value = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


def verify_access_token(token: str, cfg: TokenConfig) -> TokenIdentity:
    """Validate an access token and return the caller's identity.

    Raises
    ------
    AccessTokenVerificationError:
        When the signature, audience, issuer, expiry or subject is invalid.
    """
    try:
        claims = jwt.decode(
            token,
            cfg.secret,
            algorithms=["HS256"],
            audience=cfg.audience,
            issuer=cfg.issuer,
            options={
                "verify_signature": True,
                "verify_aud": True,
                "verify_iss": cfg.issuer is not None,
                "verify_exp": False,
                "verify_iat": False,
                "verify_nbf": False,
            },
        )
    except JOSEError as exc:
        raise AccessTokenVerificationError("invalid_access_token") from exc

    _validate_temporal_claims(claims)

    sub = claims.get("sub")
    if not isinstance(sub, str) or not sub:
        raise AccessTokenVerificationError("missing_sub")
    return TokenIdentity(sub=sub, name=_display_name(claims), roles=_roles(claims))


def _roles(claims: Dict[str, object]) -> List[str]:
    meta = claims.get("app_metadata")
    if not isinstance(meta, dict):
        return []
    raw = meta.get("roles")
    if isinstance(raw, list):
        return [str(r) for r in raw if isinstance(r, str)]
    role = meta.get("role")
    return [role] if isinstance(role, str) and role else []


def _display_name(claims: Dict[str, object]) -> str:
    meta = claims.get("user_metadata")
    if isinstance(meta, dict):
        for key in ("full_name", "name"):
            value = meta.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    email = claims.get("email")
    return email if isinstance(email, str) else ""


def _validate_temporal_claims(claims: Dict[str, object]) -> None:
    now = time.time()
    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise AccessTokenVerificationError("invalid_access_token")
    if exp + MAX_CLOCK_SKEW_SECONDS < now:
        raise AccessTokenVerificationError("expired_access_token")

    nbf = claims.get("nbf")
    if isinstance(nbf, (int, float)) and nbf - MAX_CLOCK_SKEW_SECONDS > now:
        raise AccessTokenVerificationError("invalid_access_token")


__all__ = [
    "AccessTokenVerificationError",
    "TokenConfig",
    "TokenIdentity",
    "bearer_token",
    "verify_access_token",
]
