"""
Configuration and startup security checks for Resource Corner.

Why: Contributors upload files that the public downloads. A misconfigured
production deployment (dummy storage key, plaintext DB connection, buckets
auto-created with default policies) must not start at all. Development stays
permissive for convenience.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

DSN_ENV_VARS = ("RESOURCES_DATABASE_URL", "DATABASE_URL", "SUPABASE_DB_URL")


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def current_env() -> str:
    return (os.getenv("CORNER_ENV", "dev") or "dev").strip().lower()


def is_prod_like() -> bool:
    return _is_prod_like(current_env())


def env_flag(name: str, default: str = "false") -> bool:
    return (os.getenv(name, default) or "").strip().lower() == "true"


def database_dsn() -> str | None:
    """Return the first configured Postgres DSN, or None for in-memory mode."""
    for key in DSN_ENV_VARS:
        val = (os.getenv(key) or "").strip()
        if val:
            return val
    return None


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - Supabase Service Role key must be set and not a known dummy placeholder.
    - No configured DSN may explicitly disable TLS.
    - AUTO_CREATE_STORAGE_BUCKETS must be off; buckets are provisioned by migrations.
    """

    if not is_prod_like():
        return  # dev/test remain permissive

    # 1) Supabase Service Role key
    srole = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "").strip()
    if not srole or srole.upper() == "DUMMY_DO_NOT_USE":
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder in production."
        )

    # 2) Postgres TLS: basic guard to avoid explicit disable
    for key in DSN_ENV_VARS:
        dsn = os.getenv(key, "")
        if "sslmode=disable" in dsn:
            raise SystemExit(
                f"Refusing to start: {key} contains sslmode=disable in production. Use sslmode=require or verify TLS."
            )

    # 3) Bucket auto-creation is a dev convenience only
    if env_flag("AUTO_CREATE_STORAGE_BUCKETS"):
        raise SystemExit(
            "Refusing to start: AUTO_CREATE_STORAGE_BUCKETS must be false in production/staging."
        )


__all__ = [
    "ensure_secure_config_on_startup",
    "current_env",
    "is_prod_like",
    "env_flag",
    "database_dsn",
]
