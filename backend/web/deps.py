"""
Process-wide wiring for the API routers.

Why:
    Repository and storage clients are built once per process and handed to
    the services explicitly. Tests swap them via `set_repo()` and
    `set_storage_adapter()`.

Behavior:
    - The default repository is Postgres-backed when a DSN is configured and
      psycopg is importable, otherwise in-memory (with a warning).
    - The storage adapter defaults to NullStorageAdapter until wired.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request

from backend.identity_access.domain import CONTRIBUTOR, Actor, resolve_role
from backend.resources.repo_memory import InMemoryResourcesRepo
from backend.resources.services.catalog import CatalogService
from backend.resources.services.featured import FeaturedListService
from backend.resources.services.profiles import ProfileService
from backend.resources.services.submissions import SubmissionService
from backend.storage.ports import NullStorageAdapter, ObjectStorageProtocol
from backend.web.config import database_dsn

logger = logging.getLogger("corner.web")


def _build_default_repo():
    dsn = database_dsn()
    if dsn:
        try:
            from backend.resources.repo_db import DBResourcesRepo

            return DBResourcesRepo(dsn)
        except RuntimeError as exc:
            logger.warning("DBResourcesRepo unavailable (%s); falling back to in-memory", exc)
    logger.warning("No database DSN configured; using in-memory resources repository")
    return InMemoryResourcesRepo()


_REPO = None
STORAGE_ADAPTER: ObjectStorageProtocol = NullStorageAdapter()


def get_repo():
    global _REPO
    if _REPO is None:
        _REPO = _build_default_repo()
    return _REPO


def set_repo(repo) -> None:
    """Replace the repository (tests and alternative backends)."""
    global _REPO
    _REPO = repo


def get_storage() -> ObjectStorageProtocol:
    return STORAGE_ADAPTER


def set_storage_adapter(adapter: ObjectStorageProtocol) -> None:
    global STORAGE_ADAPTER
    STORAGE_ADAPTER = adapter


def submission_service() -> SubmissionService:
    return SubmissionService(repo=get_repo(), storage=get_storage())


def catalog_service() -> CatalogService:
    return CatalogService(repo=get_repo())


def featured_service() -> FeaturedListService:
    return FeaturedListService(repo=get_repo())


def profile_service() -> ProfileService:
    return ProfileService(repo=get_repo())


def current_actor(request: Request) -> Optional[Actor]:
    """Resolve the caller; the role comes from profiles, session roles are the fallback.

    A failed profile lookup yields a plain contributor: session roles never
    grant admin rights while the profile store is unreachable.
    """
    user = getattr(request.state, "user", None)
    if not isinstance(user, dict) or not user.get("sub"):
        return None
    sub = str(user["sub"])
    try:
        profile_role = get_repo().get_profile_role(sub)
    except Exception as exc:
        logger.warning("profile role lookup failed for sub=%s: %s", sub, exc.__class__.__name__)
        return Actor(id=sub, role=CONTRIBUTOR)
    return Actor(id=sub, role=resolve_role(profile_role, user.get("roles") or []))


__all__ = [
    "get_repo",
    "set_repo",
    "get_storage",
    "set_storage_adapter",
    "submission_service",
    "catalog_service",
    "featured_service",
    "profile_service",
    "current_actor",
]
