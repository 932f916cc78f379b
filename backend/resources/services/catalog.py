"""Resource catalog use cases: detail visibility, dashboards, moderation, downloads."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from backend.identity_access.domain import Actor
from backend.resources.browse import BrowseFilters, BrowseResult, PAGE_SIZE
from backend.resources.errors import AuthorizationError, NotFoundError, PersistenceError, ValidationError
from backend.resources.services.submissions import persisted_attachments

logger = logging.getLogger("corner.resources.catalog")

STATUSES = ("pending", "approved", "rejected")
DELETABLE_STATUSES = frozenset({"pending", "rejected"})


class CatalogRepoProtocol(Protocol):
    def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]: ...

    def get_resource_by_slug(self, slug: str) -> Optional[Dict[str, Any]]: ...

    def delete_resource(self, resource_id: str) -> bool: ...

    def set_resource_status(self, resource_id: str, status: str) -> Optional[Dict[str, Any]]: ...

    def increment_downloads(self, resource_id: str) -> Optional[int]: ...

    def browse_resources(self, filters: BrowseFilters, *, limit: int = PAGE_SIZE) -> BrowseResult: ...

    def list_resources_for_owner(self, user_id: str) -> List[Dict[str, Any]]: ...

    def list_resources_by_status(self, status: str) -> List[Dict[str, Any]]: ...


def can_view(actor: Optional[Actor], resource: Dict[str, Any]) -> bool:
    if resource.get("status") == "approved":
        return True
    if actor is None:
        return False
    return actor.is_admin or resource.get("user_id") == actor.id


def _require_admin(actor: Optional[Actor]) -> Actor:
    if actor is None:
        raise AuthorizationError("unauthenticated")
    if not actor.is_admin:
        raise AuthorizationError("admin_required")
    return actor


@dataclass
class CatalogService:
    repo: CatalogRepoProtocol

    def get(self, slug_or_id: str, actor: Optional[Actor] = None) -> Dict[str, Any]:
        """Look up by slug first, then id; hidden resources read as missing."""
        key = (slug_or_id or "").strip()
        if not key:
            raise NotFoundError("resource_not_found")
        resource = self.repo.get_resource_by_slug(key) or self.repo.get_resource(key)
        if resource is None or not can_view(actor, resource):
            raise NotFoundError("resource_not_found")
        return resource

    def browse(self, filters: BrowseFilters) -> BrowseResult:
        return self.repo.browse_resources(filters)

    def list_mine(self, actor: Actor) -> List[Dict[str, Any]]:
        if actor is None:
            raise AuthorizationError("unauthenticated")
        return self.repo.list_resources_for_owner(actor.id)

    def list_by_status(self, actor: Actor, status: str = "pending") -> List[Dict[str, Any]]:
        _require_admin(actor)
        if status not in STATUSES:
            raise ValidationError(f"Unknown status: {status}", field="status")
        return self.repo.list_resources_by_status(status)

    def set_status(self, actor: Actor, resource_id: str, status: str) -> Dict[str, Any]:
        _require_admin(actor)
        if status not in STATUSES:
            raise ValidationError(f"Unknown status: {status}", field="status")
        try:
            updated = self.repo.set_resource_status(resource_id, status)
        except Exception as exc:
            logger.error("status update failed id=%s: %s", resource_id, exc.__class__.__name__)
            raise PersistenceError(f"status_failed:{exc.__class__.__name__}") from exc
        if updated is None:
            raise NotFoundError("resource_not_found")
        logger.info("resource status id=%s status=%s by=%s", resource_id, status, actor.id)
        return updated

    def delete(self, actor: Actor, resource_id: str) -> None:
        """Owners may delete their own resources while pending or rejected."""
        if actor is None:
            raise AuthorizationError("unauthenticated")
        resource = self.repo.get_resource(resource_id)
        if resource is None or not can_view(actor, resource):
            raise NotFoundError("resource_not_found")
        if resource.get("user_id") != actor.id:
            raise AuthorizationError("not_owner")
        if resource.get("status") not in DELETABLE_STATUSES:
            raise AuthorizationError("not_deletable")
        try:
            deleted = self.repo.delete_resource(resource_id)
        except Exception as exc:
            logger.error("delete failed id=%s: %s", resource_id, exc.__class__.__name__)
            raise PersistenceError(f"delete_failed:{exc.__class__.__name__}") from exc
        if not deleted:
            raise NotFoundError("resource_not_found")

    def record_download(self, resource_id: str, actor: Optional[Actor] = None) -> Dict[str, Any]:
        """Increment the download counter and return the count plus the primary file URL."""
        resource = self.repo.get_resource(resource_id)
        if resource is None or not can_view(actor, resource):
            raise NotFoundError("resource_not_found")
        try:
            downloads = self.repo.increment_downloads(resource_id)
        except Exception as exc:
            logger.error("download increment failed id=%s: %s", resource_id, exc.__class__.__name__)
            raise PersistenceError(f"download_failed:{exc.__class__.__name__}") from exc
        if downloads is None:
            raise NotFoundError("resource_not_found")
        attachments = persisted_attachments(resource)
        return {"downloads": downloads, "fileUrl": attachments[0].url if attachments else None}


__all__ = ["CatalogService", "CatalogRepoProtocol", "can_view", "STATUSES"]
