"""
Featured list curation and homepage assembly.

Behavior:
    - Admin-only CRUD over named filter presets (`filter_criteria` holds
      grades/types/topics/curriculum lists; an empty list means no constraint).
    - At most MAX_ACTIVE lists may be active. The service checks the count up
      front for a clear error; repositories re-check atomically on write.
    - Reorder assigns each list its zero-based position in the submitted order;
      the order must name every list exactly once.
    - The homepage resolves up to MAX_ACTIVE active lists into HOME_ITEMS
      approved resources each, plus one section per grade band.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol
from urllib.parse import urlencode

from backend.identity_access.domain import Actor
from backend.resources.browse import BrowseFilters, BrowseResult, PAGE_SIZE, split_values
from backend.resources.errors import (
    ActiveListLimitError,
    AuthorizationError,
    NotFoundError,
    ValidationError,
)
from backend.resources.taxonomy import GRADE_BANDS

logger = logging.getLogger("corner.resources.featured")

MAX_ACTIVE = 3
HOME_ITEMS = 6
TITLE_MAX = 200
CRITERIA_KEYS = ("grades", "types", "topics", "curriculum")

UNSET = object()


class FeaturedRepoProtocol(Protocol):
    def list_featured_lists(self, *, active_only: bool = False) -> List[Dict[str, Any]]: ...

    def get_featured_list(self, list_id: str) -> Optional[Dict[str, Any]]: ...

    def count_active_featured_lists(self, *, exclude_id: Optional[str] = None) -> int: ...

    def create_featured_list(
        self, *, title: str, filter_criteria: Dict[str, List[str]], is_active: bool, max_active: int
    ) -> Dict[str, Any]: ...

    def update_featured_list(self, list_id: str, *, max_active: int, **fields: Any) -> Optional[Dict[str, Any]]: ...

    def delete_featured_list(self, list_id: str) -> bool: ...

    def reorder_featured_lists(self, list_ids: List[str]) -> List[Dict[str, Any]]: ...

    def browse_resources(self, filters: BrowseFilters, *, limit: int = PAGE_SIZE) -> BrowseResult: ...


def normalize_criteria(raw: Optional[Mapping[str, Any]]) -> Dict[str, List[str]]:
    """Return all four criteria keys as string lists; reject unknown keys."""
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise ValidationError("Filter criteria must be an object.", field="filterCriteria")
    unknown = set(raw) - set(CRITERIA_KEYS)
    if unknown:
        raise ValidationError(f"Unknown filter criteria: {sorted(unknown)[0]}", field="filterCriteria")
    out: Dict[str, List[str]] = {}
    for key in CRITERIA_KEYS:
        values = raw.get(key) or []
        if isinstance(values, str) or not all(isinstance(v, str) for v in values):
            raise ValidationError(f"filterCriteria.{key} must be a list of strings.", field="filterCriteria")
        out[key] = list(split_values(values))
    return out


def _clean_title(title: Any) -> str:
    value = (title or "").strip() if isinstance(title, str) else ""
    if not value:
        raise ValidationError("Title is required.", field="title")
    if len(value) > TITLE_MAX:
        raise ValidationError(f"Title must be at most {TITLE_MAX} characters.", field="title")
    return value


def browse_href(filters: BrowseFilters) -> str:
    query = urlencode(filters.to_query())
    return f"/browse?{query}" if query else "/browse"


@dataclass
class FeaturedListService:
    repo: FeaturedRepoProtocol

    def _require_admin(self, actor: Optional[Actor]) -> None:
        if actor is None:
            raise AuthorizationError("unauthenticated")
        if not actor.is_admin:
            raise AuthorizationError("admin_required")

    def _check_active_limit(self, exclude_id: Optional[str] = None) -> None:
        if self.repo.count_active_featured_lists(exclude_id=exclude_id) >= MAX_ACTIVE:
            raise ActiveListLimitError(MAX_ACTIVE)

    def list(self, actor: Actor) -> List[Dict[str, Any]]:
        self._require_admin(actor)
        return self.repo.list_featured_lists()

    def create(
        self, actor: Actor, *, title: Any, filter_criteria: Optional[Mapping[str, Any]] = None, is_active: bool = False
    ) -> Dict[str, Any]:
        self._require_admin(actor)
        clean_title = _clean_title(title)
        criteria = normalize_criteria(filter_criteria)
        if is_active:
            self._check_active_limit()
        created = self.repo.create_featured_list(
            title=clean_title, filter_criteria=criteria, is_active=bool(is_active), max_active=MAX_ACTIVE
        )
        logger.info("featured list created id=%s active=%s", created.get("id"), created.get("is_active"))
        return created

    def update(
        self,
        actor: Actor,
        list_id: str,
        *,
        title: object = UNSET,
        filter_criteria: object = UNSET,
        is_active: object = UNSET,
    ) -> Dict[str, Any]:
        self._require_admin(actor)
        current = self.repo.get_featured_list(list_id)
        if current is None:
            raise NotFoundError("featured_list_not_found")
        fields: Dict[str, Any] = {}
        if title is not UNSET:
            fields["title"] = _clean_title(title)
        if filter_criteria is not UNSET:
            fields["filter_criteria"] = normalize_criteria(filter_criteria)  # type: ignore[arg-type]
        if is_active is not UNSET:
            fields["is_active"] = bool(is_active)
            if fields["is_active"] and not current.get("is_active"):
                self._check_active_limit(exclude_id=list_id)
        updated = self.repo.update_featured_list(list_id, max_active=MAX_ACTIVE, **fields)
        if updated is None:
            raise NotFoundError("featured_list_not_found")
        return updated

    def toggle(self, actor: Actor, list_id: str, is_active: Optional[bool] = None) -> Dict[str, Any]:
        """Set `is_active` (or flip it when no value is given)."""
        self._require_admin(actor)
        current = self.repo.get_featured_list(list_id)
        if current is None:
            raise NotFoundError("featured_list_not_found")
        target = (not current.get("is_active")) if is_active is None else bool(is_active)
        return self.update(actor, list_id, is_active=target)

    def delete(self, actor: Actor, list_id: str) -> None:
        self._require_admin(actor)
        if not self.repo.delete_featured_list(list_id):
            raise NotFoundError("featured_list_not_found")

    def reorder(self, actor: Actor, list_ids: List[str]) -> List[Dict[str, Any]]:
        self._require_admin(actor)
        ids = [str(i) for i in list_ids]
        if not ids:
            raise ValidationError("Provide the full list order.", field="ids")
        if len(set(ids)) != len(ids):
            raise ValidationError("Duplicate ids in order.", field="ids")
        known = {str(fl["id"]) for fl in self.repo.list_featured_lists()}
        if not set(ids) <= known:
            raise NotFoundError("featured_list_not_found")
        if set(ids) != known:
            raise ValidationError("Provide the full list order.", field="ids")
        try:
            return self.repo.reorder_featured_lists(ids)
        except LookupError as exc:
            raise NotFoundError("featured_list_not_found") from exc

    def home_sections(self) -> Dict[str, Any]:
        """Assemble public homepage sections (featured lists first, then grade bands)."""
        featured = []
        for fl in self.repo.list_featured_lists(active_only=True)[:MAX_ACTIVE]:
            filters = BrowseFilters.from_criteria(fl.get("filter_criteria") or {})
            result = self.repo.browse_resources(filters, limit=HOME_ITEMS)
            featured.append(
                {"list": fl, "resources": result.items, "href": browse_href(filters)}
            )
        bands = []
        for key, title, grades in GRADE_BANDS:
            filters = BrowseFilters(grades=tuple(grades))
            result = self.repo.browse_resources(filters, limit=HOME_ITEMS)
            bands.append({"key": key, "title": title, "resources": result.items, "href": browse_href(filters)})
        return {"featured": featured, "gradeBands": bands}


__all__ = ["FeaturedListService", "normalize_criteria", "browse_href", "MAX_ACTIVE", "HOME_ITEMS", "UNSET"]
