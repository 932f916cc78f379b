"""
In-memory repository for resources, featured lists and profiles.

Used by tests and for offline development when no database DSN is configured.
Mirrors DBResourcesRepo: same method names, same snake_case record dicts, and
copies on the way in and out so callers never mutate stored state.
"""
from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from backend.identity_access.domain import PROFILE_COLUMNS
from backend.resources.browse import BrowseFilters, BrowseResult, PAGE_SIZE, matches, paginate, sort_records
from backend.resources.errors import ActiveListLimitError, UsernameTakenError
from backend.resources.taxonomy import TOPIC_COLUMNS

_UNSET = object()

_RESOURCE_DEFAULTS: Dict[str, Any] = {
    "slug": None,
    "user_id": None,
    "title": "",
    "short_description": "",
    "description": "",
    "file_url": None,
    "file_size": None,
    "file_type": None,
    "attachments": [],
    "external_links": [],
    "preview_image_url": None,
    "additional_images": [],
    "target_grades": [],
    "resource_types": [],
    "credit_organization": None,
    "credit_other": None,
    "copyright_verified": False,
}


class InMemoryResourcesRepo:
    def __init__(self) -> None:
        self.resources: Dict[str, Dict[str, Any]] = {}
        self.featured_lists: Dict[str, Dict[str, Any]] = {}
        self.profiles: Dict[str, Dict[str, Any]] = {}
        self._last_ts: Optional[datetime] = None

    def _now(self) -> str:
        now = datetime.now(timezone.utc)
        # Strictly increasing so creation order is total even within one microsecond.
        if self._last_ts is not None and now <= self._last_ts:
            now = self._last_ts + timedelta(microseconds=1)
        self._last_ts = now
        return now.strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")

    # --- Profiles ---------------------------------------------------------------
    def _profile(self, user_id: str) -> Dict[str, Any]:
        if user_id not in self.profiles:
            now = self._now()
            record = {"id": user_id, "role": "contributor", "created_at": now, "updated_at": now}
            record.update({col: None for col in PROFILE_COLUMNS})
            self.profiles[user_id] = record
        return self.profiles[user_id]

    def set_profile_role(self, user_id: str, role: str) -> None:
        self._profile(user_id)["role"] = role

    def get_profile_role(self, user_id: str) -> Optional[str]:
        record = self.profiles.get(user_id)
        return record.get("role") if record else None

    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]:
        record = self.profiles.get(user_id)
        return copy.deepcopy(record) if record else None

    def username_owner(self, username: str) -> Optional[str]:
        for record in self.profiles.values():
            if record.get("username") == username:
                return record["id"]
        return None

    def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        unknown = set(fields) - set(PROFILE_COLUMNS)
        if unknown:
            raise ValueError(f"unknown_columns:{','.join(sorted(unknown))}")
        username = fields.get("username")
        if username:
            owner = self.username_owner(username)
            if owner is not None and owner != user_id:
                raise UsernameTakenError(username)
        record = self._profile(user_id)
        record.update(copy.deepcopy(fields))
        record["updated_at"] = self._now()
        return copy.deepcopy(record)

    # --- Resources --------------------------------------------------------------
    def insert_resource(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        record = copy.deepcopy(_RESOURCE_DEFAULTS)
        record.update({col: [] for col in TOPIC_COLUMNS})
        record.update(copy.deepcopy(fields))
        now = self._now()
        record.update(
            {"id": str(uuid4()), "status": "pending", "downloads": 0, "created_at": now, "updated_at": now}
        )
        self.resources[record["id"]] = record
        return copy.deepcopy(record)

    def update_resource(self, resource_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        record = self.resources.get(resource_id)
        if record is None:
            return None
        protected = {"id", "user_id", "status", "downloads", "created_at"}
        record.update({k: copy.deepcopy(v) for k, v in fields.items() if k not in protected})
        record["updated_at"] = self._now()
        return copy.deepcopy(record)

    def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]:
        record = self.resources.get(resource_id)
        return copy.deepcopy(record) if record is not None else None

    def get_resource_by_slug(self, slug: str) -> Optional[Dict[str, Any]]:
        for record in self.resources.values():
            if record.get("slug") == slug:
                return copy.deepcopy(record)
        return None

    def slug_exists(self, slug: str) -> bool:
        return any(r.get("slug") == slug for r in self.resources.values())

    def delete_resource(self, resource_id: str) -> bool:
        return self.resources.pop(resource_id, None) is not None

    def set_resource_status(self, resource_id: str, status: str) -> Optional[Dict[str, Any]]:
        record = self.resources.get(resource_id)
        if record is None:
            return None
        record["status"] = status
        record["updated_at"] = self._now()
        return copy.deepcopy(record)

    def increment_downloads(self, resource_id: str) -> Optional[int]:
        record = self.resources.get(resource_id)
        if record is None:
            return None
        record["downloads"] = int(record.get("downloads") or 0) + 1
        return record["downloads"]

    def browse_resources(self, filters: BrowseFilters, *, limit: int = PAGE_SIZE) -> BrowseResult:
        hits = [r for r in self.resources.values() if matches(r, filters)]
        ordered = sort_records(hits, filters.sort)
        return paginate([copy.deepcopy(r) for r in ordered], filters, limit=limit)

    def list_resources_for_owner(self, user_id: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.resources.values() if r.get("user_id") == user_id]
        return [copy.deepcopy(r) for r in sort_records(rows, "newest")]

    def list_resources_by_status(self, status: str) -> List[Dict[str, Any]]:
        rows = [r for r in self.resources.values() if r.get("status") == status]
        return [copy.deepcopy(r) for r in sort_records(rows, "newest")]

    # --- Featured lists ---------------------------------------------------------
    def list_featured_lists(self, *, active_only: bool = False) -> List[Dict[str, Any]]:
        rows = [fl for fl in self.featured_lists.values() if fl["is_active"] or not active_only]
        rows.sort(key=lambda fl: (fl["display_order"], fl["created_at"], fl["id"]))
        return [copy.deepcopy(fl) for fl in rows]

    def get_featured_list(self, list_id: str) -> Optional[Dict[str, Any]]:
        fl = self.featured_lists.get(list_id)
        return copy.deepcopy(fl) if fl is not None else None

    def count_active_featured_lists(self, *, exclude_id: Optional[str] = None) -> int:
        return sum(1 for fl in self.featured_lists.values() if fl["is_active"] and fl["id"] != exclude_id)

    def create_featured_list(
        self, *, title: str, filter_criteria: Dict[str, List[str]], is_active: bool, max_active: int
    ) -> Dict[str, Any]:
        if is_active and self.count_active_featured_lists() >= max_active:
            raise ActiveListLimitError(max_active)
        orders = [fl["display_order"] for fl in self.featured_lists.values()]
        now = self._now()
        fl = {
            "id": str(uuid4()),
            "title": title,
            "filter_criteria": copy.deepcopy(filter_criteria),
            "is_active": bool(is_active),
            "display_order": (max(orders) + 1) if orders else 0,
            "created_at": now,
            "updated_at": now,
        }
        self.featured_lists[fl["id"]] = fl
        return copy.deepcopy(fl)

    def update_featured_list(
        self,
        list_id: str,
        *,
        title: object = _UNSET,
        filter_criteria: object = _UNSET,
        is_active: object = _UNSET,
        max_active: int,
    ) -> Optional[Dict[str, Any]]:
        fl = self.featured_lists.get(list_id)
        if fl is None:
            return None
        if is_active is True and not fl["is_active"]:
            if self.count_active_featured_lists(exclude_id=list_id) >= max_active:
                raise ActiveListLimitError(max_active)
        if title is not _UNSET:
            fl["title"] = title
        if filter_criteria is not _UNSET:
            fl["filter_criteria"] = copy.deepcopy(filter_criteria)
        if is_active is not _UNSET:
            fl["is_active"] = bool(is_active)
        fl["updated_at"] = self._now()
        return copy.deepcopy(fl)

    def delete_featured_list(self, list_id: str) -> bool:
        return self.featured_lists.pop(list_id, None) is not None

    def reorder_featured_lists(self, list_ids: List[str]) -> List[Dict[str, Any]]:
        missing = [lid for lid in list_ids if lid not in self.featured_lists]
        if missing:
            raise LookupError("featured_list_not_found")
        for position, list_id in enumerate(list_ids):
            self.featured_lists[list_id]["display_order"] = position
        return self.list_featured_lists()


__all__ = ["InMemoryResourcesRepo"]
