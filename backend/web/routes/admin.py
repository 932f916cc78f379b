"""
Admin API: moderation queue and featured list curation.

Permissions:
    Every route requires the `admin` role, resolved server-side from the
    caller's profile (session roles are only a fallback).
"""
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict

from backend.resources.services.featured import UNSET
from backend.web import deps
from backend.web.routes.resources import DOMAIN_ERRORS, domain_error_response, serialize_resource
from backend.web.routes.security import csrf_guard, json_private

admin_router = APIRouter(tags=["Admin"])


def _serialize_featured_list(fl: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": fl.get("id"),
        "title": fl.get("title"),
        "filterCriteria": dict(fl.get("filter_criteria") or {}),
        "isActive": bool(fl.get("is_active")),
        "displayOrder": int(fl.get("display_order") or 0),
        "createdAt": fl.get("created_at"),
        "updatedAt": fl.get("updated_at"),
    }


class StatusPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: str | None = None


class FeaturedListCreatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Accept loose shapes; the service validates and answers 400
    title: Any = None
    filterCriteria: Dict[str, Any] | None = None
    isActive: bool = False


class FeaturedListUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Any = None
    filterCriteria: Dict[str, Any] | None = None
    isActive: bool | None = None


class TogglePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    isActive: bool | None = None


class ReorderPayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ids: List[Any] = []


# --- Moderation ---------------------------------------------------------------


@admin_router.get("/api/admin/resources")
async def list_resources_by_status(request: Request, status: str = "pending"):
    try:
        items = deps.catalog_service().list_by_status(deps.current_actor(request), status)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"items": [serialize_resource(r) for r in items], "status": status})


@admin_router.post("/api/admin/resources/{resource_id}/status")
async def set_resource_status(request: Request, resource_id: str, payload: StatusPayload):
    """Approve, reject or re-queue a resource."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        updated = deps.catalog_service().set_status(
            deps.current_actor(request), resource_id, (payload.status or "").strip().lower()
        )
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "resource": serialize_resource(updated)})


# --- Featured lists -----------------------------------------------------------


@admin_router.get("/api/admin/featured-lists")
async def list_featured_lists(request: Request):
    try:
        items = deps.featured_service().list(deps.current_actor(request))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"items": [_serialize_featured_list(fl) for fl in items]})


@admin_router.post("/api/admin/featured-lists")
async def create_featured_list(request: Request, payload: FeaturedListCreatePayload):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        created = deps.featured_service().create(
            deps.current_actor(request),
            title=payload.title,
            filter_criteria=payload.filterCriteria,
            is_active=payload.isActive,
        )
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "list": _serialize_featured_list(created)}, status_code=201)


@admin_router.post("/api/admin/featured-lists/reorder")
async def reorder_featured_lists(request: Request, payload: ReorderPayload):
    """Persist a drag-and-drop order: each id gets its zero-based position."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        items = deps.featured_service().reorder(deps.current_actor(request), list(payload.ids))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "items": [_serialize_featured_list(fl) for fl in items]})


@admin_router.patch("/api/admin/featured-lists/{list_id}")
async def update_featured_list(request: Request, list_id: str, payload: FeaturedListUpdatePayload):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    fields_set = payload.model_fields_set
    kwargs: Dict[str, Any] = {
        "title": payload.title if "title" in fields_set else UNSET,
        "filter_criteria": payload.filterCriteria if "filterCriteria" in fields_set else UNSET,
        "is_active": payload.isActive if "isActive" in fields_set and payload.isActive is not None else UNSET,
    }
    try:
        updated = deps.featured_service().update(deps.current_actor(request), list_id, **kwargs)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "list": _serialize_featured_list(updated)})


@admin_router.post("/api/admin/featured-lists/{list_id}/toggle")
async def toggle_featured_list(request: Request, list_id: str, payload: TogglePayload | None = None):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        updated = deps.featured_service().toggle(
            deps.current_actor(request), list_id, payload.isActive if payload is not None else None
        )
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "list": _serialize_featured_list(updated)})


@admin_router.delete("/api/admin/featured-lists/{list_id}")
async def delete_featured_list(request: Request, list_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        deps.featured_service().delete(deps.current_actor(request), list_id)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True})


__all__ = ["admin_router"]
