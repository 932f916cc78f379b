"""
Profile API: the signed-in user's own profile.

Permissions:
    Both routes need an identity; users only ever see or edit their own row.
    The role is read-only here (admins are granted in the profiles table).
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict

from backend.resources.services.profiles import ProfileUpdateInput
from backend.web import deps
from backend.web.routes.resources import DOMAIN_ERRORS, domain_error_response
from backend.web.routes.security import csrf_guard, json_private

profile_router = APIRouter(tags=["Profile"])

_PAYLOAD_TO_COLUMN = {
    "firstName": "first_name",
    "lastName": "last_name",
    "username": "username",
    "country": "country",
    "occupation": "occupation",
}


class ProfileUpdatePayload(BaseModel):
    model_config = ConfigDict(extra="forbid")

    firstName: Optional[str] = None
    lastName: Optional[str] = None
    username: Optional[str] = None
    country: Optional[str] = None
    occupation: Optional[str] = None


def serialize_profile(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": p.get("id"),
        "firstName": p.get("first_name"),
        "lastName": p.get("last_name"),
        "fullName": p.get("full_name"),
        "username": p.get("username"),
        "country": p.get("country"),
        "occupation": p.get("occupation"),
        "role": p.get("role"),
        "createdAt": p.get("created_at"),
        "updatedAt": p.get("updated_at"),
    }


@profile_router.get("/api/me/profile")
async def get_my_profile(request: Request):
    try:
        profile = deps.profile_service().get(deps.current_actor(request))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"profile": serialize_profile(profile)})


@profile_router.patch("/api/me/profile")
async def update_my_profile(request: Request, payload: ProfileUpdatePayload):
    """Change the fields present in the body; `null` clears a field."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    fields = {_PAYLOAD_TO_COLUMN[name]: getattr(payload, name) for name in payload.model_fields_set}
    try:
        profile = deps.profile_service().update(deps.current_actor(request), ProfileUpdateInput(fields=fields))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, "profile": serialize_profile(profile)})
