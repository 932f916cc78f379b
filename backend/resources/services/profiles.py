"""
Profile use cases: read and edit the signed-in user's own profile.

Behavior:
    - `get` returns the caller's profile; a caller without a profile row gets
      an empty one (every editable column None, role from the Actor).
    - `update` changes only the fields the caller sent; `full_name` is always
      re-derived as "first last". A username held by another user is
      rejected, and the repository's unique constraint re-checks on write.
    - `role` is not editable here.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from backend.identity_access.domain import PROFILE_COLUMNS, Actor
from backend.resources.errors import AuthorizationError, UsernameTakenError, ValidationError

logger = logging.getLogger("corner.resources.profiles")

NAME_MAX = 100
USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")

_FIELD_NAMES = {
    "first_name": "firstName",
    "last_name": "lastName",
    "username": "username",
    "country": "country",
    "occupation": "occupation",
}


class ProfilesRepoProtocol(Protocol):
    def get_profile(self, user_id: str) -> Optional[Dict[str, Any]]: ...

    def username_owner(self, username: str) -> Optional[str]: ...

    def upsert_profile(self, user_id: str, fields: Dict[str, Any]) -> Dict[str, Any]: ...


@dataclass(frozen=True)
class ProfileUpdateInput:
    """Only keys present in `fields` are changed (first_name, last_name, username, country, occupation)."""

    fields: Dict[str, Optional[str]]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def full_name(first: Optional[str], last: Optional[str]) -> Optional[str]:
    joined = " ".join(part for part in (first, last) if part)
    return joined or None


@dataclass
class ProfileService:
    repo: ProfilesRepoProtocol

    @staticmethod
    def _require_user(actor: Optional[Actor]) -> Actor:
        if actor is None or not actor.id:
            raise AuthorizationError("unauthenticated")
        return actor

    def get(self, actor: Optional[Actor]) -> Dict[str, Any]:
        actor = self._require_user(actor)
        profile = self.repo.get_profile(actor.id)
        if profile is None:
            profile = {"id": actor.id, "created_at": None, "updated_at": None}
            profile.update({col: None for col in PROFILE_COLUMNS})
        profile["role"] = actor.role
        return profile

    def update(self, actor: Optional[Actor], data: ProfileUpdateInput) -> Dict[str, Any]:
        actor = self._require_user(actor)
        unknown = set(data.fields) - set(_FIELD_NAMES)
        if unknown:
            raise ValidationError("Unknown profile field.", field=sorted(unknown)[0])
        changes = {col: _clean(value) for col, value in data.fields.items()}
        for col, value in changes.items():
            if col != "username" and value is not None and len(value) > NAME_MAX:
                raise ValidationError(
                    f"Must be at most {NAME_MAX} characters.", field=_FIELD_NAMES[col]
                )
        username = changes.get("username")
        if username is not None:
            if not USERNAME_RE.match(username):
                raise ValidationError(
                    "Username must be 3-30 letters, digits, dots, dashes or underscores.", field="username"
                )
            owner = self.repo.username_owner(username)
            if owner is not None and owner != actor.id:
                raise UsernameTakenError(username)

        current = self.repo.get_profile(actor.id) or {}
        first = changes["first_name"] if "first_name" in changes else current.get("first_name")
        last = changes["last_name"] if "last_name" in changes else current.get("last_name")
        changes["full_name"] = full_name(first, last)
        updated = self.repo.upsert_profile(actor.id, changes)
        logger.info("profile updated user=%s fields=%s", actor.id, ",".join(sorted(data.fields)))
        updated["role"] = actor.role
        return updated


__all__ = ["ProfileService", "ProfileUpdateInput", "ProfilesRepoProtocol", "full_name"]
