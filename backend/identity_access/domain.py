"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between the session layer and services.
- `Actor` is the resolved caller (`currentUser()`) passed into every use case.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

CONTRIBUTOR = "contributor"
ADMIN = "admin"

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({CONTRIBUTOR, ADMIN})

# Self-editable profile columns; `role` is never among them.
PROFILE_COLUMNS = ("first_name", "last_name", "full_name", "username", "country", "occupation")


@dataclass(frozen=True)
class Actor:
    id: str
    role: str = CONTRIBUTOR

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def resolve_role(profile_role: Optional[str], session_roles: Iterable[str] = ()) -> str:
    """Prefer the persisted profile role; fall back to session roles, then contributor."""
    if profile_role in ALLOWED_ROLES:
        return str(profile_role)
    roles = [r for r in session_roles if r in ALLOWED_ROLES]
    if ADMIN in roles:
        return ADMIN
    return CONTRIBUTOR


__all__ = ["ALLOWED_ROLES", "ADMIN", "CONTRIBUTOR", "PROFILE_COLUMNS", "Actor", "resolve_role"]
