"""
Error taxonomy for resource use cases.

Each class subclasses the builtin exception the service layer has always used
for the same condition (ValueError for bad input, LookupError for missing
rows, PermissionError for ownership/role violations), so adapters that catch
the builtin keep working.
"""
from __future__ import annotations

from typing import Optional


class ValidationError(ValueError):
    """A required field is missing or malformed. The message is user-facing."""

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.field = field


class ActiveListLimitError(ValidationError):
    def __init__(self, limit: int) -> None:
        super().__init__(f"Only {limit} lists can be active at once.", field="isActive")
        self.limit = limit


class UsernameTakenError(ValidationError):
    def __init__(self, username: str) -> None:
        super().__init__("Username is already taken by another user.", field="username")
        self.username = username


class UploadFailed(RuntimeError):
    """Object storage rejected a file after the retry budget was exhausted."""

    def __init__(self, message: str, *, filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename


class PersistenceError(RuntimeError):
    """A database write failed. `detail` is for logs only."""

    public_message = "Something went wrong while saving. Please try again."

    def __init__(self, detail: str = "persistence_failed") -> None:
        super().__init__(detail)
        self.detail = detail


class SlugExhausted(PersistenceError):
    def __init__(self, base: str, attempts: int) -> None:
        super().__init__(f"slug_exhausted:{base}:{attempts}")
        self.base = base
        self.attempts = attempts


class AuthorizationError(PermissionError):
    def __init__(self, detail: str = "forbidden") -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(LookupError):
    def __init__(self, detail: str = "not_found") -> None:
        super().__init__(detail)
        self.detail = detail


__all__ = [
    "ValidationError",
    "ActiveListLimitError",
    "UsernameTakenError",
    "UploadFailed",
    "PersistenceError",
    "SlugExhausted",
    "AuthorizationError",
    "NotFoundError",
]
