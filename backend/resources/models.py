"""
Input structs for the resource submission pipeline.

Why:
    Handlers accept loosely shaped JSON/multipart bodies. Before any upload or
    write happens, the web layer converts them into these typed structs so the
    orchestrator only ever sees one shape per operation.

Conventions:
    - Tag dimensions are tuples of strings in camelCase field order.
    - On update, `None` means "keep what is persisted" for media fields.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from backend.resources.taxonomy import TOPIC_CATEGORIES


LEGACY_ATTACHMENT_ID = "legacy-file"


def coerce_size(value: Any) -> Optional[int]:
    """Coerce a string-or-number size to int; None when not representable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError, OverflowError):
        return None


@dataclass(frozen=True)
class Attachment:
    id: str
    name: str
    url: str
    size: Optional[int] = None
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "url": self.url, "size": self.size, "type": self.type}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attachment":
        return cls(
            id=str(data.get("id") or uuid4()),
            name=str(data.get("name") or ""),
            url=str(data.get("url") or ""),
            size=coerce_size(data.get("size")),
            type=(str(data["type"]) if data.get("type") else None),
        )


@dataclass(frozen=True)
class ExternalLink:
    title: str
    url: str

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "url": self.url}


@dataclass(frozen=True)
class UploadedFile:
    """A file received from the client, held in memory until uploaded."""

    filename: str
    content_type: str
    body: bytes

    @property
    def size(self) -> int:
        return len(self.body)


@dataclass
class ResourceDraft:
    """Fields shared by create and update submissions."""

    title: str = ""
    short_description: str = ""
    description: str = ""
    target_grades: Tuple[str, ...] = ()
    resource_types: Tuple[str, ...] = ()
    topics: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    external_links: Tuple[ExternalLink, ...] = ()
    credit_organization: Optional[str] = None
    credit_other: Optional[str] = None
    copyright_verified: bool = False

    def topic_values(self, key: str) -> Tuple[str, ...]:
        return tuple(self.topics.get(key, ()))

    def topic_columns(self) -> Dict[str, list]:
        """Map every topic category onto its column name (missing → empty)."""
        return {cat.column: list(self.topic_values(cat.key)) for cat in TOPIC_CATEGORIES}


@dataclass
class CreateResourceInput:
    draft: ResourceDraft
    featured_image: Optional[UploadedFile] = None
    additional_images: Tuple[UploadedFile, ...] = ()
    attachment_files: Tuple[UploadedFile, ...] = ()
    # Media already uploaded via /api/uploads, or a legacy single file.
    preview_image_url: Optional[str] = None
    additional_image_urls: Tuple[str, ...] = ()
    attachments: Tuple[Attachment, ...] = ()
    file_url: Optional[str] = None


@dataclass
class UpdateResourceInput:
    draft: ResourceDraft
    featured_image: Optional[UploadedFile] = None
    additional_images: Tuple[UploadedFile, ...] = ()
    attachment_files: Tuple[UploadedFile, ...] = ()
    # None keeps the persisted value; an explicit value replaces it.
    preview_image_url: Optional[str] = None
    retained_additional_images: Optional[Tuple[str, ...]] = None
    retained_attachments: Optional[Tuple[Attachment, ...]] = None


def legacy_attachment(file_url: str, *, name: str, size: Any = None, type: Optional[str] = None) -> Attachment:
    """Wrap a legacy single `fileUrl` into an attachment record."""
    return Attachment(id=LEGACY_ATTACHMENT_ID, name=name, url=file_url, size=coerce_size(size), type=type)


__all__ = [
    "Attachment",
    "ExternalLink",
    "UploadedFile",
    "ResourceDraft",
    "CreateResourceInput",
    "UpdateResourceInput",
    "coerce_size",
    "legacy_attachment",
    "LEGACY_ATTACHMENT_ID",
]
