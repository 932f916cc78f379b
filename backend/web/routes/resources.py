"""
Resource API routes: submission, detail, deletion, downloads and uploads.

Why:
    Contributors submit resources with a featured image, optional gallery
    images and attachment files. The handlers turn JSON or multipart bodies
    into typed inputs and delegate to the services; they never talk to storage
    or the database directly.

Behavior:
    - POST /api/resources accepts a JSON draft, or multipart with a `payload`
      JSON field plus `featured_image`, `additional_images` and `attachments`
      file fields.
    - PATCH /api/resources/{id} takes the same shapes. Absent media fields keep
      the persisted values.
    - Every response is JSON with `Cache-Control: private, no-store`.

Security:
    - Writes run through the same-origin CSRF guard.
    - Ownership and role checks live in the services.
    - Storage and database errors are logged server-side and answered with
      generic messages.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, ValidationError as PydanticValidationError, field_validator

from backend.resources.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    UploadFailed,
    ValidationError,
)
from backend.resources.models import (
    Attachment,
    CreateResourceInput,
    ExternalLink,
    ResourceDraft,
    UpdateResourceInput,
    UploadedFile,
)
from backend.resources.services.submissions import persisted_attachments
from backend.resources.taxonomy import TOPIC_CATEGORIES
from backend.resources.uploads import STORAGE_NOT_CONFIGURED, AttachmentUploader
from backend.storage.config import BUCKETS, get_resources_max_upload_bytes
from backend.storage.ports import NullStorageAdapter
from backend.web import deps
from backend.web.routes.security import csrf_guard, json_private, private_error

resources_router = APIRouter(tags=["Resources"])
logger = logging.getLogger("corner.web.resources")

DOMAIN_ERRORS = (ValidationError, NotFoundError, AuthorizationError, UploadFailed, PersistenceError, RuntimeError)


def domain_error_response(exc: Exception) -> JSONResponse:
    """Map a domain exception onto the API error contract."""
    if isinstance(exc, ValidationError):
        return private_error({"error": exc.message, "field": exc.field}, status_code=400)
    if isinstance(exc, NotFoundError):
        return private_error({"error": "not_found"}, status_code=404)
    if isinstance(exc, AuthorizationError):
        if exc.detail == "unauthenticated":
            return private_error({"error": "unauthenticated"}, status_code=401)
        return private_error({"error": "forbidden", "detail": exc.detail}, status_code=403)
    if isinstance(exc, UploadFailed):
        return private_error({"error": exc.message}, status_code=502)
    if isinstance(exc, PersistenceError):
        return private_error({"error": exc.public_message}, status_code=500)
    if isinstance(exc, RuntimeError) and str(exc) == STORAGE_NOT_CONFIGURED:
        return private_error({"error": "service_unavailable", "detail": STORAGE_NOT_CONFIGURED}, status_code=503)
    raise exc


# --- Serialization ------------------------------------------------------------


def serialize_resource(r: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "id": r.get("id"),
        "slug": r.get("slug"),
        "userId": r.get("user_id"),
        "title": r.get("title"),
        "shortDescription": r.get("short_description"),
        "description": r.get("description"),
        "fileUrl": r.get("file_url"),
        "fileSize": r.get("file_size"),
        "fileType": r.get("file_type"),
        "attachments": [a.to_dict() for a in persisted_attachments(r)],
        "externalLinks": list(r.get("external_links") or []),
        "previewImageUrl": r.get("preview_image_url"),
        "additionalImages": list(r.get("additional_images") or []),
        "targetGrades": list(r.get("target_grades") or []),
        "resourceTypes": list(r.get("resource_types") or []),
        "creditOrganization": r.get("credit_organization"),
        "creditOther": r.get("credit_other"),
        "copyrightVerified": bool(r.get("copyright_verified")),
        "status": r.get("status"),
        "downloads": int(r.get("downloads") or 0),
        "createdAt": r.get("created_at"),
        "updatedAt": r.get("updated_at"),
    }
    for cat in TOPIC_CATEGORIES:
        out[cat.field] = list(r.get(cat.column) or [])
    return out


# --- Payloads -----------------------------------------------------------------


class ResourcePayload(BaseModel):
    """Draft body for create and update (camelCase, unknown keys rejected)."""

    model_config = ConfigDict(extra="forbid")

    title: str | None = None
    shortDescription: str | None = None
    description: str | None = None
    targetGrades: List[str] | None = None
    resourceTypes: List[str] | None = None
    topicsQuran: List[str] | None = None
    topicsDuasZiyarat: List[str] | None = None
    topicsAqaid: List[str] | None = None
    topicsFiqh: List[str] | None = None
    topicsAkhlaq: List[str] | None = None
    topicsTarikh: List[str] | None = None
    topicsPersonalities: List[str] | None = None
    topicsIslamicMonths: List[str] | None = None
    topicsLanguages: List[str] | None = None
    topicsCurriculum: List[str] | None = None
    topicsOther: List[str] | None = None
    externalLinks: List[Dict[str, Any]] | None = None
    creditOrganization: str | None = None
    creditOther: str | None = None
    copyrightVerified: bool | None = None
    previewImageUrl: str | None = None
    additionalImages: List[str] | None = None
    attachments: List[Dict[str, Any]] | None = None
    fileUrl: str | None = None

    @field_validator("creditOrganization", "creditOther", "previewImageUrl", "fileUrl")
    @classmethod
    def _strip_empty(cls, v):
        if isinstance(v, str):
            v = v.strip()
            return v if v else None
        return v

    def draft(self) -> ResourceDraft:
        topics = {}
        for cat in TOPIC_CATEGORIES:
            values = getattr(self, cat.field)
            if values:
                topics[cat.key] = tuple(values)
        links = tuple(
            ExternalLink(title=str(link.get("title") or ""), url=str(link.get("url") or ""))
            for link in (self.externalLinks or [])
        )
        return ResourceDraft(
            title=self.title or "",
            short_description=self.shortDescription or "",
            description=self.description or "",
            target_grades=tuple(self.targetGrades or ()),
            resource_types=tuple(self.resourceTypes or ()),
            topics=topics,
            external_links=links,
            credit_organization=self.creditOrganization,
            credit_other=self.creditOther,
            copyright_verified=bool(self.copyrightVerified),
        )

    def attachment_records(self) -> Optional[Tuple[Attachment, ...]]:
        if self.attachments is None:
            return None
        return tuple(Attachment.from_dict(a) for a in self.attachments if a.get("url"))


@dataclass
class _Files:
    featured: Optional[UploadedFile] = None
    additional: Tuple[UploadedFile, ...] = ()
    attachments: Tuple[UploadedFile, ...] = ()


async def _read_upload(item: Any) -> Optional[UploadedFile]:
    filename = getattr(item, "filename", None)
    if not filename or not hasattr(item, "read"):
        return None
    body = await item.read()
    return UploadedFile(filename=filename, content_type=getattr(item, "content_type", None) or "", body=body)


async def _parse_submission(request: Request) -> Tuple[ResourcePayload, _Files]:
    """Read a JSON or multipart submission body.

    Raises:
        ValidationError on unreadable bodies or payloads that fail the schema.
    """
    content_type = (request.headers.get("content-type") or "").lower()
    files = _Files()
    try:
        if content_type.startswith("multipart/form-data"):
            form = await request.form()
            raw = form.get("payload")
            data = json.loads(raw) if isinstance(raw, str) and raw.strip() else {}
            featured = form.get("featured_image")
            files = _Files(
                featured=await _read_upload(featured) if featured is not None else None,
                additional=tuple(f for f in [await _read_upload(i) for i in form.getlist("additional_images")] if f),
                attachments=tuple(f for f in [await _read_upload(i) for i in form.getlist("attachments")] if f),
            )
        else:
            data = await request.json()
    except (ValueError, UnicodeDecodeError) as exc:
        raise ValidationError("Request body must be valid JSON.") from exc
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object.")
    try:
        return ResourcePayload.model_validate(data), files
    except PydanticValidationError as exc:
        first = exc.errors()[0] if exc.errors() else {}
        loc = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ValidationError("Invalid request body.", field=loc) from exc


# --- Routes -------------------------------------------------------------------


@resources_router.post("/api/resources")
async def create_resource(request: Request):
    """Submit a new resource (status `pending`).

    Behavior:
        - 201 `{success, resource, redirect}`
        - 400 validation, 401 unauthenticated, 502 upload failure,
          503 storage not configured, 500 persistence failure
    """
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    actor = deps.current_actor(request)
    if actor is None:
        return private_error({"error": "unauthenticated"}, status_code=401)
    try:
        payload, files = await _parse_submission(request)
        data = CreateResourceInput(
            draft=payload.draft(),
            featured_image=files.featured,
            additional_images=files.additional,
            attachment_files=files.attachments,
            preview_image_url=payload.previewImageUrl,
            additional_image_urls=tuple(payload.additionalImages or ()),
            attachments=payload.attachment_records() or (),
            file_url=payload.fileUrl,
        )
        _ensure_storage_if_uploading(files)
        result = deps.submission_service().create(actor, data)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private(
        {"success": True, "resource": serialize_resource(result.resource), "redirect": result.redirect},
        status_code=201,
    )


@resources_router.patch("/api/resources/{resource_id}")
async def update_resource(request: Request, resource_id: str):
    """Edit a resource: owner while pending, admin at any status."""
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    actor = deps.current_actor(request)
    if actor is None:
        return private_error({"error": "unauthenticated"}, status_code=401)
    try:
        payload, files = await _parse_submission(request)
        data = UpdateResourceInput(
            draft=payload.draft(),
            featured_image=files.featured,
            additional_images=files.additional,
            attachment_files=files.attachments,
            preview_image_url=payload.previewImageUrl,
            retained_additional_images=(
                tuple(payload.additionalImages) if payload.additionalImages is not None else None
            ),
            retained_attachments=payload.attachment_records(),
        )
        _ensure_storage_if_uploading(files)
        result = deps.submission_service().update(actor, resource_id, data)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private(
        {"success": True, "resource": serialize_resource(result.resource), "redirect": result.redirect}
    )


@resources_router.get("/api/resources/{slug_or_id}")
async def get_resource(request: Request, slug_or_id: str):
    """Resource detail; non-approved resources are visible to owner and admins only."""
    try:
        resource = deps.catalog_service().get(slug_or_id, deps.current_actor(request))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private(serialize_resource(resource))


@resources_router.delete("/api/resources/{resource_id}")
async def delete_resource(request: Request, resource_id: str):
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    try:
        deps.catalog_service().delete(deps.current_actor(request), resource_id)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True})


@resources_router.post("/api/resources/{resource_id}/downloads")
async def record_download(request: Request, resource_id: str):
    """Public download counter; returns the new count and the primary file URL."""
    try:
        result = deps.catalog_service().record_download(resource_id, deps.current_actor(request))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"success": True, **result})


@resources_router.get("/api/me/resources")
async def list_my_resources(request: Request):
    """Owner dashboard: every status, newest first."""
    try:
        items = deps.catalog_service().list_mine(deps.current_actor(request))
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    return json_private({"items": [serialize_resource(r) for r in items]})


@resources_router.post("/api/uploads")
async def upload_file(request: Request):
    """Upload one file to a resource bucket and return its public URL.

    Body: multipart `file` and `bucket` (`resource-files` | `resource-thumbnails`).
    """
    csrf = csrf_guard(request)
    if csrf:
        return csrf
    actor = deps.current_actor(request)
    if actor is None:
        return private_error({"error": "unauthenticated"}, status_code=401)
    form = await request.form()
    bucket = str(form.get("bucket") or "").strip()
    if bucket not in BUCKETS:
        return private_error({"error": "Invalid bucket.", "field": "bucket"}, status_code=400)
    item = form.get("file")
    upload = await _read_upload(item) if item is not None else None
    if upload is None:
        return private_error({"error": "No file provided.", "field": "file"}, status_code=400)
    limit = get_resources_max_upload_bytes()
    if upload.size > limit:
        return private_error(
            {"error": f"{upload.filename} exceeds the {limit // (1024 * 1024)} MB upload limit.", "field": "file"},
            status_code=400,
        )
    try:
        _ensure_storage_wired()
        result = AttachmentUploader(deps.get_storage()).upload_file(upload, bucket=bucket, owner_id=actor.id)
    except DOMAIN_ERRORS as exc:
        return domain_error_response(exc)
    logger.info("file uploaded bucket=%s path=%s owner=%s", bucket, result["path"], actor.id)
    return json_private({"success": True, "url": result["url"], "path": result["path"]})


def _ensure_storage_wired() -> None:
    """Lazily retry Supabase wiring when startup could not reach it."""
    if isinstance(deps.get_storage(), NullStorageAdapter):
        from backend.web.storage_wiring import wire_supabase_adapter_if_configured

        wire_supabase_adapter_if_configured()


def _ensure_storage_if_uploading(files: _Files) -> None:
    if files.featured or files.additional or files.attachments:
        _ensure_storage_wired()


__all__ = ["resources_router", "serialize_resource", "domain_error_response", "DOMAIN_ERRORS"]
