"""
Resource submission orchestrator (create and edit).

Intent:
    Validate a draft, upload its media in a fixed order, then write the record.

Sequence:
    1. featured image      -> preview_image_url (required slot, aborts on failure)
    2. additional images   -> additional_images (optional slot, failures skipped)
    3. attachment files    -> attachments (aborts on first failure)
    4. merge retained + new attachments (new ones appended)
    5. primary attachment  -> legacy file_url / file_size / file_type
    6. insert or update the record (slug generated once, kept on edit)

Failure policy:
    Validation and authorization run before any upload. Uploads that succeeded
    before a later failure stay in storage; there is no compensating delete.

Permissions:
    Create requires a signed-in actor. Edit requires the owner while the
    resource is pending, or an admin at any status.
"""
from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple
from urllib.parse import urlparse

from backend.identity_access.domain import Actor
from backend.resources import taxonomy
from backend.resources.errors import (
    AuthorizationError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from backend.resources.models import (
    Attachment,
    CreateResourceInput,
    ExternalLink,
    ResourceDraft,
    UpdateResourceInput,
    UploadedFile,
    legacy_attachment,
)
from backend.resources.slugs import DEFAULT_MAX_ATTEMPTS, unique_slug
from backend.resources.uploads import AttachmentUploader
from backend.storage.config import FILES_BUCKET, THUMBNAILS_BUCKET, get_resources_max_upload_bytes
from backend.storage.ports import ObjectStorageProtocol

logger = logging.getLogger("corner.resources.submissions")

TITLE_MIN, TITLE_MAX = 3, 200
SHORT_DESCRIPTION_MIN, SHORT_DESCRIPTION_MAX = 10, 500
DESCRIPTION_MAX = 5000
CREDIT_OTHER_MAX = 200

Progress = Callable[[str], None]


class SubmissionsRepoProtocol(Protocol):
    def insert_resource(self, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    def update_resource(self, resource_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def get_resource(self, resource_id: str) -> Optional[Dict[str, Any]]: ...

    def slug_exists(self, slug: str) -> bool: ...


@dataclass
class SubmissionResult:
    resource: Dict[str, Any]
    redirect: str


def _noop(_: str) -> None:
    return None


def detail_redirect(record: Dict[str, Any]) -> str:
    """Where the client lands after a successful submission: the detail page."""
    return f"/resource/{record.get('slug') or record['id']}"


def _is_http_url(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _name_from_url(url: str) -> str:
    return os.path.basename(urlparse(url).path) or "file"


def normalize_links(links: Sequence[ExternalLink]) -> List[ExternalLink]:
    """Trim title/url pairs, drop fully blank rows and reject half-filled or non-http ones."""
    out: List[ExternalLink] = []
    for link in links:
        title = (link.title or "").strip()
        url = (link.url or "").strip()
        if not title and not url:
            continue
        if not title:
            raise ValidationError("Each external link needs a title.", field="externalLinks")
        if not _is_http_url(url):
            raise ValidationError(f"External link '{title}' must be a valid http(s) URL.", field="externalLinks")
        out.append(ExternalLink(title=title, url=url))
    return out


def validate_draft(draft: ResourceDraft) -> None:
    """Validate the text fields of a draft (first violation wins)."""
    title = (draft.title or "").strip()
    if not title:
        raise ValidationError("Title is required.", field="title")
    if not TITLE_MIN <= len(title) <= TITLE_MAX:
        raise ValidationError(
            f"Title must be between {TITLE_MIN} and {TITLE_MAX} characters.", field="title"
        )
    short = (draft.short_description or "").strip()
    if not short:
        raise ValidationError("Short description is required.", field="shortDescription")
    if not SHORT_DESCRIPTION_MIN <= len(short) <= SHORT_DESCRIPTION_MAX:
        raise ValidationError(
            f"Short description must be between {SHORT_DESCRIPTION_MIN} and {SHORT_DESCRIPTION_MAX} characters.",
            field="shortDescription",
        )
    if len((draft.description or "").strip()) > DESCRIPTION_MAX:
        raise ValidationError(
            f"Description must be at most {DESCRIPTION_MAX} characters.", field="description"
        )
    if len((draft.credit_other or "").strip()) > CREDIT_OTHER_MAX:
        raise ValidationError(
            f"Credit must be at most {CREDIT_OTHER_MAX} characters.", field="creditOther"
        )


def validate_classification(draft: ResourceDraft) -> None:
    if not draft.copyright_verified:
        raise ValidationError(
            "You must certify that you have the right to distribute this content.",
            field="copyrightVerified",
        )
    if not draft.target_grades or not draft.resource_types:
        raise ValidationError(
            "Please select at least one grade level and one resource type.", field="targetGrades"
        )
    checks: List[Tuple[str, Sequence[str], Sequence[str]]] = [
        ("targetGrades", draft.target_grades, taxonomy.TARGET_GRADES),
        ("resourceTypes", draft.resource_types, taxonomy.RESOURCE_TYPES),
    ]
    unknown_keys = set(draft.topics) - set(taxonomy.TOPIC_CATEGORIES_BY_KEY)
    if unknown_keys:
        raise ValidationError(f"Unknown topic category: {sorted(unknown_keys)[0]}", field="topics")
    for cat in taxonomy.TOPIC_CATEGORIES:
        checks.append((cat.field, draft.topic_values(cat.key), cat.options))
    for field_name, values, vocabulary in checks:
        unknown = taxonomy.unknown_values(values, vocabulary)
        if unknown:
            raise ValidationError(f"Unknown value for {field_name}: {unknown[0]}", field=field_name)
    org = (draft.credit_organization or "").strip()
    if org and org not in taxonomy.CREDIT_ORGANIZATIONS:
        raise ValidationError(f"Unknown credit organization: {org}", field="creditOrganization")


@dataclass
class SubmissionService:
    """Create and edit resources, uploading their files first."""

    repo: SubmissionsRepoProtocol
    storage: ObjectStorageProtocol
    max_upload_bytes: int = field(default_factory=get_resources_max_upload_bytes)
    sleep: Callable[[float], None] = time.sleep
    max_slug_attempts: int = DEFAULT_MAX_ATTEMPTS

    def _uploader(self) -> AttachmentUploader:
        return AttachmentUploader(self.storage, sleep=self.sleep)

    def _check_sizes(self, files: Sequence[UploadedFile]) -> None:
        limit_mb = self.max_upload_bytes // (1024 * 1024)
        for f in files:
            if f.size > self.max_upload_bytes:
                raise ValidationError(f"{f.filename} exceeds the {limit_mb} MB upload limit.", field="files")
            if f.size == 0:
                raise ValidationError(f"{f.filename} is empty.", field="files")

    @staticmethod
    def _require_payload(attachment_count: int, links: Sequence[ExternalLink]) -> None:
        if attachment_count == 0 and not links:
            raise ValidationError("Add at least one file upload or one external link.", field="attachments")

    def _fields(
        self,
        draft: ResourceDraft,
        *,
        preview_image_url: Optional[str],
        additional_images: Sequence[str],
        attachments: Sequence[Attachment],
        links: Sequence[ExternalLink],
    ) -> Dict[str, Any]:
        primary = attachments[0] if attachments else None
        fields: Dict[str, Any] = {
            "title": draft.title.strip(),
            "short_description": draft.short_description.strip(),
            "description": (draft.description or "").strip(),
            "target_grades": list(draft.target_grades),
            "resource_types": list(draft.resource_types),
            "preview_image_url": preview_image_url,
            "additional_images": list(additional_images),
            "attachments": [a.to_dict() for a in attachments],
            "external_links": [link.to_dict() for link in links],
            "file_url": primary.url if primary else None,
            "file_size": primary.size if primary else None,
            "file_type": primary.type if primary else None,
            "credit_organization": (draft.credit_organization or "").strip() or None,
            "credit_other": (draft.credit_other or "").strip() or None,
            "copyright_verified": bool(draft.copyright_verified),
        }
        fields.update(draft.topic_columns())
        return fields

    def _persist(self, op: str, call: Callable[[], Optional[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
        try:
            return call()
        except PersistenceError:
            raise
        except Exception as exc:
            logger.error("resource %s failed: %s", op, exc.__class__.__name__, exc_info=True)
            raise PersistenceError(f"{op}_failed:{exc.__class__.__name__}") from exc

    # --- Use cases --------------------------------------------------------------

    def create(
        self, actor: Actor, data: CreateResourceInput, *, progress: Optional[Progress] = None
    ) -> SubmissionResult:
        """Validate, upload and insert a new pending resource."""
        report = progress or _noop
        if actor is None or not actor.id:
            raise AuthorizationError("unauthenticated")
        draft = data.draft
        validate_draft(draft)
        if data.featured_image is None and not (data.preview_image_url or "").strip():
            raise ValidationError("Featured image is required.", field="featuredImage")
        validate_classification(draft)
        links = normalize_links(draft.external_links)
        new_files = list(data.attachment_files)
        self._check_sizes(([data.featured_image] if data.featured_image else []) + list(data.additional_images) + new_files)
        existing: List[Attachment] = list(data.attachments)
        if not existing and (data.file_url or "").strip():
            url = data.file_url.strip()
            existing = [legacy_attachment(url, name=_name_from_url(url))]
        self._require_payload(len(existing) + len(new_files), links)

        uploader = self._uploader()
        preview_url = (data.preview_image_url or "").strip() or None
        if data.featured_image is not None:
            report("Uploading featured image...")
            preview_url = uploader.upload_required(data.featured_image, bucket=THUMBNAILS_BUCKET, owner_id=actor.id)
        additional = list(data.additional_image_urls)
        if data.additional_images:
            report("Uploading additional images...")
            additional += uploader.upload_optional(data.additional_images, bucket=THUMBNAILS_BUCKET, owner_id=actor.id)
        if new_files:
            report("Uploading files...")
            existing += uploader.upload_attachments(new_files, bucket=FILES_BUCKET, owner_id=actor.id)

        report("Saving resource...")
        fields = self._fields(
            draft, preview_image_url=preview_url, additional_images=additional, attachments=existing, links=links
        )
        fields["user_id"] = actor.id
        fields["slug"] = unique_slug(fields["title"], self.repo.slug_exists, max_attempts=self.max_slug_attempts)
        record = self._persist("insert", lambda: self.repo.insert_resource(fields))
        if record is None:
            raise PersistenceError("insert_returned_nothing")
        logger.info("resource created id=%s slug=%s owner=%s", record.get("id"), record.get("slug"), actor.id)
        return SubmissionResult(resource=record, redirect=detail_redirect(record))

    def update(
        self,
        actor: Actor,
        resource_id: str,
        data: UpdateResourceInput,
        *,
        progress: Optional[Progress] = None,
    ) -> SubmissionResult:
        """Validate, upload and update an existing resource."""
        report = progress or _noop
        if actor is None or not actor.id:
            raise AuthorizationError("unauthenticated")
        current = self.repo.get_resource(resource_id)
        if current is None:
            raise NotFoundError("resource_not_found")
        ensure_can_edit(actor, current)

        draft = data.draft
        validate_draft(draft)
        existing_preview = data.preview_image_url if data.preview_image_url is not None else current.get("preview_image_url")
        if data.featured_image is None and not existing_preview:
            raise ValidationError("Featured image is required.", field="featuredImage")
        validate_classification(draft)
        links = normalize_links(draft.external_links)
        new_files = list(data.attachment_files)
        self._check_sizes(([data.featured_image] if data.featured_image else []) + list(data.additional_images) + new_files)
        retained = list(data.retained_attachments) if data.retained_attachments is not None else persisted_attachments(current)
        self._require_payload(len(retained) + len(new_files), links)

        uploader = self._uploader()
        owner_id = str(current.get("user_id") or actor.id)
        preview_url = existing_preview
        if data.featured_image is not None:
            report("Uploading featured image...")
            preview_url = uploader.upload_required(data.featured_image, bucket=THUMBNAILS_BUCKET, owner_id=owner_id)
        if data.retained_additional_images is not None:
            additional = list(data.retained_additional_images)
        else:
            additional = list(current.get("additional_images") or [])
        if data.additional_images:
            report("Uploading additional images...")
            additional += uploader.upload_optional(data.additional_images, bucket=THUMBNAILS_BUCKET, owner_id=owner_id)
        merged = list(retained)
        if new_files:
            report("Uploading files...")
            merged += uploader.upload_attachments(new_files, bucket=FILES_BUCKET, owner_id=owner_id)

        report("Saving changes...")
        fields = self._fields(
            draft, preview_image_url=preview_url, additional_images=additional, attachments=merged, links=links
        )
        if not current.get("slug"):
            fields["slug"] = unique_slug(fields["title"], self.repo.slug_exists, max_attempts=self.max_slug_attempts)
        record = self._persist("update", lambda: self.repo.update_resource(resource_id, fields))
        if record is None:
            raise NotFoundError("resource_not_found")
        logger.info("resource updated id=%s by=%s", resource_id, actor.id)
        return SubmissionResult(resource=record, redirect=detail_redirect(record))


def ensure_can_edit(actor: Actor, resource: Dict[str, Any]) -> None:
    """Owner while pending, or admin at any status.

    Non-owners get NotFoundError for resources they cannot see.
    """
    if actor.is_admin:
        return
    if resource.get("user_id") != actor.id:
        if resource.get("status") != "approved":
            raise NotFoundError("resource_not_found")
        raise AuthorizationError("not_owner")
    if resource.get("status") != "pending":
        raise AuthorizationError("not_pending")


def persisted_attachments(resource: Dict[str, Any]) -> List[Attachment]:
    """Return stored attachments; a legacy single file becomes one attachment."""
    raw = resource.get("attachments") or []
    out = [Attachment.from_dict(a) for a in raw if isinstance(a, dict) and a.get("url")]
    if not out and resource.get("file_url"):
        url = str(resource["file_url"])
        out = [
            legacy_attachment(
                url,
                name=_name_from_url(url),
                size=resource.get("file_size"),
                type=resource.get("file_type"),
            )
        ]
    return out


__all__ = [
    "SubmissionService",
    "SubmissionResult",
    "detail_redirect",
    "SubmissionsRepoProtocol",
    "validate_draft",
    "validate_classification",
    "normalize_links",
    "ensure_can_edit",
    "persisted_attachments",
]
