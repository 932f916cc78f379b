"""
Sequential uploader for resource media and attachment files.

Intent:
    Write each file to object storage one at a time and turn it into a public
    URL (or an Attachment record). Transient storage failures are retried with
    linear backoff; what happens after the retry budget is spent depends on the
    slot:

    - required single-file slot (featured image): `upload_required` raises
      UploadFailed and the submission aborts.
    - optional multi-file slot (additional images): `upload_optional` logs a
      warning and skips the file.
    - attachments: `upload_attachments` aborts on the first failure, since
      attachments are the deliverable.

Keys:
    `{owner_id}/{epoch_ms}-{token}.{ext}` (see backend.storage.keys).
"""
from __future__ import annotations

import logging
import secrets
import time
from typing import Callable, List, Optional, Sequence
from uuid import uuid4

from backend.resources.errors import UploadFailed
from backend.resources.models import Attachment, UploadedFile
from backend.storage.config import resolve_bucket
from backend.storage.keys import make_upload_key
from backend.storage.ports import ObjectStorageProtocol

logger = logging.getLogger("corner.resources.uploads")

DEFAULT_ATTEMPTS = 3
BACKOFF_STEP_SECONDS = 0.15
STORAGE_NOT_CONFIGURED = "storage_adapter_not_configured"


def _epoch_ms() -> int:
    return int(time.time() * 1000)


class AttachmentUploader:
    """Upload files to one storage adapter on behalf of a single owner."""

    def __init__(
        self,
        storage: ObjectStorageProtocol,
        *,
        attempts: int = DEFAULT_ATTEMPTS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], int] = _epoch_ms,
        token_factory: Callable[[], str] = lambda: secrets.token_hex(6),
    ) -> None:
        self.storage = storage
        self.attempts = max(1, int(attempts))
        self._sleep = sleep
        self._clock = clock
        self._token = token_factory

    def _new_key(self, file: UploadedFile, owner_id: str) -> str:
        return make_upload_key(owner_id=owner_id, filename=file.filename, epoch_ms=self._clock(), token=self._token())

    def upload_file(self, file: UploadedFile, *, bucket: str, owner_id: str) -> dict:
        """Upload one file and return `{"url", "path", "bucket"}`.

        A failed write is retried under a fresh key, since storage never
        overwrites and a timed-out write may still have landed. Once a write
        succeeds only the public URL lookup is retried.

        Raises:
            UploadFailed after `attempts` failed steps.
            RuntimeError("storage_adapter_not_configured") immediately, without retrying.
        """
        physical_bucket = resolve_bucket(bucket)
        content_type = file.content_type or "application/octet-stream"
        key: Optional[str] = None
        written = False
        last_error: Optional[Exception] = None
        for attempt in range(1, self.attempts + 1):
            try:
                if not written:
                    key = self._new_key(file, owner_id)
                    self.storage.put_object(
                        bucket=physical_bucket, key=key, body=file.body, content_type=content_type
                    )
                    written = True
                url = self.storage.public_url(bucket=physical_bucket, key=key)
                return {"url": url, "path": key, "bucket": physical_bucket}
            except RuntimeError as exc:
                if str(exc) == STORAGE_NOT_CONFIGURED:
                    raise
                last_error = exc
            except Exception as exc:
                last_error = exc
            logger.warning(
                "upload attempt failed bucket=%s key=%s step=%s attempt=%s/%s error=%s",
                physical_bucket,
                key,
                "public_url" if written else "put_object",
                attempt,
                self.attempts,
                last_error.__class__.__name__,
            )
            if attempt < self.attempts:
                self._sleep(BACKOFF_STEP_SECONDS * attempt)
        raise UploadFailed(f"Failed to upload {file.filename}", filename=file.filename) from last_error

    def upload_required(self, file: UploadedFile, *, bucket: str, owner_id: str) -> str:
        return self.upload_file(file, bucket=bucket, owner_id=owner_id)["url"]

    def upload_optional(self, files: Sequence[UploadedFile], *, bucket: str, owner_id: str) -> List[str]:
        """Upload each file; failed files are logged and left out of the result."""
        urls: List[str] = []
        for file in files:
            try:
                urls.append(self.upload_file(file, bucket=bucket, owner_id=owner_id)["url"])
            except UploadFailed:
                logger.warning("skipping optional upload filename=%s bucket=%s", file.filename, bucket)
        return urls

    def upload_attachments(
        self,
        files: Sequence[UploadedFile],
        *,
        bucket: str,
        owner_id: str,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> List[Attachment]:
        """Upload attachment files in input order; the first failure aborts."""
        out: List[Attachment] = []
        for file in files:
            result = self.upload_file(file, bucket=bucket, owner_id=owner_id)
            out.append(
                Attachment(
                    id=id_factory(),
                    name=file.filename,
                    url=result["url"],
                    size=file.size,
                    type=file.content_type or None,
                )
            )
        return out


__all__ = ["AttachmentUploader", "DEFAULT_ATTEMPTS", "BACKOFF_STEP_SECONDS", "STORAGE_NOT_CONFIGURED"]
