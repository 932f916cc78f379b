"""
AttachmentUploader retry and failure policies.

Scenarios:
- Transient failures are retried with linear backoff (0.15s, 0.30s, ...).
- A stored object is never re-sent; failed writes retry under a fresh key.
- Required slot raises UploadFailed after the retry budget.
- Optional slot skips failed files and keeps the rest.
- Attachments abort on the first failure.
- A missing storage backend is reported immediately, without retries.
"""
from __future__ import annotations

import pytest

from backend.resources.errors import UploadFailed
from backend.resources.models import Attachment, UploadedFile, coerce_size, legacy_attachment
from backend.resources.uploads import STORAGE_NOT_CONFIGURED, AttachmentUploader
from backend.storage.ports import NullStorageAdapter


def _file(name: str, body: bytes = b"data", content_type: str = "application/pdf") -> UploadedFile:
    return UploadedFile(filename=name, content_type=content_type, body=body)


def _uploader(storage, sleeps=None, **kwargs) -> AttachmentUploader:
    sink = sleeps if sleeps is not None else []
    return AttachmentUploader(
        storage, sleep=sink.append, clock=lambda: 1700000000000, token_factory=lambda: "tok", **kwargs
    )


def test_upload_file_returns_url_and_key(fake_storage):
    result = _uploader(fake_storage).upload_file(_file("Sheet.PDF"), bucket="resource-files", owner_id="u1")
    assert result == {
        "url": "https://cdn.test/resource-files/u1/1700000000000-tok.pdf",
        "path": "u1/1700000000000-tok.pdf",
        "bucket": "resource-files",
    }
    assert fake_storage.calls == [("resource-files", "u1/1700000000000-tok.pdf", "application/pdf")]


def test_transient_failures_retry_with_linear_backoff(storage_factory):
    storage = storage_factory(fail_times=2)
    sleeps: list = []
    url = _uploader(storage, sleeps).upload_required(_file("a.png"), bucket="resource-thumbnails", owner_id="u1")
    assert url.endswith("/u1/1700000000000-tok.png")
    assert len(storage.calls) == 3
    assert sleeps == pytest.approx([0.15, 0.30])


def test_required_upload_raises_after_budget(storage_factory):
    storage = storage_factory(fail_times=10)
    sleeps: list = []
    with pytest.raises(UploadFailed) as excinfo:
        _uploader(storage, sleeps).upload_required(_file("cover.png"), bucket="resource-thumbnails", owner_id="u1")
    assert excinfo.value.message == "Failed to upload cover.png"
    assert len(storage.calls) == 3
    assert len(sleeps) == 2


class _NoOverwriteStorage:
    """Rejects writes to an existing key, like storage with upsert disabled."""

    def __init__(self, *, url_failures: int = 0, lost_acks: int = 0):
        self.objects: dict = {}
        self.puts: list = []
        self.url_failures = url_failures
        self.lost_acks = lost_acks

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        self.puts.append(key)
        if (bucket, key) in self.objects:
            raise RuntimeError("Duplicate: The resource already exists")
        self.objects[(bucket, key)] = body
        if self.lost_acks > 0:
            self.lost_acks -= 1
            raise TimeoutError("read timeout")

    def public_url(self, *, bucket: str, key: str) -> str:
        if self.url_failures > 0:
            self.url_failures -= 1
            raise ConnectionError("url lookup failed")
        return f"https://cdn.test/{bucket}/{key}"


def test_url_lookup_failure_does_not_rewrite_stored_object():
    storage = _NoOverwriteStorage(url_failures=1)
    sleeps: list = []
    result = _uploader(storage, sleeps).upload_file(_file("a.pdf"), bucket="resource-files", owner_id="u1")
    assert result["url"] == "https://cdn.test/resource-files/u1/1700000000000-tok.pdf"
    assert storage.puts == ["u1/1700000000000-tok.pdf"]
    assert len(storage.objects) == 1
    assert sleeps == pytest.approx([0.15])


def test_write_retry_after_lost_ack_uses_fresh_key():
    storage = _NoOverwriteStorage(lost_acks=1)
    tokens = iter(["first", "second"])
    uploader = AttachmentUploader(
        storage, sleep=lambda s: None, clock=lambda: 1700000000000, token_factory=lambda: next(tokens)
    )
    result = uploader.upload_file(_file("a.pdf"), bucket="resource-files", owner_id="u1")
    assert result["path"] == "u1/1700000000000-second.pdf"
    assert storage.puts == ["u1/1700000000000-first.pdf", "u1/1700000000000-second.pdf"]


def test_optional_uploads_skip_failures(storage_factory):
    storage = storage_factory(fail_bodies=(b"bad",))
    urls = _uploader(storage).upload_optional(
        [_file("one.png", b"ok1"), _file("two.png", b"bad"), _file("three.png", b"ok3")],
        bucket="resource-thumbnails",
        owner_id="u1",
    )
    assert len(urls) == 2
    assert all(u.startswith("https://cdn.test/resource-thumbnails/") for u in urls)


def test_attachments_abort_on_first_failure(storage_factory):
    storage = storage_factory(fail_bodies=(b"bad",))
    with pytest.raises(UploadFailed):
        _uploader(storage).upload_attachments(
            [_file("a.pdf", b"a"), _file("b.pdf", b"bad"), _file("c.pdf", b"c")],
            bucket="resource-files",
            owner_id="u1",
        )
    bodies = [body for body in storage.objects.values()]
    assert bodies == [b"a"]


def test_attachments_keep_input_order_and_metadata(fake_storage):
    ids = iter(["id-1", "id-2"])
    out = _uploader(fake_storage).upload_attachments(
        [_file("a.pdf", b"12345"), _file("b.docx", b"1", content_type="")],
        bucket="resource-files",
        owner_id="u1",
        id_factory=lambda: next(ids),
    )
    assert [a.id for a in out] == ["id-1", "id-2"]
    assert [a.name for a in out] == ["a.pdf", "b.docx"]
    assert out[0].size == 5 and out[0].type == "application/pdf"
    assert out[1].type is None


def test_missing_storage_backend_is_not_retried():
    sleeps: list = []
    with pytest.raises(RuntimeError) as excinfo:
        _uploader(NullStorageAdapter(), sleeps).upload_file(_file("a.pdf"), bucket="resource-files", owner_id="u1")
    assert str(excinfo.value) == STORAGE_NOT_CONFIGURED
    assert not isinstance(excinfo.value, UploadFailed)
    assert sleeps == []


@pytest.mark.parametrize("raw,expected", [(12, 12), ("2048", 2048), ("1.5e3", 1500), ("", None), (None, None), (True, None)])
def test_coerce_size(raw, expected):
    assert coerce_size(raw) == expected


def test_attachment_from_dict_generates_missing_id():
    a = Attachment.from_dict({"name": "x.pdf", "url": "https://cdn.test/x.pdf", "size": "10"})
    assert a.id
    assert a.size == 10
    assert a.type is None


def test_legacy_attachment_uses_fixed_id():
    a = legacy_attachment("https://cdn.test/old.pdf", name="old.pdf", size="99", type="application/pdf")
    assert a.to_dict() == {
        "id": "legacy-file",
        "name": "old.pdf",
        "url": "https://cdn.test/old.pdf",
        "size": 99,
        "type": "application/pdf",
    }
