"""
Supabase storage adapter and bucket bootstrap.

Expected:
  - put_object never upserts and passes the content type in both spellings.
  - public_url accepts str and dict responses and rewrites the host to
    SUPABASE_PUBLIC_URL when configured.
  - ensure_buckets_from_env does not hang when the network fails; every
    request carries a (connect, read) timeout tuple.
"""
from __future__ import annotations

import time
from types import SimpleNamespace

import pytest
import requests

from backend.storage import bootstrap
from backend.storage.supabase_adapter import SupabaseStorageAdapter


class _Bucket:
    def __init__(self, public_result):
        self.uploads = []
        self.public_result = public_result

    def upload(self, path, body, options):
        self.uploads.append((path, body, options))

    def get_public_url(self, path):
        if callable(self.public_result):
            return self.public_result(path)
        return self.public_result


def _client(bucket: _Bucket):
    seen = []

    def from_(name):
        seen.append(name)
        return bucket

    return SimpleNamespace(storage=SimpleNamespace(from_=from_)), seen


def test_put_object_uses_relative_key_and_no_upsert():
    bucket = _Bucket("http://x")
    client, seen = _client(bucket)
    adapter = SupabaseStorageAdapter(client)

    adapter.put_object(bucket="resource-files", key="/resource-files/u1/1-a.pdf", body=b"%PDF", content_type="application/pdf")

    assert seen == ["resource-files"]
    path, body, options = bucket.uploads[0]
    assert path == "u1/1-a.pdf"
    assert body == b"%PDF"
    assert options["upsert"] == "false"
    assert options["content-type"] == options["contentType"] == "application/pdf"


def test_public_url_accepts_dict_shapes():
    bucket = _Bucket({"data": {"publicUrl": "http://kong:8000/storage/v1/object/public/b/k.png"}})
    client, _ = _client(bucket)
    url = SupabaseStorageAdapter(client).public_url(bucket="b", key="k.png")
    assert url == "http://kong:8000/storage/v1/object/public/b/k.png"


def test_public_url_rewrites_host_when_public_base_configured(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_PUBLIC_URL", "https://corner.example.org")
    bucket = _Bucket(lambda path: f"http://kong:8000/object/public/b/{path}")
    client, _ = _client(bucket)
    url = SupabaseStorageAdapter(client).public_url(bucket="b", key="u/1-x.png")
    assert url == "https://corner.example.org/storage/v1/object/public/b/u/1-x.png"


def test_public_url_raises_when_unresolvable():
    bucket = _Bucket({"error": "nope"})
    client, _ = _client(bucket)
    with pytest.raises(RuntimeError):
        SupabaseStorageAdapter(client).public_url(bucket="b", key="k")


def test_adapter_accepts_bare_storage3_client_shape():
    bucket = _Bucket("http://x/k")
    client = SimpleNamespace(from_=lambda name: bucket)
    adapter = SupabaseStorageAdapter(client)
    adapter.put_object(bucket="b", key="k", body=b"1", content_type="text/plain")
    assert bucket.uploads[0][0] == "k"


def test_bootstrap_disabled_without_flag():
    assert bootstrap.ensure_buckets_from_env() is False


def test_bootstrap_timeouts(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("AUTO_CREATE_STORAGE_BUCKETS", "true")
    monkeypatch.setenv("SUPABASE_URL", "http://supabase.local:54321")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "srk")

    calls: list[tuple[str, dict]] = []

    def _raise_timeout(*args, **kwargs):
        calls.append(("get", kwargs))
        raise requests.exceptions.ConnectTimeout("boom")

    def _raise_timeout_post(*args, **kwargs):
        calls.append(("post", kwargs))
        raise requests.exceptions.ReadTimeout("boom")

    monkeypatch.setattr(requests, "get", _raise_timeout, raising=True)
    monkeypatch.setattr(requests, "post", _raise_timeout_post, raising=True)

    t0 = time.time()
    ok = bootstrap.ensure_buckets_from_env()
    dt = time.time() - t0

    assert ok is True
    assert dt < 2.0
    kinds = [k for (k, _kw) in calls]
    assert kinds.count("get") == 1
    assert kinds.count("post") == 2
    for _k, kw in calls:
        to = kw["timeout"]
        assert isinstance(to, tuple) and len(to) == 2
        assert to[0] <= 5 and to[1] <= 15


def test_bootstrap_creates_only_missing_public_buckets(monkeypatch: pytest.MonkeyPatch):
    posted = []

    def _get(url, headers=None, timeout=None):
        return SimpleNamespace(status_code=200, json=lambda: [{"name": "resource-files"}])

    def _post(url, headers=None, json=None, timeout=None):
        posted.append(json)
        return SimpleNamespace(status_code=200, text="")

    monkeypatch.setattr(requests, "get", _get)
    monkeypatch.setattr(requests, "post", _post)

    created = bootstrap.ensure_buckets("http://sb:54321/", "srk", ["resource-files", "resource-thumbnails"])

    assert created == ["resource-thumbnails"]
    assert posted == [{"id": "resource-thumbnails", "name": "resource-thumbnails", "public": True}]
