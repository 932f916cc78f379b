"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors), and
reset the process-wide singletons (repository, storage adapter, sessions)
so tests never observe each other's state.
"""
import sys
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakeStorage:
    """In-memory ObjectStorageProtocol double.

    Writes whose body is listed in `fail_bodies` always raise; `fail_times`
    fails the first N writes only (to exercise retries).
    """

    def __init__(self, *, fail_times: int = 0, fail_bodies: Tuple[bytes, ...] = ()):
        self.objects: Dict[Tuple[str, str], bytes] = {}
        self.calls: List[Tuple[str, str, str]] = []
        self.fail_times = fail_times
        self.fail_bodies = set(fail_bodies)

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:
        self.calls.append((bucket, key, content_type))
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("storage unavailable")
        if body in self.fail_bodies:
            raise ConnectionError("rejected")
        self.objects[(bucket, key)] = body

    def public_url(self, *, bucket: str, key: str) -> str:
        return f"https://cdn.test/{bucket}/{key}"


@pytest.fixture
def fake_storage() -> FakeStorage:
    return FakeStorage()


@pytest.fixture
def storage_factory():
    """Build additional FakeStorage instances with failure knobs."""
    return FakeStorage


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Default to a dev environment without database or Supabase wiring.

    Behavior:
        - Remove CORNER_ENV / STRICT_CSRF / proxy trust so CSRF is lenient.
        - Remove DSNs and Supabase credentials so the app never dials out.
    """
    for var in (
        "CORNER_ENV",
        "STRICT_CSRF",
        "CORNER_TRUST_PROXY",
        "RESOURCES_DATABASE_URL",
        "DATABASE_URL",
        "SUPABASE_DB_URL",
        "SUPABASE_URL",
        "SUPABASE_SERVICE_ROLE_KEY",
        "SUPABASE_PUBLIC_URL",
        "SUPABASE_JWT_SECRET",
        "SUPABASE_JWT_ISSUER",
        "SUPABASE_JWT_AUDIENCE",
        "SUPABASE_ACCESS_TOKEN_COOKIE",
        "AUTO_CREATE_STORAGE_BUCKETS",
        "RESOURCES_MAX_UPLOAD_BYTES",
        "RESOURCE_FILES_BUCKET",
        "RESOURCE_THUMBNAILS_BUCKET",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_web_singletons(_clear_env_toggles, fake_storage):
    """Give every test a fresh in-memory repo, the fake storage and no sessions.

    Why:
        `deps` and `main.SESSION_STORE` are module-level singletons shared by
        all API tests; leaking records or sessions makes results order-dependent.
    """
    from backend.resources.repo_memory import InMemoryResourcesRepo
    from backend.web import deps, main

    deps.set_repo(InMemoryResourcesRepo())
    deps.set_storage_adapter(fake_storage)
    main.SESSION_STORE.clear()
    yield
    main.SESSION_STORE.clear()
