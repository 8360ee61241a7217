"""Shared test fixtures for pytest.

ENVIRONMENT is forced to ``test`` before the app is imported so settings are
built from defaults only (no .env file, no server token).
"""

import os
from collections.abc import AsyncGenerator, Callable, Generator, Sequence
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ["ENVIRONMENT"] = "test"
os.environ.pop("HF_TOKEN", None)
os.environ.pop("DEFAULT_HF_TOKEN", None)

from core.config import get_settings  # noqa: E402
from core.ratelimit import QuotaGuard, QuotaStore, get_quota_guard  # noqa: E402
from main import app  # noqa: E402
from services.ai.prompts import ChatMessage  # noqa: E402
from services.hub import ArtifactFile, HubError, SpaceInfo  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_cached_state() -> Generator[None, None, None]:
    """Each test gets fresh settings and a fresh anonymous quota."""
    get_settings.cache_clear()
    get_quota_guard.cache_clear()
    yield
    app.dependency_overrides.clear()
    get_settings.cache_clear()
    get_quota_guard.cache_clear()


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def async_client() -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def quota_guard() -> QuotaGuard:
    return QuotaGuard(QuotaStore(), threshold=2)


class RecordingStream:
    """Fake streaming backend: replays fragments and records each call."""

    def __init__(
        self,
        fragments: Sequence[str] = (),
        error: Exception | None = None,
        error_after: int | None = None,
    ) -> None:
        self.fragments = list(fragments)
        self.error = error
        # Raise after this many fragments; None raises before any output
        self.error_after = error_after
        self.calls: list[dict[str, Any]] = []
        self.closed = False
        self.consumed = 0

    async def __call__(
        self,
        model: Any,
        messages: Sequence[ChatMessage],
        model_settings: Any = None,
    ) -> AsyncGenerator[str, None]:
        self.calls.append(
            {"model": model, "messages": list(messages), "settings": model_settings}
        )
        try:
            if self.error is not None and self.error_after is None:
                raise self.error
            for index, fragment in enumerate(self.fragments):
                if self.error is not None and index == self.error_after:
                    raise self.error
                self.consumed += 1
                yield fragment
            if self.error is not None and self.error_after == len(self.fragments):
                raise self.error
        finally:
            self.closed = True


@pytest.fixture
def make_stream() -> Callable[..., RecordingStream]:
    return RecordingStream


class FakeHub:
    """In-memory stand-in for HubClient that records every call."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.namespace = "alice"
        self.usernames: dict[str, str] = {"user-token": "alice"}
        self.spaces: dict[str, SpaceInfo] = {}
        self.raw_files: dict[tuple[str, str], str] = {}
        self.uploaded: dict[str, list[ArtifactFile]] = {}
        self.fail_on: dict[str, HubError] = {}

    def _record(self, name: str, payload: Any) -> None:
        self.calls.append((name, payload))
        if name in self.fail_on:
            raise self.fail_on[name]

    async def whoami(self, token: str) -> dict[str, Any]:
        self._record("whoami", token)
        return {"name": self.namespace}

    async def userinfo(self, token: str) -> dict[str, Any] | None:
        self._record("userinfo", token)
        username = self.usernames.get(token)
        if username is None:
            return None
        return {"preferred_username": username, "name": username.title()}

    async def create_space(self, repo_id: str, token: str) -> None:
        self._record("create_space", repo_id)
        self.spaces[repo_id] = SpaceInfo(
            repo_id=repo_id, sdk="static", private=False, author=repo_id.split("/")[0]
        )

    async def upload_files(
        self, repo_id: str, files: list[ArtifactFile], token: str
    ) -> None:
        self._record("upload_files", repo_id)
        self.uploaded[repo_id] = list(files)
        for artifact in files:
            self.raw_files[(repo_id, artifact.path)] = artifact.content

    async def space_info(self, repo_id: str, token: str | None) -> SpaceInfo | None:
        self._record("space_info", repo_id)
        return self.spaces.get(repo_id)

    async def fetch_raw_file(self, repo_id: str, path: str) -> str | None:
        self._record("fetch_raw_file", (repo_id, path))
        return self.raw_files.get((repo_id, path))


@pytest.fixture
def fake_hub() -> FakeHub:
    return FakeHub()
