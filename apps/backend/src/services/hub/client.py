"""Async client for the Hugging Face Hub REST API.

Covers the small surface DeepSite needs: identity lookups, creating static
Spaces, committing files to them, reading Space metadata and raw files.
Every call is bounded by ``HTTP_TIMEOUT_SECONDS``.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from core.config import Settings, get_settings


logger = logging.getLogger(__name__)

NDJSON = "application/x-ndjson"


class HubError(Exception):
    """A Hub call failed (transport error or non-success status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class ArtifactFile:
    path: str
    content: str
    content_type: str = "text/plain"


@dataclass(frozen=True, slots=True)
class SpaceInfo:
    repo_id: str
    sdk: str | None
    private: bool
    author: str | None


def _auth_headers(token: str | None) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _error_message(response: httpx.Response) -> str:
    """Pull the Hub's ``error`` field out of a failed response if present."""
    try:
        payload = response.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return f"Hub request failed with status {response.status_code}"


def _json_object(response: httpx.Response) -> dict[str, Any]:
    """Decode a successful response that must carry a JSON object."""
    try:
        payload = response.json()
    except ValueError as exc:
        raise HubError("Hub returned a malformed response", response.status_code) from exc
    if not isinstance(payload, dict):
        raise HubError("Hub returned a malformed response", response.status_code)
    return payload


class HubClient:
    """Thin wrapper over ``httpx.AsyncClient`` for Hub endpoints.

    Args:
        settings: Application settings (Hub URL and timeout).
        transport: Optional httpx transport, e.g. ``httpx.MockTransport``.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.settings.HF_HUB_URL,
            timeout=self.settings.HTTP_TIMEOUT_SECONDS,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        url: str,
        token: str | None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {**_auth_headers(token), **kwargs.pop("headers", {})}
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Hub %s %s failed: %s", method, url, type(exc).__name__)
            raise HubError(f"Could not reach the Hub: {type(exc).__name__}") from exc
        return response

    async def whoami(self, token: str) -> dict[str, Any]:
        """Return the account behind ``token`` (``name`` is its namespace)."""
        response = await self._request("GET", "/api/whoami-v2", token)
        if not response.is_success:
            raise HubError(_error_message(response), response.status_code)
        return _json_object(response)

    async def userinfo(self, token: str) -> dict[str, Any] | None:
        """Return the OAuth userinfo for ``token``, or None if rejected."""
        response = await self._request("GET", "/oauth/userinfo", token)
        if not response.is_success:
            logger.debug("userinfo rejected with status %d", response.status_code)
            return None
        try:
            return _json_object(response)
        except HubError:
            logger.warning("userinfo returned a malformed response")
            return None

    async def create_space(self, repo_id: str, token: str) -> None:
        """Create a public static Space named ``repo_id``."""
        namespace, name = repo_id.split("/", 1)
        response = await self._request(
            "POST",
            "/api/repos/create",
            token,
            json={
                "type": "space",
                "name": name,
                "organization": namespace,
                "sdk": "static",
                "private": False,
            },
        )
        if not response.is_success:
            raise HubError(_error_message(response), response.status_code)
        logger.info("Created Space %s", repo_id)

    async def upload_files(
        self,
        repo_id: str,
        files: list[ArtifactFile],
        token: str,
        summary: str = "Update Space from DeepSite",
    ) -> None:
        """Commit ``files`` to the main branch of ``repo_id`` in one commit."""
        lines = [{"key": "header", "value": {"summary": summary, "description": ""}}]
        for artifact in files:
            lines.append(
                {
                    "key": "file",
                    "value": {
                        "path": artifact.path,
                        "content": base64.b64encode(
                            artifact.content.encode("utf-8")
                        ).decode("ascii"),
                        "encoding": "base64",
                    },
                }
            )
        body = "\n".join(json.dumps(line) for line in lines)

        response = await self._request(
            "POST",
            f"/api/spaces/{repo_id}/commit/main",
            token,
            content=body.encode("utf-8"),
            headers={"Content-Type": NDJSON},
        )
        if not response.is_success:
            raise HubError(_error_message(response), response.status_code)
        logger.info("Committed %d files to %s", len(files), repo_id)

    async def space_info(self, repo_id: str, token: str | None) -> SpaceInfo | None:
        """Return Space metadata, or None when it does not exist or is hidden."""
        response = await self._request("GET", f"/api/spaces/{repo_id}", token)
        if not response.is_success:
            logger.debug(
                "space_info for %s returned status %d", repo_id, response.status_code
            )
            return None
        payload = _json_object(response)
        return SpaceInfo(
            repo_id=payload.get("id", repo_id),
            sdk=payload.get("sdk"),
            private=bool(payload.get("private", False)),
            author=payload.get("author"),
        )

    async def fetch_raw_file(self, repo_id: str, path: str) -> str | None:
        """Return the text of ``path`` on the Space's main branch, or None."""
        response = await self._request(
            "GET", f"/spaces/{repo_id}/raw/main/{path}", None
        )
        if not response.is_success:
            return None
        return response.text
