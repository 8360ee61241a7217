"""Fetch a published Space back so it can seed a new generation."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from core.config import Settings, get_settings
from core.exceptions import NotFound
from core.observability import get_tracer
from services.attribution import strip_attribution
from services.hub import HubClient, HubError


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

INDEX_FILE = "index.html"


@dataclass(frozen=True, slots=True)
class RemixResult:
    html: str
    is_owner: bool
    repo_id: str


class RemixResolver:
    def __init__(self, hub: HubClient, settings: Settings | None = None) -> None:
        self.hub = hub
        self.settings = settings or get_settings()

    async def remix(self, repo_id: str, credential: str | None) -> RemixResult:
        """Return the Space's document without its attribution badge.

        Raises:
            NotFound: the Space is missing, private, not static, or its
                index.html cannot be read.
        """
        with tracer.start_as_current_span("deepsite.remix") as span:
            span.set_attribute("remix.repo_id", repo_id)
            token = credential or self.settings.DEFAULT_HF_TOKEN

            try:
                info = await self.hub.space_info(repo_id, token)
            except HubError as exc:
                logger.warning("Space lookup for %s failed: %s", repo_id, exc.message)
                raise NotFound() from exc
            if info is None or info.private or info.sdk != "static":
                raise NotFound()

            try:
                html = await self.hub.fetch_raw_file(repo_id, INDEX_FILE)
            except HubError as exc:
                logger.warning("Fetching %s for %s failed", INDEX_FILE, repo_id)
                raise NotFound() from exc
            if html is None:
                raise NotFound()

            is_owner = await self._is_owner(info.author, credential)
            span.set_attribute("remix.is_owner", is_owner)

        return RemixResult(
            html=strip_attribution(html, repo_id),
            is_owner=is_owner,
            repo_id=repo_id,
        )

    async def _is_owner(self, author: str | None, credential: str | None) -> bool:
        if credential is None or author is None:
            return False
        try:
            user = await self.hub.userinfo(credential)
        except HubError:
            logger.info("userinfo lookup failed; treating caller as non-owner")
            return False
        return bool(user) and user.get("preferred_username") == author
