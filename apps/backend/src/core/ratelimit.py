"""Anonymous generation quota.

Unauthenticated callers share the server's Hugging Face token, so each
client address gets a small fixed number of generation calls for the
lifetime of the process. Authenticated callers are never counted.

The counter lives in memory; this is not a distributed limiter and the
records never expire.
"""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache

from fastapi import Request

from core.config import get_settings
from core.exceptions import QuotaExceeded


logger = logging.getLogger(__name__)

UNKNOWN_CLIENT = "0.0.0.0"


class QuotaStore:
    """Per-client call counters with an atomic increment-and-read."""

    def __init__(self) -> None:
        self._counts: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def increment(self, client_id: str) -> int:
        """Increment the client's counter and return the new value."""
        async with self._lock:
            count = self._counts.get(client_id, 0) + 1
            self._counts[client_id] = count
            return count

    async def get(self, client_id: str) -> int:
        async with self._lock:
            return self._counts.get(client_id, 0)

    async def reset(self) -> None:
        async with self._lock:
            self._counts.clear()


class QuotaGuard:
    """Admit or reject generation calls against the anonymous quota."""

    def __init__(self, store: QuotaStore, threshold: int) -> None:
        self.store = store
        self.threshold = threshold

    async def admit(self, client_id: str, is_authenticated: bool) -> None:
        """Count an anonymous call and raise once the threshold is exceeded.

        Raises:
            QuotaExceeded: when the post-increment count is above the threshold.
        """
        if is_authenticated:
            return

        count = await self.store.increment(client_id)
        if count > self.threshold:
            logger.warning(
                "Anonymous quota exceeded for %s (%d > %d)",
                client_id,
                count,
                self.threshold,
            )
            raise QuotaExceeded()


def get_client_identifier(request: Request) -> str:
    """Extract the client address used as the quota key.

    Order: first entry of X-Forwarded-For, X-Real-IP, the socket peer,
    then a fixed placeholder.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return UNKNOWN_CLIENT


@lru_cache
def get_quota_guard() -> QuotaGuard:
    """Process-wide quota guard used by the generation route."""
    settings = get_settings()
    logger.info(
        "Anonymous generation quota: %d calls per client",
        settings.MAX_REQUESTS_PER_IP,
    )
    return QuotaGuard(QuotaStore(), settings.MAX_REQUESTS_PER_IP)
