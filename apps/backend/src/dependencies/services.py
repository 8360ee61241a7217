"""FastAPI providers for the generation, deployment and remix services.

Routes depend on these rather than constructing services directly so tests
can swap them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.ratelimit import QuotaGuard, get_quota_guard
from services.ai.orchestrator import GenerationOrchestrator
from services.deployment import DeploymentPipeline
from services.hub import HubClient
from services.remix import RemixResolver


@lru_cache
def get_hub_client() -> HubClient:
    return HubClient()


def get_orchestrator(
    quota_guard: Annotated[QuotaGuard, Depends(get_quota_guard)],
) -> GenerationOrchestrator:
    return GenerationOrchestrator(quota_guard)


def get_deployment_pipeline(
    hub: Annotated[HubClient, Depends(get_hub_client)],
) -> DeploymentPipeline:
    return DeploymentPipeline(hub)


def get_remix_resolver(
    hub: Annotated[HubClient, Depends(get_hub_client)],
) -> RemixResolver:
    return RemixResolver(hub)
