"""Site generation, publication and remix endpoints."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from core.ratelimit import get_client_identifier
from dependencies.auth import OptionalCredential, RequiredCredential
from dependencies.services import (
    get_deployment_pipeline,
    get_orchestrator,
    get_remix_resolver,
)
from schemas.api import ApiResponse
from schemas.sites import (
    DeployRequest,
    DeployResponse,
    GenerationRequest,
    RemixResponse,
)
from services.ai.orchestrator import GenerationOrchestrator
from services.deployment import DeploymentPipeline
from services.remix import RemixResolver


__all__ = ["ask_ai", "deploy_site", "remix_site"]

router = APIRouter(tags=["sites"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "X-Accel-Buffering": "no",
}


async def _prime(
    stream: AsyncGenerator[str, None],
) -> AsyncGenerator[str, None]:
    """Pull the first fragment now so pre-stream errors become HTTP errors.

    Domain errors raised here propagate to the exception handlers before any
    response bytes are sent; the returned generator replays the fragment and
    then drains the rest of ``stream``.
    """
    try:
        first: str | None = await anext(stream)
    except StopAsyncIteration:
        first = None

    async def replay() -> AsyncGenerator[str, None]:
        try:
            if first is not None:
                yield first
            async for fragment in stream:
                yield fragment
        finally:
            # Runs on client disconnect too, releasing the backend stream
            await stream.aclose()

    return replay()


@router.post(
    "/ask-ai",
    response_class=StreamingResponse,
    summary="Stream a generated HTML document",
)
async def ask_ai(
    body: GenerationRequest,
    request: Request,
    credential: OptionalCredential,
    orchestrator: Annotated[GenerationOrchestrator, Depends(get_orchestrator)],
) -> StreamingResponse:
    client_id = get_client_identifier(request)
    stream = orchestrator.generate(body, credential, client_id)
    fragments = await _prime(stream)
    return StreamingResponse(
        fragments,
        media_type="text/plain; charset=utf-8",
        headers=STREAM_HEADERS,
    )


@router.post("/deploy", response_model=ApiResponse[DeployResponse])
async def deploy_site(
    body: DeployRequest,
    credential: RequiredCredential,
    pipeline: Annotated[DeploymentPipeline, Depends(get_deployment_pipeline)],
) -> ApiResponse[DeployResponse]:
    """Create or update a static Space with the given document."""
    repo_id = await pipeline.deploy(
        html=body.html,
        title=body.title,
        existing_repo_id=body.path,
        prompts=body.prompts,
        credential=credential,
    )
    return ApiResponse(
        success=True,
        data=DeployResponse(path=repo_id),
        message="Space deployed",
    )


@router.get("/remix/{username}/{repo}", response_model=ApiResponse[RemixResponse])
async def remix_site(
    username: str,
    repo: str,
    credential: OptionalCredential,
    resolver: Annotated[RemixResolver, Depends(get_remix_resolver)],
) -> ApiResponse[RemixResponse]:
    """Load a published Space's document to continue editing it."""
    result = await resolver.remix(f"{username}/{repo}", credential)
    return ApiResponse(
        success=True,
        data=RemixResponse(
            html=result.html, is_owner=result.is_owner, path=result.repo_id
        ),
        message="Space loaded",
    )
