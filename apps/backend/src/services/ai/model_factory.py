"""Centralized AI model factory for site generation.

All providers are reached through the Hugging Face inference router, which
speaks the OpenAI chat-completions protocol. The provider is selected by
suffixing the model id with the provider's backend id.

Usage:
    from services.ai.model_factory import get_site_model

    model = get_site_model(resolve_provider("together"), token)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

from core.config import get_settings
from services.ai.providers import ProviderDescriptor


if TYPE_CHECKING:
    from httpx import AsyncClient

logger = logging.getLogger(__name__)


def routed_model_name(provider: ProviderDescriptor) -> str:
    """Model name understood by the router, e.g. ``org/model:together``."""
    return f"{get_settings().MODEL_ID}:{provider.backend_id}"


def get_site_model(
    provider: ProviderDescriptor,
    token: str | None,
    http_client: AsyncClient | None = None,
) -> Model:
    """Create the chat model used to generate a site on ``provider``.

    Args:
        provider: The resolved provider descriptor.
        token: Hugging Face token billed for the call.
        http_client: Optional HTTP client shared with the OpenAI SDK.

    Raises:
        ValueError: if no token is available.
    """
    settings = get_settings()
    if not token:
        raise ValueError(
            "No Hugging Face token available. Sign in or set DEFAULT_HF_TOKEN."
        )

    model_name = routed_model_name(provider)
    logger.debug("Using routed model %s", model_name)
    return OpenAIChatModel(
        model_name,
        provider=OpenAIProvider(
            base_url=settings.HF_ROUTER_BASE_URL,
            api_key=token,
            http_client=http_client,
        ),
    )
