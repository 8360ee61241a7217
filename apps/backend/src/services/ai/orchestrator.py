"""Streaming site generation.

``GenerationOrchestrator.generate`` turns a prompt (plus an optional prior
prompt and prior document) into a stream of HTML fragments that stops once
the document is terminated by ``</html>``.

Checks that can fail the request (provider context limit, anonymous quota,
backend errors before the first fragment) raise domain errors from the
first ``__anext__``; the HTTP layer primes the stream so these map to
proper status codes. Once output has started, failures end the stream.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from dataclasses import dataclass
from typing import Any

from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from core.config import Settings, get_settings
from core.error_handler import StructuredLogger
from core.exceptions import ContextTooLarge, GenerationFailed, PaymentRequired
from core.observability import get_tracer
from core.ratelimit import QuotaGuard
from schemas.sites import GenerationRequest
from services.ai.backend import StreamCompletion, stream_completion
from services.ai.model_factory import get_site_model
from services.ai.prompts import build_messages, estimate_tokens
from services.ai.providers import (
    ProviderDescriptor,
    is_explicit_choice,
    resolve_provider,
)


slog = StructuredLogger(__name__)
tracer = get_tracer(__name__)

HTML_END = "</html>"
BILLING_MARKER = "exceeded your monthly included credits"
DEFAULT_PAYMENT_MESSAGE = (
    "You have exceeded your monthly included credits. "
    "Upgrade to a PRO account to keep generating."
)

ModelBuilder = Callable[[ProviderDescriptor, str | None], Model]


@dataclass
class GenerationSession:
    """State of one in-flight generation call."""

    provider: ProviderDescriptor
    buffer: str = ""
    completed: bool = False

    def accept(self, fragment: str) -> str | None:
        """Record a fragment and return the text to emit, or None to skip it.

        Providers flagged with ``quirky_truncation`` may keep streaming after
        the closing tag, so their fragment is cut right after the first
        ``</html>`` and the session completes only on a fragment that was
        cut. Other providers complete as soon as the accumulated buffer
        contains the closing tag.
        """
        if self.completed or not fragment:
            return None

        if self.provider.quirky_truncation:
            index = fragment.find(HTML_END)
            if index != -1:
                fragment = fragment[: index + len(HTML_END)]
                self.completed = True
            self.buffer += fragment
            return fragment

        self.buffer += fragment
        if HTML_END in self.buffer:
            self.completed = True
        return fragment


def _is_billing_error(exc: Exception) -> bool:
    if isinstance(exc, ModelHTTPError) and exc.status_code == 402:
        return True
    return BILLING_MARKER in str(exc)


def _backend_message(exc: Exception) -> str | None:
    """Best-effort extraction of the message returned by the inference backend."""
    body: Any = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(body.get("message"), str):
            return body["message"]
    if isinstance(body, str) and body.strip():
        return body.strip()
    return None


def _user_friendly_error_message(exc: Exception) -> str:
    """Convert backend failures to messages the editor can show as-is."""
    exc_str = str(exc).lower()

    if "503" in exc_str or "overloaded" in exc_str or "unavailable" in exc_str:
        return (
            "The selected provider is currently experiencing high demand. "
            "Please try again or choose another provider."
        )

    if "timeout" in exc_str or "timed out" in exc_str:
        return "The provider took too long to respond. Please try again later."

    if "connection" in exc_str or "network" in exc_str:
        return (
            "There was a network issue reaching the inference provider. "
            "Please try again."
        )

    return _backend_message(exc) or GenerationFailed().message


class GenerationOrchestrator:
    """Drive one streaming generation per call to :meth:`generate`.

    The backend stream and model construction are injected so the loop can
    be exercised without network access.
    """

    def __init__(
        self,
        quota_guard: QuotaGuard,
        *,
        stream_completion: StreamCompletion = stream_completion,
        model_builder: ModelBuilder = get_site_model,
        settings: Settings | None = None,
    ) -> None:
        self.quota_guard = quota_guard
        self._stream_completion = stream_completion
        self._model_builder = model_builder
        self.settings = settings or get_settings()

    def check_context(self, request: GenerationRequest) -> ProviderDescriptor:
        """Resolve the provider and enforce its context limit.

        The limit only applies when the provider was chosen explicitly; under
        ``auto`` the router is trusted to pick a provider that fits.
        """
        provider = resolve_provider(request.provider)
        if is_explicit_choice(request.provider):
            tokens = estimate_tokens(request)
            if tokens >= provider.max_tokens:
                slog.warning(
                    "Context exceeds provider limit",
                    provider_key=provider.key,
                    estimated_tokens=tokens,
                    max_tokens=provider.max_tokens,
                )
                raise ContextTooLarge(provider.name, provider.max_tokens)
        return provider

    def model_settings_for(self, provider: ProviderDescriptor) -> ModelSettings | None:
        if not provider.supports_max_tokens_param:
            return None
        return ModelSettings(max_tokens=provider.max_tokens)

    async def generate(
        self,
        request: GenerationRequest,
        credential: str | None,
        client_id: str,
    ) -> AsyncGenerator[str, None]:
        """Stream the generated document for ``request``.

        Raises (before the first fragment):
            ContextTooLarge: explicit provider and estimate >= its limit.
            QuotaExceeded: anonymous caller over the per-client quota.
            PaymentRequired: the backend reported a billing condition.
            GenerationFailed: any other backend failure.
        """
        provider = self.check_context(request)
        is_authenticated = credential is not None
        await self.quota_guard.admit(client_id, is_authenticated)

        token = credential or self.settings.DEFAULT_HF_TOKEN
        messages = build_messages(request)
        model_settings = self.model_settings_for(provider)
        session = GenerationSession(provider=provider)

        span = tracer.start_span("deepsite.generate")
        span.set_attribute("generation.provider", provider.key)
        span.set_attribute("generation.authenticated", is_authenticated)
        span.set_attribute("generation.prompt_length", len(request.prompt))
        span.set_attribute("generation.has_html", bool(request.html))

        slog.info(
            "Generation started",
            provider_key=provider.key,
            authenticated=is_authenticated,
            message_count=len(messages),
        )

        stream: AsyncGenerator[str, None] | None = None
        emitted = False
        try:
            try:
                model = self._model_builder(provider, token)
                stream = self._stream_completion(model, messages, model_settings)
                async for fragment in stream:
                    text = session.accept(fragment)
                    if text is None:
                        continue
                    emitted = True
                    yield text
                    if session.completed:
                        break
            except Exception as exc:
                span.record_exception(exc)
                if emitted:
                    slog.error(
                        "Generation stream failed after output started",
                        provider_key=provider.key,
                        emitted_chars=len(session.buffer),
                        exception_type=exc.__class__.__name__,
                    )
                    return
                if _is_billing_error(exc):
                    slog.warning("Backend reported a billing condition")
                    raise PaymentRequired(
                        _backend_message(exc) or DEFAULT_PAYMENT_MESSAGE
                    ) from exc
                slog.exception(
                    "Generation failed before output",
                    provider_key=provider.key,
                    exception_type=exc.__class__.__name__,
                )
                raise GenerationFailed(_user_friendly_error_message(exc)) from exc

            if not session.completed:
                slog.warning(
                    "Generation stream ended without closing tag",
                    provider_key=provider.key,
                    emitted_chars=len(session.buffer),
                )
            else:
                slog.info(
                    "Generation completed",
                    provider_key=provider.key,
                    emitted_chars=len(session.buffer),
                )
        finally:
            if stream is not None:
                await stream.aclose()
            span.set_attribute("generation.completed", session.completed)
            span.set_attribute("generation.output_length", len(session.buffer))
            span.end()
