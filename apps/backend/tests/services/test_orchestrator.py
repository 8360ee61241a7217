"""Tests for the streaming generation loop."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from pydantic_ai.exceptions import ModelHTTPError

from core.config import Settings
from core.exceptions import (
    ContextTooLarge,
    GenerationFailed,
    PaymentRequired,
    QuotaExceeded,
)
from core.ratelimit import QuotaGuard
from schemas.sites import GenerationRequest
from services.ai.orchestrator import GenerationOrchestrator, GenerationSession
from services.ai.providers import resolve_provider


MARKER_FRAGMENTS = ["<html>", "<body>Hi</body>", "</html>EXTRA"]


class ModelRecorder:
    """model_builder fake that records which provider/token was requested."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    def __call__(self, provider: Any, token: str | None) -> object:
        self.calls.append((provider.key, token))
        return object()


def _orchestrator(
    quota_guard: QuotaGuard,
    stream: Any,
    models: ModelRecorder | None = None,
    settings: Settings | None = None,
) -> GenerationOrchestrator:
    return GenerationOrchestrator(
        quota_guard,
        stream_completion=stream,
        model_builder=models or ModelRecorder(),
        settings=settings or Settings(_env_file=None),  # type: ignore[call-arg]
    )


async def _collect(stream: AsyncGenerator[str, None]) -> list[str]:
    return [fragment async for fragment in stream]


class TestGenerationSession:
    def test_non_quirky_emits_verbatim(self) -> None:
        session = GenerationSession(provider=resolve_provider("together"))

        emitted = [session.accept(f) for f in MARKER_FRAGMENTS]

        assert emitted == MARKER_FRAGMENTS
        assert session.completed is True
        assert session.buffer == "".join(MARKER_FRAGMENTS)

    def test_quirky_truncates_after_marker(self) -> None:
        session = GenerationSession(provider=resolve_provider("sambanova"))

        emitted = [session.accept(f) for f in MARKER_FRAGMENTS]

        assert emitted == ["<html>", "<body>Hi</body>", "</html>"]
        assert session.buffer == "<html><body>Hi</body></html>"

    def test_quirky_keeps_only_first_marker(self) -> None:
        session = GenerationSession(provider=resolve_provider("sambanova"))
        assert session.accept("a</html>b</html>") == "a</html>"

    def test_marker_split_across_fragments_completes(self) -> None:
        session = GenerationSession(provider=resolve_provider("novita"))
        session.accept("</ht")
        assert session.completed is False
        session.accept("ml>")
        assert session.completed is True

    def test_quirky_waits_for_a_fragment_carrying_the_marker(self) -> None:
        session = GenerationSession(provider=resolve_provider("sambanova"))
        fragments = ["<html>", "</ht", "ml>tail", "more</html>x", "late"]

        emitted = [session.accept(f) for f in fragments]

        assert emitted == ["<html>", "</ht", "ml>tail", "more</html>", None]
        assert session.completed is True
        assert session.buffer.endswith("more</html>")

    def test_empty_and_post_completion_fragments_are_skipped(self) -> None:
        session = GenerationSession(provider=resolve_provider("novita"))
        assert session.accept("") is None
        session.accept("</html>")
        assert session.accept("more") is None
        assert session.buffer == "</html>"


class TestGenerate:
    @pytest.mark.asyncio
    async def test_non_quirky_provider_streams_marker_fragment(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(MARKER_FRAGMENTS)
        orchestrator = _orchestrator(quota_guard, stream)

        output = await _collect(
            orchestrator.generate(
                GenerationRequest(prompt="hi", provider="together"), "tok", "ip"
            )
        )

        assert output == MARKER_FRAGMENTS
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_quirky_provider_cuts_after_marker(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(MARKER_FRAGMENTS)
        orchestrator = _orchestrator(quota_guard, stream)

        output = await _collect(
            orchestrator.generate(
                GenerationRequest(prompt="hi", provider="sambanova"), "tok", "ip"
            )
        )

        assert output == ["<html>", "<body>Hi</body>", "</html>"]

    @pytest.mark.asyncio
    async def test_quirky_provider_keeps_reading_past_split_marker(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(["<html>", "</ht", "ml>tail", "more</html>x", "late"])
        orchestrator = _orchestrator(quota_guard, stream)

        output = await _collect(
            orchestrator.generate(
                GenerationRequest(prompt="hi", provider="sambanova"), "tok", "ip"
            )
        )

        assert output == ["<html>", "</ht", "ml>tail", "more</html>"]
        assert stream.consumed == 4
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_stops_reading_after_marker(self, quota_guard, make_stream) -> None:
        stream = make_stream(["<html>", "</html>", "trailing", "more"])
        orchestrator = _orchestrator(quota_guard, stream)

        output = await _collect(
            orchestrator.generate(GenerationRequest(prompt="hi"), "tok", "ip")
        )

        assert output == ["<html>", "</html>"]
        assert stream.consumed == 2
        assert stream.closed is True

    @pytest.mark.asyncio
    async def test_empty_fragments_are_skipped(self, quota_guard, make_stream) -> None:
        stream = make_stream(["", "<html>", "", "</html>"])
        orchestrator = _orchestrator(quota_guard, stream)

        output = await _collect(
            orchestrator.generate(GenerationRequest(prompt="hi"), "tok", "ip")
        )

        assert output == ["<html>", "</html>"]

    @pytest.mark.asyncio
    async def test_token_cap_follows_provider_capability(
        self, quota_guard, make_stream
    ) -> None:
        capped = make_stream(["</html>"])
        uncapped = make_stream(["</html>"])

        await _collect(
            _orchestrator(quota_guard, capped).generate(
                GenerationRequest(prompt="hi", provider="together"), "tok", "ip"
            )
        )
        await _collect(
            _orchestrator(quota_guard, uncapped).generate(
                GenerationRequest(prompt="hi", provider="sambanova"), "tok", "ip"
            )
        )

        assert capped.calls[0]["settings"] == {"max_tokens": 128_000}
        assert uncapped.calls[0]["settings"] is None

    @pytest.mark.asyncio
    async def test_conversation_is_passed_to_backend(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(["</html>"])
        request = GenerationRequest(
            prompt="make it blue", previous_prompt="a site", html="<html></html>"
        )

        await _collect(_orchestrator(quota_guard, stream).generate(request, "t", "ip"))

        roles = [m.role for m in stream.calls[0]["messages"]]
        assert roles == ["system", "user", "assistant", "user"]

    @pytest.mark.asyncio
    async def test_context_too_large_makes_no_backend_call(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(MARKER_FRAGMENTS)
        models = ModelRecorder()
        orchestrator = _orchestrator(quota_guard, stream, models)
        request = GenerationRequest(
            prompt="x" * 4_000, html="y" * 4_000, provider="sambanova"
        )

        with pytest.raises(ContextTooLarge) as exc_info:
            await _collect(orchestrator.generate(request, None, "ip"))

        assert exc_info.value.message == (
            "Context is too long. SambaNova allow 8000 max tokens."
        )
        assert exc_info.value.hints == {"open_select_provider": True}
        assert stream.calls == []
        assert models.calls == []
        # Rejected before the quota was consumed
        assert await quota_guard.store.get("ip") == 0

    @pytest.mark.asyncio
    async def test_context_limit_not_applied_under_auto(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(["</html>"])
        request = GenerationRequest(prompt="x" * 20_000, provider="auto")

        output = await _collect(
            _orchestrator(quota_guard, stream).generate(request, "tok", "ip")
        )

        assert output == ["</html>"]

    @pytest.mark.asyncio
    async def test_anonymous_quota(self, quota_guard, make_stream) -> None:
        orchestrator = _orchestrator(quota_guard, make_stream(["</html>"]))
        request = GenerationRequest(prompt="hi")

        await _collect(orchestrator.generate(request, None, "10.0.0.1"))
        await _collect(orchestrator.generate(request, None, "10.0.0.1"))
        with pytest.raises(QuotaExceeded):
            await _collect(orchestrator.generate(request, None, "10.0.0.1"))

        # Signed-in callers are never limited
        for _ in range(3):
            await _collect(orchestrator.generate(request, "user-token", "10.0.0.1"))

    @pytest.mark.asyncio
    async def test_token_selection(self, quota_guard, make_stream) -> None:
        models = ModelRecorder()
        settings = Settings(_env_file=None, DEFAULT_HF_TOKEN="hf_server")  # type: ignore[call-arg]
        orchestrator = _orchestrator(
            quota_guard, make_stream(["</html>"]), models, settings
        )

        await _collect(orchestrator.generate(GenerationRequest(prompt="a"), None, "ip"))
        await _collect(
            orchestrator.generate(GenerationRequest(prompt="a"), "hf_user", "ip")
        )

        assert models.calls == [("novita", "hf_server"), ("novita", "hf_user")]

    @pytest.mark.asyncio
    async def test_billing_status_maps_to_payment_required(
        self, quota_guard, make_stream
    ) -> None:
        error = ModelHTTPError(
            status_code=402,
            model_name="deepseek-ai/DeepSeek-V3-0324:novita",
            body={"error": "You have exceeded your monthly included credits."},
        )
        orchestrator = _orchestrator(quota_guard, make_stream(error=error))

        with pytest.raises(PaymentRequired) as exc_info:
            await _collect(orchestrator.generate(GenerationRequest(prompt="a"), "t", "ip"))

        assert exc_info.value.status_code == 402
        assert exc_info.value.hints == {"open_pro_modal": True}
        assert "exceeded your monthly included credits" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_billing_message_without_402_maps_to_payment_required(
        self, quota_guard, make_stream
    ) -> None:
        error = RuntimeError("You have exceeded your monthly included credits")
        orchestrator = _orchestrator(quota_guard, make_stream(error=error))

        with pytest.raises(PaymentRequired):
            await _collect(orchestrator.generate(GenerationRequest(prompt="a"), "t", "ip"))

    @pytest.mark.asyncio
    async def test_failure_before_output_is_generation_failed(
        self, quota_guard, make_stream
    ) -> None:
        error = ModelHTTPError(
            status_code=500, model_name="m", body={"error": {"message": "boom"}}
        )
        orchestrator = _orchestrator(quota_guard, make_stream(error=error))

        with pytest.raises(GenerationFailed) as exc_info:
            await _collect(orchestrator.generate(GenerationRequest(prompt="a"), "t", "ip"))

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "boom"

    @pytest.mark.asyncio
    async def test_model_builder_failure_is_generation_failed(
        self, quota_guard, make_stream
    ) -> None:
        def no_token(provider: Any, token: str | None) -> object:
            raise ValueError("No Hugging Face token available.")

        orchestrator = GenerationOrchestrator(
            quota_guard,
            stream_completion=make_stream(["</html>"]),
            model_builder=no_token,
            settings=Settings(_env_file=None),  # type: ignore[call-arg]
        )

        with pytest.raises(GenerationFailed):
            await _collect(orchestrator.generate(GenerationRequest(prompt="a"), None, "ip"))

    @pytest.mark.asyncio
    async def test_failure_after_output_ends_stream_quietly(
        self, quota_guard, make_stream, caplog
    ) -> None:
        stream = make_stream(
            ["<html>", "<body>"], error=RuntimeError("reset"), error_after=2
        )
        orchestrator = _orchestrator(quota_guard, stream)

        with caplog.at_level(logging.ERROR, logger="services.ai.orchestrator"):
            output = await _collect(
                orchestrator.generate(GenerationRequest(prompt="a"), "t", "ip")
            )

        assert output == ["<html>", "<body>"]
        assert "failed after output started" in caplog.text

    @pytest.mark.asyncio
    async def test_unterminated_stream_ends_with_warning(
        self, quota_guard, make_stream, caplog
    ) -> None:
        orchestrator = _orchestrator(quota_guard, make_stream(["<html>", "<body>"]))

        with caplog.at_level(logging.WARNING, logger="services.ai.orchestrator"):
            output = await _collect(
                orchestrator.generate(GenerationRequest(prompt="a"), "t", "ip")
            )

        assert output == ["<html>", "<body>"]
        assert "without closing tag" in caplog.text

    @pytest.mark.asyncio
    async def test_closing_early_releases_backend_stream(
        self, quota_guard, make_stream
    ) -> None:
        stream = make_stream(["<html>", "<body>", "</body>", "</html>"])
        generation = _orchestrator(quota_guard, stream).generate(
            GenerationRequest(prompt="a"), "t", "ip"
        )

        assert await anext(generation) == "<html>"
        await generation.aclose()

        assert stream.closed is True
        assert stream.consumed == 1
