"""Streaming chat completion through pydantic-ai.

Converts the plain conversation from ``services.ai.prompts`` into pydantic-ai
message history and yields text deltas as the model produces them. Closing
the returned generator closes the underlying model stream.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable, Sequence

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelMessage,
    ModelRequest,
    ModelRequestPart,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from services.ai.prompts import ChatMessage


StreamCompletion = Callable[
    [Model, Sequence[ChatMessage], ModelSettings | None], AsyncGenerator[str, None]
]


def to_message_history(
    messages: Sequence[ChatMessage],
) -> tuple[list[ModelMessage], str]:
    """Split a conversation into pydantic-ai history and the final user prompt.

    System and user turns are grouped into ``ModelRequest`` parts, assistant
    turns become ``ModelResponse`` text. The last message must be a user turn.

    The system prompt lives in the history because pydantic-ai does not add
    an agent's own system prompt when history is supplied.
    """
    if not messages or messages[-1].role != "user":
        raise ValueError("Conversation must end with a user message")

    history: list[ModelMessage] = []
    pending: list[ModelRequestPart] = []
    for message in messages[:-1]:
        if message.role == "system":
            pending.append(SystemPromptPart(content=message.content))
        elif message.role == "user":
            pending.append(UserPromptPart(content=message.content))
        else:
            if pending:
                history.append(ModelRequest(parts=pending))
                pending = []
            history.append(ModelResponse(parts=[TextPart(content=message.content)]))
    if pending:
        history.append(ModelRequest(parts=pending))

    return history, messages[-1].content


async def stream_completion(
    model: Model,
    messages: Sequence[ChatMessage],
    model_settings: ModelSettings | None = None,
) -> AsyncGenerator[str, None]:
    """Yield text deltas for ``messages`` from ``model``.

    Backend failures (e.g. ``pydantic_ai.exceptions.ModelHTTPError``) are
    raised to the caller unchanged.
    """
    history, user_prompt = to_message_history(messages)
    agent = Agent(model, output_type=str)
    async with agent.run_stream(
        user_prompt,
        message_history=history,
        model_settings=model_settings,
    ) as result:
        async for delta in result.stream_text(delta=True, debounce_by=None):
            yield delta
