"""Conversation construction for site generation.

The message list is built as plain role/content pairs so it can be checked
without a model; ``services.ai.backend`` converts it to pydantic-ai history.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from schemas.sites import GenerationRequest


Role = Literal["system", "user", "assistant"]

SYSTEM_PROMPT = (
    "ONLY USE HTML, CSS AND JAVASCRIPT. If you want to use ICON make sure to "
    "import the library first. Try to create the best UI possible by using only "
    "HTML, CSS and JAVASCRIPT. Use as much as you can TailwindCSS for the CSS, "
    "if you can't do something with TailwindCSS, then use custom CSS (make sure "
    'to import <script src="https://cdn.tailwindcss.com"></script> in the head). '
    "Also, try to ellaborate as much as you can, to create something unique. "
    "ALWAYS GIVE THE RESPONSE INTO A SINGLE HTML FILE"
)


@dataclass(frozen=True, slots=True)
class ChatMessage:
    role: Role
    content: str


def current_code_message(html: str) -> str:
    return f"The current code is: {html}."


def build_messages(request: GenerationRequest) -> list[ChatMessage]:
    """Build the ordered conversation for one generation call.

    Order: system instruction, previous prompt (user), current document
    (assistant), new prompt (user). Optional turns are omitted when empty.
    """
    messages = [ChatMessage("system", SYSTEM_PROMPT)]
    if request.previous_prompt:
        messages.append(ChatMessage("user", request.previous_prompt))
    if request.html:
        messages.append(ChatMessage("assistant", current_code_message(request.html)))
    messages.append(ChatMessage("user", request.prompt))
    return messages


def estimate_tokens(request: GenerationRequest) -> int:
    """Character-count estimate of the context size used for provider limits."""
    return (
        len(request.prompt)
        + len(request.previous_prompt or "")
        + len(request.html or "")
    )
