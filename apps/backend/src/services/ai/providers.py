"""Catalog of inference providers reachable through the Hugging Face router.

Each descriptor carries the provider's context limit and its quirks as
capability flags so the generation loop never branches on a provider name.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType


AUTO_PROVIDER = "auto"
DEFAULT_PROVIDER_KEY = "novita"


@dataclass(frozen=True, slots=True)
class ProviderDescriptor:
    key: str
    name: str
    backend_id: str
    max_tokens: int
    # False: the backend rejects a token cap, so none is sent.
    supports_max_tokens_param: bool = True
    # True: the backend may keep emitting text after </html>.
    quirky_truncation: bool = False


_CATALOG: tuple[ProviderDescriptor, ...] = (
    ProviderDescriptor(
        key="fireworks-ai",
        name="Fireworks AI",
        backend_id="fireworks-ai",
        max_tokens=131_000,
    ),
    ProviderDescriptor(
        key="nebius",
        name="Nebius AI Studio",
        backend_id="nebius",
        max_tokens=131_000,
    ),
    ProviderDescriptor(
        key="sambanova",
        name="SambaNova",
        backend_id="sambanova",
        max_tokens=8_000,
        supports_max_tokens_param=False,
        quirky_truncation=True,
    ),
    ProviderDescriptor(
        key="novita",
        name="NovitaAI",
        backend_id="novita",
        max_tokens=16_000,
    ),
    ProviderDescriptor(
        key="hyperbolic",
        name="Hyperbolic",
        backend_id="hyperbolic",
        max_tokens=131_000,
    ),
    ProviderDescriptor(
        key="together",
        name="Together AI",
        backend_id="together",
        max_tokens=128_000,
    ),
)

PROVIDERS: MappingProxyType[str, ProviderDescriptor] = MappingProxyType(
    {provider.key: provider for provider in _CATALOG}
)


def resolve_provider(key: str | None) -> ProviderDescriptor:
    """Return the descriptor for ``key``.

    ``"auto"``, ``None`` and unknown keys all resolve to the default
    provider; this never raises.
    """
    if key is None or key == AUTO_PROVIDER:
        return PROVIDERS[DEFAULT_PROVIDER_KEY]
    return PROVIDERS.get(key, PROVIDERS[DEFAULT_PROVIDER_KEY])


def is_explicit_choice(key: str | None) -> bool:
    """True when the caller picked a provider rather than leaving it to auto."""
    return key is not None and key != AUTO_PROVIDER
