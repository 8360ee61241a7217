"""Init file for AI services."""

from .orchestrator import GenerationOrchestrator, GenerationSession
from .providers import PROVIDERS, ProviderDescriptor, resolve_provider


__all__ = [
    "GenerationOrchestrator",
    "GenerationSession",
    "PROVIDERS",
    "ProviderDescriptor",
    "resolve_provider",
]
