"""Hugging Face Hub access."""

from .client import ArtifactFile, HubClient, HubError, SpaceInfo


__all__ = [
    "ArtifactFile",
    "HubClient",
    "HubError",
    "SpaceInfo",
]
