"""Publish a generated document as a static Hugging Face Space."""

from __future__ import annotations

import random
import re
from dataclasses import dataclass
from typing import Literal

from core.error_handler import StructuredLogger
from core.exceptions import DeploymentFailed, InvalidRequest
from core.observability import get_tracer
from services.attribution import inject_attribution
from services.hub import ArtifactFile, HubClient, HubError


slog = StructuredLogger(__name__)
tracer = get_tracer(__name__)

SLUG_MAX_LENGTH = 96
SPACE_EMOJI = "🐳"
SPACE_TAG = "deepsite"
# Gradient colors accepted by the Space card (colorFrom / colorTo)
SPACE_COLORS: tuple[str, ...] = (
    "red",
    "yellow",
    "green",
    "blue",
    "indigo",
    "purple",
    "pink",
    "gray",
)
CONFIG_REFERENCE = (
    "Check out the configuration reference at "
    "https://huggingface.co/docs/hub/spaces-config-reference"
)

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """Lowercase ``title`` and collapse everything but ``[a-z0-9]`` into dashes.

    >>> slugify("My Cool Site!! 2024")
    'my-cool-site-2024'
    """
    slug = _NON_SLUG_CHARS.sub("-", title.lower()).strip("-")
    return slug[:SLUG_MAX_LENGTH].rstrip("-")


def build_readme(title: str, color_from: str, color_to: str) -> str:
    """Space manifest with YAML front matter.

    ``title`` is written as a plain scalar, so callers pass the slug.
    """
    return (
        "---\n"
        f"title: {title}\n"
        f"emoji: {SPACE_EMOJI}\n"
        f"colorFrom: {color_from}\n"
        f"colorTo: {color_to}\n"
        "sdk: static\n"
        "pinned: false\n"
        "tags:\n"
        f"  - {SPACE_TAG}\n"
        "---\n"
        "\n"
        f"{CONFIG_REFERENCE}"
    )


@dataclass(frozen=True, slots=True)
class DeploymentTarget:
    kind: Literal["new", "existing"]
    repo_id: str
    readme: str | None = None


def compose_files(
    html: str, prompts: list[str], target: DeploymentTarget
) -> list[ArtifactFile]:
    """Ordered file set: index.html, prompts.txt, and README.md for new Spaces."""
    files = [
        ArtifactFile("index.html", inject_attribution(html, target.repo_id), "text/html"),
        ArtifactFile("prompts.txt", "\n".join(prompts), "text/plain"),
    ]
    if target.kind == "new" and target.readme is not None:
        files.append(ArtifactFile("README.md", target.readme, "text/markdown"))
    return files


class DeploymentPipeline:
    """Create or update a static Space from a finished document."""

    def __init__(self, hub: HubClient, rng: random.Random | None = None) -> None:
        self.hub = hub
        self._rng = rng or random.Random()

    async def resolve_target(
        self, title: str | None, existing_repo_id: str | None, credential: str
    ) -> DeploymentTarget:
        if existing_repo_id:
            return DeploymentTarget(kind="existing", repo_id=existing_repo_id)

        slug = slugify(title or "")
        if not slug:
            raise InvalidRequest("Title must contain letters or digits")

        account = await self.hub.whoami(credential)
        namespace = account.get("name")
        if not namespace:
            raise DeploymentFailed("Could not resolve the account namespace")

        readme = build_readme(
            slug,
            self._rng.choice(SPACE_COLORS),
            self._rng.choice(SPACE_COLORS),
        )
        return DeploymentTarget(kind="new", repo_id=f"{namespace}/{slug}", readme=readme)

    async def deploy(
        self,
        html: str | None,
        title: str | None,
        existing_repo_id: str | None,
        prompts: list[str],
        credential: str,
    ) -> str:
        """Publish ``html`` and return the repo id.

        Raises:
            InvalidRequest: missing document, or neither title nor repo id.
                Raised before any Hub call.
            DeploymentFailed: identity, creation or upload failed.
        """
        if not html or not (existing_repo_id or title):
            raise InvalidRequest()

        with tracer.start_as_current_span("deepsite.deploy") as span:
            try:
                target = await self.resolve_target(title, existing_repo_id, credential)
                span.set_attribute("deploy.kind", target.kind)
                span.set_attribute("deploy.repo_id", target.repo_id)

                if target.kind == "new":
                    await self.hub.create_space(target.repo_id, credential)

                files = compose_files(html, prompts, target)
                await self.hub.upload_files(target.repo_id, files, credential)
            except HubError as exc:
                span.record_exception(exc)
                slog.error(
                    "Deployment failed",
                    status_code=exc.status_code,
                    error=exc.message,
                )
                raise DeploymentFailed(exc.message) from exc

        slog.info(
            "Deployment succeeded",
            repo_id=target.repo_id,
            kind=target.kind,
            file_count=len(files),
        )
        return target.repo_id
