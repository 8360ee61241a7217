"""Schemas for site generation, deployment and remix.

Request models accept the camelCase keys sent by the editor frontend
(``previousPrompt``) as well as the snake_case field names.
"""

from pydantic import BaseModel, ConfigDict, Field


class GenerationRequest(BaseModel):
    """Body of ``POST /ask-ai``."""

    prompt: str = Field(..., min_length=1, description="What to build or change")
    previous_prompt: str | None = Field(
        default=None,
        alias="previousPrompt",
        description="The prompt of the previous turn, if any",
    )
    html: str | None = Field(
        default=None, description="The current document to refine"
    )
    provider: str = Field(
        default="auto", description="Inference provider key, or 'auto'"
    )

    model_config = ConfigDict(populate_by_name=True)


class DeployRequest(BaseModel):
    """Body of ``POST /deploy``.

    ``path`` is the id of an existing Space to update; without it a new Space
    is created from ``title``. Field presence is checked by the deployment
    pipeline so a bad request never reaches the Hub.
    """

    html: str | None = None
    title: str | None = None
    path: str | None = Field(default=None, description="Existing repo id")
    prompts: list[str] = Field(default_factory=list)


class DeployResponse(BaseModel):
    path: str = Field(..., description="Repo id of the published Space")


class RemixResponse(BaseModel):
    html: str = Field(..., description="Published document without attribution")
    is_owner: bool
    path: str = Field(..., description="Repo id of the remixed Space")


class CurrentUser(BaseModel):
    """Identity returned by ``GET /me``."""

    preferred_username: str
    name: str | None = None
    picture: str | None = None
    is_local_use: bool = False

    model_config = ConfigDict(extra="allow")
