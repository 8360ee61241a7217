"""Application settings and CORS configuration."""

import json
import os
from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=(".env"), env_file_encoding="utf-8")

    # App
    APP_NAME: str = "DeepSite"
    ENVIRONMENT: str = "development"  # development | production | test

    # CORS
    # Accept list or CSV/JSON string from env; normalized to list[str] by validators
    CORS_ORIGINS: list[str] | str = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    ALLOW_CREDENTIALS: bool = True

    # Hugging Face credentials
    # HF_TOKEN switches the server into local-use mode: every call is made
    # with this token regardless of the caller's cookie.
    HF_TOKEN: str | None = None
    # Server-side token used for anonymous generation and remix lookups
    DEFAULT_HF_TOKEN: str | None = None

    # AI generation
    MODEL_ID: str = "deepseek-ai/DeepSeek-V3-0324"
    HF_ROUTER_BASE_URL: str = "https://router.huggingface.co/v1"

    # Hub / publication
    HF_HUB_URL: str = "https://huggingface.co"
    PUBLIC_APP_URL: str = "https://enzostvs-deepsite.hf.space"
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # Anonymous generation quota (calls per client for the process lifetime)
    MAX_REQUESTS_PER_IP: int = 2

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: object) -> list[str]:
        """Allow list, CSV string, or JSON array string for CORS origins."""
        if isinstance(v, list):
            return [str(i).strip() for i in v]
        if isinstance(v, str):
            s = v.strip()
            if not s:
                return []
            if s.startswith("["):
                try:
                    parsed = json.loads(s)
                except json.JSONDecodeError as e:
                    raise ValueError(
                        "CORS_ORIGINS must be a CSV list or JSON array string"
                    ) from e
                if not isinstance(parsed, list):
                    raise ValueError("CORS_ORIGINS JSON must be a list")
                return [str(i).strip() for i in parsed]
            # CSV fallback
            return [i.strip() for i in s.split(",") if i.strip()]
        raise ValueError("Invalid CORS_ORIGINS type; expected str or list[str]")

    @field_validator("HF_TOKEN", "DEFAULT_HF_TOKEN", mode="before")
    @classmethod
    def empty_token_is_none(cls, v: object) -> object:
        """Treat an empty token variable the same as an unset one."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _validate_cors_credentials(self) -> "Settings":
        """Ensure wildcard origins are not used when credentials are allowed."""
        # Normalize in case the union allows a stray string at runtime
        if isinstance(self.CORS_ORIGINS, str):
            self.CORS_ORIGINS = self.assemble_cors_origins(self.CORS_ORIGINS)
        if self.ALLOW_CREDENTIALS and any(
            o.strip() == "*" for o in (self.CORS_ORIGINS or [])
        ):
            raise ValueError(
                "CORS configuration error: ALLOW_CREDENTIALS=True but "
                "CORS_ORIGINS contains '*'. Use explicit origins when credentials "
                "are allowed."
            )
        return self

    @property
    def is_local_use(self) -> bool:
        return self.HF_TOKEN is not None


@lru_cache
def get_settings() -> Settings:
    env = os.getenv("ENVIRONMENT", "development").lower()
    if env not in {"development", "production", "test"}:
        raise ValueError("ENVIRONMENT must be 'development', 'production', or 'test'")

    if env == "production":
        env_file = ".env.prod"
    elif env == "development":
        env_file = ".env.dev"
    else:
        # test environment - no env file needed, use defaults
        env_file = ""

    # The Settings initializer accepts a runtime-only `_env_file` kwarg used by
    # pydantic-settings; mypy's stub doesn't allow this call argument.
    settings = Settings(_env_file=env_file or None)  # type: ignore[call-arg]

    # Anonymous traffic needs a server token to reach the inference router.
    if env == "production" and not (settings.DEFAULT_HF_TOKEN or settings.HF_TOKEN):
        raise RuntimeError(
            "DEFAULT_HF_TOKEN (or HF_TOKEN for local use) must be set in production"
        )
    return settings
