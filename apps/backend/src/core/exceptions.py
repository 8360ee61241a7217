"""Domain errors for the generation, deployment and remix pipelines.

Every error is terminal for the call that raised it and is never retried
internally. Each carries a stable ``error_code`` (used as ``error.type`` in
the API envelope), the HTTP status the API layer maps it to, and optional
UI ``hints`` such as ``open_login`` so the frontend can branch on the kind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True, eq=False)
class DomainError(Exception):
    """Base class for domain-specific errors."""

    message: str
    error_code: str = "domain_error"
    status_code: int = 500
    hints: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class InvalidRequest(DomainError):
    def __init__(self, message: str = "Missing required fields") -> None:
        super().__init__(message=message, error_code="invalid_request", status_code=400)


class ContextTooLarge(DomainError):
    """Raised before any backend call when the input exceeds a provider limit."""

    def __init__(self, provider_name: str, max_tokens: int) -> None:
        super().__init__(
            message=(
                f"Context is too long. {provider_name} allow {max_tokens} max tokens."
            ),
            error_code="context_too_large",
            status_code=400,
            hints={"open_select_provider": True},
        )
        self.provider_name = provider_name
        self.max_tokens = max_tokens


class QuotaExceeded(DomainError):
    def __init__(self, message: str = "Log In to continue using the service") -> None:
        super().__init__(
            message=message,
            error_code="quota_exceeded",
            status_code=429,
            hints={"open_login": True},
        )


class PaymentRequired(DomainError):
    """Billing condition reported by the inference backend, surfaced verbatim."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message=message,
            error_code="payment_required",
            status_code=402,
            hints={"open_pro_modal": True},
        )


class GenerationFailed(DomainError):
    def __init__(
        self, message: str = "An error occurred while processing your request."
    ) -> None:
        super().__init__(message=message, error_code="generation_failed", status_code=500)


class DeploymentFailed(DomainError):
    def __init__(self, message: str = "Deployment failed") -> None:
        super().__init__(message=message, error_code="deployment_failed", status_code=500)


class NotFound(DomainError):
    def __init__(self, message: str = "Space not found") -> None:
        super().__init__(message=message, error_code="not_found", status_code=404)
