"""Response envelopes shared by the JSON endpoints.

The streaming generation endpoint returns plain text on success and only
uses ``ErrorResponse`` when it fails before the first fragment.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel


T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope wrapping a successful payload in ``data``."""

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Failure envelope.

    ``error`` always carries ``correlation_id`` and ``type``. Domain errors
    add ``hints`` (``open_login``, ``open_select_provider``,
    ``open_pro_modal``) telling the builder UI which dialog to open.
    """

    success: bool = False
    message: str = "An error occurred"
