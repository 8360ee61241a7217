"""Redaction rules for logs and error envelopes.

Hugging Face tokens arrive through cookies, bearer headers and settings,
and prompts or generated pages are user-authored. None of them may reach a
log sink or a production error body.
"""

from __future__ import annotations

from typing import Any


REDACTED = "[REDACTED]"

# Substring markers, so "hf_token" also covers "default_hf_token".
SENSITIVE_MARKERS: frozenset[str] = frozenset(
    {
        "token",
        "secret",
        "authorization",
        "api_key",
        "bearer",
        "credential",
        "cookie",
        "prompt",
        "html",
    }
)

# Keys whose value is the secret part of a ``{"name": ..., "value": ...}`` pair
_VALUE_KEYS = frozenset({"value", "val", "v"})

# Fields an error envelope may carry. Hints drive UI branching and are safe
# in every environment.
PRODUCTION_ERROR_FIELDS: frozenset[str] = frozenset({"correlation_id", "type", "hints"})
DEBUG_ERROR_FIELDS: frozenset[str] = PRODUCTION_ERROR_FIELDS | {
    "details",
    "traceback",
    "exception_type",
    "validation_errors",
}


def error_fields_for(environment: str) -> frozenset[str]:
    """Error envelope fields allowed in ``environment``."""
    if environment == "production":
        return PRODUCTION_ERROR_FIELDS
    return DEBUG_ERROR_FIELDS


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(marker in lowered for marker in SENSITIVE_MARKERS)


def _named_pair_name(data: dict[str, Any]) -> str | None:
    if "value" not in data:
        return None
    name = data.get("name") or data.get("key")
    return name if isinstance(name, str) else None


def redact(data: Any) -> Any:
    """Return a copy of ``data`` with sensitive values masked.

    Dicts are walked recursively. A header-shaped pair such as
    ``{"name": "Authorization", "value": "Bearer ..."}`` has its value
    masked when the name is sensitive.
    """
    if isinstance(data, list):
        return [redact(item) for item in data]
    if not isinstance(data, dict):
        return data

    pair_name = _named_pair_name(data)
    mask_values = pair_name is not None and is_sensitive_key(pair_name)

    cleaned: dict[str, Any] = {}
    for key, value in data.items():
        if is_sensitive_key(key) or (mask_values and key.lower() in _VALUE_KEYS):
            cleaned[key] = REDACTED
        else:
            cleaned[key] = redact(value)
    return cleaned
