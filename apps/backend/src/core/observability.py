"""Observability configuration for Azure Monitor and OpenTelemetry.

Call configure_observability() at the very start of application
initialization (before importing FastAPI) so HTTP requests and outbound
httpx calls to the Hub and the inference router are instrumented.

PII and Sensitive Data Guidance:
--------------------------------
- NEVER put prompts, generated HTML or Hugging Face tokens in span attributes
- Record sizes and identifiers instead (prompt length, provider key, repo id)
- Use correlation IDs to link traces; the StructuredLogger in
  core/error_handler.py redacts sensitive keys in log records

For production (Azure):
- Set ENABLE_OBSERVABILITY=true
- Set APPLICATIONINSIGHTS_CONNECTION_STRING to your App Insights connection string
"""

from __future__ import annotations

import logging
import os
from functools import lru_cache

from opentelemetry import trace


logger = logging.getLogger(__name__)

# Environment variable names
_ENV_ENABLE_OBSERVABILITY = "ENABLE_OBSERVABILITY"
_ENV_APP_INSIGHTS_CONN_STRING = "APPLICATIONINSIGHTS_CONNECTION_STRING"
_ENV_OTEL_SERVICE_NAME = "OTEL_SERVICE_NAME"

_DEFAULT_SERVICE_NAME = "deepsite-backend"

# Paths to exclude from automatic tracing (reduce noise for health checks)
EXCLUDED_URLS = "health,health/,favicon.ico"


def _is_observability_enabled() -> bool:
    """Return True if ENABLE_OBSERVABILITY is set to a truthy value."""
    value = os.getenv(_ENV_ENABLE_OBSERVABILITY, "false").lower()
    return value in {"true", "1", "yes", "on"}


def _get_connection_string() -> str | None:
    return os.getenv(_ENV_APP_INSIGHTS_CONN_STRING)


@lru_cache
def configure_observability() -> bool:
    """Configure OpenTelemetry with Azure Monitor.

    Returns:
        True if observability was configured, False when disabled or when
        the connection string is missing.

    The ``azure-monitor-opentelemetry`` distribution is an optional extra
    (``pip install .[observability]``); without it observability stays off.
    """
    if not _is_observability_enabled():
        logger.info(
            "Observability disabled. Set %s=true to enable Azure Monitor.",
            _ENV_ENABLE_OBSERVABILITY,
        )
        return False

    connection_string = _get_connection_string()
    if not connection_string:
        logger.warning(
            "Observability enabled but %s not set. Skipping Azure Monitor setup.",
            _ENV_APP_INSIGHTS_CONN_STRING,
        )
        return False

    try:
        from azure.monitor.opentelemetry import configure_azure_monitor

        service_name = os.getenv(_ENV_OTEL_SERVICE_NAME, _DEFAULT_SERVICE_NAME)
        os.environ.setdefault("OTEL_SERVICE_NAME", service_name)
        # FastAPI instrumentation reads the exclusion list from the environment
        os.environ.setdefault("OTEL_PYTHON_FASTAPI_EXCLUDED_URLS", EXCLUDED_URLS)

        configure_azure_monitor(connection_string=connection_string)

        logger.info(
            "Azure Monitor observability configured for service '%s'", service_name
        )
        return True

    except ImportError:
        logger.warning(
            "azure-monitor-opentelemetry package not installed. "
            "Install with: pip install '.[observability]'"
        )
        return False
    except Exception as e:
        logger.exception("Failed to configure Azure Monitor observability: %s", e)
        return False


def get_tracer(name: str) -> trace.Tracer:
    """Get an OpenTelemetry tracer for custom spans.

    Without a configured SDK the OpenTelemetry API hands back a no-op
    tracer, so callers can open spans unconditionally.

    Example:
        tracer = get_tracer(__name__)

        with tracer.start_as_current_span("deepsite.deploy") as span:
            span.set_attribute("deploy.kind", "new")

    WARNING: Never add prompts, documents or tokens to span attributes!
    """
    return trace.get_tracer(name)
