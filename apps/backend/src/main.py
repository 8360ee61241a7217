import logging
from urllib.parse import urlparse

from core.observability import configure_observability


# Must run before FastAPI is imported so instrumentation can hook in
configure_observability()

from fastapi import FastAPI  # noqa: E402
from fastapi.exceptions import RequestValidationError  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.openapi.docs import get_redoc_html, get_swagger_ui_html  # noqa: E402
from starlette.exceptions import HTTPException as StarletteHTTPException  # noqa: E402

from api.v1.api import api_router  # noqa: E402
from core.config import get_settings  # noqa: E402
from core.error_handler import (  # noqa: E402
    ExceptionNormalizationMiddleware,
    domain_exception_handler,
    global_exception_handler,
    setup_logging,
)
from core.exceptions import DomainError  # noqa: E402
from core.middleware import CorrelationIdMiddleware  # noqa: E402


def validate_cors_origins(origins: list[str]) -> list[str]:
    """Drop CORS origins that are not absolute http(s) URLs."""
    validated_origins = []

    def is_valid_url(url: str) -> bool:
        parsed = urlparse(url)
        return bool(parsed.scheme in {"http", "https"} and parsed.netloc)

    for origin in origins:
        if is_valid_url(origin):
            validated_origins.append(origin)
        else:
            logging.warning(f"Invalid CORS origin '{origin}' ignored")

    return validated_origins


setup_logging()
settings = get_settings()

app = FastAPI(
    title="DeepSite API",
    description="Generate websites with AI and publish them as Hugging Face Spaces",
    version="0.1.0",
    docs_url=None,  # We'll mount docs under /api/v1/docs
    redoc_url=None,
)

app.add_exception_handler(DomainError, domain_exception_handler)  # type: ignore[arg-type]
app.add_exception_handler(RequestValidationError, global_exception_handler)
app.add_exception_handler(StarletteHTTPException, global_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# Middleware added last runs first: correlation id wraps everything
app.add_middleware(ExceptionNormalizationMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=validate_cors_origins(list(settings.CORS_ORIGINS)),
    allow_credentials=settings.ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)
app.add_middleware(CorrelationIdMiddleware)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


# Mount OpenAPI docs under /api/v1/docs and /api/v1/redoc
@app.get("/api/v1/docs", include_in_schema=False)
def custom_swagger_ui_html():
    return get_swagger_ui_html(openapi_url="/openapi.json", title="DeepSite API Docs")


@app.get("/api/v1/redoc", include_in_schema=False)
def redoc_html():
    return get_redoc_html(openapi_url="/openapi.json", title="DeepSite API Redoc")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
