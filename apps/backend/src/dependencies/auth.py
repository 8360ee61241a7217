from __future__ import annotations

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from core.config import Settings, get_settings


# --------------------------------------------------------------------------- #
# Common constants / helpers
# --------------------------------------------------------------------------- #
LOGGER = logging.getLogger(__name__)
BEARER = "Bearer"
TOKEN_COOKIE = "hf_token"


def unauthorized(detail: str = "Unauthorized") -> HTTPException:
    """Return the canonical 401 response."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": BEARER},
    )


bearer_scheme = HTTPBearer(auto_error=False)


# --------------------------------------------------------------------------- #
# The dependencies
# --------------------------------------------------------------------------- #
async def get_optional_credential(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    bearer: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str | None:
    """
    Resolve the caller's Hugging Face token, if any.

    Sign-in happens elsewhere; this only reads the token it left behind.
    A configured ``HF_TOKEN`` (local-use mode) takes precedence over the
    ``hf_token`` cookie, which takes precedence over a Bearer header.
    """
    if settings.HF_TOKEN:
        return settings.HF_TOKEN

    cookie_token = request.cookies.get(TOKEN_COOKIE)
    if cookie_token:
        return cookie_token

    if bearer is not None and bearer.credentials:
        return bearer.credentials

    return None


async def require_credential(
    credential: Annotated[str | None, Depends(get_optional_credential)],
) -> str:
    """
    Same as :func:`get_optional_credential` but for protected routes.

    Raises
    ------
    HTTPException(401)
        If no token was presented.
    """
    if credential is None:
        LOGGER.debug("Protected route called without a credential")
        raise unauthorized()
    return credential


OptionalCredential = Annotated[str | None, Depends(get_optional_credential)]
RequiredCredential = Annotated[str, Depends(require_credential)]
