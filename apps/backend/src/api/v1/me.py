from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from core.config import Settings, get_settings
from dependencies.auth import RequiredCredential, unauthorized
from dependencies.services import get_hub_client
from schemas.sites import CurrentUser
from services.hub import HubClient


router = APIRouter(tags=["me"])

LOCAL_USE_USERNAME = "local-use"


@router.get("/me", response_model=CurrentUser)
async def read_current_user(
    credential: RequiredCredential,
    settings: Annotated[Settings, Depends(get_settings)],
    hub: Annotated[HubClient, Depends(get_hub_client)],
) -> CurrentUser:
    """Return the signed-in Hugging Face user, or the local-use marker."""
    if settings.is_local_use:
        return CurrentUser(preferred_username=LOCAL_USE_USERNAME, is_local_use=True)

    info = await hub.userinfo(credential)
    if not info or not info.get("preferred_username"):
        raise unauthorized()
    return CurrentUser.model_validate(info)
