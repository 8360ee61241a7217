from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from core.config import Settings, get_settings
from schemas.api import ApiResponse
from services.ai.providers import PROVIDERS


router = APIRouter()


class HealthStatus(BaseModel):
    status: str = "healthy"
    message: str = "DeepSite API is running"
    model_id: str
    providers: list[str]
    local_use: bool


@router.get("/health", response_model=ApiResponse[HealthStatus])
def health_check(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ApiResponse[HealthStatus]:
    """Liveness probe that also reports which model and providers are served."""
    return ApiResponse(
        data=HealthStatus(
            model_id=settings.MODEL_ID,
            providers=list(PROVIDERS),
            local_use=settings.is_local_use,
        ),
        message="Health check successful",
    )
