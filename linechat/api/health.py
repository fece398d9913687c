"""Health check API endpoints."""

from fastapi import APIRouter, Depends, Query

from linechat.core.health import check_backend_connection, get_health_status
from linechat.dependencies import get_lmstudio_client
from linechat.services.lmstudio import LMStudioClient

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(
    deep: bool = Query(
        default=False,
        description="Also check that the LM Studio backend lists its models",
    ),
    lmstudio_client: LMStudioClient = Depends(get_lmstudio_client),
):
    """
    Health check endpoint with optional deep checking.

    By default only reports that the application is running. Use
    ?deep=true to also query the LM Studio model catalog.
    """
    if not deep:
        return get_health_status(backend_status=None)

    backend_status = await check_backend_connection(lmstudio_client)
    return get_health_status(backend_status)
