"""Health check module for application monitoring."""

import asyncio
from typing import Optional

from linechat.core.config import settings
from linechat.core.logging import setup_logger
from linechat.services.lmstudio import ChatBackendProtocol

logger = setup_logger(__name__)

# Keeps the backend retry loop from stalling the health endpoint
HEALTH_CHECK_TIMEOUT_SECONDS = 5.0


async def check_backend_connection(backend: ChatBackendProtocol) -> bool:
    """Check that the LM Studio backend answers its model catalog."""
    try:
        await asyncio.wait_for(
            backend.list_models(), timeout=HEALTH_CHECK_TIMEOUT_SECONDS
        )
    except Exception as e:
        logger.error(f"LM Studio connection check failed: {e}")
        return False
    return True


def get_health_status(backend_status: Optional[bool]):
    """
    Get health status response.

    Args:
        backend_status: Backend status (True/False) or None to skip the backend check
    """
    if backend_status is None:
        return {
            "message": "Service is healthy",
            "data": {
                "status": "healthy",
                "app": settings.APP_NAME,
                "backend": "not_checked",
            },
        }

    status = "healthy" if backend_status else "unhealthy"
    return {
        "message": f"Service is {status}",
        "data": {"status": status, "app": settings.APP_NAME, "backend": backend_status},
    }
