"""Application starter."""

import os
import sys

import uvicorn

sys.path.append(os.path.dirname(os.path.abspath(__file__)))

from linechat.core.config import settings
from linechat.core.logging import setup_logger

logger = setup_logger(__name__)

if __name__ == "__main__":
    logger.info(f"Starting server on port {settings.PORT}")
    uvicorn.run(
        "linechat.main:app",
        host="0.0.0.0",
        port=settings.PORT,
        reload=settings.DEBUG,
    )
