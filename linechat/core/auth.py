"""LINE webhook signature verification."""

import base64
import hashlib
import hmac
import secrets

from fastapi import HTTPException, Request, status

from linechat.core.config import settings
from linechat.core.logging import setup_logger

logger = setup_logger(__name__)

SIGNATURE_HEADER = "X-Line-Signature"


def compute_signature(body: bytes, channel_secret: str) -> str:
    """Base64-encoded HMAC-SHA256 of the raw request body."""
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_line_signature(body: bytes, signature: str, channel_secret: str) -> bool:
    """Check a webhook body against its ``X-Line-Signature`` header value."""
    if not signature or not channel_secret:
        return False
    expected = compute_signature(body, channel_secret)
    return secrets.compare_digest(expected, signature)


async def get_verified_body(request: Request) -> bytes:
    """
    FastAPI dependency returning the raw webhook body once its signature checks out.

    Raises:
        HTTPException: 400 if the signature header is missing or does not match
    """
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")

    if not signature:
        logger.warning(f"Missing {SIGNATURE_HEADER} header for path: {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "message": "Invalid signature or request"},
        )

    if not verify_line_signature(body, signature, settings.LINE_CHANNEL_SECRET):
        logger.warning(f"Invalid LINE signature for path: {request.url.path}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"status": "error", "message": "Invalid signature or request"},
        )

    return body
