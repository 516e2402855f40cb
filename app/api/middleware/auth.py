"""
Admin API Key Authentication

Protects the /chat endpoints with a single shared key sent as
X-API-Key. When no key is configured the endpoints are open
(development use).
"""

import hmac
import logging
from typing import Optional

from fastapi import HTTPException, Request, Security, status
from fastapi.security import APIKeyHeader

from app.config import settings

logger = logging.getLogger(__name__)

# API Key header scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def mask_api_key(api_key: str) -> str:
    """
    Mask API key for logging.

    Shows the first and last 3 characters.
    """
    if len(api_key) < 10:
        return "***"
    return f"{api_key[:3]}...{api_key[-3:]}"


async def require_admin_key(
    request: Request,
    api_key: Optional[str] = Security(api_key_header),
) -> None:
    """
    FastAPI dependency that requires the admin API key, when one is configured.

    Raises:
        HTTPException 401: No API key provided
        HTTPException 403: Invalid API key

    Usage:
        @router.post("", dependencies=[Depends(require_admin_key)])
    """
    expected = settings.admin_api_key
    if not expected:
        return

    client_ip = request.client.host if request.client else "unknown"

    if not api_key:
        logger.warning(f"Auth failed: No API key provided | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key required",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(f"Auth failed: Invalid API key | Key: {mask_api_key(api_key)} | IP: {client_ip}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )
