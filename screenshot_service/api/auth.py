"""
Authentication Utilities
=======================

API key gate for the screenshot and statistics endpoints. The key may be
sent in the ``X-API-Key`` header or as an ``Authorization: Bearer`` token.
Authentication is off when the configured key is empty or "disabled".
"""

import hmac
from typing import Optional
from fastapi import Depends, Header, HTTPException
from fastapi.security import APIKeyHeader

from screenshot_service.api.dependencies import get_app_settings
from screenshot_service.config.settings import Settings

# API key header
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def extract_api_key(
    header_key: Optional[str], authorization: Optional[str]
) -> Optional[str]:
    """Pick the API key from the dedicated header or a bearer token."""
    if header_key:
        return header_key
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):].strip() or None
    return None


async def validate_api_key(
    api_key: Optional[str] = Depends(api_key_header),
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> Optional[str]:
    """
    Validate API key.

    Returns:
        The presented key, or None when authentication is disabled

    Raises:
        HTTPException: 401 when no key is presented, 403 when it is wrong
    """
    if not settings.api_key_enabled:
        return None

    presented = extract_api_key(api_key, authorization)
    if not presented:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "API key required",
                "message": "Please provide API key in X-API-Key header",
            },
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(presented.encode(), str(settings.api_key).encode()):
        raise HTTPException(status_code=403, detail={"error": "Invalid API key"})

    return presented
