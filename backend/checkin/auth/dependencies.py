"""
Authentication dependencies for FastAPI.
"""

from typing import Optional

from fastapi import Header, HTTPException, status

from checkin.config import get_settings


async def verify_admin_access(
    x_admin_api_key: Optional[str] = Header(None, alias="X-Admin-API-Key"),
) -> None:
    """
    Verify the `X-Admin-API-Key` header.

    Without a configured key, admin routes are open outside production
    (local runs, staff laptops on the venue network) and closed in
    production.
    """
    settings = get_settings()

    if not settings.admin_api_key:
        if settings.is_production:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Admin API key is not configured",
            )
        return

    if x_admin_api_key != settings.admin_api_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required. Provide a valid X-Admin-API-Key header.",
        )
