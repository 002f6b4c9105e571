"""Authentication dependencies."""

import hmac
import logging

from fastapi import Depends, Header, HTTPException, status

from app.config import Settings, get_settings

logger = logging.getLogger(__name__)


async def require_admin_token(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Require ``Authorization: Bearer <ADMIN_TOKEN>``.

    Runs before the route body, so a rejected request never reaches storage.
    With no admin token configured every request is rejected.
    """
    expected = f"Bearer {settings.admin_token}" if settings.admin_token else None
    if (
        expected is None
        or authorization is None
        or not hmac.compare_digest(authorization.encode(), expected.encode())
    ):
        logger.warning("Rejected destructive request: invalid or missing token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized: Invalid or missing authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )
