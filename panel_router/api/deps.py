import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status

from ..config import Settings, get_settings
from ..tokens import SurveyTokenCodec

logger = logging.getLogger(__name__)


def get_token_codec(settings: Settings = Depends(get_settings)) -> SurveyTokenCodec:
    return SurveyTokenCodec.from_settings(settings)


async def verify_admin_token(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    if not authorization:
        logger.info("Admin access denied: no Authorization header.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or token != settings.admin_token:
        logger.info("Admin access denied: invalid token.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid admin token",
            headers={"WWW-Authenticate": "Bearer"},
        )
