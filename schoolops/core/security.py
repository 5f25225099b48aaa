import logging
import secrets
from typing import Optional

from fastapi import HTTPException, status, Query
from schoolops.core.config import settings

logger = logging.getLogger(__name__)


def verify_cron_secret(secret: Optional[str] = Query(None, description="Shared cron secret")) -> None:
    """
    Reject scheduler calls whose ?secret= does not match CRON_SECRET.

    Raises:
        HTTPException: 401 when the secret is not configured, missing or wrong
    """
    cron_secret = settings.CRON_SECRET

    if not cron_secret:
        logger.error("[Cron] CRON_SECRET not configured")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not secret:
        logger.error("[Cron] No secret parameter provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    if not secrets.compare_digest(secret.encode(), cron_secret.encode()):
        logger.error("[Cron] Invalid secret provided")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    logger.info("[Cron] Authorization successful")
