import logging
from fastapi import HTTPException, status

from schoolops.core.config import settings

logger = logging.getLogger(__name__)


def api_error(status_code: int, message: str, **extra) -> HTTPException:
    """HTTPException whose detail carries the {success, message} envelope."""
    detail = {"success": False, "message": message}
    detail.update(extra)
    return HTTPException(status_code=status_code, detail=detail)


def bad_request(message: str, **extra) -> HTTPException:
    return api_error(status.HTTP_400_BAD_REQUEST, message, **extra)


def not_found(message: str) -> HTTPException:
    return api_error(status.HTTP_404_NOT_FOUND, message)


def internal_error(message: str, exc: Exception) -> HTTPException:
    """500 with the underlying error exposed only in development."""
    if settings.is_development:
        return api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, message, error=str(exc))
    return api_error(status.HTTP_500_INTERNAL_SERVER_ERROR, message)


def is_unique_violation(exc: Exception) -> bool:
    # postgrest APIError carries the Postgres SQLSTATE in .code
    return getattr(exc, "code", None) == "23505"
