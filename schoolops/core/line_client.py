import logging
import httpx

from schoolops.core.config import settings

logger = logging.getLogger(__name__)


class LineApiError(Exception):
    def __init__(self, message: str, status_code: int | None = None, body: dict | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body or {}


def mask_user_id(line_user_id: str | None) -> str:
    if not line_user_id:
        return "<none>"
    return f"{line_user_id[:10]}..."


def _error_message(status_code: int, body: dict) -> str:
    upstream = body.get("message") or "Unknown error"
    if status_code == 400:
        if "Invalid user" in upstream:
            return "Invalid LINE user ID, or the user has not added the official account"
        return f"Invalid request: {upstream}"
    if status_code == 401:
        return "Channel access token is invalid"
    if status_code == 429:
        return "Monthly message quota exceeded"
    return f"LINE API error {status_code}: {upstream}"


def push_text(access_token: str, to: str, text: str) -> None:
    """
    Push a single text message to a LINE user.

    Raises:
        LineApiError: on any non-2xx answer or transport failure
    """
    payload = {
        "to": to,
        "messages": [{"type": "text", "text": text}],
    }
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }
    url = f"{settings.LINE_API_BASE_URL}/message/push"

    try:
        with httpx.Client(timeout=settings.LINE_TIMEOUT_SECONDS) as client:
            response = client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as e:
        logger.error("[LINE] Push to %s failed: %s", mask_user_id(to), e)
        raise LineApiError(f"Could not reach LINE API: {e}") from e

    if response.is_success:
        logger.info("[LINE] Message pushed to %s", mask_user_id(to))
        return

    try:
        body = response.json()
    except ValueError:
        body = {"message": response.text}

    message = _error_message(response.status_code, body)
    logger.error("[LINE] Push to %s rejected (%s): %s", mask_user_id(to), response.status_code, message)
    raise LineApiError(message, status_code=response.status_code, body=body)
