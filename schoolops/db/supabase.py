import logging
from threading import Lock
from typing import Optional

from supabase import create_client, Client
from schoolops.core.config import settings

logger = logging.getLogger(__name__)

_lock = Lock()
_client: Optional[Client] = None


def create_supabase_client() -> Client:
    """
    Create and validate Supabase client connection.

    Returns:
        Client: Configured Supabase client

    Raises:
        RuntimeError: If connection validation fails
    """
    try:
        # Service role key: the API runs server-side and bypasses RLS
        client: Client = create_client(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_KEY)

        # Validate connection by attempting a simple query
        client.table("classes").select("id").limit(1).execute()
        logger.info("Supabase connection validated successfully")

        return client

    except Exception as e:
        error_msg = f"Failed to connect to Supabase: {str(e)}"
        logger.error(error_msg)
        raise RuntimeError(error_msg)


def get_supabase() -> Client:
    """Get the process-wide Supabase client, creating it on first use."""
    global _client
    if _client is None:
        with _lock:
            if _client is None:
                _client = create_supabase_client()
    return _client
