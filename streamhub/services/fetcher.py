"""
Text retrieval for playlists and guide data.
"""
import httpx
import logging
from typing import Optional

from streamhub.config import get_settings

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 StreamHub"


class FetchError(Exception):
    """Retrieval failed: non-success HTTP status or transport error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def fetch_text(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
    timeout: Optional[float] = None,
) -> str:
    """
    Fetch a URL and return its body as text.

    Args:
        url: Resource to fetch
        client: Optional shared client (a temporary one is created otherwise)
        timeout: Request timeout in seconds, defaults to settings

    Raises:
        FetchError: on non-2xx status or transport failure
    """
    if client is None:
        timeout = timeout or get_settings().fetch_timeout_seconds
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as own_client:
            return await _get_text(own_client, url)
    return await _get_text(client, url)


async def _get_text(client: httpx.AsyncClient, url: str) -> str:
    logger.info(f"Fetching {url}")
    try:
        response = await client.get(url, headers={"User-Agent": USER_AGENT})
    except httpx.TimeoutException as e:
        raise FetchError(f"Request timed out: {url}") from e
    except httpx.HTTPError as e:
        raise FetchError(f"Network error: {e}") from e

    if response.is_error:
        raise FetchError(
            f"Failed to fetch: {response.status_code} {response.reason_phrase}",
            status_code=response.status_code,
        )
    return response.text


def read_text(data: bytes) -> str:
    """Decode uploaded file content as UTF-8, tolerating a BOM and bad bytes."""
    return data.decode("utf-8-sig", errors="replace")
