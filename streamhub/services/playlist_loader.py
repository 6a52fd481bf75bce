"""
Playlist loading from a URL or from uploaded file content.
"""
import httpx
import logging
from typing import Optional

from streamhub.models.playlist import PlaylistParseResult
from streamhub.services.fetcher import FetchError, fetch_text, read_text
from streamhub.services.m3u_parser import parse_m3u

logger = logging.getLogger(__name__)


async def parse_m3u_from_url(
    url: str,
    client: Optional[httpx.AsyncClient] = None,
) -> PlaylistParseResult:
    """Fetch and parse a playlist; retrieval failures never reach the parser."""
    try:
        content = await fetch_text(url, client=client)
    except FetchError as e:
        logger.error(f"Failed to fetch playlist {url}: {e.message}")
        return PlaylistParseResult(
            success=False,
            error=f"Failed to fetch playlist: {e.message}",
            error_type="fetch",
        )

    result = parse_m3u(content)
    if result.success and result.playlist:
        result.playlist.source = "url"
        result.playlist.source_url = url
    return result


def parse_m3u_from_file(content: str | bytes, name: Optional[str] = None) -> PlaylistParseResult:
    """Parse playlist content read from a local or uploaded file."""
    if isinstance(content, bytes):
        content = read_text(content)

    result = parse_m3u(content)
    if result.success and result.playlist:
        result.playlist.source = "file"
        result.playlist.name = name
    return result
