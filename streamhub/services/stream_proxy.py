"""
HLS stream proxy service.
Fetches upstream manifests and segments so browsers can play streams that
lack CORS headers. Manifests are rewritten so every nested URI comes back
through the proxy.
"""
import asyncio
import httpx
import ipaddress
import logging
import re
import socket
from typing import Optional
from urllib.parse import urljoin

from fastapi import HTTPException
from fastapi.responses import Response

from streamhub.services.fetcher import USER_AGENT
from streamhub.services.proxy import proxy_url

logger = logging.getLogger(__name__)

URI_ATTRIBUTE_PATTERN = re.compile(r'URI="([^"]+)"')
PROXYABLE_PROTOCOLS = ("http://", "https://")
MAX_REDIRECTS = 5


async def resolve_host(host: str) -> list[str]:
    """Addresses a hostname resolves to."""
    infos = await asyncio.get_running_loop().getaddrinfo(host, None, type=socket.SOCK_STREAM)
    return [info[4][0] for info in infos]


def is_public_address(address: str) -> bool:
    ip = ipaddress.ip_address(address)
    if ip.version == 6 and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return ip.is_global and not ip.is_multicast


async def check_upstream_host(url: str):
    """
    Refuse upstreams on loopback, private, link-local or reserved addresses.

    Hostnames are resolved first; a host that does not resolve is left for
    the fetch itself to fail.
    """
    host = httpx.URL(url).host
    if not host:
        raise HTTPException(status_code=400, detail="Upstream URL has no host")

    try:
        addresses = [str(ipaddress.ip_address(host))]
    except ValueError:
        try:
            addresses = await resolve_host(host)
        except socket.gaierror as e:
            logger.debug(f"Could not resolve {host}: {e}")
            return

    for address in addresses:
        if not is_public_address(address):
            logger.warning(f"Refusing to proxy {url}: {host} resolves to {address}")
            raise HTTPException(status_code=400, detail="Upstream host is not publicly routable")


class StreamProxyService:
    """Service to proxy HLS manifests and segments."""

    # Timeout for stream requests
    CONNECT_TIMEOUT = 15.0
    READ_TIMEOUT = 30.0

    MANIFEST_TYPES = ["application/vnd.apple.mpegurl", "application/x-mpegurl", "audio/mpegurl"]

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client

    async def proxy(self, url: str, base_url: str, max_retries: int = 2) -> Response:
        """
        Fetch ``url`` and relay it.

        base_url is our API base, used to rewrite manifest URIs. Timeouts and
        5xx responses are retried with exponential backoff.
        """
        if not url.lower().startswith(PROXYABLE_PROTOCOLS):
            raise HTTPException(status_code=400, detail="Only http(s) URLs can be proxied")

        for attempt in range(max_retries + 1):
            try:
                response = await self._get(url)
                response.raise_for_status()
            except httpx.TimeoutException:
                if attempt < max_retries:
                    wait_time = (2 ** attempt) * 0.5  # 0.5s, 1s, 2s...
                    logger.warning(f"Proxy timeout for {url}, retry {attempt + 1}/{max_retries} in {wait_time}s")
                    await asyncio.sleep(wait_time)
                    continue
                raise HTTPException(status_code=504, detail="Stream timed out after retries")
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                # Retry on 5xx errors only
                if 500 <= status < 600 and attempt < max_retries:
                    wait_time = (2 ** attempt) * 0.5
                    logger.warning(f"Upstream error {status} for {url}, retry {attempt + 1}/{max_retries}")
                    await asyncio.sleep(wait_time)
                    continue
                if status == 404:
                    raise HTTPException(status_code=404, detail="Stream not found upstream")
                raise HTTPException(status_code=502, detail=f"Upstream error: {status}")
            except httpx.HTTPError as e:
                logger.error(f"Proxy request failed for {url}: {e}")
                raise HTTPException(status_code=502, detail="Failed to reach upstream")

            return self._relay(url, response, base_url)

        raise HTTPException(status_code=502, detail="Failed to proxy stream")

    async def _get(self, url: str) -> httpx.Response:
        if self.client is not None:
            return await self._follow(self.client, url)
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.CONNECT_TIMEOUT, read=self.READ_TIMEOUT),
        ) as client:
            return await self._follow(client, url)

    async def _follow(self, client: httpx.AsyncClient, url: str) -> httpx.Response:
        # Redirects are followed by hand so every hop passes the host check
        headers = {"User-Agent": USER_AGENT}
        for _ in range(MAX_REDIRECTS + 1):
            await check_upstream_host(url)
            response = await client.get(url, headers=headers, follow_redirects=False)
            if not response.is_redirect:
                return response
            url = str(response.url.join(response.headers["location"]))
        raise HTTPException(status_code=502, detail="Too many redirects upstream")

    def _relay(self, url: str, response: httpx.Response, base_url: str) -> Response:
        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()

        if self.is_manifest(url, content_type, response.content):
            # Use final URL after redirects for resolving relative paths
            final_url = str(response.url)
            rewritten = self.rewrite_manifest(response.text, final_url, base_url)
            return Response(
                content=rewritten,
                media_type="application/vnd.apple.mpegurl",
                headers={
                    "Access-Control-Allow-Origin": "*",
                    "Cache-Control": "no-cache, no-store, must-revalidate",
                },
            )

        return Response(
            content=response.content,
            media_type=content_type or "application/octet-stream",
            headers={
                "Access-Control-Allow-Origin": "*",
                "Cache-Control": "max-age=3600",
            },
        )

    def is_manifest(self, url: str, content_type: str, body: bytes) -> bool:
        if content_type in self.MANIFEST_TYPES:
            return True
        if url.split("?", 1)[0].lower().endswith(".m3u8"):
            return True
        return body.lstrip()[:7] == b"#EXTM3U"

    def rewrite_manifest(self, content: str, original_url: str, base_url: str) -> str:
        """Rewrite every URI in a manifest to go through our proxy endpoint."""
        endpoint = f"{base_url}/api/proxy"
        rewritten_lines = []

        for line in content.replace("\r\n", "\n").split("\n"):
            line = line.strip()
            if not line:
                rewritten_lines.append(line)
            elif line.startswith("#"):
                # URI= attributes in #EXT-X-KEY, #EXT-X-MEDIA, #EXT-X-MAP and similar
                rewritten_lines.append(URI_ATTRIBUTE_PATTERN.sub(
                    lambda m: f'URI="{self._proxied(m.group(1), original_url, endpoint)}"',
                    line,
                ))
            else:
                rewritten_lines.append(self._proxied(line, original_url, endpoint))

        return "\n".join(rewritten_lines)

    def _proxied(self, uri: str, original_url: str, endpoint: str) -> str:
        return proxy_url(urljoin(original_url, uri), force_proxy=True, proxy_base=endpoint)


# Singleton
_proxy_service: Optional[StreamProxyService] = None


def get_proxy_service() -> StreamProxyService:
    """Get or create proxy service singleton."""
    global _proxy_service
    if _proxy_service is None:
        _proxy_service = StreamProxyService()
    return _proxy_service
