"""
Stream URL rewriting through a CORS proxy.
"""
import logging
import warnings
from typing import Optional
from urllib.parse import quote

from streamhub.config import get_settings

logger = logging.getLogger(__name__)

# Characters encodeURIComponent leaves untouched besides alphanumerics and -_.~
_URI_COMPONENT_SAFE = "!*'()"


class ProxyNotConfiguredWarning(UserWarning):
    """A stream URL was requested through the proxy but no proxy is configured."""


def proxy_url(url: str, force_proxy: bool = False, proxy_base: Optional[str] = None) -> str:
    """
    Wrap a stream URL with the CORS proxy.

    Args:
        url: Original stream URL
        force_proxy: Proxy even if the URL is not known to need it
        proxy_base: Proxy endpoint, defaults to the configured proxy_url

    Returns:
        "<proxy>?url=<encoded url>", or the original URL when no proxy is set
    """
    if not url:
        return url

    base = proxy_base if proxy_base is not None else get_proxy_url()
    if not base:
        message = "Proxy URL not configured. Streams may fail due to CORS."
        logger.warning(message)
        warnings.warn(message, ProxyNotConfiguredWarning, stacklevel=2)
        return url

    if not force_proxy and not needs_proxy(url):
        return url

    return f"{base}?url={quote(url, safe=_URI_COMPONENT_SAFE)}"


def needs_proxy(url: str) -> bool:
    """
    Check if a URL likely needs proxying.

    Every external URL is assumed to need it; there is no allow-list of
    CORS-friendly hosts.
    """
    return bool(url)


def is_proxy_configured() -> bool:
    return bool(get_proxy_url())


def get_proxy_url() -> str:
    return get_settings().proxy_url
