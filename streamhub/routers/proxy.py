"""
CORS proxy endpoint for HLS streams.
Point STREAMHUB_PROXY_URL at this endpoint to route playback through the backend.
"""
from fastapi import APIRouter, Query, Request

from streamhub.config import get_settings
from streamhub.limits import limiter
from streamhub.services.stream_proxy import get_proxy_service

router = APIRouter(prefix="/api", tags=["proxy"])


@router.get("/proxy")
@limiter.limit(f"{get_settings().proxy_rate_limit_per_minute}/minute")
async def proxy_stream(request: Request, url: str = Query(..., description="Upstream manifest or segment URL")):
    """
    Relay an upstream manifest or segment.
    Manifests come back with every URI rewritten through this endpoint.
    """
    base_url = str(request.base_url).rstrip("/")
    return await get_proxy_service().proxy(url, base_url)
