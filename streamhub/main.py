"""
StreamHub - FastAPI Backend

IPTV playlist and guide ingestion with a server-side HLS streaming session.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from streamhub.config import get_settings
from streamhub.limits import limiter
from streamhub.services.library import get_library
from streamhub.services.player import get_player
from streamhub.services.store import get_store
from streamhub.routers import channels, epg, player, playlists, proxy, user

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown events."""
    logger.info("Starting StreamHub backend...")

    await get_store()
    logger.info("Store initialized")

    if settings.autoload_default_playlist and settings.default_playlist_url:
        library = get_library()
        result = await library.load_playlist_url(settings.default_playlist_url)
        if not result.success:
            logger.warning(f"Default playlist unavailable: {result.error}")
        elif settings.autoload_epg and result.playlist.epg_url:
            await library.load_epg(result.playlist.epg_url)

    yield

    get_player().destroy()
    logger.info("Shutting down StreamHub backend...")


# Create FastAPI app
settings = get_settings()
if settings.debug:
    logging.getLogger().setLevel(logging.DEBUG)

app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="IPTV playlist, guide and HLS streaming backend",
    lifespan=lifespan
)

# Add rate limiter
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(playlists.router)
app.include_router(channels.router)
app.include_router(epg.router)
app.include_router(player.router)
app.include_router(user.router)
app.include_router(proxy.router)


# API endpoints
@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    library = get_library()
    return {
        "status": "healthy",
        "version": settings.app_version,
        "playlist_loaded": library.playlist is not None,
        "epg_loaded": library.epg is not None,
        "player_phase": get_player().state.phase,
    }


# Error handlers
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "streamhub.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug
    )
