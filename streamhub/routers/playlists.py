"""
Playlist loading and registry API endpoints.
"""
import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, HTTPException
from pydantic import BaseModel, Field

from streamhub.config import get_settings
from streamhub.models.playlist import Playlist, PlaylistParseResult
from streamhub.services.library import get_library
from streamhub.services.m3u_parser import is_valid_url
from streamhub.services.store import get_store
from streamhub.services.user_data import PlaylistRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/playlists", tags=["playlists"])


class LoadPlaylistRequest(BaseModel):
    url: str
    name: Optional[str] = None


class UploadPlaylistRequest(BaseModel):
    content: str = Field(..., description="Raw M3U text")
    name: Optional[str] = None


def _raise_for_failure(result: PlaylistParseResult):
    # Retrieval failures are the upstream's fault, parse failures the input's
    status_code = 502 if result.error_type == "fetch" else 400
    raise HTTPException(status_code=status_code, detail=result.error)


def summarize(playlist: Playlist) -> dict:
    return {
        "name": playlist.name,
        "source": playlist.source,
        "source_url": playlist.source_url,
        "epg_url": playlist.epg_url,
        "total_count": playlist.total_count,
        "loaded_at": playlist.loaded_at.isoformat(),
        "groups": [{"name": g.name, "count": g.count} for g in playlist.groups],
    }


def _schedule_epg(playlist: Playlist, background_tasks: BackgroundTasks):
    """Load the playlist's guide after the response is sent."""
    if get_settings().autoload_epg and playlist.epg_url:
        logger.info(f"Scheduling EPG load from {playlist.epg_url}")
        background_tasks.add_task(get_library().load_epg, playlist.epg_url)


async def _registry() -> PlaylistRegistry:
    return PlaylistRegistry(await get_store())


@router.post("/load")
async def load_playlist(request: LoadPlaylistRequest, background_tasks: BackgroundTasks):
    """
    Fetch and parse a playlist from a URL, making it the current playlist.

    - 400: the content is not a usable M3U playlist
    - 502: the URL could not be retrieved
    """
    if not is_valid_url(request.url):
        raise HTTPException(status_code=400, detail="Unsupported playlist URL")

    result = await get_library().load_playlist_url(request.url, name=request.name)
    if not result.success:
        _raise_for_failure(result)

    playlist = result.playlist
    stored = await (await _registry()).add(playlist, request.url)
    _schedule_epg(playlist, background_tasks)

    return {"playlist": summarize(playlist), "stored": stored}


@router.post("/upload")
async def upload_playlist(request: UploadPlaylistRequest, background_tasks: BackgroundTasks):
    """Parse playlist text supplied by the client."""
    result = get_library().load_playlist_content(request.content, name=request.name)
    if not result.success:
        _raise_for_failure(result)

    stored = await (await _registry()).add(result.playlist, "file")
    _schedule_epg(result.playlist, background_tasks)

    return {"playlist": summarize(result.playlist), "stored": stored}


@router.get("/current")
async def get_current_playlist():
    playlist = get_library().playlist
    if not playlist:
        raise HTTPException(status_code=404, detail="No playlist loaded")
    return summarize(playlist)


@router.get("")
async def list_playlists():
    """Registered playlists and the active one."""
    registry = await _registry()
    playlists = await registry.all()
    return {
        "playlists": playlists,
        "active_id": await registry.get_active_id(),
        "count": len(playlists),
    }


@router.post("/{playlist_id}/activate")
async def activate_playlist(playlist_id: str, background_tasks: BackgroundTasks):
    """
    Re-fetch a registered URL playlist and make it active.

    - 404: unknown playlist id
    - 409: uploaded playlists keep no content to reload; upload them again
    """
    registry = await _registry()
    stored = await registry.get(playlist_id)
    if stored is None:
        raise HTTPException(status_code=404, detail="Playlist not found")
    if not is_valid_url(stored.source):
        raise HTTPException(status_code=409, detail="Uploaded playlists cannot be reloaded")

    result = await get_library().load_playlist_url(stored.source, name=stored.name)
    if not result.success:
        _raise_for_failure(result)
    stored = await registry.set_active(playlist_id)
    _schedule_epg(result.playlist, background_tasks)

    return {"stored": stored, "playlist": summarize(result.playlist)}


@router.delete("/{playlist_id}")
async def remove_playlist(playlist_id: str):
    removed = await (await _registry()).remove(playlist_id)
    if not removed:
        raise HTTPException(status_code=404, detail="Playlist not found")
    return {"success": True, "id": playlist_id}
