"""
Streaming session API endpoints.
Drives the server-side player; every endpoint returns the resulting state.
"""
import asyncio
import logging
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel
from typing import Optional

from streamhub.models.player import ErrorKind, PlaybackPhase
from streamhub.services.library import get_library
from streamhub.services.player import TERMINAL_ERRORS, get_player
from streamhub.services.store import get_store
from streamhub.services.user_data import PreferencesRepository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/player", tags=["player"])


class LoadStreamRequest(BaseModel):
    url: Optional[str] = None
    channel_id: Optional[str] = None


class MuteRequest(BaseModel):
    muted: Optional[bool] = None  # None toggles


class QualityRequest(BaseModel):
    index: int  # -1 for automatic selection


@router.get("/state")
async def get_state():
    return get_player().state


@router.post("/load")
async def load_stream(
    request: LoadStreamRequest,
    wait: bool = Query(False, description="Wait until the stream is ready or failed"),
    timeout: float = Query(10.0, gt=0, le=60),
):
    """
    Start a streaming session for a URL or for a channel of the current playlist.
    Any previous session is torn down first.
    """
    url = request.url
    if request.channel_id:
        channel = get_library().find_channel(request.channel_id)
        if not channel:
            raise HTTPException(status_code=404, detail="Channel not found")
        url = channel.url

        preferences = PreferencesRepository(await get_store())
        if (await preferences.get()).remember_last_channel:
            await preferences.update(last_channel_id=channel.id)

    if not url:
        raise HTTPException(status_code=400, detail="Either url or channel_id is required")

    player = get_player()
    player.load_stream(url)

    if wait:
        try:
            return await player.wait_until_settled(timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Stream {url} still loading after {timeout}s")
    return player.state


@router.post("/play")
async def play():
    player = get_player()
    await player.play()
    state = player.state
    if state.error_kind == ErrorKind.PLAYBACK or state.error_kind in TERMINAL_ERRORS:
        raise HTTPException(status_code=409, detail=state.error)
    return state


@router.post("/pause")
async def pause():
    player = get_player()
    player.pause()
    return player.state


@router.post("/toggle")
async def toggle_play():
    player = get_player()
    await player.toggle_play()
    return player.state


@router.post("/mute")
async def set_muted(request: MuteRequest):
    player = get_player()
    if request.muted is None:
        player.toggle_mute()
    else:
        player.set_muted(request.muted)
    return player.state


@router.put("/quality")
async def set_quality(request: QualityRequest):
    """Pin a quality level by index, or -1 to return to automatic selection."""
    player = get_player()
    if player.state.phase != PlaybackPhase.READY:
        raise HTTPException(status_code=409, detail="No stream is ready")
    try:
        player.set_quality(request.index)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return player.state


@router.delete("")
async def stop():
    """Tear down the current session."""
    player = get_player()
    player.destroy()
    return player.state
