"""
EPG (Electronic Program Guide) API endpoints.
"""
from datetime import datetime, timezone
from fastapi import APIRouter, Query, HTTPException
from pydantic import BaseModel
from typing import Optional

from streamhub.models.epg import Program
from streamhub.services.epg_parser import (
    format_program_duration,
    format_program_time,
    get_channel_programs,
    get_program_progress,
)
from streamhub.services.library import get_library

router = APIRouter(prefix="/api/epg", tags=["epg"])


class LoadEPGRequest(BaseModel):
    url: Optional[str] = None


def _program_view(program: Program, now: datetime) -> dict:
    return {
        **program.model_dump(),
        "start_label": format_program_time(program.start),
        "stop_label": format_program_time(program.stop),
        "duration": format_program_duration(program.start, program.stop),
        "progress": get_program_progress(program.start, program.stop, now=now),
    }


@router.post("/load")
async def load_epg(request: LoadEPGRequest):
    """
    Load an XMLTV guide.
    Defaults to the guide advertised in the current playlist's header.
    """
    library = get_library()
    url = request.url or (library.playlist.epg_url if library.playlist else None)
    if not url:
        raise HTTPException(status_code=400, detail="No EPG URL given and the playlist declares none")

    epg_data = await library.load_epg(url)
    if epg_data is None:
        raise HTTPException(status_code=502, detail=f"Failed to load EPG from {url}")

    return library.epg_stats()


@router.get("/stats")
async def get_epg_stats():
    """
    Get EPG statistics.
    """
    return get_library().epg_stats()


@router.get("/channel/{tvg_id}")
async def get_channel_epg(
    tvg_id: str,
    limit: int = Query(5, ge=0, le=100, description="Maximum upcoming programs"),
):
    """
    Get the current and upcoming programs for a guide channel.

    Note: Not all channels have EPG data; an unknown id yields an empty result.
    """
    now = datetime.now(timezone.utc)
    library = get_library()
    programs = get_channel_programs(library.epg, tvg_id, limit=limit, now=now)

    return {
        "channel": tvg_id,
        "current": _program_view(programs.current, now) if programs.current else None,
        "upcoming": [_program_view(p, now) for p in programs.upcoming],
        "count": len(programs.upcoming) + (1 if programs.current else 0),
    }


@router.get("/now/{tvg_id}")
async def get_now_playing(tvg_id: str):
    """
    Get the program airing now on a guide channel.
    """
    now = datetime.now(timezone.utc)
    now_playing = get_library().now_playing(tvg_id, now=now)
    if not now_playing:
        raise HTTPException(status_code=404, detail="Nothing airing on this channel")

    return {
        "timestamp": now.isoformat(),
        "channel": tvg_id,
        "program": _program_view(now_playing.program, now),
        "progress_percent": now_playing.progress_percent,
    }


@router.delete("/clear")
async def clear_epg():
    get_library().clear_epg()
    return {"success": True}
