"""
Channel browsing API endpoints.
Channels come from the currently loaded playlist.
"""
from fastapi import APIRouter, Query, HTTPException
from typing import Optional

from streamhub.config import get_settings
from streamhub.services.channel_filter import (
    extract_language,
    filter_channels,
    list_languages,
    paginate,
)
from streamhub.services.library import get_library
from streamhub.services.store import get_store
from streamhub.services.user_data import FavoritesRepository

router = APIRouter(prefix="/api", tags=["channels"])


@router.get("/channels")
async def list_channels(
    search: Optional[str] = Query(None, description="Search in channel names and groups"),
    group: Optional[str] = Query(None, description="Exact group name"),
    language: Optional[str] = Query(None, description="Language label, 'All' for no filter"),
    favorites_only: bool = Query(False, description="Only show favorite channels"),
    favorites_first: bool = Query(False, description="List favorites before other channels"),
    include_epg: bool = Query(False, description="Include now playing info from EPG"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: Optional[int] = Query(None, ge=1, le=1000, description="Results per page"),
):
    """
    List channels of the current playlist with filtering and pagination.

    - **search**: Case-insensitive match on channel name or group
    - **group**: Group name from /api/groups
    - **language**: Language from /api/languages
    - **include_epg**: Include "now playing" info from the loaded guide
    """
    library = get_library()
    per_page = per_page or get_settings().items_per_page

    if not library.playlist:
        return {
            "channels": [],
            "total": 0,
            "page": page,
            "per_page": per_page,
            "total_pages": 0,
            "has_more": False,
            "epg_count": 0,
        }

    favorites = await FavoritesRepository(await get_store()).all()
    channels = filter_channels(
        library.playlist.channels,
        search=search,
        group=group,
        language=language,
        favorites=favorites,
        favorites_only=favorites_only,
        favorites_first=favorites_first,
    )
    result = paginate(channels, page=page, per_page=per_page)

    items = []
    epg_count = 0
    for channel in result.items:
        item = channel.model_dump()
        item["language_label"] = extract_language(channel)
        item["is_favorite"] = channel.id in favorites
        if include_epg and channel.tvg_id:
            now_playing = library.now_playing(channel.tvg_id)
            if now_playing:
                item["now_playing"] = now_playing
                epg_count += 1
        items.append(item)

    return {
        "channels": items,
        "total": result.total,
        "page": result.page,
        "per_page": result.per_page,
        "total_pages": result.total_pages,
        "has_more": result.has_more,
        "epg_count": epg_count,
    }


@router.get("/channels/{channel_id}")
async def get_channel(channel_id: str):
    """
    Get channel details with its guide entries.
    """
    library = get_library()
    channel = library.find_channel(channel_id)

    if not channel:
        raise HTTPException(status_code=404, detail="Channel not found")

    favorites = FavoritesRepository(await get_store())

    return {
        **channel.model_dump(),
        "language_label": extract_language(channel),
        "is_favorite": await favorites.is_favorite(channel_id),
        "programs": library.programs_for(channel),
    }


@router.get("/groups")
async def list_groups():
    """
    Get channel groups of the current playlist, ordered by name.
    """
    playlist = get_library().playlist
    groups = playlist.groups if playlist else []
    return {
        "groups": [{"name": g.name, "count": g.count} for g in groups],
        "count": len(groups),
    }


@router.get("/languages")
async def get_languages():
    playlist = get_library().playlist
    languages = list_languages(playlist.channels) if playlist else []
    return {"languages": languages, "count": len(languages)}
