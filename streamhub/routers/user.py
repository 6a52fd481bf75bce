"""
User data API endpoints.
Handles favorites and preferences.
"""
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ValidationError

from streamhub.models.user import PreferencesUpdate
from streamhub.services.library import get_library
from streamhub.services.store import get_store
from streamhub.services.user_data import FavoritesRepository, PreferencesRepository

router = APIRouter(prefix="/api/user", tags=["user"])


class FavoriteRequest(BaseModel):
    channel_id: str


async def _favorites() -> FavoritesRepository:
    return FavoritesRepository(await get_store())


async def _preferences() -> PreferencesRepository:
    return PreferencesRepository(await get_store())


# Favorites endpoints
@router.get("/favorites")
async def get_favorites():
    """Get favorite channels."""
    channel_ids = await (await _favorites()).all()

    # Resolve against the current playlist; ids from other playlists stay listed
    library = get_library()
    channels = []
    for channel_id in channel_ids:
        channel = library.find_channel(channel_id)
        if channel:
            channels.append(channel)

    return {
        "favorites": channel_ids,
        "channels": channels,
        "count": len(channel_ids),
    }


@router.post("/favorites")
async def add_favorite(request: FavoriteRequest):
    """Add a channel to favorites."""
    added = await (await _favorites()).add(request.channel_id)
    return {"success": added, "channel_id": request.channel_id}


@router.delete("/favorites")
async def clear_favorites():
    await (await _favorites()).clear()
    return {"success": True}


@router.delete("/favorites/{channel_id}")
async def remove_favorite(channel_id: str):
    """Remove a channel from favorites."""
    removed = await (await _favorites()).remove(channel_id)
    return {"success": removed, "channel_id": channel_id}


@router.post("/favorites/{channel_id}/toggle")
async def toggle_favorite(channel_id: str):
    is_fav = await (await _favorites()).toggle(channel_id)
    return {"is_favorite": is_fav, "channel_id": channel_id}


@router.get("/favorites/{channel_id}/check")
async def check_favorite(channel_id: str):
    """Check if a channel is in favorites."""
    is_fav = await (await _favorites()).is_favorite(channel_id)
    return {"is_favorite": is_fav, "channel_id": channel_id}


# Preferences endpoints
@router.get("/preferences")
async def get_preferences():
    return await (await _preferences()).get()


@router.patch("/preferences")
async def update_preferences(request: PreferencesUpdate):
    """Update only the fields present in the request body."""
    changes = request.model_dump(exclude_unset=True)
    try:
        return await (await _preferences()).update(**changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.delete("/preferences")
async def reset_preferences():
    return await (await _preferences()).reset()
