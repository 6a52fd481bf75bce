"""
User data repositories: favorites, preferences and the playlist registry.
All state lives in the key-value store as JSON documents.
"""
import logging
import time
from typing import Optional

from streamhub.models.playlist import Playlist, StoredPlaylist
from streamhub.models.user import Preferences
from streamhub.services.store import KeyValueStore

logger = logging.getLogger(__name__)

FAVORITES_KEY = "streamhub-favorites"
PREFERENCES_KEY = "streamhub-preferences"
PLAYLISTS_KEY = "streamhub-playlists"
ACTIVE_PLAYLIST_KEY = "streamhub-active-playlist"


class FavoritesRepository:
    """Favorite channel ids in insertion order, without duplicates."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def all(self) -> list[str]:
        return await self.store.get(FAVORITES_KEY, [])

    async def is_favorite(self, channel_id: str) -> bool:
        return channel_id in await self.all()

    async def add(self, channel_id: str) -> bool:
        """Add a channel. Returns False if it was already a favorite."""
        favorites = await self.all()
        if channel_id in favorites:
            return False
        favorites.append(channel_id)
        await self.store.set(FAVORITES_KEY, favorites)
        return True

    async def remove(self, channel_id: str) -> bool:
        favorites = await self.all()
        if channel_id not in favorites:
            return False
        await self.store.set(FAVORITES_KEY, [f for f in favorites if f != channel_id])
        return True

    async def toggle(self, channel_id: str) -> bool:
        """Flip favorite status. Returns the new status."""
        if await self.remove(channel_id):
            return False
        await self.add(channel_id)
        return True

    async def clear(self):
        await self.store.set(FAVORITES_KEY, [])


class PreferencesRepository:
    def __init__(self, store: KeyValueStore):
        self.store = store

    async def get(self) -> Preferences:
        """Stored preferences merged over the defaults."""
        stored = await self.store.get(PREFERENCES_KEY, {})
        defaults = Preferences().model_dump()
        # Ignore keys written by older versions
        known = {k: v for k, v in stored.items() if k in defaults}
        return Preferences.model_validate({**defaults, **known})

    async def update(self, **changes) -> Preferences:
        """
        Apply a partial update.

        Raises:
            pydantic.ValidationError: unknown key or invalid value
        """
        current = await self.get()
        updated = Preferences.model_validate({**current.model_dump(), **changes})
        await self.store.set(PREFERENCES_KEY, updated.model_dump())
        return updated

    async def reset(self) -> Preferences:
        await self.store.delete(PREFERENCES_KEY)
        return Preferences()


class PlaylistRegistry:
    """Previously loaded playlists and the currently active one."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def all(self) -> list[StoredPlaylist]:
        entries = await self.store.get(PLAYLISTS_KEY, [])
        return [StoredPlaylist.model_validate(entry) for entry in entries]

    async def get(self, playlist_id: str) -> Optional[StoredPlaylist]:
        return next((p for p in await self.all() if p.id == playlist_id), None)

    async def add(self, playlist: Playlist, source: str) -> StoredPlaylist:
        """Register a loaded playlist and make it the active one."""
        playlists = await self.all()
        added_at = int(time.time() * 1000)

        # Ids are creation timestamps; bump on same-millisecond collisions
        taken = {p.id for p in playlists}
        playlist_id = added_at
        while str(playlist_id) in taken:
            playlist_id += 1

        stored = StoredPlaylist(
            id=str(playlist_id),
            name=playlist.name or "Unnamed Playlist",
            source=source,
            added_at=added_at,
            channel_count=len(playlist.channels),
        )
        playlists.append(stored)
        await self._save(playlists)
        await self.store.set(ACTIVE_PLAYLIST_KEY, stored.id)
        logger.info(f"Registered playlist {stored.id} ({stored.channel_count} channels)")
        return stored

    async def remove(self, playlist_id: str) -> bool:
        playlists = await self.all()
        remaining = [p for p in playlists if p.id != playlist_id]
        if len(remaining) == len(playlists):
            return False
        await self._save(remaining)
        if await self.get_active_id() == playlist_id:
            await self.store.delete(ACTIVE_PLAYLIST_KEY)
        return True

    async def set_active(self, playlist_id: str) -> StoredPlaylist:
        """
        Mark a registered playlist as active.

        Raises:
            KeyError: no playlist with that id
        """
        stored = await self.get(playlist_id)
        if stored is None:
            raise KeyError(playlist_id)
        await self.store.set(ACTIVE_PLAYLIST_KEY, playlist_id)
        return stored

    async def get_active_id(self) -> Optional[str]:
        return await self.store.get(ACTIVE_PLAYLIST_KEY)

    async def _save(self, playlists: list[StoredPlaylist]):
        await self.store.set(PLAYLISTS_KEY, [p.model_dump() for p in playlists])
