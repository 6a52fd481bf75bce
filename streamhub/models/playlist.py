"""
Playlist data models.
"""
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

from streamhub.models.channel import Channel, ChannelGroup


class Playlist(BaseModel):
    """Result of a successful playlist parse."""
    channels: list[Channel] = Field(min_length=1)
    groups: list[ChannelGroup]
    total_count: int = Field(gt=0)
    loaded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: Literal["url", "file"] = "file"
    source_url: Optional[str] = None
    name: Optional[str] = None
    epg_url: Optional[str] = None


class PlaylistParseResult(BaseModel):
    """Success/failure wrapper returned by the playlist loaders."""
    success: bool
    playlist: Optional[Playlist] = None
    error: Optional[str] = None
    # "parse" for structural playlist errors, "fetch" for retrieval errors
    error_type: Optional[Literal["parse", "fetch"]] = None


class StoredPlaylist(BaseModel):
    """Playlist registry entry persisted in the key-value store."""
    id: str
    name: str
    source: str
    added_at: int  # epoch milliseconds
    channel_count: int
