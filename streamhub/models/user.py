"""
User data models persisted in the key-value store.
"""
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class Preferences(BaseModel):
    """Browsing and playback preferences."""
    model_config = ConfigDict(extra="forbid")

    default_language: str = "All"
    items_per_page: int = Field(default=120, ge=1, le=1000)
    view_mode: Literal["grid", "list"] = "grid"
    auto_play: bool = True
    default_volume: float = Field(default=0.8, ge=0.0, le=1.0)
    show_favorites_first: bool = False
    remember_last_channel: bool = False
    last_channel_id: Optional[str] = None
    last_playlist_url: Optional[str] = None


class PreferencesUpdate(BaseModel):
    """Partial preferences update; only fields that are set are applied."""
    model_config = ConfigDict(extra="forbid")

    default_language: Optional[str] = None
    items_per_page: Optional[int] = Field(default=None, ge=1, le=1000)
    view_mode: Optional[Literal["grid", "list"]] = None
    auto_play: Optional[bool] = None
    default_volume: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    show_favorites_first: Optional[bool] = None
    remember_last_channel: Optional[bool] = None
    last_channel_id: Optional[str] = None
    last_playlist_url: Optional[str] = None
