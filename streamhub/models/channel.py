"""
Channel and ChannelGroup data models.
Produced by the M3U parser, one per playable playlist entry.
"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional


UNCATEGORIZED = "Uncategorized"


class Channel(BaseModel):
    """One playable playlist entry."""
    model_config = ConfigDict(frozen=True)

    id: str  # Derived from name + url, stable across parses
    name: str = Field(min_length=1)
    url: str
    logo: Optional[str] = None
    group: Optional[str] = None
    tvg_id: Optional[str] = None
    tvg_name: Optional[str] = None
    tvg_logo: Optional[str] = None
    language: Optional[str] = None
    country: Optional[str] = None

    @property
    def group_name(self) -> str:
        """Group label, falling back to the Uncategorized bucket."""
        return self.group or UNCATEGORIZED


class ChannelGroup(BaseModel):
    """Channels sharing a group-title, in playlist order."""
    name: str
    channels: list[Channel] = Field(default_factory=list)
    count: int = 0
