"""
Streaming session data models.
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


AUTO_QUALITY = -1


class PlaybackPhase(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class ErrorKind(str, Enum):
    NETWORK = "network"          # retryable, reloads the manifest
    MEDIA = "media"              # retryable, soft media pipeline reset
    FATAL = "fatal"              # terminal, needs a new load_stream()
    AUTOPLAY = "autoplay"        # non-fatal, auto-play refused
    PLAYBACK = "playback"        # non-fatal, explicit play() refused
    UNSUPPORTED = "unsupported"  # no playback path on this surface


class QualityLevel(BaseModel):
    """One rendition offered by the loaded manifest."""
    index: int
    height: int = 0
    width: int = 0
    bitrate: int = 0
    name: str

    @classmethod
    def from_level(cls, index: int, height: int, width: int, bitrate: int) -> "QualityLevel":
        if height:
            name = f"{height}p"
        elif bitrate:
            name = f"{round(bitrate / 1000)} kbps"
        else:
            name = "Auto"
        return cls(index=index, height=height, width=width, bitrate=bitrate, name=name)


class PlayerState(BaseModel):
    """Observable snapshot of the streaming session."""
    phase: PlaybackPhase = PlaybackPhase.IDLE
    url: Optional[str] = None
    is_loading: bool = False
    is_playing: bool = False
    is_muted: bool = False
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    current_quality: int = AUTO_QUALITY
    quality_levels: list[QualityLevel] = Field(default_factory=list)
