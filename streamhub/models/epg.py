"""
EPG (Electronic Program Guide) data models.
"""
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr
from datetime import datetime, timezone
from typing import Optional


class Program(BaseModel):
    """TV program/show model from XMLTV data."""
    model_config = ConfigDict(frozen=True)

    channel: str  # XMLTV channel key, matches Channel.tvg_id
    title: str
    start: datetime
    stop: datetime
    description: Optional[str] = None
    sub_title: Optional[str] = None
    category: Optional[str] = None
    icon: Optional[str] = None
    rating: Optional[str] = None
    episode: Optional[str] = None
    season: Optional[str] = None

    @property
    def duration_minutes(self) -> int:
        """Calculate program duration in minutes."""
        return int((self.stop - self.start).total_seconds() / 60)

    def is_airing(self, now: Optional[datetime] = None) -> bool:
        """Check if program is on air at ``now`` (half-open interval)."""
        now = now or datetime.now(timezone.utc)
        return self.start <= now < self.stop


class EPGData(BaseModel):
    """All programs parsed from one XMLTV source."""
    programs: list[Program] = Field(default_factory=list)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_url: Optional[str] = None

    _by_channel: Optional[dict[str, list[Program]]] = PrivateAttr(default=None)

    def for_channel(self, channel_key: str) -> list[Program]:
        """Programs on one channel sorted by start, indexed once per snapshot."""
        if self._by_channel is None:
            index: dict[str, list[Program]] = {}
            for program in self.programs:
                index.setdefault(program.channel, []).append(program)
            for programs in index.values():
                programs.sort(key=lambda p: p.start)
            self._by_channel = index
        return self._by_channel.get(channel_key, [])

    @property
    def channel_keys(self) -> set[str]:
        return {p.channel for p in self.programs}


class ChannelPrograms(BaseModel):
    """What is airing now and next on one channel."""
    current: Optional[Program] = None
    upcoming: list[Program] = Field(default_factory=list)


class NowPlaying(BaseModel):
    """Currently airing program with its progress."""
    channel: str
    program: Program
    progress_percent: int
