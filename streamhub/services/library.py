"""
Library service.
Holds the currently loaded playlist and guide snapshots. Each load replaces
a snapshot by reference; snapshots are never mutated in place.
"""
import logging
from datetime import datetime
from typing import Optional

import httpx

from streamhub.models.channel import Channel
from streamhub.models.epg import ChannelPrograms, EPGData, NowPlaying
from streamhub.models.playlist import Playlist, PlaylistParseResult
from streamhub.services.epg_parser import fetch_epg, get_channel_programs, get_program_progress
from streamhub.services.playlist_loader import parse_m3u_from_file, parse_m3u_from_url

logger = logging.getLogger(__name__)


class LibraryService:
    """Current playlist and EPG for the running server."""

    def __init__(self, client: Optional[httpx.AsyncClient] = None):
        self.client = client
        self.playlist: Optional[Playlist] = None
        self.epg: Optional[EPGData] = None

    async def load_playlist_url(self, url: str, name: Optional[str] = None) -> PlaylistParseResult:
        result = await parse_m3u_from_url(url, client=self.client)
        if result.success:
            if name:
                result = result.model_copy(update={"playlist": result.playlist.model_copy(update={"name": name})})
            self.playlist = result.playlist
            logger.info(f"Loaded playlist from {url}: {result.playlist.total_count} channels")
        return result

    def load_playlist_content(self, content: str | bytes, name: Optional[str] = None) -> PlaylistParseResult:
        result = parse_m3u_from_file(content, name=name)
        if result.success:
            self.playlist = result.playlist
            logger.info(f"Loaded playlist {name or '(unnamed)'}: {result.playlist.total_count} channels")
        return result

    async def load_epg(self, url: str) -> Optional[EPGData]:
        """Load a guide. On failure the previous guide, if any, stays in place."""
        epg_data = await fetch_epg(url, client=self.client)
        if epg_data is None:
            logger.warning(f"EPG unavailable from {url}")
            return None
        self.epg = epg_data
        return epg_data

    def clear_epg(self):
        self.epg = None

    def find_channel(self, channel_id: str) -> Optional[Channel]:
        if not self.playlist:
            return None
        return next((ch for ch in self.playlist.channels if ch.id == channel_id), None)

    def programs_for(
        self,
        channel: Channel,
        limit: int = 5,
        now: Optional[datetime] = None,
    ) -> ChannelPrograms:
        return get_channel_programs(self.epg, channel.tvg_id, limit=limit, now=now)

    def now_playing(self, channel_key: str, now: Optional[datetime] = None) -> Optional[NowPlaying]:
        """Program airing now on ``channel_key`` with its progress."""
        current = get_channel_programs(self.epg, channel_key, limit=0, now=now).current
        if current is None:
            return None
        return NowPlaying(
            channel=channel_key,
            program=current,
            progress_percent=get_program_progress(current.start, current.stop, now=now),
        )

    def epg_stats(self) -> dict:
        if not self.epg:
            return {
                "loaded": False,
                "programs": 0,
                "channels": 0,
                "matched_channels": 0,
                "source_url": None,
                "last_updated": None,
            }

        matched = 0
        if self.playlist:
            keys = self.epg.channel_keys
            matched = sum(1 for ch in self.playlist.channels if ch.tvg_id and ch.tvg_id in keys)

        return {
            "loaded": True,
            "programs": len(self.epg.programs),
            "channels": len(self.epg.channel_keys),
            "matched_channels": matched,
            "source_url": self.epg.source_url,
            "last_updated": self.epg.last_updated.isoformat(),
        }


# Singleton instance
_library: Optional[LibraryService] = None


def get_library() -> LibraryService:
    """Get or create library service singleton."""
    global _library
    if _library is None:
        _library = LibraryService()
    return _library
