"""
Playback surfaces.

A surface is the media sink a streaming session renders into. The player
attaches a decoder to it (or hands it a URL directly when the surface plays
HLS natively) but never owns its lifecycle.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

HLS_MIME_TYPES = ("application/vnd.apple.mpegurl", "application/x-mpegurl", "audio/mpegurl")

# Surface events
PLAY = "play"
PAUSE = "pause"
ENDED = "ended"
LOADED_METADATA = "loadedmetadata"
ERROR = "error"
DECODE_ERROR = "decodeerror"


class PlaybackRejected(Exception):
    """The surface refused to start playback (e.g. auto-play policy)."""


class PlaybackSurface(ABC):
    """Renderable media sink with DOM-style event listeners."""

    def __init__(self):
        self._listeners: dict[str, list[Callable[..., Any]]] = defaultdict(list)
        self.muted = False
        self.paused = True
        self.back_buffer_length = 0
        self.decoder = None
        self._src: Optional[str] = None

    def on(self, event: str, handler: Callable[..., Any]):
        self._listeners[event].append(handler)

    def off(self, event: str, handler: Callable[..., Any]):
        if handler in self._listeners[event]:
            self._listeners[event].remove(handler)

    def emit(self, event: str, *args):
        for handler in list(self._listeners[event]):
            handler(*args)

    @property
    def src(self) -> Optional[str]:
        return self._src

    @src.setter
    def src(self, value: Optional[str]):
        self._src = value
        self._on_source_changed(value)

    def _on_source_changed(self, value: Optional[str]):
        pass

    def attach(self, decoder):
        """Bind a software decoder to this surface."""
        self.decoder = decoder
        self.back_buffer_length = decoder.config.back_buffer_length

    def detach(self):
        self.decoder = None
        self.paused = True

    @abstractmethod
    def can_play_type(self, mime_type: str) -> bool:
        """Whether the surface can play this type without a software decoder."""

    @abstractmethod
    async def play(self):
        """Start playback. Raises PlaybackRejected if refused."""

    @abstractmethod
    def pause(self):
        """Pause playback."""


class HeadlessSurface(PlaybackSurface):
    """
    In-process surface with no actual rendering.

    Used by the API server to track playback state, and by tests to drive
    surface events (metadata loaded, decode errors, end of stream).
    """

    def __init__(self, native_hls: bool = False, play_allowed: bool = True):
        super().__init__()
        self.native_hls = native_hls
        self.play_allowed = play_allowed

    def can_play_type(self, mime_type: str) -> bool:
        return self.native_hls and mime_type.lower() in HLS_MIME_TYPES

    def _on_source_changed(self, value: Optional[str]):
        if not value or not self.native_hls:
            return
        # Native playback reports metadata asynchronously, like a media element
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        loop.call_soon(self._metadata_loaded, value)

    def _metadata_loaded(self, value: str):
        if self.src == value:
            self.emit(LOADED_METADATA)

    async def play(self):
        if not self.src and self.decoder is None:
            raise PlaybackRejected("No media loaded")
        if not self.play_allowed:
            raise PlaybackRejected("play() request was refused")
        if self.paused:
            self.paused = False
            self.emit(PLAY)

    def pause(self):
        if not self.paused:
            self.paused = True
            self.emit(PAUSE)

    def end(self):
        """Simulate the end of the media."""
        self.paused = True
        self.emit(ENDED)

    def report_error(self, message: str = "Media load failed"):
        logger.debug(f"Surface error: {message}")
        self.emit(ERROR, message)

    def report_decode_error(self, message: str = "Decode failed"):
        logger.debug(f"Surface decode error: {message}")
        self.emit(DECODE_ERROR, message)
