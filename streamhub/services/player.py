"""
HLS streaming session manager.

Owns one adaptive streaming session at a time on a playback surface:
protocol negotiation, manifest loading, quality tracking, error
classification with bounded recovery, and transport controls.

Every decoder and surface callback is bound to the session generation it
was registered for, so events from a torn-down session never touch the
state of its replacement.
"""
import asyncio
import logging
from typing import Callable, Optional

import httpx

from streamhub.config import Settings, get_settings
from streamhub.models.player import (
    AUTO_QUALITY,
    ErrorKind,
    PlaybackPhase,
    PlayerState,
    QualityLevel,
)
from streamhub.services import surface as surface_events
from streamhub.services.hls import ErrorTypes, Events, HlsConfig, HlsDecoder
from streamhub.services.proxy import proxy_url
from streamhub.services.surface import HeadlessSurface, PlaybackRejected, PlaybackSurface

logger = logging.getLogger(__name__)

HLS_MIME_TYPE = "application/vnd.apple.mpegurl"

NETWORK_ERROR_MESSAGE = "Network error: Failed to load stream"
MEDIA_ERROR_MESSAGE = "Media error: Failed to play stream"
FATAL_ERROR_MESSAGE = "Fatal error: Cannot play stream"
NATIVE_ERROR_MESSAGE = "Failed to load stream"
UNSUPPORTED_MESSAGE = "HLS is not supported on this playback surface"
AUTOPLAY_BLOCKED_MESSAGE = "Auto-play blocked"
PLAY_FAILED_MESSAGE = "Failed to play video"

# Only a new load_stream leaves these
TERMINAL_ERRORS = (ErrorKind.FATAL, ErrorKind.UNSUPPORTED)


class HlsPlayer:
    """
    Streaming session bound to one playback surface.

    Args:
        surface: Media sink the session renders into
        decoder_factory: Software decoder class, called as factory(config, client=...)
        auto_play: Start playback once the stream is ready
        muted: Initial mute state of the surface
        proxy_enabled: Rewrite stream URLs through the CORS proxy
        settings: Overrides the cached application settings
        client: Shared httpx client handed to each decoder
    """

    def __init__(
        self,
        surface: PlaybackSurface,
        decoder_factory=HlsDecoder,
        auto_play: Optional[bool] = None,
        muted: Optional[bool] = None,
        proxy_enabled: Optional[bool] = None,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings or get_settings()
        self.surface = surface
        self.auto_play = self.settings.auto_play if auto_play is None else auto_play
        self.proxy_enabled = self.settings.proxy_enabled if proxy_enabled is None else proxy_enabled
        self._decoder_factory = decoder_factory
        self._client = client

        muted = self.settings.muted if muted is None else muted
        surface.muted = muted

        self._state = PlayerState(is_muted=muted)
        self._subscribers: list[Callable[[PlayerState], None]] = []
        self._changed = asyncio.Event()
        self._generation = 0
        self._decoder = None
        self._stream_url: Optional[str] = None
        self._source_requested = False
        self._network_retries = 0
        self._media_recoveries = 0
        self._tasks: set[asyncio.Task] = set()
        self._native_listeners: list[tuple[str, Callable]] = []

        surface.on(surface_events.PLAY, self._on_surface_play)
        surface.on(surface_events.PAUSE, self._on_surface_stop)
        surface.on(surface_events.ENDED, self._on_surface_stop)

    # Observable state

    @property
    def state(self) -> PlayerState:
        return self._state.model_copy(deep=True)

    @property
    def generation(self) -> int:
        return self._generation

    def subscribe(self, callback: Callable[[PlayerState], None]) -> Callable[[], None]:
        """Register a state listener; returns a function that removes it."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _update(self, **changes):
        state = self._state.model_copy(update=changes)
        if state == self._state:
            return
        self._state = state
        self._changed.set()
        for callback in list(self._subscribers):
            callback(self.state)

    async def wait_until_settled(self, timeout: float = 10.0) -> PlayerState:
        """Wait until no load, retry or auto-play attempt is in flight."""
        async def settled():
            while self._state.phase == PlaybackPhase.LOADING or self._tasks:
                self._changed.clear()
                await self._changed.wait()

        await asyncio.wait_for(settled(), timeout)
        return self.state

    # Session plumbing

    def _bind(self, handler: Callable) -> Callable:
        generation = self._generation

        def guarded(*args):
            if generation != self._generation:
                logger.debug(f"Ignoring event from superseded session {generation}")
                return None
            return handler(*args)

        return guarded

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        self._changed.set()

    # Transport controls

    def load_stream(self, url: str):
        """Tear down any current session and start loading ``url``."""
        self.destroy()
        self._generation += 1

        stream_url = proxy_url(url) if self.proxy_enabled else url
        self._stream_url = stream_url
        logger.info(f"Loading stream {url} (session {self._generation})")

        if self._decoder_factory.is_supported():
            self._update(phase=PlaybackPhase.LOADING, url=url, is_loading=True)
            decoder = self._decoder_factory(HlsConfig.from_settings(self.settings), client=self._client)
            self._decoder = decoder
            decoder.on(Events.MEDIA_ATTACHED, self._bind(self._on_media_attached))
            decoder.on(Events.MANIFEST_PARSED, self._bind(self._on_manifest_parsed))
            decoder.on(Events.LEVEL_SWITCHED, self._bind(self._on_level_switched))
            decoder.on(Events.ERROR, self._bind(self._on_decoder_error))
            decoder.attach_media(self.surface)
        elif self.surface.can_play_type(HLS_MIME_TYPE):
            self._update(phase=PlaybackPhase.LOADING, url=url, is_loading=True)
            self._add_native_listener(surface_events.LOADED_METADATA, self._on_native_metadata)
            self._add_native_listener(surface_events.ERROR, self._on_native_error)
            self.surface.src = stream_url
        else:
            logger.error(UNSUPPORTED_MESSAGE)
            self._update(
                phase=PlaybackPhase.ERROR,
                url=url,
                error=UNSUPPORTED_MESSAGE,
                error_kind=ErrorKind.UNSUPPORTED,
            )

    async def play(self):
        if self._state.phase == PlaybackPhase.ERROR and self._state.error_kind in TERMINAL_ERRORS:
            logger.warning("Play ignored: session has failed, load a new stream")
            return
        try:
            await self.surface.play()
        except PlaybackRejected as e:
            logger.error(f"Play failed: {e}")
            self._update(error=PLAY_FAILED_MESSAGE, error_kind=ErrorKind.PLAYBACK)
            return
        if self._state.phase == PlaybackPhase.ERROR:
            # A pending retry or recovery still owns the error
            self._update(is_playing=True)
        else:
            self._update(is_playing=True, error=None, error_kind=None)

    def pause(self):
        self.surface.pause()
        self._update(is_playing=False)

    async def toggle_play(self):
        if self._state.is_playing:
            self.pause()
        else:
            await self.play()

    def set_quality(self, index: int):
        """Pin a quality level, or -1 for automatic selection."""
        if self._decoder is None:
            return
        if index != AUTO_QUALITY and not 0 <= index < len(self._state.quality_levels):
            raise ValueError(f"Invalid quality level: {index}")
        self._decoder.current_level = index
        self._update(current_quality=index)

    def set_muted(self, muted: bool):
        self.surface.muted = muted
        self._update(is_muted=muted)

    def toggle_mute(self):
        self.set_muted(not self._state.is_muted)

    def destroy(self):
        """Tear down the session and reset to Idle. Safe to call repeatedly."""
        self._generation += 1
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        if self._decoder is not None:
            self._decoder.destroy()
            self._decoder = None

        for event, handler in self._native_listeners:
            self.surface.off(event, handler)
        self._native_listeners = []
        if self.surface.src:
            self.surface.src = None

        self._stream_url = None
        self._source_requested = False
        self._network_retries = 0
        self._media_recoveries = 0
        self._update(**PlayerState(is_muted=self._state.is_muted).model_dump())

    # Decoder events

    def _on_media_attached(self, event: str, data: dict):
        # Recovery re-attaches the surface; the manifest is only requested once
        if self._source_requested or self._decoder is None:
            return
        self._source_requested = True
        self._decoder.load_source(self._stream_url)

    def _on_manifest_parsed(self, event: str, data: dict):
        levels = [
            QualityLevel.from_level(index, level.height, level.width, level.bitrate)
            for index, level in enumerate(data.get("levels", []))
        ]
        logger.info(f"Manifest parsed with {len(levels)} quality levels")
        self._update(
            phase=PlaybackPhase.READY,
            is_loading=False,
            error=None,
            error_kind=None,
            quality_levels=levels,
        )
        if self.auto_play:
            self._spawn(self._auto_play(self._generation))

    def _on_level_switched(self, event: str, data: dict):
        changes = {"current_quality": data.get("level", AUTO_QUALITY)}
        if self._state.error_kind == ErrorKind.MEDIA:
            # Media pipeline recovered
            changes.update(phase=PlaybackPhase.READY, error=None, error_kind=None)
        self._update(**changes)

    def _on_decoder_error(self, event: str, data: dict):
        error_type = data.get("type")
        details = data.get("details")

        if not data.get("fatal"):
            logger.warning(f"Non-fatal stream error: {error_type} {details} {data.get('reason', '')}")
            return

        if error_type == ErrorTypes.NETWORK_ERROR and self._network_retries < self.settings.max_network_retries:
            self._network_retries += 1
            delay = self.settings.retry_backoff_seconds * (2 ** (self._network_retries - 1))
            logger.warning(
                f"Network error ({details}), retry {self._network_retries}/"
                f"{self.settings.max_network_retries} in {delay}s"
            )
            self._update(
                phase=PlaybackPhase.ERROR,
                is_loading=False,
                error=NETWORK_ERROR_MESSAGE,
                error_kind=ErrorKind.NETWORK,
            )
            self._spawn(self._retry_load(delay, self._generation))
        elif error_type == ErrorTypes.MEDIA_ERROR and self._media_recoveries < self.settings.max_media_recoveries:
            self._media_recoveries += 1
            logger.warning(
                f"Media error ({details}), recovery {self._media_recoveries}/"
                f"{self.settings.max_media_recoveries}"
            )
            self._update(
                phase=PlaybackPhase.ERROR,
                is_loading=False,
                error=MEDIA_ERROR_MESSAGE,
                error_kind=ErrorKind.MEDIA,
            )
            self._decoder.recover_media_error()
        else:
            message = {
                ErrorTypes.NETWORK_ERROR: NETWORK_ERROR_MESSAGE,
                ErrorTypes.MEDIA_ERROR: MEDIA_ERROR_MESSAGE,
            }.get(error_type, FATAL_ERROR_MESSAGE)
            logger.error(f"Fatal stream error: {error_type} {details} {data.get('reason', '')}")
            if self._decoder is not None:
                self._decoder.destroy()
                self._decoder = None
            self._update(
                phase=PlaybackPhase.ERROR,
                is_loading=False,
                is_playing=False,
                error=message,
                error_kind=ErrorKind.FATAL,
            )

    async def _retry_load(self, delay: float, generation: int):
        await asyncio.sleep(delay)
        if generation != self._generation or self._decoder is None:
            return
        self._update(phase=PlaybackPhase.LOADING, is_loading=True)
        self._decoder.start_load()

    async def _auto_play(self, generation: int):
        try:
            await self.surface.play()
        except PlaybackRejected as e:
            if generation != self._generation:
                return
            logger.warning(f"Auto-play failed: {e}")
            self._update(error=AUTOPLAY_BLOCKED_MESSAGE, error_kind=ErrorKind.AUTOPLAY)

    # Native playback path

    def _add_native_listener(self, event: str, handler: Callable):
        bound = self._bind(handler)
        self.surface.on(event, bound)
        self._native_listeners.append((event, bound))

    def _on_native_metadata(self, *args):
        self._update(phase=PlaybackPhase.READY, is_loading=False)
        if self.auto_play:
            self._spawn(self._auto_play(self._generation))

    def _on_native_error(self, *args):
        logger.error(f"Native playback error: {args[0] if args else 'unknown'}")
        self.surface.pause()
        self._update(
            phase=PlaybackPhase.ERROR,
            is_loading=False,
            is_playing=False,
            error=NATIVE_ERROR_MESSAGE,
            error_kind=ErrorKind.FATAL,
        )

    # Surface transport events

    def _on_surface_play(self, *args):
        self._update(is_playing=True)

    def _on_surface_stop(self, *args):
        self._update(is_playing=False)


# Singleton instance
_player: Optional[HlsPlayer] = None


def get_player() -> HlsPlayer:
    """Get the server-side player bound to a headless surface."""
    global _player
    if _player is None:
        _player = HlsPlayer(HeadlessSurface())
    return _player
