"""
Software HLS decoder.

Loads and parses HLS manifests over httpx and reports progress through
hls.js-style events. One decoder instance serves one stream; the player
creates a fresh instance per load and destroys it when superseded.
"""
import asyncio
import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Optional
from urllib.parse import urljoin

import httpx

from streamhub.services import surface as surface_events

logger = logging.getLogger(__name__)


class Events:
    MEDIA_ATTACHED = "hlsMediaAttached"
    MEDIA_DETACHED = "hlsMediaDetached"
    MANIFEST_LOADING = "hlsManifestLoading"
    MANIFEST_LOADED = "hlsManifestLoaded"
    MANIFEST_PARSED = "hlsManifestParsed"
    LEVEL_SWITCHED = "hlsLevelSwitched"
    ERROR = "hlsError"
    DESTROYING = "hlsDestroying"


class ErrorTypes:
    NETWORK_ERROR = "networkError"
    MEDIA_ERROR = "mediaError"
    OTHER_ERROR = "otherError"


class ErrorDetails:
    MANIFEST_LOAD_ERROR = "manifestLoadError"
    MANIFEST_LOAD_TIMEOUT = "manifestLoadTimeOut"
    MANIFEST_PARSING_ERROR = "manifestParsingError"
    BUFFER_APPEND_ERROR = "bufferAppendError"
    LEVEL_SWITCH_ERROR = "levelSwitchError"


@dataclass
class HlsConfig:
    """Decoder operating parameters."""
    enable_worker: bool = True
    low_latency_mode: bool = True
    back_buffer_length: int = 90  # seconds of played media kept buffered
    connect_timeout: float = 15.0
    read_timeout: float = 30.0

    @classmethod
    def from_settings(cls, settings) -> "HlsConfig":
        return cls(
            enable_worker=settings.hls_enable_worker,
            low_latency_mode=settings.hls_low_latency_mode,
            back_buffer_length=settings.hls_back_buffer_length,
            connect_timeout=settings.hls_connect_timeout,
            read_timeout=settings.hls_read_timeout,
        )


@dataclass
class Level:
    """One variant stream from a master playlist."""
    url: str
    bitrate: int = 0
    width: int = 0
    height: int = 0
    codecs: Optional[str] = None


@dataclass
class Manifest:
    levels: list[Level] = field(default_factory=list)
    is_master: bool = False
    low_latency: bool = False


class ManifestParseError(ValueError):
    """Content is not a usable HLS playlist."""


# KEY=value pairs; quoted values may contain commas
ATTRIBUTE_PATTERN = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')


def parse_attribute_list(text: str) -> dict[str, str]:
    """Parse an HLS attribute list like BANDWIDTH=800000,CODECS="avc1,mp4a"."""
    return {
        key: value[1:-1] if value.startswith('"') else value
        for key, value in ATTRIBUTE_PATTERN.findall(text)
    }


def parse_manifest(content: str, base_url: str, low_latency_mode: bool = True) -> Manifest:
    """
    Parse an HLS playlist into its quality levels.

    A master playlist yields one level per #EXT-X-STREAM-INF entry; a media
    playlist yields a single level pointing at itself.

    Raises:
        ManifestParseError: when the content is not an HLS playlist
    """
    lines = [line.strip() for line in content.replace("\r\n", "\n").split("\n")]
    lines = [line for line in lines if line]
    if not lines or not lines[0].startswith("#EXTM3U"):
        raise ManifestParseError("Missing #EXTM3U header")

    manifest = Manifest()
    pending: Optional[dict[str, str]] = None
    is_media_playlist = False

    for line in lines[1:]:
        if line.startswith("#EXT-X-STREAM-INF:"):
            pending = parse_attribute_list(line.split(":", 1)[1])
        elif line.startswith("#EXTINF") or line.startswith("#EXT-X-TARGETDURATION"):
            is_media_playlist = True
        elif line.startswith("#EXT-X-PART-INF") or (
            line.startswith("#EXT-X-SERVER-CONTROL") and "CAN-BLOCK-RELOAD=YES" in line
        ):
            manifest.low_latency = low_latency_mode
        elif not line.startswith("#") and pending is not None:
            width, height = _parse_resolution(pending.get("RESOLUTION"))
            manifest.levels.append(Level(
                url=urljoin(base_url, line),
                bitrate=_parse_int(pending.get("BANDWIDTH")),
                width=width,
                height=height,
                codecs=pending.get("CODECS"),
            ))
            pending = None

    if manifest.levels:
        manifest.is_master = True
    elif is_media_playlist:
        manifest.levels.append(Level(url=base_url))
    else:
        raise ManifestParseError("No variant streams or media segments found")

    return manifest


def _parse_resolution(value: Optional[str]) -> tuple[int, int]:
    if not value or "x" not in value:
        return 0, 0
    width, _, height = value.lower().partition("x")
    return _parse_int(width), _parse_int(height)


def _parse_int(value: Optional[str]) -> int:
    try:
        return int(value) if value else 0
    except ValueError:
        return 0


class HlsDecoder:
    """hls.js-style decoder: attach to a surface, load a source, emit events."""

    def __init__(self, config: Optional[HlsConfig] = None, client: Optional[httpx.AsyncClient] = None):
        self.config = config or HlsConfig()
        self.media = None
        self.url: Optional[str] = None
        self.levels: list[Level] = []
        self._client = client
        self._handlers: dict[str, list[Callable[[str, dict], Any]]] = defaultdict(list)
        self._tasks: set[asyncio.Task] = set()
        self._requested_level = -1  # -1 = automatic selection
        self._playing_level = -1
        self._destroyed = False

    @staticmethod
    def is_supported() -> bool:
        return True

    # Event plumbing

    def on(self, event: str, handler: Callable[[str, dict], Any]):
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Callable[[str, dict], Any]):
        if handler in self._handlers[event]:
            self._handlers[event].remove(handler)

    def _emit(self, event: str, data: Optional[dict] = None):
        for handler in list(self._handlers[event]):
            handler(event, data or {})

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _emit_error(self, error_type: str, details: str, fatal: bool, reason: str = "", **extra):
        self._emit(Events.ERROR, {
            "type": error_type,
            "details": details,
            "fatal": fatal,
            "reason": reason,
            **extra,
        })

    # Media binding

    def attach_media(self, media):
        """Bind to a playback surface; MEDIA_ATTACHED follows asynchronously."""
        self.media = media
        media.attach(self)
        media.on(surface_events.DECODE_ERROR, self._on_decode_error)
        self._spawn(self._announce_attached())

    async def _announce_attached(self):
        self._emit(Events.MEDIA_ATTACHED, {"media": self.media})

    def detach_media(self):
        if self.media is None:
            return
        self.media.off(surface_events.DECODE_ERROR, self._on_decode_error)
        self.media.detach()
        self.media = None
        self._emit(Events.MEDIA_DETACHED)

    def _on_decode_error(self, message: str = ""):
        self._emit_error(ErrorTypes.MEDIA_ERROR, ErrorDetails.BUFFER_APPEND_ERROR, True, message)

    # Loading

    def load_source(self, url: str):
        self.url = url
        self.start_load()

    def start_load(self):
        """(Re)start loading the manifest of the current source."""
        if self.url and not self._destroyed:
            self._spawn(self._load_manifest(self.url))

    async def _load_manifest(self, url: str):
        self._emit(Events.MANIFEST_LOADING, {"url": url})

        try:
            if self._client is not None:
                response = await self._client.get(url)
            else:
                async with httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.connect_timeout, read=self.config.read_timeout),
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url)
        except httpx.TimeoutException as e:
            self._emit_error(ErrorTypes.NETWORK_ERROR, ErrorDetails.MANIFEST_LOAD_TIMEOUT, True, str(e), url=url)
            return
        except httpx.HTTPError as e:
            self._emit_error(ErrorTypes.NETWORK_ERROR, ErrorDetails.MANIFEST_LOAD_ERROR, True, str(e), url=url)
            return

        if response.is_error:
            self._emit_error(
                ErrorTypes.NETWORK_ERROR,
                ErrorDetails.MANIFEST_LOAD_ERROR,
                True,
                f"HTTP {response.status_code}",
                url=url,
                code=response.status_code,
            )
            return

        # Use final URL after redirects for resolving relative paths
        final_url = str(response.url)
        content = response.text
        self._emit(Events.MANIFEST_LOADED, {"url": final_url})

        try:
            if self.config.enable_worker:
                manifest = await asyncio.to_thread(
                    parse_manifest, content, final_url, self.config.low_latency_mode
                )
            else:
                manifest = parse_manifest(content, final_url, self.config.low_latency_mode)
        except ManifestParseError as e:
            self._emit_error(ErrorTypes.OTHER_ERROR, ErrorDetails.MANIFEST_PARSING_ERROR, True, str(e), url=url)
            return

        self.levels = manifest.levels
        logger.debug(f"Manifest parsed: {len(self.levels)} levels from {final_url}")
        self._emit(Events.MANIFEST_PARSED, {
            "levels": self.levels,
            "first_level": 0,
            "low_latency": manifest.low_latency,
        })
        self._switch_to(self._select_level())

    # Levels

    @property
    def current_level(self) -> int:
        """Level currently being played, -1 before the manifest is parsed."""
        return self._playing_level

    @current_level.setter
    def current_level(self, index: int):
        if index != -1 and not 0 <= index < len(self.levels):
            self._emit_error(
                ErrorTypes.OTHER_ERROR,
                ErrorDetails.LEVEL_SWITCH_ERROR,
                False,
                f"Invalid level index {index}",
            )
            return
        self._requested_level = index
        if self.levels:
            self._spawn(self._switch_later(self._select_level()))

    @property
    def auto_level_enabled(self) -> bool:
        return self._requested_level == -1

    def _select_level(self) -> int:
        if not self.levels:
            return -1
        if self._requested_level >= 0:
            return self._requested_level
        # Automatic selection starts on the first listed variant
        return 0

    async def _switch_later(self, level: int):
        self._switch_to(level)

    def _switch_to(self, level: int):
        self._playing_level = level
        self._emit(Events.LEVEL_SWITCHED, {"level": level})

    # Recovery and teardown

    def recover_media_error(self):
        """Reset the media pipeline without refetching the manifest."""
        media = self.media
        if media is None:
            return
        logger.info("Recovering from media error")
        media.off(surface_events.DECODE_ERROR, self._on_decode_error)
        media.detach()
        media.attach(self)
        media.on(surface_events.DECODE_ERROR, self._on_decode_error)
        self._spawn(self._recovered())

    async def _recovered(self):
        self._emit(Events.MEDIA_ATTACHED, {"media": self.media})
        if self.levels:
            self._switch_to(self._select_level())

    def destroy(self):
        if self._destroyed:
            return
        self._emit(Events.DESTROYING)
        self._destroyed = True
        self.detach_media()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        self._handlers.clear()
        self.url = None
        self.levels = []
