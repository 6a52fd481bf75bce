"""
M3U Parser Service.
Parses M3U/M3U8 playlist text into channels and groups.

Expected format:
    #EXTM3U x-tvg-url="http://epg.example/guide.xml"
    #EXTINF:-1 tvg-id="channel1" tvg-name="Channel One" tvg-logo="http://logo.png" group-title="News",Channel One HD
    http://stream.url/channel1.m3u8
"""
import re
import logging
from typing import Optional

from streamhub.models.channel import Channel, ChannelGroup
from streamhub.models.playlist import Playlist, PlaylistParseResult

logger = logging.getLogger(__name__)

HEADER_MARKER = "#EXTM3U"
EXTINF_MARKER = "#EXTINF"

ERROR_EMPTY = "Empty playlist content"
ERROR_MISSING_HEADER = "Invalid M3U format: missing #EXTM3U header"
ERROR_NO_CHANNELS = "No valid channels found in playlist"

# Stream protocols accepted on URL lines
ALLOWED_PROTOCOLS = ("http://", "https://", "rtmp://", "rtsp://", "mms://")

# Header attributes pointing at an XMLTV guide
EPG_URL_PATTERN = re.compile(r'(?:x-tvg-url|url-tvg)="([^"]+)"', re.IGNORECASE)

# EXTINF attribute key -> Channel field
EXTINF_ATTRIBUTES = {
    "tvg-id": "tvg_id",
    "tvg-name": "tvg_name",
    "tvg-logo": "tvg_logo",
    "group-title": "group",
    "language": "language",
    "country": "country",
}

_ATTRIBUTE_PATTERNS = {
    key: re.compile(rf'{re.escape(key)}="([^"]*)"', re.IGNORECASE)
    for key in EXTINF_ATTRIBUTES
}

_ID_SAFE = frozenset("abcdefghijklmnopqrstuvwxyz0123456789")
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def normalize_line_endings(content: str) -> str:
    """Convert CRLF and bare CR line endings to LF."""
    return content.replace("\r\n", "\n").replace("\r", "\n")


def is_valid_url(line: str) -> bool:
    """Check that a line looks like a stream URL with a supported protocol."""
    if not line or line.startswith("#"):
        return False
    return line.lower().startswith(ALLOWED_PROTOCOLS)


def parse_m3u(content: str) -> PlaylistParseResult:
    """
    Parse M3U playlist content.

    Individual malformed entries are dropped; only structural problems
    (empty input, missing header, no surviving channels) fail the parse.

    Args:
        content: Raw playlist text

    Returns:
        Parse result holding the playlist or a labeled error
    """
    if not content or not content.strip():
        return _failure(ERROR_EMPTY)

    lines = normalize_line_endings(content.lstrip("\ufeff")).split("\n")

    # First non-blank line must be the header
    start = 0
    while start < len(lines) and not lines[start].strip():
        start += 1
    if start == len(lines):
        return _failure(ERROR_EMPTY)
    header = lines[start].strip()
    if not header.startswith(HEADER_MARKER):
        return _failure(ERROR_MISSING_HEADER)

    epg_url = None
    epg_match = EPG_URL_PATTERN.search(header)
    if epg_match:
        epg_url = epg_match.group(1)

    channels = []
    dropped = 0
    current_extinf: Optional[str] = None

    for raw_line in lines[start + 1:]:
        line = raw_line.strip()

        # Skip empty lines and comments that are not EXTINF
        if not line or (line.startswith("#") and not line.startswith(EXTINF_MARKER)):
            continue

        if line.startswith(EXTINF_MARKER):
            current_extinf = line
        elif current_extinf and is_valid_url(line):
            channel = parse_channel(current_extinf, line)
            if channel:
                channels.append(channel)
            else:
                dropped += 1
            current_extinf = None
        else:
            dropped += 1

    if dropped:
        logger.debug(f"Dropped {dropped} malformed playlist lines")

    if not channels:
        return _failure(ERROR_NO_CHANNELS)

    groups = extract_groups(channels)
    logger.info(f"Parsed {len(channels)} channels in {len(groups)} groups")

    playlist = Playlist(
        channels=channels,
        groups=groups,
        total_count=len(channels),
        source="file",
        epg_url=epg_url,
    )
    return PlaylistParseResult(success=True, playlist=playlist)


def parse_channel(extinf_line: str, url: str) -> Optional[Channel]:
    """Build a channel from an EXTINF line and its URL, or None if the line has no name."""
    last_comma = extinf_line.rfind(",")
    if last_comma == -1:
        return None

    name = extinf_line[last_comma + 1:].strip()
    if not name:
        return None

    attributes = parse_extinf_attributes(extinf_line)
    if attributes.get("tvg_logo") is not None:
        attributes["logo"] = attributes["tvg_logo"]

    return Channel(
        id=generate_channel_id(name, url),
        name=name,
        url=url,
        **attributes,
    )


def parse_extinf_attributes(extinf_line: str) -> dict[str, str]:
    """
    Extract the known attributes from an EXTINF line.

    Keys are matched case-insensitively; values must be double-quoted.
    Missing attributes are left out of the result.
    """
    attributes = {}
    for key, field in EXTINF_ATTRIBUTES.items():
        match = _ATTRIBUTE_PATTERNS[key].search(extinf_line)
        if match:
            attributes[field] = match.group(1)
    return attributes


def generate_channel_id(name: str, url: str) -> str:
    """
    Generate a readable, stable channel ID from name and URL.

    Same result as the ids stored by the StreamHub web client, so
    favorites survive a move between the two.
    """
    clean_name = "".join(
        char if char in _ID_SAFE else "-" * _utf16_length(char)
        for char in name.lower()
    )
    return f"{clean_name}-{simple_hash(url)}"


def simple_hash(value: str) -> str:
    """32-bit rolling string hash (h * 31 + c) rendered in base 36."""
    hash_value = 0
    for code_unit in _utf16_code_units(value):
        hash_value = (hash_value * 31 + code_unit) & 0xFFFFFFFF
    if hash_value & 0x80000000:
        hash_value -= 0x100000000
    return _to_base36(abs(hash_value))


def extract_groups(channels: list[Channel]) -> list[ChannelGroup]:
    """Bucket channels by group-title, keeping playlist order inside each group."""
    group_map: dict[str, list[Channel]] = {}
    for channel in channels:
        group_map.setdefault(channel.group_name, []).append(channel)

    groups = [
        ChannelGroup(name=name, channels=members, count=len(members))
        for name, members in group_map.items()
    ]
    groups.sort(key=lambda g: (g.name.casefold(), g.name))
    return groups


def _failure(message: str) -> PlaylistParseResult:
    logger.warning(f"Playlist parse failed: {message}")
    return PlaylistParseResult(success=False, error=message, error_type="parse")


def _utf16_length(char: str) -> int:
    return 2 if ord(char) > 0xFFFF else 1


def _utf16_code_units(value: str):
    encoded = value.encode("utf-16-le", errors="surrogatepass")
    for i in range(0, len(encoded), 2):
        yield encoded[i] | (encoded[i + 1] << 8)


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))
