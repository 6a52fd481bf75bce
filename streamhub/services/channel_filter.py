"""
Channel browsing helpers: language detection, filtering and pagination.
"""
import math
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel

from streamhub.models.channel import Channel

ALL_LANGUAGES = "All"
OTHER_LANGUAGE = "Other"

# Checked in order against the lowercased channel name and group
LANGUAGE_KEYWORDS = [
    ("hindi", "Hindi"),
    ("tamil", "Tamil"),
    ("telugu", "Telugu"),
    ("english", "English"),
]


class Page(BaseModel):
    items: list
    total: int
    page: int
    per_page: int
    total_pages: int
    has_more: bool


def extract_language(channel: Channel) -> str:
    """Language label for a channel: its language attribute, else a name/group keyword match."""
    if channel.language and channel.language.strip():
        # Multi-language entries look like "Hindi;English"
        return channel.language.split(";")[0].strip()

    name = channel.name.lower()
    group = (channel.group or "").lower()
    for keyword, label in LANGUAGE_KEYWORDS:
        if keyword in name or keyword in group:
            return label
    return OTHER_LANGUAGE


def list_languages(channels: Iterable[Channel]) -> list[str]:
    return sorted({extract_language(channel) for channel in channels})


def filter_channels(
    channels: Sequence[Channel],
    search: Optional[str] = None,
    group: Optional[str] = None,
    language: Optional[str] = None,
    favorites: Optional[Iterable[str]] = None,
    favorites_only: bool = False,
    favorites_first: bool = False,
) -> list[Channel]:
    """
    Filter channels the way the channel browser does.

    Args:
        channels: Channels in playlist order
        search: Case-insensitive substring matched against name and group
        group: Exact group name ("Uncategorized" selects ungrouped channels)
        language: Language label from extract_language, "All" disables the filter
        favorites: Favorite channel ids
        favorites_only: Keep only favorites
        favorites_first: Move favorites ahead of the rest, keeping relative order

    Returns:
        Matching channels, in playlist order unless favorites_first is set
    """
    favorite_ids = set(favorites or [])
    result = list(channels)

    if favorites_only:
        result = [ch for ch in result if ch.id in favorite_ids]

    if group:
        result = [ch for ch in result if ch.group_name == group]

    if language and language != ALL_LANGUAGES:
        result = [ch for ch in result if extract_language(ch) == language]

    if search:
        query = search.lower()
        result = [
            ch for ch in result
            if query in ch.name.lower() or query in (ch.group or "").lower()
        ]

    if favorites_first and favorite_ids:
        result.sort(key=lambda ch: ch.id not in favorite_ids)

    return result


def paginate(items: Sequence, page: int = 1, per_page: int = 120) -> Page:
    """Slice one 1-based page out of ``items``."""
    page = max(page, 1)
    per_page = max(per_page, 1)
    total = len(items)
    start = (page - 1) * per_page

    return Page(
        items=list(items[start:start + per_page]),
        total=total,
        page=page,
        per_page=per_page,
        total_pages=math.ceil(total / per_page),
        has_more=start + per_page < total,
    )
