"""
EPG Parser Service.
Parses XMLTV guide data and answers "what is on now / next" queries.
"""
import math
import re
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone, tzinfo
import logging
from typing import Iterable, Optional

import httpx

from streamhub.models.epg import ChannelPrograms, EPGData, Program
from streamhub.services.fetcher import FetchError, fetch_text

logger = logging.getLogger(__name__)

# XMLTV date: 20231225120000 +0000 (offset optional)
XMLTV_DATE_PATTERN = re.compile(
    r"^(\d{4})(\d{2})(\d{2})(\d{2})(\d{2})(\d{2})\s*([+-]\d{4})?$"
)


def parse_xmltv(xml_content: str | bytes) -> Optional[EPGData]:
    """
    Parse XMLTV format EPG data.

    Programmes missing a channel, a title or valid start/stop times are
    skipped. A document that is not well-formed XML yields None.
    """
    try:
        root = ET.fromstring(xml_content)
    except (ET.ParseError, LookupError, ValueError) as e:
        # Unknown declared encodings surface as LookupError
        logger.error(f"XML parsing error: {e}")
        return None

    programs = []
    skipped = 0

    for programme in root.iter("programme"):
        program = _parse_programme(programme)
        if program is None:
            skipped += 1
            continue
        programs.append(program)

    logger.info(f"Parsed {len(programs)} programs ({skipped} skipped)")

    return EPGData(programs=programs)


def _parse_programme(programme: ET.Element) -> Optional[Program]:
    start = parse_xmltv_date(programme.get("start"))
    stop = parse_xmltv_date(programme.get("stop"))
    channel = programme.get("channel")

    if not start or not stop or not channel:
        return None
    if start >= stop:
        return None

    title = _first_text(programme.iter("title"))
    if not title:
        return None

    icon_elem = next(programme.iter("icon"), None)
    rating = None
    for rating_elem in programme.iter("rating"):
        rating = _first_text(rating_elem.iter("value"))
        if rating:
            break

    return Program(
        channel=channel,
        title=title,
        start=start,
        stop=stop,
        description=_first_text(programme.iter("desc")),
        sub_title=_first_text(programme.iter("sub-title")),
        category=_first_text(programme.iter("category")),
        icon=(icon_elem.get("src") or None) if icon_elem is not None else None,
        rating=rating,
        episode=_first_text(programme.findall(".//episode-num[@system='onscreen']")),
        season=_parse_xmltv_ns_season(
            _first_text(programme.findall(".//episode-num[@system='xmltv_ns']"))
        ),
    )


def _first_text(elements: Iterable[ET.Element]) -> Optional[str]:
    """Trimmed text content of the first element, None when absent or blank."""
    for elem in elements:
        text = "".join(elem.itertext()).strip()
        return text or None
    return None


def _parse_xmltv_ns_season(value: Optional[str]) -> Optional[str]:
    # xmltv_ns is "season.episode.part", zero-based, e.g. "2.11.0/1" -> season 3
    if not value:
        return None
    season = value.split(".", 1)[0].split("/", 1)[0].strip()
    if not season.isdigit():
        return None
    return str(int(season) + 1)


def parse_xmltv_date(date_str: Optional[str]) -> Optional[datetime]:
    """
    Parse XMLTV date format.
    Format: 20251212040000 +0000 or 20251212040000

    The digits are read as UTC wall-clock time and the offset is then
    subtracted, so "070000 -0500" and "120000 +0000" are the same instant.
    """
    if not date_str:
        return None

    match = XMLTV_DATE_PATTERN.match(date_str.strip())
    if not match:
        return None

    year, month, day, hour, minute, second, offset = match.groups()
    try:
        date = datetime(
            int(year), int(month), int(day),
            int(hour), int(minute), int(second),
            tzinfo=timezone.utc,
        )
    except ValueError:
        logger.debug(f"Out of range XMLTV date: {date_str}")
        return None

    if offset:
        sign = 1 if offset[0] == "+" else -1
        offset_minutes = int(offset[1:3]) * 60 + int(offset[3:5])
        date -= timedelta(minutes=sign * offset_minutes)

    return date


async def fetch_epg(url: str, client: Optional[httpx.AsyncClient] = None) -> Optional[EPGData]:
    """Fetch and parse EPG data from a URL. Failures degrade to None."""
    try:
        content = await fetch_text(url, client=client)
    except FetchError as e:
        logger.error(f"Failed to fetch EPG {url}: {e.message}")
        return None

    epg_data = parse_xmltv(content)
    if epg_data:
        epg_data.source_url = url
    return epg_data


def get_channel_programs(
    epg_data: Optional[EPGData],
    channel_key: Optional[str],
    limit: int = 5,
    now: Optional[datetime] = None,
) -> ChannelPrograms:
    """
    Get current and upcoming programs for a channel.

    Args:
        epg_data: Parsed guide, may be None when no guide is loaded
        channel_key: The channel's tvg-id
        limit: Maximum number of upcoming programs (0 for current only)
        now: Reference time, defaults to the current UTC time
    """
    if not epg_data or not channel_key:
        return ChannelPrograms()

    now = now or datetime.now(timezone.utc)
    channel_programs = epg_data.for_channel(channel_key)

    current = next((p for p in channel_programs if p.start <= now < p.stop), None)
    upcoming = [p for p in channel_programs if p.start > now][:max(limit, 0)]

    return ChannelPrograms(current=current, upcoming=upcoming)


def get_current_program(
    epg_data: Optional[EPGData],
    channel_key: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[Program]:
    return get_channel_programs(epg_data, channel_key, limit=0, now=now).current


def get_program_progress(start: datetime, stop: datetime, now: Optional[datetime] = None) -> int:
    """Calculate program progress (0-100)."""
    now = now or datetime.now(timezone.utc)
    total = (stop - start).total_seconds()
    elapsed = (now - start).total_seconds()

    if elapsed < 0:
        return 0
    if elapsed >= total:
        return 100

    # Round half up
    return int(math.floor(elapsed / total * 100 + 0.5))


def format_program_time(date: datetime, tz: Optional[tzinfo] = None) -> str:
    """Format a program time as 12-hour clock, e.g. "09:30 PM"."""
    return date.astimezone(tz).strftime("%I:%M %p")


def format_program_duration(start: datetime, stop: datetime) -> str:
    """Format program duration, e.g. "45m", "1h 30m", "2h"."""
    minutes = int((stop - start).total_seconds() // 60)

    if minutes < 60:
        return f"{minutes}m"

    hours, remaining_minutes = divmod(minutes, 60)
    return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"
