"""
Playlist Inspection Script.
Parses a playlist from a URL or a local file and prints a channel summary,
optionally with what is airing now from the playlist's guide.

Usage:
    python streamhub/scripts/inspect_playlist.py https://iptv-org.github.io/iptv/index.m3u
    python streamhub/scripts/inspect_playlist.py playlist.m3u --epg --limit 20
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add repository root to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from streamhub.services.channel_filter import extract_language
from streamhub.services.epg_parser import fetch_epg, format_program_time, get_current_program
from streamhub.services.m3u_parser import is_valid_url
from streamhub.services.playlist_loader import parse_m3u_from_file, parse_m3u_from_url


async def load(source: str):
    if is_valid_url(source):
        return await parse_m3u_from_url(source)
    path = Path(source)
    return parse_m3u_from_file(path.read_bytes(), name=path.name)


def build_report(playlist, limit: int, epg_data=None) -> str:
    lines = []
    lines.append("=" * 60)
    lines.append(f"PLAYLIST: {playlist.name or playlist.source_url or '(unnamed)'}")
    lines.append("=" * 60)
    lines.append(f"Channels: {playlist.total_count}")
    lines.append(f"Groups:   {len(playlist.groups)}")
    if playlist.epg_url:
        lines.append(f"EPG:      {playlist.epg_url}")
    lines.append("")

    lines.append("GROUPS")
    lines.append("-" * 40)
    for group in sorted(playlist.groups, key=lambda g: g.count, reverse=True):
        lines.append(f"  {group.name}: {group.count}")
    lines.append("")

    lines.append(f"FIRST {min(limit, playlist.total_count)} CHANNELS")
    lines.append("-" * 40)
    for channel in playlist.channels[:limit]:
        line = f"  {channel.name} [{channel.group_name}, {extract_language(channel)}]"
        if epg_data:
            program = get_current_program(epg_data, channel.tvg_id)
            if program:
                line += f" now: {program.title} (until {format_program_time(program.stop)})"
        lines.append(line)

    lines.append("=" * 60)
    return "\n".join(lines)


async def main():
    parser = argparse.ArgumentParser(description="Inspect an M3U playlist")
    parser.add_argument("source", help="Playlist URL or file path")
    parser.add_argument("--limit", type=int, default=10, help="Channels to list")
    parser.add_argument("--epg", action="store_true", help="Load the playlist's guide and show what is on now")
    parser.add_argument("--json", action="store_true", help="Print the parsed playlist as JSON")
    args = parser.parse_args()

    result = await load(args.source)
    if not result.success:
        print(f"Failed ({result.error_type}): {result.error}", file=sys.stderr)
        sys.exit(1)

    playlist = result.playlist

    if args.json:
        print(json.dumps(playlist.model_dump(mode="json"), indent=2))
        return

    epg_data = None
    if args.epg and playlist.epg_url:
        print(f"Loading EPG from {playlist.epg_url}...")
        epg_data = await fetch_epg(playlist.epg_url)
        if not epg_data:
            print("EPG unavailable, continuing without it")

    print(build_report(playlist, args.limit, epg_data))


if __name__ == "__main__":
    asyncio.run(main())
