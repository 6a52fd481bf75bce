"""
Pytest configuration and fixtures for StreamHub tests.
"""
import pytest
from datetime import datetime, timezone


@pytest.fixture
def sample_m3u_content():
    """Sample M3U content for testing."""
    return """#EXTM3U x-tvg-url="http://example.com/guide.xml"
#EXTINF:-1 tvg-id="BBC1.uk" tvg-logo="http://l/b.png" group-title="News",BBC One
http://s/bbc.m3u8
#EXTINF:-1 tvg-id="CNN.us" group-title="News" language="English",CNN (1080p)
http://example.com/cnn.m3u8
#EXTINF:-1 group-title="Movies",Star Gold Hindi
https://example.com/stargold.m3u8
#EXTINF:-1,Channel Without Group
http://example.com/no-group.m3u8
"""


@pytest.fixture
def sample_m3u_file(sample_m3u_content, tmp_path):
    """Create a temporary M3U file for testing."""
    m3u_file = tmp_path / "sample.m3u"
    m3u_file.write_text(sample_m3u_content)
    return m3u_file


@pytest.fixture
def sample_epg_xml():
    """Sample XMLTV EPG content for testing."""
    return """<?xml version="1.0" encoding="UTF-8"?>
<tv>
    <channel id="BBC1.uk">
        <display-name>BBC One</display-name>
        <icon src="https://example.com/bbc.png"/>
    </channel>
    <programme start="20251212010000 +0000" stop="20251212020000 +0000" channel="BBC1.uk">
        <title>Morning News</title>
        <desc>Daily news broadcast</desc>
        <category>News</category>
        <icon src="https://example.com/news.png"/>
        <rating system="MPAA"><value>TV-G</value></rating>
        <episode-num system="onscreen">S02E11</episode-num>
        <episode-num system="xmltv_ns">1.10.0/1</episode-num>
    </programme>
    <programme start="20251212020000 +0000" stop="20251212030000 +0000" channel="BBC1.uk">
        <title>Weather Update</title>
    </programme>
    <programme start="20251212030000 +0000" stop="20251212043000 +0000" channel="BBC1.uk">
        <title>Documentary Hour</title>
        <sub-title>Episode One</sub-title>
    </programme>
    <programme start="20251212010000 +0000" stop="20251212020000 +0000" channel="CNN.us">
        <title>Headlines</title>
    </programme>
</tv>
"""


@pytest.fixture
def sample_epg_file(sample_epg_xml, tmp_path):
    """Create a temporary EPG XML file for testing."""
    epg_file = tmp_path / "test_guide.xml"
    epg_file.write_text(sample_epg_xml)
    return epg_file


@pytest.fixture
def master_manifest():
    """HLS master playlist with three renditions."""
    return """#EXTM3U
#EXT-X-VERSION:3
#EXT-X-STREAM-INF:BANDWIDTH=800000,RESOLUTION=640x360,CODECS="avc1.4d401e,mp4a.40.2"
low/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=2800000,RESOLUTION=1280x720
mid/index.m3u8
#EXT-X-STREAM-INF:BANDWIDTH=5000000,RESOLUTION=1920x1080
http://cdn.example.com/high/index.m3u8
"""


@pytest.fixture
def media_manifest():
    """HLS media playlist without variants."""
    return """#EXTM3U
#EXT-X-TARGETDURATION:6
#EXT-X-MEDIA-SEQUENCE:100
#EXTINF:6.0,
segment100.ts
#EXTINF:6.0,
segment101.ts
"""


@pytest.fixture
def guide_time():
    """Reference instant inside the first sample programme."""
    return datetime(2025, 12, 12, 1, 30, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "data" / "streamhub.db"


@pytest.fixture(autouse=True)
def public_upstream_dns(monkeypatch):
    """Resolve proxied hostnames to a public address without real DNS lookups."""
    async def resolve(host):
        return ["93.184.216.34"]

    monkeypatch.setattr("streamhub.services.stream_proxy.resolve_host", resolve)
