"""
Tests for playlist retrieval and the fetcher.
"""
import pytest
import httpx

from streamhub.services.fetcher import FetchError, fetch_text, read_text
from streamhub.services.playlist_loader import parse_m3u_from_file, parse_m3u_from_url


def mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestFetcher:
    @pytest.mark.asyncio
    async def test_fetch_text(self):
        async with mock_client(lambda request: httpx.Response(200, text="hello")) as client:
            assert await fetch_text("http://example.com/a", client=client) == "hello"

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        async with mock_client(lambda request: httpx.Response(503)) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_text("http://example.com/a", client=client)

        assert exc_info.value.status_code == 503
        assert "503" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(FetchError) as exc_info:
                await fetch_text("http://example.com/a", client=client)

        assert exc_info.value.status_code is None
        assert exc_info.value.message.startswith("Network error")

    @pytest.mark.asyncio
    async def test_timeout_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(FetchError, match="timed out"):
                await fetch_text("http://example.com/a", client=client)

    def test_read_text_strips_bom_and_replaces_bad_bytes(self):
        assert read_text(b"\xef\xbb\xbf#EXTM3U") == "#EXTM3U"
        assert read_text(b"#EXTM3U \xff") == "#EXTM3U \ufffd"


class TestPlaylistLoader:
    @pytest.mark.asyncio
    async def test_parse_from_url_sets_source(self, sample_m3u_content):
        async with mock_client(lambda request: httpx.Response(200, text=sample_m3u_content)) as client:
            result = await parse_m3u_from_url("http://example.com/list.m3u", client=client)

        assert result.success
        assert result.playlist.source == "url"
        assert result.playlist.source_url == "http://example.com/list.m3u"

    @pytest.mark.asyncio
    async def test_fetch_failure_is_not_a_parse_error(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(404)

        async with mock_client(handler) as client:
            result = await parse_m3u_from_url("http://example.com/missing.m3u", client=client)

        assert not result.success
        assert result.error_type == "fetch"
        assert result.error.startswith("Failed to fetch playlist:")
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_parse_failure_from_url(self):
        async with mock_client(lambda request: httpx.Response(200, text="<html></html>")) as client:
            result = await parse_m3u_from_url("http://example.com/page", client=client)

        assert result.error_type == "parse"

    def test_parse_from_file_bytes(self, sample_m3u_file):
        result = parse_m3u_from_file(sample_m3u_file.read_bytes(), name="sample.m3u")

        assert result.success
        assert result.playlist.source == "file"
        assert result.playlist.name == "sample.m3u"
        assert result.playlist.source_url is None
