"""
Tests for the software HLS decoder.
"""
import asyncio
import pytest
import httpx

from streamhub.services.hls import (
    ErrorDetails,
    ErrorTypes,
    Events,
    HlsConfig,
    HlsDecoder,
    ManifestParseError,
    parse_attribute_list,
    parse_manifest,
)
from streamhub.services.surface import HeadlessSurface


class EventRecorder:
    """Collects decoder events in order."""

    def __init__(self, decoder: HlsDecoder, events=None):
        self.events = []
        for event in events or [
            Events.MEDIA_ATTACHED,
            Events.MANIFEST_LOADING,
            Events.MANIFEST_LOADED,
            Events.MANIFEST_PARSED,
            Events.LEVEL_SWITCHED,
            Events.ERROR,
        ]:
            decoder.on(event, self.record)

    def record(self, event, data):
        self.events.append((event, data))

    def names(self):
        return [event for event, _ in self.events]

    def last(self, name):
        return next(data for event, data in reversed(self.events) if event == name)

    async def wait_for(self, name, timeout=2.0):
        async def poll():
            while name not in self.names():
                await asyncio.sleep(0)
        await asyncio.wait_for(poll(), timeout)
        return self.last(name)


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestManifestParsing:
    def test_attribute_list_with_quoted_commas(self):
        attrs = parse_attribute_list('BANDWIDTH=800000,CODECS="avc1.4d401e,mp4a.40.2",RESOLUTION=640x360')
        assert attrs == {
            "BANDWIDTH": "800000",
            "CODECS": "avc1.4d401e,mp4a.40.2",
            "RESOLUTION": "640x360",
        }

    def test_master_playlist(self, master_manifest):
        manifest = parse_manifest(master_manifest, "http://cdn.example.com/live/master.m3u8")

        assert manifest.is_master
        assert [(l.height, l.width, l.bitrate) for l in manifest.levels] == [
            (360, 640, 800000),
            (720, 1280, 2800000),
            (1080, 1920, 5000000),
        ]
        assert manifest.levels[0].url == "http://cdn.example.com/live/low/index.m3u8"
        assert manifest.levels[2].url == "http://cdn.example.com/high/index.m3u8"
        assert manifest.levels[0].codecs == "avc1.4d401e,mp4a.40.2"

    def test_media_playlist_is_single_level(self, media_manifest):
        manifest = parse_manifest(media_manifest, "http://cdn.example.com/live/index.m3u8")

        assert not manifest.is_master
        assert len(manifest.levels) == 1
        assert manifest.levels[0].url == "http://cdn.example.com/live/index.m3u8"
        assert manifest.levels[0].height == 0

    def test_missing_resolution(self):
        manifest = parse_manifest("#EXTM3U\n#EXT-X-STREAM-INF:BANDWIDTH=96000\naudio.m3u8", "http://a/m.m3u8")
        assert manifest.levels[0].height == 0
        assert manifest.levels[0].bitrate == 96000

    def test_low_latency_detection(self, media_manifest):
        content = media_manifest.replace("#EXT-X-TARGETDURATION:6", "#EXT-X-TARGETDURATION:6\n#EXT-X-PART-INF:PART-TARGET=1.0")
        assert parse_manifest(content, "http://a/i.m3u8").low_latency
        assert not parse_manifest(content, "http://a/i.m3u8", low_latency_mode=False).low_latency

    def test_invalid_manifests(self):
        with pytest.raises(ManifestParseError):
            parse_manifest("<html></html>", "http://a/b")
        with pytest.raises(ManifestParseError):
            parse_manifest("", "http://a/b")
        with pytest.raises(ManifestParseError):
            parse_manifest("#EXTM3U\n#EXT-X-VERSION:3\n", "http://a/b")


class TestHlsDecoder:
    @pytest.mark.asyncio
    async def test_attach_then_load(self, master_manifest):
        surface = HeadlessSurface()
        async with client_for(lambda r: httpx.Response(200, text=master_manifest)) as client:
            decoder = HlsDecoder(HlsConfig(back_buffer_length=30), client=client)
            recorder = EventRecorder(decoder)

            decoder.attach_media(surface)
            assert surface.decoder is decoder
            assert surface.back_buffer_length == 30

            await recorder.wait_for(Events.MEDIA_ATTACHED)
            decoder.load_source("http://cdn.example.com/live/master.m3u8")
            parsed = await recorder.wait_for(Events.LEVEL_SWITCHED)

        assert recorder.names() == [
            Events.MEDIA_ATTACHED,
            Events.MANIFEST_LOADING,
            Events.MANIFEST_LOADED,
            Events.MANIFEST_PARSED,
            Events.LEVEL_SWITCHED,
        ]
        assert len(recorder.last(Events.MANIFEST_PARSED)["levels"]) == 3
        assert parsed["level"] == 0
        assert decoder.current_level == 0

    @pytest.mark.asyncio
    async def test_parse_without_worker(self, media_manifest):
        async with client_for(lambda r: httpx.Response(200, text=media_manifest)) as client:
            decoder = HlsDecoder(HlsConfig(enable_worker=False), client=client)
            recorder = EventRecorder(decoder)
            decoder.attach_media(HeadlessSurface())
            decoder.load_source("http://a/index.m3u8")
            data = await recorder.wait_for(Events.MANIFEST_PARSED)

        assert len(data["levels"]) == 1

    @pytest.mark.asyncio
    async def test_http_error_is_fatal_network_error(self):
        async with client_for(lambda r: httpx.Response(404)) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.load_source("http://a/missing.m3u8")
            error = await recorder.wait_for(Events.ERROR)

        assert error["type"] == ErrorTypes.NETWORK_ERROR
        assert error["details"] == ErrorDetails.MANIFEST_LOAD_ERROR
        assert error["fatal"] is True
        assert error["code"] == 404

    @pytest.mark.asyncio
    async def test_timeout_is_fatal_network_error(self):
        def handler(request):
            raise httpx.ConnectTimeout("slow", request=request)

        async with client_for(handler) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.load_source("http://a/slow.m3u8")
            error = await recorder.wait_for(Events.ERROR)

        assert error["details"] == ErrorDetails.MANIFEST_LOAD_TIMEOUT

    @pytest.mark.asyncio
    async def test_unparseable_manifest_is_other_error(self):
        async with client_for(lambda r: httpx.Response(200, text="<html>blocked</html>")) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.load_source("http://a/index.m3u8")
            error = await recorder.wait_for(Events.ERROR)

        assert error["type"] == ErrorTypes.OTHER_ERROR
        assert error["details"] == ErrorDetails.MANIFEST_PARSING_ERROR
        assert error["fatal"] is True

    @pytest.mark.asyncio
    async def test_start_load_refetches(self, media_manifest):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=media_manifest)

        async with client_for(handler) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.load_source("http://a/index.m3u8")
            await recorder.wait_for(Events.MANIFEST_PARSED)
            recorder.events.clear()
            decoder.start_load()
            await recorder.wait_for(Events.MANIFEST_PARSED)

        assert len(requests) == 2

    @pytest.mark.asyncio
    async def test_decode_error_becomes_media_error(self):
        surface = HeadlessSurface()
        decoder = HlsDecoder()
        recorder = EventRecorder(decoder)
        decoder.attach_media(surface)

        surface.report_decode_error("bad frame")

        error = recorder.last(Events.ERROR)
        assert error["type"] == ErrorTypes.MEDIA_ERROR
        assert error["fatal"] is True
        assert error["reason"] == "bad frame"
        decoder.destroy()

    @pytest.mark.asyncio
    async def test_set_current_level(self, master_manifest):
        async with client_for(lambda r: httpx.Response(200, text=master_manifest)) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.load_source("http://a/master.m3u8")
            await recorder.wait_for(Events.LEVEL_SWITCHED)
            recorder.events.clear()

            decoder.current_level = 2
            switched = await recorder.wait_for(Events.LEVEL_SWITCHED)
            assert switched["level"] == 2
            assert not decoder.auto_level_enabled

            decoder.current_level = 7
            error = recorder.last(Events.ERROR)
            assert error["fatal"] is False
            assert error["details"] == ErrorDetails.LEVEL_SWITCH_ERROR
            assert decoder.current_level == 2

            decoder.current_level = -1
            assert decoder.auto_level_enabled
            decoder.destroy()

    @pytest.mark.asyncio
    async def test_recover_media_error_does_not_refetch(self, master_manifest):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, text=master_manifest)

        surface = HeadlessSurface()
        async with client_for(handler) as client:
            decoder = HlsDecoder(client=client)
            recorder = EventRecorder(decoder)
            decoder.attach_media(surface)
            decoder.load_source("http://a/master.m3u8")
            await recorder.wait_for(Events.LEVEL_SWITCHED)
            recorder.events.clear()

            decoder.recover_media_error()
            await recorder.wait_for(Events.LEVEL_SWITCHED)

        assert recorder.names() == [Events.MEDIA_ATTACHED, Events.LEVEL_SWITCHED]
        assert len(requests) == 1
        assert surface.decoder is decoder

    @pytest.mark.asyncio
    async def test_destroy_detaches_and_silences(self):
        surface = HeadlessSurface()
        decoder = HlsDecoder()
        recorder = EventRecorder(decoder, events=[Events.ERROR, Events.MEDIA_ATTACHED])
        decoder.attach_media(surface)

        decoder.destroy()
        decoder.destroy()
        await asyncio.sleep(0)
        surface.report_decode_error()

        assert surface.decoder is None
        assert recorder.events == []
