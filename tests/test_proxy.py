"""
Tests for stream URL proxy rewriting.
"""
import pytest
from unittest.mock import patch

from streamhub.services.proxy import (
    ProxyNotConfiguredWarning,
    is_proxy_configured,
    needs_proxy,
    proxy_url,
)


class TestProxyUrl:
    def test_wraps_and_encodes_url(self):
        result = proxy_url("http://a/b?x=1&y=2", proxy_base="https://proxy.example/api/proxy")
        assert result == "https://proxy.example/api/proxy?url=http%3A%2F%2Fa%2Fb%3Fx%3D1%26y%3D2"

    def test_keeps_uri_component_safe_characters(self):
        result = proxy_url("http://a/it's(1)*!~_-.", proxy_base="http://p")
        assert result == "http://p?url=http%3A%2F%2Fa%2Fit's(1)*!~_-."

    def test_unconfigured_proxy_returns_url_and_warns(self):
        with pytest.warns(ProxyNotConfiguredWarning):
            assert proxy_url("http://a/b", proxy_base="") == "http://a/b"

    def test_empty_url_is_returned_unchanged(self):
        assert proxy_url("", proxy_base="http://p") == ""

    def test_uses_configured_proxy(self):
        with patch("streamhub.services.proxy.get_proxy_url", return_value="http://configured"):
            assert proxy_url("http://a") == "http://configured?url=http%3A%2F%2Fa"
            assert is_proxy_configured()

    def test_every_url_needs_proxy(self):
        assert needs_proxy("http://cors-friendly.example.com/a.m3u8")
        assert needs_proxy("rtmp://example.com/live")
        assert not needs_proxy("")
