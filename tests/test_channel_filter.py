"""
Tests for channel filtering, language detection and pagination.
"""
import pytest

from streamhub.models.channel import Channel
from streamhub.services.channel_filter import (
    extract_language,
    filter_channels,
    list_languages,
    paginate,
)
from streamhub.services.m3u_parser import parse_m3u


def channel(name, group=None, language=None, id=None):
    return Channel(id=id or name.lower().replace(" ", "-"), name=name, url=f"http://example.com/{name}.m3u8",
                   group=group, language=language)


@pytest.fixture
def channels(sample_m3u_content):
    return parse_m3u(sample_m3u_content).playlist.channels


class TestLanguageDetection:
    def test_language_attribute_wins(self):
        assert extract_language(channel("Tamil Hits", language="English")) == "English"

    def test_first_of_multiple_languages(self):
        assert extract_language(channel("Mix", language="Hindi;English")) == "Hindi"

    def test_keyword_in_name_or_group(self):
        assert extract_language(channel("Star Gold Hindi")) == "Hindi"
        assert extract_language(channel("Sun TV", group="Tamil Movies")) == "Tamil"
        assert extract_language(channel("ETV", group="TELUGU")) == "Telugu"

    def test_blank_attribute_falls_back(self):
        assert extract_language(channel("English Club", language="  ")) == "English"

    def test_other(self):
        assert extract_language(channel("BBC One", group="News")) == "Other"

    def test_list_languages(self, channels):
        assert list_languages(channels) == ["English", "Hindi", "Other"]


class TestFilterChannels:
    def test_no_filters_keeps_order(self, channels):
        assert filter_channels(channels) == channels

    def test_search_matches_name_and_group(self, channels):
        assert [c.name for c in filter_channels(channels, search="bbc")] == ["BBC One"]
        assert len(filter_channels(channels, search="NEWS")) == 2

    def test_group(self, channels):
        assert [c.name for c in filter_channels(channels, group="Movies")] == ["Star Gold Hindi"]
        assert [c.name for c in filter_channels(channels, group="Uncategorized")] == ["Channel Without Group"]

    def test_language(self, channels):
        assert [c.name for c in filter_channels(channels, language="Hindi")] == ["Star Gold Hindi"]
        assert filter_channels(channels, language="All") == channels

    def test_favorites_only(self, channels):
        favorite = channels[2].id
        assert filter_channels(channels, favorites=[favorite], favorites_only=True) == [channels[2]]
        assert filter_channels(channels, favorites_only=True) == []

    def test_favorites_first_is_stable(self, channels):
        favorites = [channels[3].id, channels[1].id]
        result = filter_channels(channels, favorites=favorites, favorites_first=True)

        assert result == [channels[1], channels[3], channels[0], channels[2]]

    def test_filters_combine(self, channels):
        result = filter_channels(channels, search="o", group="News", language="Other")
        assert [c.name for c in result] == ["BBC One"]


class TestPaginate:
    def test_first_page(self):
        page = paginate(list(range(250)), page=1, per_page=120)

        assert page.items == list(range(120))
        assert page.total == 250
        assert page.total_pages == 3
        assert page.has_more

    def test_last_page(self):
        page = paginate(list(range(250)), page=3, per_page=120)

        assert page.items == list(range(240, 250))
        assert not page.has_more

    def test_out_of_range_page(self):
        page = paginate([1, 2, 3], page=5, per_page=2)
        assert page.items == []
        assert not page.has_more

    def test_empty(self):
        page = paginate([], page=1)
        assert page.total == 0
        assert page.total_pages == 0
        assert not page.has_more

    def test_invalid_arguments_are_clamped(self):
        page = paginate([1, 2, 3], page=0, per_page=0)
        assert page.page == 1
        assert page.per_page == 1
        assert page.items == [1]
