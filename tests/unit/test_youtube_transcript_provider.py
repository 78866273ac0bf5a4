"""Unit tests for the YouTube transcript provider.

HTTP traffic is served by ``httpx.MockTransport``; nothing leaves the process.
"""

from __future__ import annotations

import json

import httpx
import pytest

from tutorkb.providers.transcript.youtube_transcript_provider import (
    YouTubeTranscriptProvider,
    detect_platform,
    extract_youtube_id,
)
from tutorkb.utils.errors import TranscriptTimeoutError, TranscriptUnavailableError

_TRACK_URL = "https://www.youtube.com/api/timedtext?v=abc123xyz00&lang=en"

_WATCH_PAGE = (
    "<html><script>var ytInitialPlayerResponse = {\"captions\": "
    "{\"playerCaptionsTracklistRenderer\": {\"captionTracks\": "
    + json.dumps([{"baseUrl": _TRACK_URL, "languageCode": "en"}])
    + "}}};</script></html>"
)

_TIMED_TEXT = (
    '<?xml version="1.0" encoding="utf-8" ?><transcript>'
    '<text start="0.0" dur="2.1">Let&amp;#39;s talk about</text>'
    '<text start="2.1" dur="1.9">long   division</text>'
    '<text start="4.0" dur="1.0"></text>'
    "</transcript>"
)


def _provider(handler) -> YouTubeTranscriptProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeTranscriptProvider(http_client=client, timeout=2.0)


class TestUrlHelpers:
    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=abc123xyz00",
            "https://www.youtube.com/watch?feature=share&v=abc123xyz00",
            "https://youtu.be/abc123xyz00",
            "https://www.youtube.com/embed/abc123xyz00",
            "https://www.youtube.com/shorts/abc123xyz00",
        ],
    )
    def test_extract_youtube_id(self, url: str) -> None:
        assert extract_youtube_id(url) == "abc123xyz00"

    def test_extract_youtube_id_rejects_other_hosts(self) -> None:
        assert extract_youtube_id("https://vimeo.com/12345") is None

    @pytest.mark.parametrize(
        ("url", "platform"),
        [
            ("https://youtu.be/abc", "youtube"),
            ("https://www.YouTube.com/watch?v=abc", "youtube"),
            ("https://vimeo.com/12345", "vimeo"),
            ("https://example.com/video.mp4", None),
            (None, None),
        ],
    )
    def test_detect_platform(self, url: str | None, platform: str | None) -> None:
        assert detect_platform(url) == platform


class TestFetchTranscript:
    @pytest.mark.asyncio
    async def test_fetches_and_flattens_first_track(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            if request.url.path == "/watch":
                return httpx.Response(200, text=_WATCH_PAGE)
            return httpx.Response(200, text=_TIMED_TEXT)

        provider = _provider(handler)
        transcript = await provider.fetch_transcript("https://youtu.be/abc123xyz00")

        assert transcript == "Let's talk about long division"
        assert requested[0] == "https://www.youtube.com/watch?v=abc123xyz00"
        assert requested[1].startswith("https://www.youtube.com/api/timedtext")

    @pytest.mark.asyncio
    async def test_page_without_tracks_is_unavailable(self) -> None:
        provider = _provider(lambda request: httpx.Response(200, text="<html></html>"))
        with pytest.raises(TranscriptUnavailableError) as exc_info:
            await provider.fetch_transcript("https://youtu.be/abc123xyz00")
        assert exc_info.value.kind == "TranscriptUnavailable"

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self) -> None:
        provider = _provider(lambda request: httpx.Response(429))
        with pytest.raises(TranscriptUnavailableError):
            await provider.fetch_transcript("https://youtu.be/abc123xyz00")

    @pytest.mark.asyncio
    async def test_timeout_is_reported_as_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = _provider(handler)
        with pytest.raises(TranscriptTimeoutError) as exc_info:
            await provider.fetch_transcript("https://youtu.be/abc123xyz00")
        assert exc_info.value.kind == "TranscriptTimeout"

    @pytest.mark.asyncio
    async def test_invalid_url(self) -> None:
        provider = _provider(lambda request: httpx.Response(500))
        with pytest.raises(TranscriptUnavailableError):
            await provider.fetch_transcript("https://www.youtube.com/")

    def test_supports_only_youtube(self) -> None:
        provider = _provider(lambda request: httpx.Response(200))
        assert provider.supports("https://youtu.be/abc") is True
        assert provider.supports("https://vimeo.com/1") is False
        assert provider.get_provider_name() == "youtube"
