"""YouTube transcript provider using httpx and BeautifulSoup.

Discovers a video's caption tracks from the ``captionTracks`` array that
YouTube embeds in the watch page, downloads the first track's timed-text
XML, and joins its ``<text>`` cues with single spaces.  Both requests are
bounded by ``timeout``; expiry raises :class:`TranscriptTimeoutError`
instead of leaving the item stuck in ``processing``.
"""

from __future__ import annotations

import html
import json
import re

import httpx
import structlog
from bs4 import BeautifulSoup

from tutorkb.interfaces.transcript_provider import ITranscriptProvider
from tutorkb.utils.errors import TranscriptTimeoutError, TranscriptUnavailableError
from tutorkb.utils.text import strip_markup

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 15.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; tutorKB/0.1)",
    "Accept-Language": "en-US,en;q=0.9",
}

_YOUTUBE_ID_PATTERNS = [
    re.compile(r"(?:youtube\.com/watch\?(?:.*&)?v=|youtu\.be/|youtube\.com/embed/)([^&\s?/#]+)"),
    re.compile(r"youtube\.com/shorts/([^&\s?/#]+)"),
]

_CAPTION_TRACKS_RE = re.compile(r'"captionTracks":\s*(\[.*?\])', re.DOTALL)

_WATCH_URL = "https://www.youtube.com/watch?v={video_id}"

_UNAVAILABLE_MESSAGE = "Could not fetch YouTube transcript. Try uploading a caption file instead."


def extract_youtube_id(url: str) -> str | None:
    """Return the video id from any common YouTube URL form, or ``None``."""
    for pattern in _YOUTUBE_ID_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def detect_platform(url: str | None) -> str | None:
    """Classify a video URL as ``"youtube"``, ``"vimeo"`` or ``None``."""
    if not url:
        return None
    lowered = url.lower()
    if "youtube.com" in lowered or "youtu.be" in lowered:
        return "youtube"
    if "vimeo.com" in lowered:
        return "vimeo"
    return None


class YouTubeTranscriptProvider(ITranscriptProvider):
    """Caption-track transcript fetcher for YouTube videos."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._timeout = httpx.Timeout(timeout)
        self._client = http_client or httpx.AsyncClient(
            timeout=self._timeout,
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    # ------------------------------------------------------------------
    # ITranscriptProvider implementation
    # ------------------------------------------------------------------

    def supports(self, video_url: str) -> bool:
        return detect_platform(video_url) == "youtube"

    async def fetch_transcript(self, video_url: str) -> str:
        video_id = extract_youtube_id(video_url)
        if not video_id:
            raise TranscriptUnavailableError(
                message=f"Invalid YouTube URL: {video_url}",
                provider_name=self.get_provider_name(),
            )

        page = await self._get(_WATCH_URL.format(video_id=video_id))
        track_url = self._first_track_url(page)
        if not track_url:
            logger.warning("caption_track_missing", video_id=video_id)
            raise TranscriptUnavailableError(
                message=_UNAVAILABLE_MESSAGE,
                provider_name=self.get_provider_name(),
            )

        caption_xml = await self._get(track_url)
        transcript = self._parse_timed_text(caption_xml)
        logger.info(
            "transcript_fetched",
            video_id=video_id,
            characters=len(transcript),
        )
        return transcript

    def get_provider_name(self) -> str:
        return "youtube"

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _get(self, url: str) -> str:
        try:
            response = await self._client.get(url, timeout=self._timeout, headers=_DEFAULT_HEADERS)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TranscriptTimeoutError(
                message=f"Timed out fetching {url}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TranscriptUnavailableError(
                message=f"HTTP {exc.response.status_code} fetching transcript. {_UNAVAILABLE_MESSAGE}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise TranscriptUnavailableError(
                message=f"HTTP error fetching transcript: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response.text

    @staticmethod
    def _first_track_url(page: str) -> str | None:
        match = _CAPTION_TRACKS_RE.search(page)
        if not match:
            return None
        try:
            tracks = json.loads(match.group(1))
        except json.JSONDecodeError:
            logger.debug("caption_tracks_unparseable")
            return None
        if not tracks or not isinstance(tracks, list):
            return None
        base_url = tracks[0].get("baseUrl") if isinstance(tracks[0], dict) else None
        return base_url or None

    @staticmethod
    def _parse_timed_text(caption_xml: str) -> str:
        soup = BeautifulSoup(caption_xml, "html.parser")
        lines: list[str] = []
        for cue in soup.find_all("text"):
            # Timed-text cues are entity-escaped twice (``&amp;#39;``).
            text = strip_markup(html.unescape(cue.get_text())).strip()
            if text:
                lines.append(" ".join(text.split()))
        return " ".join(lines)
