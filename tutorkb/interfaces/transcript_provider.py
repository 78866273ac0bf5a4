"""Abstract base class for remote video transcript providers."""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   YouTubeTranscriptProvider -- watch-page caption track discovery via httpx
# Located in: tutorkb/providers/transcript/
class ITranscriptProvider(ABC):
    """Contract for fetching the caption text of a hosted video."""

    @abstractmethod
    def supports(self, video_url: str) -> bool:
        """Return ``True`` if this provider can handle ``video_url``."""

    @abstractmethod
    async def fetch_transcript(self, video_url: str) -> str:
        """Return the spoken-line text of the video's first caption track.

        Caption cues are joined by single spaces with markup removed.

        Raises
        ------
        tutorkb.utils.errors.TranscriptUnavailableError
            If no caption track is discoverable.
        tutorkb.utils.errors.TranscriptTimeoutError
            If a request exceeds the provider's timeout.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
