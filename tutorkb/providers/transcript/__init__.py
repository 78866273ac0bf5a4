"""Remote video transcript providers."""

from tutorkb.providers.transcript.youtube_transcript_provider import (
    YouTubeTranscriptProvider,
    detect_platform,
    extract_youtube_id,
)

__all__ = ["YouTubeTranscriptProvider", "detect_platform", "extract_youtube_id"]
