"""Fixed-size character windows with overlap.

Splits normalized text into windows of ``chunk_size`` characters, each
starting ``chunk_size - overlap`` characters after the previous one, so
consecutive chunks share ``overlap`` characters of context.  A sentence
that straddles a boundary is therefore fully contained in at least one
chunk as long as it is shorter than the overlap.

Tail handling: when the text left after a window is shorter than the
overlap, it is folded into that window instead of becoming its own tiny
chunk that would repeat mostly overlap.  The last window can therefore be
up to ``chunk_size + overlap - 1`` characters long.

Example with the defaults (1000 / 200) on 2400 characters::

    [0, 1000)  [800, 1800)  [1600, 2400)

:meth:`TextChunker.windows` returns the raw ``(start, end)`` spans;
:meth:`TextChunker.chunk` returns the stripped window texts.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_CHUNK_SIZE = 1000
_DEFAULT_OVERLAP = 200


class TextChunker:
    """Deterministic sliding-window chunker.

    Parameters
    ----------
    chunk_size:
        Window length in characters (default 1000).
    overlap:
        Characters shared by consecutive windows (default 200).  Must be
        smaller than ``chunk_size``.
    """

    def __init__(
        self,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        overlap: int = _DEFAULT_OVERLAP,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {chunk_size}")
        if overlap < 0:
            raise ValueError(f"overlap must be non-negative, got {overlap}")
        if overlap >= chunk_size:
            raise ValueError(
                f"overlap ({overlap}) must be smaller than chunk_size ({chunk_size})"
            )
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def windows(self, text: str) -> list[tuple[int, int]]:
        """Return the ``(start, end)`` character spans of every window.

        Consecutive spans overlap by exactly ``overlap`` characters, so
        ``text[s0:e0] + text[e0:e1] + text[e1:e2] ...`` rebuilds ``text``.
        """
        length = len(text)
        if length == 0:
            return []
        if length <= self._chunk_size:
            return [(0, length)]

        step = self._chunk_size - self._overlap
        spans: list[tuple[int, int]] = []
        start = 0
        while True:
            end = min(start + self._chunk_size, length)
            if length - end < self._overlap:
                end = length
            spans.append((start, end))
            if end == length:
                break
            start += step
        return spans

    def chunk(self, text: str) -> list[str]:
        """Split *text* into stripped, overlapping windows.

        Parameters
        ----------
        text:
            Normalized source text.

        Returns
        -------
        list[str]
            Window texts in order.  Windows that are blank after stripping
            are dropped, so the result is empty only for blank input.
        """
        chunks = [text[s:e].strip() for s, e in self.windows(text)]
        chunks = [c for c in chunks if c]

        logger.debug(
            "chunking_complete",
            input_chars=len(text),
            num_chunks=len(chunks),
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks
