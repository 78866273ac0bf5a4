"""SRT and WebVTT caption parsing.

Both formats interleave cue metadata with the spoken lines::

    1                                   <- sequence number / cue identifier
    00:00:01,000 --> 00:00:03,500       <- timing line
    <i>Hello</i> there                  <- spoken line(s)

Only the spoken lines are kept, in order, with ``<...>`` markup removed,
joined by single spaces.  WebVTT additionally has a ``WEBVTT`` header
block (with ``Kind:`` / ``Language:`` metadata) and ``NOTE``, ``STYLE``
and ``REGION`` blocks, all of which are dropped.
"""

from __future__ import annotations

from tutorkb.utils.text import strip_markup

_TIMING_MARKER = "-->"

_VTT_SKIPPED_BLOCKS = ("NOTE", "STYLE", "REGION")


def parse_srt(content: str) -> str:
    """Return the spoken text of an SRT caption file."""
    return " ".join(_cue_lines(_split_blocks(content)))


def parse_vtt(content: str) -> str:
    """Return the spoken text of a WebVTT caption file."""
    blocks = _split_blocks(content)
    if blocks and blocks[0] and blocks[0][0].startswith("WEBVTT"):
        blocks = blocks[1:]
    blocks = [b for b in blocks if not (b and b[0].split(" ", 1)[0] in _VTT_SKIPPED_BLOCKS)]
    return " ".join(_cue_lines(blocks))


def parse_captions(content: str, file_name: str | None = None) -> str:
    """Pick the parser from the file extension, falling back to sniffing."""
    name = (file_name or "").lower()
    if name.endswith(".vtt") or content.lstrip("\ufeff").startswith("WEBVTT"):
        return parse_vtt(content)
    return parse_srt(content)


# ----------------------------------------------------------------------
# Internals
# ----------------------------------------------------------------------

def _split_blocks(content: str) -> list[list[str]]:
    """Split caption text into blank-line separated blocks of stripped lines."""
    text = content.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    blocks: list[list[str]] = []
    current: list[str] = []
    for raw_line in text.split("\n"):
        line = raw_line.strip()
        if not line:
            if current:
                blocks.append(current)
                current = []
            continue
        current.append(line)
    if current:
        blocks.append(current)
    return blocks


def _cue_lines(blocks: list[list[str]]) -> list[str]:
    spoken: list[str] = []
    for block in blocks:
        timing_at = next((i for i, line in enumerate(block) if _TIMING_MARKER in line), None)
        # Lines before the timing line are cue identifiers; a block without
        # a timing line is a continuation of the previous cue's text.
        body = block if timing_at is None else block[timing_at + 1 :]
        for line in body:
            if line.isdigit():
                continue
            text = " ".join(strip_markup(line).split())
            if text:
                spoken.append(text)
    return spoken
