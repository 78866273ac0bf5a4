"""Text normalization applied to every extractor's output.

Extractors return whatever their format yields: PDF pages with form feeds,
Word runs with stray tabs, caption cues with Windows line endings.  The
chunker works on character offsets, so the text is normalized once here
before it is checked for emptiness and windowed.
"""

import re
import unicodedata

# C0 control characters other than tab / newline, plus DEL.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_MULTI_SPACE = re.compile(r"[ \t\u00a0]{2,}")

_TRAILING_SPACE = re.compile(r"[ \t]+\n")

_MULTI_NEWLINE = re.compile(r"\n{3,}")

_MARKUP_TAG = re.compile(r"<[^>]*>")


def normalize_text(text: str) -> str:
    """Compose Unicode (NFC), normalize whitespace and strip control characters.

    Args:
        text: Raw extracted text.

    Returns:
        NFC-composed text with unified line endings, no control characters, single
        spaces between words and at most one blank line between paragraphs.
    """
    if not text:
        return ""

    cleaned = unicodedata.normalize("NFC", text)
    cleaned = cleaned.replace("\r\n", "\n").replace("\r", "\n")
    cleaned = _CONTROL_CHARS.sub(" ", cleaned)
    cleaned = _MULTI_SPACE.sub(" ", cleaned)
    cleaned = _TRAILING_SPACE.sub("\n", cleaned)
    cleaned = _MULTI_NEWLINE.sub("\n\n", cleaned)
    return cleaned.strip()


def strip_markup(text: str) -> str:
    """Remove ``<...>`` tags (caption styling, voice spans) from a line."""
    return _MARKUP_TAG.sub("", text)
