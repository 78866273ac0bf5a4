"""Best-effort PDF text extraction.

Reads pages with PyMuPDF (fitz).  A page whose text layer cannot be read
is skipped rather than failing the document.  If the file cannot be
opened at all (truncated upload, broken xref table), the raw bytes are
scanned for PDF literal strings ``( ... )``, which recovers the text of
simple uncompressed PDFs.  Whatever is recovered is returned; the caller
decides whether an empty result is an error.
"""

from __future__ import annotations

import re

import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog

logger = structlog.get_logger(logger_name=__name__)

# A literal string operand: balanced escapes, no unescaped parentheses.
_LITERAL_STRING_RE = re.compile(rb"\(((?:\\.|[^\\()])*)\)", re.DOTALL)

_ESCAPES = {
    b"n": b"\n",
    b"r": b"\r",
    b"t": b"\t",
    b"b": b"",
    b"f": b"",
    b"(": b"(",
    b")": b")",
    b"\\": b"\\",
}

_ESCAPE_RE = re.compile(rb"\\([nrtbf()\\]|[0-7]{1,3}|\n)")


class PDFExtractor:
    """Extracts plain text from PDF bytes."""

    def extract(self, data: bytes) -> str:
        pages = self._extract_pages(data)
        if pages is None:
            text = self._scan_literal_strings(data)
            logger.info("pdf_fallback_scan", characters=len(text))
            return text
        return "\n\n".join(pages)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_pages(data: bytes) -> list[str] | None:
        """Return the text of every readable page, or ``None`` if unopenable."""
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except Exception as exc:  # noqa: BLE001 -- PyMuPDF raises several types
            logger.warning("pdf_open_failed", error=str(exc))
            return None
        if doc.page_count == 0:
            # MuPDF repairs some broken files into an empty document.
            doc.close()
            logger.warning("pdf_no_pages")
            return None

        pages: list[str] = []
        skipped = 0
        try:
            for page_num in range(len(doc)):
                try:
                    text = doc[page_num].get_text("text").strip()
                except Exception as exc:  # noqa: BLE001
                    skipped += 1
                    logger.warning("pdf_page_failed", page=page_num + 1, error=str(exc))
                    continue
                if text:
                    pages.append(text)
        finally:
            doc.close()

        logger.debug("pdf_pages_extracted", pages=len(pages), skipped=skipped)
        return pages

    @staticmethod
    def _scan_literal_strings(data: bytes) -> str:
        runs: list[str] = []
        for match in _LITERAL_STRING_RE.finditer(data):
            raw = _ESCAPE_RE.sub(_unescape, match.group(1))
            text = raw.decode("latin-1").strip()
            if any(ch.isalnum() for ch in text):
                runs.append(text)
        return " ".join(runs)


def _unescape(match: re.Match[bytes]) -> bytes:
    token = match.group(1)
    if token == b"\n":
        return b""
    if token in _ESCAPES:
        return _ESCAPES[token]
    return bytes([int(token, 8) & 0xFF])
