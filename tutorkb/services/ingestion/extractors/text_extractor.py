"""Format dispatch from a declared file type to a text extractor.

The declared type is whatever the client sent: a MIME type
(``application/pdf``), a bare extension (``pdf`` / ``.pdf``) or nothing.
Generic types (empty, ``application/octet-stream``) fall back to the file
name's extension.  A type that matches no handler raises
:class:`UnsupportedFormatError` before any bytes are read.

Every extracted text goes through :func:`normalize_text`; an empty result
raises :class:`EmptyContentError`.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from enum import Enum

import structlog

from tutorkb.services.ingestion.extractors.caption_parser import parse_captions, parse_srt, parse_vtt
from tutorkb.services.ingestion.extractors.docx_extractor import DocxExtractor
from tutorkb.services.ingestion.extractors.pdf_extractor import PDFExtractor
from tutorkb.utils.errors import EmptyContentError, UnsupportedFormatError
from tutorkb.utils.text import normalize_text

logger = structlog.get_logger(logger_name=__name__)


class DocumentFormat(str, Enum):  # noqa: UP042
    """Formats the extractor can turn into text."""

    TEXT = "text"
    PDF = "pdf"
    DOCX = "docx"
    SRT = "srt"
    VTT = "vtt"


_MIME_FORMATS: dict[str, DocumentFormat] = {
    "text/plain": DocumentFormat.TEXT,
    "text/markdown": DocumentFormat.TEXT,
    "text/x-markdown": DocumentFormat.TEXT,
    "application/pdf": DocumentFormat.PDF,
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": DocumentFormat.DOCX,
    "application/x-subrip": DocumentFormat.SRT,
    "text/srt": DocumentFormat.SRT,
    "text/x-srt": DocumentFormat.SRT,
    "text/vtt": DocumentFormat.VTT,
}

_EXTENSION_FORMATS: dict[str, DocumentFormat] = {
    ".txt": DocumentFormat.TEXT,
    ".text": DocumentFormat.TEXT,
    ".md": DocumentFormat.TEXT,
    ".markdown": DocumentFormat.TEXT,
    ".pdf": DocumentFormat.PDF,
    ".docx": DocumentFormat.DOCX,
    ".srt": DocumentFormat.SRT,
    ".vtt": DocumentFormat.VTT,
}

SUPPORTED_EXTENSIONS = frozenset(_EXTENSION_FORMATS)

_GENERIC_TYPES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

CAPTION_FORMATS = frozenset({DocumentFormat.SRT, DocumentFormat.VTT})


def resolve_format(declared_type: str | None, file_name: str | None = None) -> DocumentFormat:
    """Map a declared type (falling back to *file_name*) to a format.

    Raises
    ------
    UnsupportedFormatError
        If neither the declared type nor the file extension is known.
    """
    declared = (declared_type or "").split(";", 1)[0].strip().lower()

    if declared not in _GENERIC_TYPES:
        if declared in _MIME_FORMATS:
            return _MIME_FORMATS[declared]
        if "/" not in declared:
            ext = declared if declared.startswith(".") else f".{declared}"
            if ext in _EXTENSION_FORMATS:
                return _EXTENSION_FORMATS[ext]
        raise UnsupportedFormatError(
            message=f"Unsupported file type: {declared_type}",
        )

    ext = os.path.splitext(file_name or "")[1].lower()
    if ext in _EXTENSION_FORMATS:
        return _EXTENSION_FORMATS[ext]
    raise UnsupportedFormatError(
        message=f"Unsupported file type: {ext or 'unknown'} ({file_name or 'unnamed'})",
    )


def decode_text(data: bytes) -> str:
    """Decode plain-text bytes as UTF-8 (BOM tolerated); bad bytes become U+FFFD."""
    return data.decode("utf-8-sig", errors="replace")


class TextExtractor:
    """Turns raw file bytes into normalized plain text."""

    def __init__(
        self,
        pdf_extractor: PDFExtractor | None = None,
        docx_extractor: DocxExtractor | None = None,
    ) -> None:
        pdf = pdf_extractor or PDFExtractor()
        docx = docx_extractor or DocxExtractor()
        self._handlers: dict[DocumentFormat, Callable[[bytes], str]] = {
            DocumentFormat.TEXT: decode_text,
            DocumentFormat.PDF: pdf.extract,
            DocumentFormat.DOCX: docx.extract,
            DocumentFormat.SRT: lambda data: parse_srt(decode_text(data)),
            DocumentFormat.VTT: lambda data: parse_vtt(decode_text(data)),
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(
        self,
        data: bytes,
        declared_type: str | None,
        file_name: str | None = None,
    ) -> str:
        """Extract and normalize the text of one file.

        Parameters
        ----------
        data:
            Raw file bytes.
        declared_type:
            MIME type or extension supplied at upload time.
        file_name:
            Original file name, used when the declared type is generic.

        Raises
        ------
        UnsupportedFormatError
            If no handler matches.
        EmptyContentError
            If nothing is left after normalization.
        """
        fmt = resolve_format(declared_type, file_name)
        raw = self._handlers[fmt](data)
        return self.finalize(raw, source=file_name or fmt.value, fmt=fmt)

    def extract_captions(self, data: bytes, file_name: str | None = None) -> str:
        """Extract the spoken text of an SRT or WebVTT caption file."""
        raw = parse_captions(decode_text(data), file_name)
        return self.finalize(raw, source=file_name or "captions")

    def finalize(
        self,
        raw_text: str,
        source: str,
        fmt: DocumentFormat | None = None,
    ) -> str:
        """Normalize *raw_text*, raising :class:`EmptyContentError` if blank."""
        text = normalize_text(raw_text)
        if not text:
            raise EmptyContentError(message=f"No text content could be extracted from {source}")
        logger.info(
            "text_extracted",
            source=source,
            format=fmt.value if fmt else None,
            characters=len(text),
        )
        return text
