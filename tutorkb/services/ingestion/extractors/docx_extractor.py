"""Word document text extraction.

A .docx file is a zip container; its text lives in ``<w:t>`` runs inside
the WordprocessingML parts under ``word/`` (the main document plus
headers, footers and footnotes).  Runs are concatenated per ``<w:p>``
paragraph and paragraphs are separated by newlines.  A part that is
missing or unparseable is skipped.  Bytes that are not a zip are treated
as flat WordprocessingML XML.
"""

from __future__ import annotations

import io
import re
import zipfile

import structlog
from bs4 import BeautifulSoup

logger = structlog.get_logger(logger_name=__name__)

_MAIN_PART = "word/document.xml"

_EXTRA_PART_RE = re.compile(r"^word/(header\d*|footer\d*|footnotes|endnotes)\.xml$")


class DocxExtractor:
    """Extracts plain text from DOCX bytes."""

    def extract(self, data: bytes) -> str:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as archive:
                parts = self._read_parts(archive)
        except zipfile.BadZipFile:
            logger.info("docx_not_a_zip", size=len(data))
            parts = [data.decode("utf-8", errors="replace")]

        paragraphs: list[str] = []
        for xml in parts:
            paragraphs.extend(self._paragraphs(xml))
        return "\n".join(paragraphs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _read_parts(archive: zipfile.ZipFile) -> list[str]:
        names = archive.namelist()
        ordered = [_MAIN_PART] if _MAIN_PART in names else []
        ordered.extend(sorted(n for n in names if _EXTRA_PART_RE.match(n)))

        parts: list[str] = []
        for name in ordered:
            try:
                parts.append(archive.read(name).decode("utf-8", errors="replace"))
            except (KeyError, zipfile.BadZipFile, OSError) as exc:
                logger.warning("docx_part_unreadable", part=name, error=str(exc))
        return parts

    @staticmethod
    def _paragraphs(xml: str) -> list[str]:
        # html.parser keeps namespaced tag names such as "w:p" intact.
        soup = BeautifulSoup(xml, "html.parser")
        paragraphs: list[str] = []
        blocks = soup.find_all("w:p") or [soup]
        for block in blocks:
            text = "".join(run.get_text() for run in block.find_all("w:t"))
            if text.strip():
                paragraphs.append(text)
        return paragraphs
