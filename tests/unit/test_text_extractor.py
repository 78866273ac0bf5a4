"""Unit tests for format resolution and text extraction."""

from __future__ import annotations

import io
import zipfile

import fitz
import pytest

from tutorkb.services.ingestion.extractors.docx_extractor import DocxExtractor
from tutorkb.services.ingestion.extractors.pdf_extractor import PDFExtractor
from tutorkb.services.ingestion.extractors.text_extractor import (
    DocumentFormat,
    TextExtractor,
    decode_text,
    resolve_format,
)
from tutorkb.utils.errors import EmptyContentError, UnsupportedFormatError
from tutorkb.utils.text import normalize_text

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def _make_pdf(*pages: str) -> bytes:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        page.insert_text((72, 72), text)
    data = doc.tobytes()
    doc.close()
    return data


def _make_docx(*paragraphs: str, footer: str | None = None) -> bytes:
    body = "".join(
        f"<w:p><w:r><w:t>{p[: len(p) // 2]}</w:t></w:r><w:r><w:t>{p[len(p) // 2 :]}</w:t></w:r></w:p>"
        for p in paragraphs
    )
    document = (
        '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
        '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
        f"<w:body>{body}</w:body></w:document>"
    )
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as archive:
        archive.writestr("[Content_Types].xml", "<Types/>")
        archive.writestr("word/document.xml", document)
        if footer is not None:
            archive.writestr(
                "word/footer1.xml",
                f"<w:ftr><w:p><w:r><w:t>{footer}</w:t></w:r></w:p></w:ftr>",
            )
    return buf.getvalue()


# ---------------------------------------------------------------------------
# Format resolution
# ---------------------------------------------------------------------------


class TestResolveFormat:
    @pytest.mark.parametrize(
        ("declared", "expected"),
        [
            ("text/plain", DocumentFormat.TEXT),
            ("text/plain; charset=utf-8", DocumentFormat.TEXT),
            ("text/markdown", DocumentFormat.TEXT),
            ("application/pdf", DocumentFormat.PDF),
            (_DOCX_MIME, DocumentFormat.DOCX),
            ("application/x-subrip", DocumentFormat.SRT),
            ("text/vtt", DocumentFormat.VTT),
            ("pdf", DocumentFormat.PDF),
            (".docx", DocumentFormat.DOCX),
        ],
    )
    def test_declared_type(self, declared: str, expected: DocumentFormat) -> None:
        assert resolve_format(declared, "whatever.bin") is expected

    @pytest.mark.parametrize("declared", [None, "", "application/octet-stream"])
    def test_generic_type_falls_back_to_extension(self, declared: str | None) -> None:
        assert resolve_format(declared, "Lesson-Notes.PDF") is DocumentFormat.PDF

    def test_unknown_specific_type_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            resolve_format("image/png", "worksheet.pdf")

    def test_unknown_extension_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedFormatError) as exc_info:
            resolve_format(None, "scores.xyz")
        assert exc_info.value.kind == "UnsupportedFormat"

    def test_legacy_word_is_unsupported(self) -> None:
        with pytest.raises(UnsupportedFormatError):
            resolve_format("", "old-handout.doc")


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


class TestPlainText:
    def test_utf8_with_bom(self) -> None:
        assert decode_text("\ufeffcafé".encode()) == "café"

    def test_invalid_bytes_are_replaced_not_reinterpreted(self) -> None:
        assert decode_text("café über".encode() + b"\xff") == "café über\ufffd"

    def test_invalid_byte_keeps_multibyte_text_intact(self) -> None:
        raw = "Équivalent: ½ = 2⁄4".encode() + b"\xfe tail"
        text = TextExtractor().extract(raw, "text/plain", "notes.txt")
        assert text == "Équivalent: ½ = 2⁄4\ufffd tail"

    def test_decomposed_accents_are_composed(self) -> None:
        text = TextExtractor().extract("Cafe\u0301 re\u0301sume\u0301".encode(), "text/plain", "notes.txt")
        assert text == "Café résumé"
        assert normalize_text("e\u0301") == "\u00e9"

    def test_text_is_normalized(self) -> None:
        raw = b"Line one   with  spaces\r\n\r\n\r\n\r\nLine two\x00\t\n"
        text = TextExtractor().extract(raw, "text/plain", "notes.txt")
        assert text == "Line one with spaces\n\nLine two"

    def test_blank_text_raises_empty_content(self) -> None:
        with pytest.raises(EmptyContentError) as exc_info:
            TextExtractor().extract(b"  \n\t \n", "text/plain", "blank.txt")
        assert exc_info.value.kind == "EmptyContent"


class TestPdf:
    def test_pages_are_joined(self) -> None:
        data = _make_pdf("Adding fractions with like denominators", "Keep the denominator")
        text = TextExtractor().extract(data, "application/pdf", "fractions.pdf")

        assert "Adding fractions with like denominators" in text
        assert "Keep the denominator" in text
        assert text.index("Adding") < text.index("Keep")

    def test_image_only_pdf_is_empty(self) -> None:
        data = _make_pdf("")
        with pytest.raises(EmptyContentError):
            TextExtractor().extract(data, "application/pdf", "scan.pdf")

    def test_unreadable_pdf_falls_back_to_literal_strings(self) -> None:
        data = b"%PDF-1.4 garbage BT (Ratios compare quantities) Tj ET trailer"
        text = PDFExtractor().extract(data)
        assert "Ratios compare quantities" in text


class TestDocx:
    def test_runs_are_joined_per_paragraph(self) -> None:
        data = _make_docx("Place value tells us", "what each digit is worth")
        text = TextExtractor().extract(data, _DOCX_MIME, "place-value.docx")
        assert text == "Place value tells us\nwhat each digit is worth"

    def test_footer_text_is_included(self) -> None:
        data = _make_docx("Main body", footer="Page footer")
        text = DocxExtractor().extract(data)
        assert text.splitlines() == ["Main body", "Page footer"]

    def test_docx_without_text_is_empty(self) -> None:
        with pytest.raises(EmptyContentError):
            TextExtractor().extract(_make_docx(), _DOCX_MIME, "empty.docx")


class TestCaptionsThroughExtractor:
    def test_srt_by_extension(self) -> None:
        data = b"1\n00:00:01,000 --> 00:00:02,000\nHello class\n"
        assert TextExtractor().extract(data, None, "intro.srt") == "Hello class"

    def test_extract_captions_sniffs_webvtt(self) -> None:
        data = b"WEBVTT\n\n00:00.000 --> 00:01.000\nToday: decimals\n"
        assert TextExtractor().extract_captions(data, "captions.txt") == "Today: decimals"

    def test_empty_caption_file_raises(self) -> None:
        with pytest.raises(EmptyContentError):
            TextExtractor().extract_captions(b"WEBVTT\n\n", "empty.vtt")

    def test_extract_captions_uses_extension_case_insensitively(self) -> None:
        data = "\ufeffWEBVTT\n\nNOTE speaker notes\n\n00:00.000 --> 00:01.000\nDivide both parts\n".encode()
        assert TextExtractor().extract_captions(data, "LESSON.VTT") == "Divide both parts"

    def test_extract_captions_defaults_to_srt(self) -> None:
        data = b"1\n00:00:01,000 --> 00:00:02,000\n<i>Cross</i> multiply\n"
        assert TextExtractor().extract_captions(data, None) == "Cross multiply"
