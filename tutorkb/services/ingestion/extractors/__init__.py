"""Text extractors for uploaded documents and caption files."""

from tutorkb.services.ingestion.extractors.caption_parser import (
    parse_captions,
    parse_srt,
    parse_vtt,
)
from tutorkb.services.ingestion.extractors.docx_extractor import DocxExtractor
from tutorkb.services.ingestion.extractors.pdf_extractor import PDFExtractor
from tutorkb.services.ingestion.extractors.text_extractor import (
    CAPTION_FORMATS,
    SUPPORTED_EXTENSIONS,
    DocumentFormat,
    TextExtractor,
    decode_text,
    resolve_format,
)

__all__ = [
    "CAPTION_FORMATS",
    "SUPPORTED_EXTENSIONS",
    "DocumentFormat",
    "DocxExtractor",
    "PDFExtractor",
    "TextExtractor",
    "decode_text",
    "parse_captions",
    "parse_srt",
    "parse_vtt",
    "resolve_format",
]
