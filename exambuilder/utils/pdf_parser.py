"""Study-material PDF parsing.

Question generation can be grounded on an uploaded PDF. This module pulls the
embedded text out of it (no OCR; scanned pages yield nothing) and trims it to
a character budget before it is placed in a generation prompt.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParsedPDF:
    """Result of parsing a PDF document."""

    text: str
    page_count: int = 0
    metadata: dict[str, str] = field(default_factory=dict)


def _reader(file_bytes: bytes):
    try:
        from pypdf import PdfReader
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("Missing dependency for PDF parsing. Install `pypdf`.") from exc

    reader = PdfReader(BytesIO(file_bytes))
    if getattr(reader, "is_encrypted", False):
        try:
            # Many "encrypted" PDFs accept an empty password.
            reader.decrypt("")
        except Exception as exc:
            raise ValueError("The PDF is password protected and cannot be read.") from exc
    return reader


def _page_texts(reader) -> list[str]:
    texts: list[str] = []
    for number, page in enumerate(reader.pages, start=1):
        try:
            page_text = page.extract_text() or ""
        except Exception as exc:
            logger.warning("Could not extract text from page %s: %s", number, exc)
            page_text = ""
        page_text = _WHITESPACE_RE.sub(" ", page_text.replace("\x00", "")).strip()
        if page_text:
            texts.append(f"--- Page {number} ---\n{page_text}")
    return texts


def extract_text_from_pdf(file_bytes: bytes) -> str:
    """Extract selectable text from a PDF byte payload, one block per page."""

    if not file_bytes:
        return ""
    return "\n".join(_page_texts(_reader(file_bytes)))


def truncate_text(text: str, budget: int) -> str:
    """Cut `text` to at most `budget` characters, preferring a word boundary."""

    if budget <= 0 or len(text) <= budget:
        return text
    cut = text[:budget]
    space = cut.rfind(" ")
    if space > budget // 2:
        cut = cut[:space]
    return cut.rstrip() + " ..."


def text_preview(text: str, length: int = 500) -> str:
    if not text:
        return ""
    return text if len(text) <= length else text[:length] + "..."


def parse_pdf_bytes(pdf_bytes: bytes, *, budget: int = 0) -> ParsedPDF:
    """Extract text, page count and metadata; `budget` > 0 truncates the text."""

    if not pdf_bytes:
        return ParsedPDF(text="")

    reader = _reader(pdf_bytes)
    text = truncate_text("\n".join(_page_texts(reader)), budget)

    metadata: dict[str, str] = {}
    meta = getattr(reader, "metadata", None)
    if meta:
        for key, value in dict(meta).items():
            if key is None or value is None:
                continue
            metadata[str(key).lstrip("/")] = str(value)

    page_count = len(reader.pages)
    logger.info("Parsed PDF: %s pages, %s characters of text", page_count, len(text))
    return ParsedPDF(text=text, page_count=page_count, metadata=metadata)
