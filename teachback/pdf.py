"""Text extraction from uploaded PDFs."""
from __future__ import annotations

import io
import logging

import pdfplumber

from teachback.errors import TeachBackError

log = logging.getLogger("teachback.pdf")

SCANNED_MESSAGE = (
    "This looks like a scanned PDF. For best results, please copy and paste the text."
)


class ScannedPdf(TeachBackError):
    """The PDF opened fine but carries no extractable text layer."""

    def __init__(self, message: str = SCANNED_MESSAGE):
        super().__init__(message)


class PdfUnreadable(TeachBackError):
    """The upload is not a PDF we can open."""


def extract_pdf_text(data: bytes) -> str:
    """Return the text of every page, separated by blank lines."""
    if not data:
        raise PdfUnreadable("The PDF file is empty.")
    pages: list[str] = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                text = page.extract_text() or ""
                if text.strip():
                    pages.append(text.strip())
    except Exception as e:
        log.warning("could not read PDF: %s", e)
        raise PdfUnreadable("Could not read this PDF file.") from e

    text = "\n\n".join(pages)
    if not text.strip():
        raise ScannedPdf()
    log.info("extracted %d chars from %d pages", len(text), len(pages))
    return text
