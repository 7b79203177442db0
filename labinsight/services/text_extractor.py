"""PDF-to-text helpers."""
from __future__ import annotations

import io

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from labinsight.utils.exceptions import (
    AnalysisUnavailable,
    DocumentExtractionError,
    EmptyDocumentContent,
    InvalidDocumentFormat,
)
from labinsight.utils.log import get_logger

logger = get_logger("extract")

PDF_SIGNATURE = b"%PDF"


def verify_pdf_signature(data: bytes) -> None:
    if not data or not bytes(data[: len(PDF_SIGNATURE)]) == PDF_SIGNATURE:
        raise InvalidDocumentFormat("File does not appear to be a valid PDF (missing PDF header)")


class TextExtractor:
    """Reads every page of a PDF in a single pass."""

    def verify(self, data: bytes) -> None:
        verify_pdf_signature(data)

    def extract(self, data: bytes) -> str:
        verify_pdf_signature(data)
        try:
            reader = PdfReader(io.BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
        except PyPdfError as exc:
            raise DocumentExtractionError(f"PDF extraction failed: {exc}") from exc
        except Exception as exc:
            logger.exception("pdf library crashed during extraction")
            raise AnalysisUnavailable(f"PDF extraction crashed: {exc}") from exc

        text = "\n".join(pages)
        logger.info({"function": "extract_text", "pages": len(pages), "chars": len(text)})
        if not text.strip():
            raise EmptyDocumentContent("No readable text found in the PDF document")
        return text


def extract_text(data: bytes) -> str:
    return TextExtractor().extract(data)


__all__ = ["PDF_SIGNATURE", "TextExtractor", "extract_text", "verify_pdf_signature"]
