from __future__ import annotations

from io import BytesIO
from typing import Optional

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from echo_brain.domain.errors import ExtractionError
from echo_brain.ports.pdf import PdfDocument, PdfTextExtractor


def _meta_str(value: object) -> Optional[str]:
    s = str(value).strip() if value is not None else ""
    return s or None


class PypdfTextExtractor(PdfTextExtractor):
    def extract(self, data: bytes) -> PdfDocument:
        if not data:
            raise ExtractionError("PDF document is empty")
        try:
            reader = PdfReader(BytesIO(data))
            pages = [page.extract_text() or "" for page in reader.pages]
            meta = reader.metadata
        except (PyPdfError, ValueError, KeyError, TypeError, OSError) as e:
            raise ExtractionError(f"Cannot parse PDF document: {e}") from e

        title = _meta_str(meta.title) if meta is not None else None
        author = _meta_str(meta.author) if meta is not None else None
        return PdfDocument(pages=pages, title=title, author=author)
