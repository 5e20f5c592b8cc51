from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class PdfDocument:
    pages: list[str]
    title: Optional[str] = None
    author: Optional[str] = None


@runtime_checkable
class PdfTextExtractor(Protocol):
    """Бинарный PDF -> текст по страницам + метаданные. Битый документ -> ExtractionError."""

    def extract(self, data: bytes) -> PdfDocument:
        ...
