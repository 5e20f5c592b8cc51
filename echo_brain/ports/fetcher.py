from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class FetchedPage:
    url: str
    html: str
    content_type: str = "text/html"


@runtime_checkable
class PageFetcher(Protocol):
    """HTTP GET страницы. Недоступен/таймаут/не-2xx -> FetchError."""

    def fetch(self, url: str) -> FetchedPage:
        ...


@dataclass(frozen=True)
class ExtractedPage:
    text: str
    title: Optional[str] = None
    author: Optional[str] = None


@runtime_checkable
class HtmlExtractor(Protocol):
    """HTML -> основной текст страницы + заголовок/автор, если их можно вывести."""

    def extract(self, html: str) -> ExtractedPage:
        ...
