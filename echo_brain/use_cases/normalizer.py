from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Literal, Optional, Union

from echo_brain.domain.errors import (
    ContentTooLargeError,
    EmptyContentError,
    ExtractionError,
    FetchError,
    UnsupportedSourceError,
)
from echo_brain.domain.models import IngestOptions, NormalizedText
from echo_brain.ports.fetcher import HtmlExtractor, PageFetcher
from echo_brain.ports.pdf import PdfTextExtractor

MAX_CONTENT_CHARS = 50_000

# разрез по пробелу, только если он в последних 20% окна; иначе режем ровно по лимиту
_SOFT_CUT_WINDOW = 0.2

_SPACES_RE = re.compile(r"[ \t\f\v\u00a0]+")
_BLANKS_RE = re.compile(r"\n{3,}")
_URL_RE = re.compile(r"^https?://\S+$", re.IGNORECASE)

OversizePolicy = Literal["truncate", "reject"]
RawContent = Union[str, bytes]


def normalize_whitespace(text: str) -> str:
    text = (text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = "\n".join(_SPACES_RE.sub(" ", line).strip() for line in text.split("\n"))
    text = _BLANKS_RE.sub("\n\n", text)
    return text.strip()


def truncate_text(text: str, limit: int) -> str:
    """
    Детерминированная обрезка до limit символов:
    последний пробельный символ в (0.8*limit, limit] -> режем по нему, иначе ровно по limit.
    """
    if len(text) <= limit:
        return text
    window_start = int(limit * (1.0 - _SOFT_CUT_WINDOW))
    cut = -1
    for i in range(limit, window_start, -1):
        if text[i].isspace():
            cut = i
            break
    end = cut if cut != -1 else limit
    return text[:end].rstrip()


def _clean(value: Optional[str]) -> Optional[str]:
    s = (value or "").strip()
    return s or None


@dataclass
class ContentNormalizer:
    fetcher: PageFetcher
    pdf: PdfTextExtractor
    html: HtmlExtractor
    max_content_chars: int = MAX_CONTENT_CHARS
    oversize_policy: OversizePolicy = "truncate"

    def normalize(
        self,
        content: RawContent,
        source_type: str,
        options: Optional[IngestOptions] = None,
    ) -> NormalizedText:
        opts = options or IngestOptions()

        if source_type == "note":
            result = self._note(content, opts)
        elif source_type == "web":
            result = self._web(content, opts)
        elif source_type == "pdf":
            result = self._pdf(content, opts)
        else:
            raise UnsupportedSourceError(source_type)

        return self._apply_length_policy(result)

    # --- strategies ---

    def _note(self, content: RawContent, opts: IngestOptions) -> NormalizedText:
        if isinstance(content, bytes):
            raise ExtractionError("A note must be text, got bytes")
        text = (content or "").strip()
        if not text:
            raise EmptyContentError("Note is empty")
        return NormalizedText(
            text=text,
            source_type="note",
            source_url=_clean(opts.source_url),
            source_title=_clean(opts.source_title),
            source_author=_clean(opts.source_author),
        )

    def _web(self, content: RawContent, opts: IngestOptions) -> NormalizedText:
        url = _clean(opts.source_url)
        if url is None and isinstance(content, str) and _URL_RE.match(content.strip()):
            url = content.strip()
        if url is None or not _URL_RE.match(url):
            raise FetchError(f"Not a fetchable http(s) URL: {url or content!r}", url=str(url or ""))

        page = self.fetcher.fetch(url)
        if "html" not in page.content_type and not page.content_type.startswith("text/"):
            raise ExtractionError(f"Unsupported web content type {page.content_type} at {url}")

        if "html" in page.content_type:
            extracted = self.html.extract(page.html)
            text, title, author = extracted.text, extracted.title, extracted.author
        else:
            text, title, author = page.html, None, None

        text = normalize_whitespace(text)
        if not text:
            raise ExtractionError(f"No readable text at {url}")

        return NormalizedText(
            text=text,
            source_type="web",
            source_url=page.url or url,
            source_title=_clean(opts.source_title) or _clean(title),
            source_author=_clean(opts.source_author) or _clean(author),
        )

    def _pdf(self, content: RawContent, opts: IngestOptions) -> NormalizedText:
        # файлы читает только вызывающий (CLI); строка здесь не трактуется как путь
        if not isinstance(content, bytes):
            raise ExtractionError("PDF content must be the raw document bytes")

        doc = self.pdf.extract(content)
        text = normalize_whitespace("\n\n".join(p.strip() for p in doc.pages if p and p.strip()))
        if not text:
            raise ExtractionError("PDF has no extractable text")

        return NormalizedText(
            text=text,
            source_type="pdf",
            source_url=_clean(opts.source_url),
            source_title=_clean(opts.source_title) or _clean(doc.title),
            source_author=_clean(opts.source_author) or _clean(doc.author),
        )

    def _apply_length_policy(self, nt: NormalizedText) -> NormalizedText:
        limit = int(self.max_content_chars)
        if len(nt.text) <= limit:
            return nt
        if self.oversize_policy == "reject":
            raise ContentTooLargeError(len(nt.text), limit)
        return NormalizedText(
            text=truncate_text(nt.text, limit),
            source_type=nt.source_type,
            source_url=nt.source_url,
            source_title=nt.source_title,
            source_author=nt.source_author,
            truncated=True,
        )
