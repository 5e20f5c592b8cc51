from __future__ import annotations

from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

from echo_brain.ports.fetcher import ExtractedPage, HtmlExtractor

_SKIP_TAGS = {"script", "style", "noscript", "nav", "header", "footer", "aside", "form", "svg", "template", "iframe"}
_BLOCK_TAGS = {
    "p", "div", "section", "article", "main", "br", "li", "ul", "ol", "tr", "table",
    "h1", "h2", "h3", "h4", "h5", "h6", "blockquote", "pre", "hr", "figcaption", "dd", "dt",
}
# порядок предпочтения: основной контент страницы -> всё тело -> весь документ
_REGIONS = ("article", "main", "body")


class _Collector(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.skip_depth = 0
        self.in_title = False
        self.depth: Dict[str, int] = {r: 0 for r in _REGIONS}
        self.parts: Dict[str, List[str]] = {r: [] for r in (*_REGIONS, "document")}
        self.title_parts: List[str] = []
        self.meta: Dict[str, str] = {}

    def _active(self) -> List[str]:
        return [r for r in _REGIONS if self.depth[r] > 0] + ["document"]

    def _emit(self, text: str) -> None:
        for r in self._active():
            self.parts[r].append(text)

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag in _SKIP_TAGS:
            self.skip_depth += 1
            return
        if tag == "title":
            self.in_title = True
            return
        if tag == "meta":
            a = {k.lower(): (v or "") for k, v in attrs}
            key = (a.get("name") or a.get("property") or "").lower()
            if key and a.get("content") and key not in self.meta:
                self.meta[key] = a["content"].strip()
            return
        if tag in self.depth:
            self.depth[tag] += 1
        if tag in _BLOCK_TAGS and not self.skip_depth:
            self._emit("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS:
            self.skip_depth = max(0, self.skip_depth - 1)
            return
        if tag == "title":
            self.in_title = False
            return
        if tag in _BLOCK_TAGS and not self.skip_depth:
            self._emit("\n")
        if tag in self.depth:
            self.depth[tag] = max(0, self.depth[tag] - 1)

    def handle_data(self, data: str) -> None:
        if self.in_title:
            self.title_parts.append(data)
            return
        if self.skip_depth:
            return
        self._emit(data)


def _clean_lines(raw: str) -> str:
    lines: List[str] = []
    for line in raw.splitlines():
        line = " ".join(line.split())
        if line:
            lines.append(line)
    return "\n".join(lines)


class HtmlTextExtractor(HtmlExtractor):
    """
    HTML -> основной текст + заголовок/автор.
    Берём <article>, иначе <main>, иначе <body>, иначе весь документ;
    script/style/nav/header/footer/aside выбрасываем.
    """

    def extract(self, html: str) -> ExtractedPage:
        p = _Collector()
        p.feed(html or "")
        p.close()

        text = ""
        for region in (*_REGIONS, "document"):
            text = _clean_lines("".join(p.parts[region]))
            if text:
                break

        title = p.meta.get("og:title") or " ".join("".join(p.title_parts).split()) or None
        author = p.meta.get("author") or p.meta.get("article:author") or None
        return ExtractedPage(text=text, title=title, author=author)
