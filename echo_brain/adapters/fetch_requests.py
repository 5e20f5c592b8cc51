from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import requests

from echo_brain.domain.errors import FetchError
from echo_brain.ports.fetcher import FetchedPage, PageFetcher


@dataclass
class RequestsPageFetcher(PageFetcher):
    timeout_s: float = 15.0
    max_bytes: int = 5 * 1024 * 1024
    user_agent: str = "echo-brain/0.1 (+memory ingestion)"

    session: Optional[requests.Session] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if self.session is None:
            self.session = requests.Session()

    def fetch(self, url: str) -> FetchedPage:
        assert self.session is not None

        try:
            r = self.session.get(url, timeout=self.timeout_s, headers={"User-Agent": self.user_agent})
        except requests.Timeout as e:
            raise FetchError(f"Timed out fetching {url} after {self.timeout_s}s", url=url) from e
        except requests.RequestException as e:
            raise FetchError(f"Cannot reach {url}: {e}", url=url) from e

        if not r.ok:
            raise FetchError(f"Fetching {url} returned HTTP {r.status_code}", url=url, status=r.status_code)

        if len(r.content) > self.max_bytes:
            raise FetchError(f"Page {url} is larger than {self.max_bytes} bytes", url=url, status=r.status_code)

        ctype = (r.headers.get("Content-Type") or "text/html").split(";")[0].strip().lower()
        return FetchedPage(url=str(r.url or url), html=r.text, content_type=ctype)
