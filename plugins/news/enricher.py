"""news.enricher – fills in short feed text from the article page."""
from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Dict, Optional

from bs4 import BeautifulSoup

from monitor.infra.http import HttpClient
from monitor.interfaces import Transform
from monitor.models import ParsedItem

from .fetcher import USER_AGENT

logger = logging.getLogger(__name__)

__all__ = ["ArticleContentEnricher", "extract_article_text"]

NOISE_SELECTOR = "script, style, nav, header, footer, aside, .advertisement, .ad"
CONTENT_SELECTORS = [
    "article",
    '[data-module="ArticleBody"]',
    ".article-body",
    ".story-body",
    ".content",
    ".post-content",
    ".entry-content",
    "main",
]
MAX_CONTENT_CHARS = 5000


def extract_article_text(html: str) -> str:
    """Main body text of an article page, whitespace-collapsed and capped."""
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.select(NOISE_SELECTOR):
        tag.decompose()

    text = ""
    for selector in CONTENT_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            text = element.get_text(" ", strip=True)
            break
    if not text and soup.body is not None:
        text = soup.body.get_text(" ", strip=True)

    return re.sub(r"\s+", " ", text).strip()[:MAX_CONTENT_CHARS]


class ArticleContentEnricher(Transform):
    """Scrape the linked page when the feed text is under ``scrape_below``
    characters, then drop items still shorter than ``min_length``.
    """

    name = "ArticleContentEnricher"

    def __init__(
        self,
        *,
        scrape_below: int = 200,
        min_length: int = 100,
        http: Optional[HttpClient] = None,
        **_: Any,
    ) -> None:
        self._scrape_below = scrape_below
        self._min_length = min_length
        self._http = http or HttpClient(
            timeout=10.0,
            max_retries=1,
            default_headers={"User-Agent": USER_AGENT},
        )
        self._scraped = 0
        self._dropped = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self._http.close()

    async def _scrape(self, url: str) -> str:
        try:
            html = await self._http.get_text(url)
        except Exception as e:
            logger.warning(f"Error scraping {url}: {e}")
            return ""
        return extract_article_text(html)

    async def __call__(self, items: AsyncIterator[Any]) -> AsyncIterator[ParsedItem]:
        async for item in items:
            record: Dict[str, Any] = item.content
            text = record.get("content") or ""

            if len(text) < self._scrape_below and record.get("url"):
                scraped = await self._scrape(record["url"])
                if len(scraped) > len(text):
                    self._scraped += 1
                    text = scraped

            if len(text) < self._min_length:
                self._dropped += 1
                continue

            record["content"] = text
            yield item

    def stats(self) -> Dict[str, Any]:
        return {"scraped": self._scraped, "tooShort": self._dropped}
