"""news.parser – RSS XML → article records.

Only entries that pass the Thailand–Cambodia relevance rule are emitted.
"""
from __future__ import annotations

import calendar
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import feedparser
from bs4 import BeautifulSoup

from monitor.interfaces import Parser
from monitor.models import ParsedItem, RawItem
from monitor.relevance import is_conflict_related

logger = logging.getLogger(__name__)

__all__ = ["RssParser", "html_to_text"]


def html_to_text(markup: str) -> str:
    if not markup:
        return ""
    return BeautifulSoup(markup, "html.parser").get_text(" ", strip=True)


def _entry_published(entry: Any, fallback: datetime) -> datetime:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return fallback
    # feedparser normalizes to UTC struct_time
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)


def _entry_image(entry: Any) -> Optional[str]:
    for media in entry.get("media_content") or entry.get("media_thumbnail") or []:
        if media.get("url"):
            return media["url"]
    return None


class RssParser(Parser):
    """Transform stage 2 – yields ``article`` ParsedItems for relevant entries."""

    name = "RssParser"

    def __init__(self, *, relevance_filter: bool = True, **_: Any) -> None:
        self._filter = relevance_filter
        self._seen = 0
        self._relevant = 0

    async def parse(self, item: RawItem) -> List[ParsedItem]:
        feed = feedparser.parse(item.payload)
        if feed.bozo and not feed.entries:
            logger.warning(f"Unparseable feed {item.source}: {feed.get('bozo_exception')}")
            return []

        source_name = item.metadata.get("name") or feed.feed.get("title") or "RSS Feed"
        source_url = item.metadata.get("url") or feed.feed.get("link", "")

        out: List[ParsedItem] = []
        for entry in feed.entries:
            self._seen += 1
            title = (entry.get("title") or "").strip()
            description = html_to_text(entry.get("summary", ""))
            content = description
            if entry.get("content"):
                content = html_to_text(entry.content[0].get("value", "")) or description

            if self._filter and not is_conflict_related(content or description, title):
                continue

            self._relevant += 1
            out.append(ParsedItem(
                topic="article",
                content={
                    "title": title,
                    "content": content,
                    "url": entry.get("link") or None,
                    "published_at": _entry_published(entry, item.fetched_at),
                    "source_name": source_name,
                    "source_url": source_url,
                    "source_description": f"RSS feed from {source_name}",
                    "metadata": {
                        "author": entry.get("author"),
                        "sourceWebsite": item.metadata.get("website"),
                        "imageUrl": _entry_image(entry),
                    },
                    "timeline": {
                        "event_type": "news_article",
                        "title": f"{source_name}: {title}",
                    },
                },
            ))

        logger.info(f"{source_name}: {len(feed.entries)} entries, {len(out)} relevant")
        return out

    def stats(self) -> Dict[str, Any]:
        return {"fetched": self._seen, "relevant": self._relevant}
