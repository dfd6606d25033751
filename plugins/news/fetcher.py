"""news.fetcher – downloads RSS feeds.

One RawItem per feed; the payload is the raw XML. A feed that cannot be
fetched is logged and skipped so the remaining feeds still run.
"""
from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from monitor.config import Settings, get_settings
from monitor.infra.http import HttpClient
from monitor.interfaces import Fetcher
from monitor.log_sink import MonitoringLog
from monitor.models import RawItem, SourceType

logger = logging.getLogger(__name__)

__all__ = ["NEWS_SOURCES", "RssFetcher", "USER_AGENT"]

USER_AGENT = "Mozilla/5.0 (compatible; NewsMonitor/1.0)"

NEWS_SOURCES: List[Dict[str, str]] = [
    {"name": "BBC News", "url": "http://feeds.bbci.co.uk/news/world/rss.xml",
     "website": "https://bbc.com"},
    {"name": "Channel News Asia",
     "url": "https://www.channelnewsasia.com/api/v1/rss-outbound-feed?_format=xml&category=6511",
     "website": "https://channelnewsasia.com"},
    {"name": "Al Jazeera", "url": "https://www.aljazeera.com/xml/rss/all.xml",
     "website": "https://aljazeera.com"},
    {"name": "Associated Press", "url": "https://feeds.apnews.com/rss/apf-topnews",
     "website": "https://apnews.com"},
    {"name": "CNN World", "url": "http://rss.cnn.com/rss/edition.rss",
     "website": "https://cnn.com"},
    {"name": "Bangkok Post - Most Recent", "url": "https://www.bangkokpost.com/rss/data/most-recent.xml",
     "website": "https://bangkokpost.com"},
    {"name": "Bangkok Post - Thailand News", "url": "https://www.bangkokpost.com/rss/data/thailand.xml",
     "website": "https://bangkokpost.com"},
    {"name": "Bangkok Post - World News", "url": "https://www.bangkokpost.com/rss/data/world.xml",
     "website": "https://bangkokpost.com"},
]


class RssFetcher(Fetcher):
    """Transform stage 1 – yields one :class:`~monitor.models.RawItem` per feed."""

    name = "RssFetcher"

    def __init__(
        self,
        *,
        feeds: Optional[List[Dict[str, str]]] = None,
        settings: Optional[Settings] = None,
        log: Optional[MonitoringLog] = None,
        http: Optional[HttpClient] = None,
        **_: Any,
    ) -> None:
        settings = settings or get_settings()
        self._feeds = feeds if feeds is not None else NEWS_SOURCES
        self._log = log
        self._http = http or HttpClient(
            timeout=settings.http_timeout,
            max_retries=settings.http_max_retries,
            default_headers={"User-Agent": USER_AGENT},
        )
        self._fetched = 0
        self._errors = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self._http.close()

    async def fetch(self) -> AsyncIterator[RawItem]:
        logger.info(f"RssFetcher – {len(self._feeds)} feeds")
        for feed in self._feeds:
            try:
                body = await self._http.get_text(feed["url"])
            except Exception as e:
                self._errors += 1
                logger.warning(f"Feed {feed['name']} failed: {e}")
                if self._log is not None:
                    await self._log.error(
                        SourceType.NEWS_ARTICLE,
                        "source_processing",
                        f"Error processing {feed['name']}: {e}",
                        sourceName=feed["name"],
                        sourceUrl=feed["url"],
                    )
                continue

            self._fetched += 1
            yield RawItem(
                source=f"rss.{feed['name']}",
                payload=body.encode("utf-8"),
                metadata=dict(feed),
            )

    def stats(self) -> Dict[str, Any]:
        return {"feeds": self._fetched, "feedErrors": self._errors}
