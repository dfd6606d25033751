"""social.fetcher – search posts through the RapidAPI Facebook scraper.

Two presets exist: ``search`` runs the broad topic queries, ``official``
runs the short list of government-account queries with a smaller limit.
"""
from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from monitor.config import Settings, get_settings
from monitor.errors import MonitorError
from monitor.infra.http import HttpClient
from monitor.interfaces import Fetcher
from monitor.log_sink import MonitoringLog
from monitor.models import RawItem, SourceType

logger = logging.getLogger(__name__)

__all__ = ["OFFICIAL_QUERIES", "PRESETS", "SEARCH_QUERIES", "SocialSearchFetcher"]

SEARCH_QUERIES: List[str] = [
    # Government and diplomatic terms
    "Thailand Cambodia government",
    "Thai Cambodia diplomatic",
    "Thailand Cambodia border",
    "Hun Sen Thailand",
    "Prayuth Cambodia",
    "Thailand Cambodia conflict",
    "Thai Cambodia dispute",
    # Locations and issues
    "Preah Vihear Thailand",
    "Thailand Cambodia temple",
    "Thailand Cambodia trade",
    "Thai Cambodia cooperation",
    "Thailand Cambodia agreement",
    # Thai
    "รัฐบาลไทย กัมพูชา",
    "ไทย กัมพูชา ข้อพิพาท",
    "ไทย กัมพูชา พรมแดน",
    # Khmer
    "កម្ពុជា ថៃ",
    "រាជរដ្ឋាភិបាល កម្ពុជា ថៃ",
]

OFFICIAL_QUERIES: List[str] = [
    "Royal Thai Government",
    "Ministry Foreign Affairs Thailand",
    "Thai Government official",
    "Royal Government Cambodia",
    "Hun Sen Cambodia",
    "Cambodia Government",
    "Thailand Cambodia diplomatic",
    "Thai Cambodia official",
]

PRESETS: Dict[str, Dict[str, Any]] = {
    "search": {
        "queries": SEARCH_QUERIES,
        "limit": 10,
        "source_url": "facebook-search:{query}",
        "source_name": "Facebook Search: {query}",
        "timeline_title": "Facebook: {author} posted about {query}",
    },
    "official": {
        "queries": OFFICIAL_QUERIES,
        "limit": 3,
        "source_url": "facebook-official:{slug}",
        "source_name": "Facebook: {query}",
        "timeline_title": "Official: {author} posted update",
    },
}


class SocialSearchFetcher(Fetcher):
    """Transform stage 1 – yields one RawItem (JSON body) per search query."""

    name = "SocialSearchFetcher"

    def __init__(
        self,
        *,
        preset: str = "search",
        queries: Optional[List[str]] = None,
        limit: Optional[int] = None,
        settings: Optional[Settings] = None,
        log: Optional[MonitoringLog] = None,
        http: Optional[HttpClient] = None,
        **_: Any,
    ) -> None:
        if preset not in PRESETS:
            raise ValueError(f"Unknown social preset: {preset}")
        settings = settings or get_settings()
        self._preset = preset
        self._queries = queries if queries is not None else PRESETS[preset]["queries"]
        self._limit = limit or PRESETS[preset]["limit"]
        self._api_key = settings.social_api_key
        self._api_host = settings.social_api_host
        self._log = log
        self._http = http or HttpClient(timeout=15.0, max_retries=settings.http_max_retries)
        self._queried = 0
        self._errors = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self._http.close()

    @property
    def search_url(self) -> str:
        return f"https://{self._api_host}/search/posts"

    async def fetch(self) -> AsyncIterator[RawItem]:
        if not self._api_key:
            raise MonitorError("SOCIAL_API_KEY is not configured")

        headers = {"x-rapidapi-key": self._api_key, "x-rapidapi-host": self._api_host}
        logger.info(f"SocialSearchFetcher[{self._preset}] – {len(self._queries)} queries")

        for query in self._queries:
            try:
                body = await self._http.get_json(
                    self.search_url,
                    params={"query": query, "limit": self._limit},
                    headers=headers,
                )
            except Exception as e:
                self._errors += 1
                logger.warning(f"Search query {query!r} failed: {e}")
                if self._log is not None:
                    await self._log.error(
                        SourceType.FACEBOOK_POST,
                        "search_processing",
                        f'Error processing search query "{query}": {e}',
                        searchQuery=query,
                    )
                continue

            self._queried += 1
            yield RawItem(
                source=f"social.{self._preset}",
                payload=json.dumps(body).encode("utf-8"),
                metadata={"query": query, "preset": self._preset, "limit": self._limit},
            )

    def stats(self) -> Dict[str, Any]:
        return {"queries": self._queried, "queryErrors": self._errors}
