"""
ArticleSink
===========

• Upserts the Source row each record belongs to (keyed by source URL).
• Skips records whose URL is already stored or already buffered this run.
• Hands the rest to the ingestion path as one batch when the stream ends.
• Adds a timeline event for every item the batch created.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from monitor.ingestion import IngestionService
from monitor.interfaces import Sink
from monitor.models import ArticleCandidate, ParsedItem, SourceType
from monitor.relevance import extract_keywords
from monitor.store import ContentStore

logger = logging.getLogger(__name__)


class ArticleSink(Sink):
    name = "ArticleSink"

    def __init__(
        self,
        *,
        store: ContentStore,
        ingestion: IngestionService,
        source_type: SourceType = SourceType.NEWS_ARTICLE,
        timeline: bool = True,
        **_: Any,
    ) -> None:
        self._store = store
        self._ingestion = ingestion
        self._source_type = SourceType(source_type)
        self._timeline = timeline

        self._source_ids: Dict[str, str] = {}
        self._candidates: List[ArticleCandidate] = []
        self._timeline_specs: Dict[str, Dict[str, Any]] = {}
        self._skipped = 0
        self._created = 0
        self._failed = 0
        self._events = 0

    # ------------------------------------------------------------------ #
    async def _source_id(self, record: Dict[str, Any]) -> str:
        url = record["source_url"]
        if url not in self._source_ids:
            source = await self._store.upsert_source(
                record["source_name"],
                self._source_type,
                url,
                record.get("source_description"),
            )
            self._source_ids[url] = source.id
        return self._source_ids[url]

    async def handle(self, item: ParsedItem) -> None:
        if item.topic != "article":
            logger.debug(f"Ignoring item with topic {item.topic}")
            return

        record = item.content
        url: Optional[str] = record.get("url")
        if url and (url in self._timeline_specs or await self._store.article_exists_with_url(url)):
            self._skipped += 1
            logger.debug(f"Already stored: {url}")
            return

        candidate = ArticleCandidate(
            source_id=await self._source_id(record),
            title=record.get("title"),
            content=record.get("content"),
            original_url=url,
            published_at=record.get("published_at"),
            tags=extract_keywords(f"{record.get('title', '')} {record.get('content', '')}"),
            metadata={k: v for k, v in (record.get("metadata") or {}).items() if v is not None},
        )
        self._candidates.append(candidate)
        if url:
            self._timeline_specs[url] = record.get("timeline") or {}

    async def flush(self) -> None:
        if not self._candidates:
            logger.info("ArticleSink – nothing new to ingest")
            return

        result = await self._ingestion.ingest_batch(self._candidates, self._source_type)
        self._created += result["created"]
        self._failed += result["failed"]
        self._candidates = []

        if self._timeline:
            for article_id in result["articleIds"]:
                await self._add_timeline_event(article_id)

        logger.info(f"ArticleSink – created {result['created']}, failed {result['failed']}, "
                    f"skipped {self._skipped}")

    async def _add_timeline_event(self, article_id: str) -> None:
        article = await self._store.get_article(article_id)
        if article is None:
            return
        spec = self._timeline_specs.get(article.original_url or "") or {}
        if not spec.get("event_type"):
            return
        await self._store.create_timeline_event(
            article.id,
            spec["event_type"],
            article.published_at,
            spec.get("title") or article.title,
            description=article.summary,
        )
        self._events += 1

    def stats(self) -> Dict[str, Any]:
        return {
            "created": self._created,
            "skipped": self._skipped,
            "failed": self._failed,
            "timelineEvents": self._events,
        }
