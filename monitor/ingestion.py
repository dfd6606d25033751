"""
Ingestion path: validate a candidate record and persist it as a pending item.

No duplicate check happens here. Re-ingested items are reconciled later by
the duplicate collapse engine, so insert cost stays independent of how many
items are already stored.
"""

import json
import logging
from typing import Any, Callable, Dict, Iterable, List

from pydantic.alias_generators import to_camel

from .errors import MissingFieldsError, ValidationError
from .log_sink import MonitoringLog
from .models import ArticleCandidate, ContentItem, ContentStatus, SourceType, utcnow
from .store import ContentStore


logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("source_id", "title", "content")


def missing_fields(candidate: ArticleCandidate) -> List[str]:
    """Wire names (camelCase) of required fields that are absent or blank."""
    missing = []
    for name in REQUIRED_FIELDS:
        value = getattr(candidate, name)
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(to_camel(name))
    return missing


class IngestionService:
    """Creates ContentItems from normalized candidate records."""

    def __init__(
        self,
        store: ContentStore,
        log: MonitoringLog,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.log = log
        self.clock = clock

    async def _create(self, candidate: ArticleCandidate) -> ContentItem:
        missing = missing_fields(candidate)
        if missing:
            raise MissingFieldsError(missing)

        source = await self.store.get_source(candidate.source_id)
        if source is None:
            raise ValidationError(f"Unknown source: {candidate.source_id}", ["sourceId"])

        ai_analysis = candidate.ai_analysis
        if ai_analysis is not None and not isinstance(ai_analysis, str):
            ai_analysis = json.dumps(ai_analysis, default=str)

        return await self.store.create_article(
            candidate.source_id,
            candidate.title,
            candidate.content,
            original_url=candidate.original_url,
            summary=candidate.summary,
            ai_analysis=ai_analysis,
            published_at=candidate.published_at,
            tags=candidate.tags or [],
            metadata=candidate.metadata or {},
            status=ContentStatus.PENDING,
            created_at=self.clock(),
        )

    async def ingest(self, candidate: ArticleCandidate) -> ContentItem:
        """Persist one record; raises ValidationError on bad input.

        Any other failure is recorded in the monitoring log and re-raised.
        """
        try:
            item = await self._create(candidate)
        except ValidationError:
            raise
        except Exception as e:
            logger.error(f"Article ingestion failed for '{candidate.title}': {e}")
            await self.log.error(
                SourceType.NEWS_ARTICLE,
                "article_ingestion",
                f"Article ingestion failed: {e}",
                sourceId=candidate.source_id,
                title=candidate.title,
                error=repr(e),
            )
            raise

        source_type = item.source.type if item.source else SourceType.NEWS_ARTICLE
        await self.log.info(
            source_type,
            "article_ingested",
            f"Ingested '{item.title}'",
            articleId=item.id,
            sourceId=item.source_id,
        )
        return item

    async def ingest_batch(
        self,
        candidates: Iterable[ArticleCandidate],
        source_type: SourceType = SourceType.NEWS_ARTICLE,
    ) -> Dict[str, Any]:
        """Persist a batch; invalid records are counted and skipped.

        Writes a single summary log entry for the whole batch.
        """
        created: List[str] = []
        failures: List[Dict[str, Any]] = []

        for candidate in candidates:
            try:
                item = await self._create(candidate)
                created.append(item.id)
            except ValidationError as e:
                failures.append({"title": candidate.title, "error": str(e)})
                logger.warning(f"Skipping invalid record '{candidate.title}': {e}")

        summary = {"created": len(created), "failed": len(failures), "articleIds": created}
        if failures:
            await self.log.warning(
                source_type,
                "ingestion_batch",
                f"Ingested {len(created)} items, {len(failures)} rejected",
                created=len(created),
                failed=len(failures),
                failures=failures,
            )
        else:
            await self.log.success(
                source_type,
                "ingestion_batch",
                f"Ingested {len(created)} items",
                created=len(created),
            )
        return summary
