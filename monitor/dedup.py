"""
Duplicate collapse engine.

Two independent phases run against the store:

* **exact**: items sharing ``(title, source_id)`` are grouped; the
  earliest-created member of each group survives.
* **fuzzy**: items created inside a trailing window are compared pairwise
  with a :class:`SimilarityPolicy`; for each matching pair the
  earliest-created member survives (ties broken by id).

Removing an item deletes its timeline events first and then the item, in one
transaction per item. A failed removal is logged and the batch continues.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Callable, Dict, List, Tuple

from .log_sink import MonitoringLog
from .models import CollapseResult, ContentItem, SourceType, utcnow
from .store import ContentStore


logger = logging.getLogger(__name__)


class SimilarityPolicy(ABC):
    """Decides whether two items are near-duplicates of each other."""

    @property
    @abstractmethod
    def name(self) -> str:
        ...

    @abstractmethod
    def matches(self, a: ContentItem, b: ContentItem) -> bool:
        ...


class TitlePrefixPolicy(SimilarityPolicy):
    """Same source, same lower-cased title prefix, created close together.

    Titles shorter than ``prefix_length`` compare on their full length.
    """

    name = "title-prefix"

    def __init__(self, prefix_length: int = 60, max_gap: timedelta = timedelta(hours=2)):
        if prefix_length <= 0:
            raise ValueError("prefix_length must be positive")
        self.prefix_length = prefix_length
        self.max_gap = max_gap

    def key(self, item: ContentItem) -> str:
        return item.title[: self.prefix_length].lower()

    def matches(self, a: ContentItem, b: ContentItem) -> bool:
        if a.source_id != b.source_id:
            return False
        if self.key(a) != self.key(b):
            return False
        return abs(a.created_at - b.created_at) < self.max_gap


def _survivor_order(item: ContentItem) -> Tuple:
    return (item.created_at, item.id)


class DuplicateCollapseEngine:
    """Finds and removes redundant content items."""

    ACTION = "cleanup_duplicates"

    def __init__(
        self,
        store: ContentStore,
        log: MonitoringLog,
        policy: SimilarityPolicy | None = None,
        window: timedelta = timedelta(days=7),
        clock: Callable = utcnow,
    ):
        self.store = store
        self.log = log
        self.policy = policy or TitlePrefixPolicy()
        self.window = window
        self.clock = clock

    async def find_exact_duplicates(self) -> Tuple[int, List[ContentItem]]:
        """Return (group count, items to remove) for exact (title, source) groups."""
        groups = await self.store.find_exact_duplicate_groups()
        losers: List[ContentItem] = []
        for title, source_id in groups:
            members = await self.store.list_group_members(title, source_id)
            if len(members) > 1:
                # members arrive oldest first; the first one is canonical
                losers.extend(members[1:])
        return len(groups), losers

    async def find_fuzzy_duplicates(self) -> Tuple[int, List[ContentItem]]:
        """Return (matching pair count, items to remove) inside the recent window.

        Each matching pair marks its later-created member. An item marked by
        several pairs is listed once.
        """
        recent = await self.store.list_articles_created_since(self.clock() - self.window)
        recent.sort(key=_survivor_order)

        pairs = 0
        marked: Dict[str, ContentItem] = {}
        for i, keep in enumerate(recent):
            for other in recent[i + 1:]:
                if self.policy.matches(keep, other):
                    pairs += 1
                    marked.setdefault(other.id, other)
        return pairs, list(marked.values())

    async def _remove(self, items: List[ContentItem], kind: str) -> int:
        removed = 0
        for item in items:
            try:
                if await self.store.delete_article(item.id):
                    removed += 1
                    logger.info(f"Removed {kind} duplicate: {item.title} ({item.id})")
                else:
                    logger.warning(f"{kind.capitalize()} duplicate already gone: {item.id}")
            except Exception as e:
                logger.error(f"Error removing {kind} duplicate {item.id}: {e}")
        return removed

    async def run(self) -> CollapseResult:
        """Run both phases and write one summary log entry.

        Unexpected failures are logged as ERROR and re-raised to the caller.
        """
        logger.info("Starting duplicate cleanup...")
        try:
            exact_groups, exact_losers = await self.find_exact_duplicates()
            total_removed = await self._remove(exact_losers, "exact")

            # Phase B reads the store again so that phase A removals are not
            # compared a second time.
            fuzzy_pairs, fuzzy_losers = await self.find_fuzzy_duplicates()
            total_removed += await self._remove(fuzzy_losers, "fuzzy")
        except Exception as e:
            logger.error(f"Duplicate cleanup failed: {e}", exc_info=True)
            await self.log.error(
                SourceType.NEWS_ARTICLE,
                self.ACTION,
                f"Duplicate cleanup failed: {e}",
                error=repr(e),
            )
            raise

        result = CollapseResult(
            total_removed=total_removed,
            exact_duplicates=exact_groups,
            fuzzy_duplicates=fuzzy_pairs,
        )
        await self.log.success(
            SourceType.NEWS_ARTICLE,
            self.ACTION,
            f"Duplicate cleanup completed. Removed {total_removed} duplicate articles",
            totalRemoved=result.total_removed,
            exactDuplicates=result.exact_duplicates,
            fuzzyDuplicates=result.fuzzy_duplicates,
            policy=self.policy.name,
        )
        logger.info(f"Cleanup complete. Removed {total_removed} duplicates")
        return result
