"""
Activity rollups targeted by the daily and weekly analytics jobs.

These summarize ingestion volume only. Scoring content (importance,
sentiment, casualty figures) belongs to an analysis service outside this
package.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List

from .log_sink import MonitoringLog
from .models import SourceType, utcnow
from .store import ContentStore


logger = logging.getLogger(__name__)


class ActivityRollup:
    def __init__(self, store: ContentStore, log: MonitoringLog, clock: Callable = utcnow):
        self.store = store
        self.log = log
        self.clock = clock

    async def daily_summary(self) -> Dict[str, Any]:
        """Items ingested in the last 24 hours, split by source type."""
        now = self.clock()
        rows = await self.store.article_counts_by_day(now - timedelta(days=1))

        by_type = {t.value: 0 for t in SourceType}
        for _, source_type, count in rows:
            by_type[source_type] = by_type.get(source_type, 0) + count
        total = sum(by_type.values())

        if total == 0:
            await self.log.info(SourceType.NEWS_ARTICLE, "daily_analytics",
                                "No content ingested in the last 24 hours",
                                date=now.date().isoformat())
        else:
            await self.log.success(SourceType.NEWS_ARTICLE, "daily_analytics",
                                   f"Daily summary: {total} items ingested",
                                   date=now.date().isoformat(), byType=by_type)
        return {"success": True, "date": now.date().isoformat(), "total": total, "byType": by_type}

    async def weekly_trends(self) -> Dict[str, Any]:
        """Per-day ingestion counts over the last seven days and their direction."""
        now = self.clock()
        start = now - timedelta(days=7)
        rows = await self.store.article_counts_by_day(start)

        days: Dict[str, int] = {}
        for day, _, count in rows:
            days[day] = days.get(day, 0) + count
        series: List[Dict[str, Any]] = [{"date": d, "count": c} for d, c in sorted(days.items())]

        trend = 0
        if len(series) > 1:
            trend = series[-1]["count"] - series[0]["count"]

        period = {"start": start.date().isoformat(), "end": now.date().isoformat()}
        if not series:
            await self.log.info(SourceType.NEWS_ARTICLE, "weekly_trends",
                                "No content ingested this week", **period)
        else:
            await self.log.success(SourceType.NEWS_ARTICLE, "weekly_trends",
                                   f"Weekly trends: {sum(days.values())} items over {len(series)} days",
                                   trend=trend, **period)
        return {"success": True, "period": period, "daily": series, "trend": trend}
