"""
Persistence for sources, content items, timeline events and monitoring logs.

All SQL lives here; services above only deal in models.
"""

import json
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from .errors import ValidationError
from .infra.db import Database
from .models import (
    ContentItem,
    ContentStatus,
    LogStatus,
    MonitoringLogEntry,
    Source,
    SourceRef,
    SourceType,
    TimelineEvent,
    utcnow,
)


logger = logging.getLogger(__name__)

TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_ARTICLE_COLUMNS = """
    a.id, a.source_id, a.title, a.content, a.summary, a.ai_analysis,
    a.original_url, a.published_at, a.created_at, a.status, a.tags,
    a.metadata, s.name AS source_name, s.type AS source_type
"""


def to_db_ts(value: datetime) -> str:
    """Fixed-width UTC string; lexical order equals chronological order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TS_FORMAT)


def from_db_ts(value: str) -> datetime:
    return datetime.strptime(value, TS_FORMAT).replace(tzinfo=timezone.utc)


def new_id() -> str:
    return uuid.uuid4().hex


def _row_to_article(row: aiosqlite.Row) -> ContentItem:
    source = None
    if row["source_name"] is not None:
        source = SourceRef(name=row["source_name"], type=row["source_type"])
    return ContentItem(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        content=row["content"],
        summary=row["summary"],
        ai_analysis=row["ai_analysis"],
        original_url=row["original_url"],
        published_at=from_db_ts(row["published_at"]),
        created_at=from_db_ts(row["created_at"]),
        status=row["status"],
        tags=json.loads(row["tags"] or "[]"),
        metadata=json.loads(row["metadata"] or "{}"),
        source=source,
    )


def _row_to_source(row: aiosqlite.Row) -> Source:
    keys = row.keys()
    return Source(
        id=row["id"],
        name=row["name"],
        type=row["type"],
        url=row["url"],
        description=row["description"],
        is_active=bool(row["is_active"]),
        created_at=from_db_ts(row["created_at"]),
        article_count=row["article_count"] if "article_count" in keys else None,
    )


def _row_to_event(row: aiosqlite.Row) -> TimelineEvent:
    return TimelineEvent(
        id=row["id"],
        article_id=row["article_id"],
        event_type=row["event_type"],
        event_date=from_db_ts(row["event_date"]),
        title=row["title"],
        description=row["description"],
        importance=row["importance"],
        created_at=from_db_ts(row["created_at"]),
    )


def _row_to_log(row: aiosqlite.Row) -> MonitoringLogEntry:
    return MonitoringLogEntry(
        id=row["id"],
        source_type=row["source_type"],
        action=row["action"],
        status=row["status"],
        message=row["message"],
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=from_db_ts(row["created_at"]),
    )


class ContentStore:
    """Repository over the monitoring tables."""

    def __init__(self, db: Database):
        self.db = db

    # ------------------------------------------------------------------ #
    # Sources

    async def create_source(
        self,
        name: str,
        source_type: SourceType,
        url: str,
        description: Optional[str] = None,
    ) -> Source:
        source_id = new_id()
        now = to_db_ts(utcnow())
        await self.db.execute(
            """
            INSERT INTO sources (id, name, type, url, description, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 1, ?, ?)
            """,
            (source_id, name, SourceType(source_type).value, url, description, now, now),
        )
        return await self.get_source(source_id)

    async def upsert_source(
        self,
        name: str,
        source_type: SourceType,
        url: str,
        description: Optional[str] = None,
    ) -> Source:
        """Create the source for ``url`` or refresh its name and reactivate it."""
        now = to_db_ts(utcnow())
        await self.db.execute(
            """
            INSERT INTO sources (id, name, type, url, description, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, 1, ?, ?)
            ON CONFLICT(url) DO UPDATE SET
                name = excluded.name, is_active = 1, updated_at = excluded.updated_at
            """,
            (new_id(), name, SourceType(source_type).value, url, description, now, now),
        )
        return await self.get_source_by_url(url)

    async def get_source(self, source_id: str) -> Optional[Source]:
        row = await self.db.fetch_one("SELECT * FROM sources WHERE id = ?", (source_id,))
        return _row_to_source(row) if row else None

    async def get_source_by_url(self, url: str) -> Optional[Source]:
        row = await self.db.fetch_one("SELECT * FROM sources WHERE url = ?", (url,))
        return _row_to_source(row) if row else None

    async def update_source(self, source_id: str, **fields: Any) -> Optional[Source]:
        """Apply ``fields`` (name, source_type, url, description, is_active).

        None values are left unchanged. Returns None for an unknown id.
        """
        columns = {
            "name": "name",
            "source_type": "type",
            "url": "url",
            "description": "description",
            "is_active": "is_active",
        }
        assignments, params = [], []
        for key, value in fields.items():
            if key not in columns:
                raise TypeError(f"Unknown source field: {key}")
            if value is None:
                continue
            if key == "source_type":
                value = SourceType(value).value
            elif key == "is_active":
                value = 1 if value else 0
            assignments.append(f"{columns[key]} = ?")
            params.append(value)

        if assignments:
            assignments.append("updated_at = ?")
            params.append(to_db_ts(utcnow()))
            await self.db.execute(
                f"UPDATE sources SET {', '.join(assignments)} WHERE id = ?",
                tuple(params) + (source_id,),
            )
        return await self.get_source(source_id)

    async def delete_source(self, source_id: str, cascade: bool = False) -> Optional[Dict[str, int]]:
        """Delete a source; with ``cascade`` its articles and their timeline
        events go too, all in one transaction.

        Without ``cascade`` a source that still has articles is refused with
        ValidationError. Returns None for an unknown id, otherwise the number
        of rows removed per table.
        """
        async with self.db.transaction() as conn:
            cursor = await conn.execute("SELECT COUNT(*) FROM sources WHERE id = ?", (source_id,))
            (exists,) = await cursor.fetchone()
            await cursor.close()
            if not exists:
                return None

            cursor = await conn.execute("SELECT COUNT(*) FROM articles WHERE source_id = ?", (source_id,))
            (articles,) = await cursor.fetchone()
            await cursor.close()
            if articles and not cascade:
                raise ValidationError(
                    f"Source {source_id} still has {articles} articles; pass cascade=true to delete them",
                    ["cascade"],
                )

            cursor = await conn.execute(
                """
                DELETE FROM timeline_events
                WHERE article_id IN (SELECT id FROM articles WHERE source_id = ?)
                """,
                (source_id,),
            )
            events = cursor.rowcount
            await cursor.close()
            await conn.execute("DELETE FROM articles WHERE source_id = ?", (source_id,))
            await conn.execute("DELETE FROM sources WHERE id = ?", (source_id,))

        logger.info(f"Deleted source {source_id} ({articles} articles, {events} timeline events)")
        return {"articles": articles, "timelineEvents": events}

    async def list_sources(
        self,
        source_type: Optional[SourceType] = None,
        active: Optional[bool] = None,
        with_counts: bool = False,
    ) -> List[Source]:
        clauses, params = [], []
        if source_type is not None:
            clauses.append("s.type = ?")
            params.append(SourceType(source_type).value)
        if active is not None:
            clauses.append("s.is_active = ?")
            params.append(1 if active else 0)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        if with_counts:
            sql = f"""
                SELECT s.*, (SELECT COUNT(*) FROM articles a WHERE a.source_id = s.id) AS article_count
                FROM sources s {where} ORDER BY s.type ASC, s.name ASC
            """
        else:
            sql = f"SELECT s.* FROM sources s {where} ORDER BY s.type ASC, s.name ASC"
        rows = await self.db.fetch_all(sql, tuple(params))
        return [_row_to_source(r) for r in rows]

    # ------------------------------------------------------------------ #
    # Articles

    async def create_article(
        self,
        source_id: str,
        title: str,
        content: str,
        *,
        original_url: Optional[str] = None,
        summary: Optional[str] = None,
        ai_analysis: Optional[str] = None,
        published_at: Optional[datetime] = None,
        tags: Optional[List[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
        status: ContentStatus = ContentStatus.PENDING,
        created_at: Optional[datetime] = None,
    ) -> ContentItem:
        article_id = new_id()
        created = to_db_ts(created_at or utcnow())
        published = to_db_ts(published_at) if published_at else created
        await self.db.execute(
            """
            INSERT INTO articles (
                id, source_id, title, content, summary, ai_analysis, original_url,
                published_at, created_at, updated_at, status, tags, metadata
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                article_id,
                source_id,
                title,
                content,
                summary,
                ai_analysis,
                original_url,
                published,
                created,
                created,
                ContentStatus(status).value,
                json.dumps(tags or []),
                json.dumps(metadata or {}),
            ),
        )
        return await self.get_article(article_id)

    async def get_article(self, article_id: str) -> Optional[ContentItem]:
        row = await self.db.fetch_one(
            f"""
            SELECT {_ARTICLE_COLUMNS}
            FROM articles a LEFT JOIN sources s ON s.id = a.source_id
            WHERE a.id = ?
            """,
            (article_id,),
        )
        return _row_to_article(row) if row else None

    async def article_exists_with_url(self, url: str) -> bool:
        row = await self.db.fetch_one("SELECT 1 FROM articles WHERE original_url = ? LIMIT 1", (url,))
        return row is not None

    async def list_articles(
        self,
        *,
        page: int = 1,
        limit: int = 20,
        source_type: Optional[SourceType] = None,
        status: Optional[ContentStatus] = None,
        search: Optional[str] = None,
        source_id: Optional[str] = None,
        source_name: Optional[str] = None,
    ) -> Tuple[List[ContentItem], int]:
        """Return one page of articles (newest published first) and the total."""
        clauses, params = [], []
        if source_type is not None:
            clauses.append("s.type = ?")
            params.append(SourceType(source_type).value)
        if source_id:
            clauses.append("a.source_id = ?")
            params.append(source_id)
        if source_name:
            clauses.append("LOWER(s.name) LIKE ?")
            params.append(f"%{source_name.lower()}%")
        if status is not None:
            clauses.append("a.status = ?")
            params.append(ContentStatus(status).value)
        if search:
            clauses.append(
                "(LOWER(a.title) LIKE ? OR LOWER(a.content) LIKE ? OR LOWER(COALESCE(a.summary, '')) LIKE ?)"
            )
            needle = f"%{search.lower()}%"
            params.extend([needle, needle, needle])
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        base = f"FROM articles a LEFT JOIN sources s ON s.id = a.source_id {where}"

        total = await self.db.fetch_value(f"SELECT COUNT(*) {base}", tuple(params))
        offset = max(page - 1, 0) * limit
        rows = await self.db.fetch_all(
            f"SELECT {_ARTICLE_COLUMNS} {base} ORDER BY a.published_at DESC LIMIT ? OFFSET ?",
            tuple(params) + (limit, offset),
        )
        return [_row_to_article(r) for r in rows], total

    async def count_articles(self, **filters: Any) -> int:
        clauses, params = [], []
        if filters.get("created_since") is not None:
            clauses.append("created_at >= ?")
            params.append(to_db_ts(filters["created_since"]))
        if filters.get("status") is not None:
            clauses.append("status = ?")
            params.append(ContentStatus(filters["status"]).value)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return await self.db.fetch_value(f"SELECT COUNT(*) FROM articles {where}", tuple(params))

    async def count_active_sources(self) -> int:
        return await self.db.fetch_value("SELECT COUNT(*) FROM sources WHERE is_active = 1")

    async def article_counts_by_day(self, since: datetime) -> List[Tuple[str, str, int]]:
        """(UTC day, source type, count) for articles created since ``since``."""
        rows = await self.db.fetch_all(
            """
            SELECT substr(a.created_at, 1, 10) AS day, s.type AS source_type, COUNT(a.id) AS n
            FROM articles a JOIN sources s ON s.id = a.source_id
            WHERE a.created_at >= ?
            GROUP BY day, s.type
            ORDER BY day ASC, s.type ASC
            """,
            (to_db_ts(since),),
        )
        return [(r["day"], r["source_type"], r["n"]) for r in rows]

    async def article_status_counts(self, source_type: SourceType, since: datetime) -> Dict[str, int]:
        """Per-status counts of articles from ``source_type`` sources created since ``since``."""
        rows = await self.db.fetch_all(
            """
            SELECT a.status AS status, COUNT(a.id) AS n
            FROM articles a JOIN sources s ON s.id = a.source_id
            WHERE s.type = ? AND a.created_at >= ?
            GROUP BY a.status
            """,
            (SourceType(source_type).value, to_db_ts(since)),
        )
        return {r["status"]: r["n"] for r in rows}

    async def latest_article_created_at(self, source_type: SourceType) -> Optional[datetime]:
        value = await self.db.fetch_value(
            """
            SELECT MAX(a.created_at) FROM articles a JOIN sources s ON s.id = a.source_id
            WHERE s.type = ?
            """,
            (SourceType(source_type).value,),
        )
        return from_db_ts(value) if value else None

    async def find_exact_duplicate_groups(self) -> List[Tuple[str, str]]:
        """(title, source_id) pairs shared by more than one article."""
        rows = await self.db.fetch_all(
            """
            SELECT title, source_id FROM articles
            GROUP BY title, source_id
            HAVING COUNT(id) > 1
            ORDER BY MIN(created_at)
            """
        )
        return [(r["title"], r["source_id"]) for r in rows]

    async def list_group_members(self, title: str, source_id: str) -> List[ContentItem]:
        """Articles in a duplicate group, oldest first."""
        rows = await self.db.fetch_all(
            f"""
            SELECT {_ARTICLE_COLUMNS}
            FROM articles a LEFT JOIN sources s ON s.id = a.source_id
            WHERE a.title = ? AND a.source_id = ?
            ORDER BY a.created_at ASC, a.id ASC
            """,
            (title, source_id),
        )
        return [_row_to_article(r) for r in rows]

    async def list_articles_created_since(self, since: datetime) -> List[ContentItem]:
        """Articles created at or after ``since``, oldest first."""
        rows = await self.db.fetch_all(
            f"""
            SELECT {_ARTICLE_COLUMNS}
            FROM articles a LEFT JOIN sources s ON s.id = a.source_id
            WHERE a.created_at >= ?
            ORDER BY a.created_at ASC, a.id ASC
            """,
            (to_db_ts(since),),
        )
        return [_row_to_article(r) for r in rows]

    async def delete_article(self, article_id: str) -> bool:
        """Delete an article and its timeline events in one transaction.

        Returns False when the article no longer exists.
        """
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM timeline_events WHERE article_id = ?", (article_id,))
            cursor = await conn.execute("DELETE FROM articles WHERE id = ?", (article_id,))
            deleted = cursor.rowcount
            await cursor.close()
        return deleted > 0

    # ------------------------------------------------------------------ #
    # Timeline

    async def create_timeline_event(
        self,
        article_id: str,
        event_type: str,
        event_date: datetime,
        title: str,
        description: Optional[str] = None,
        importance: int = 1,
    ) -> TimelineEvent:
        event_id = new_id()
        await self.db.execute(
            """
            INSERT INTO timeline_events (id, article_id, event_type, event_date, title, description, importance, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                event_id,
                article_id,
                event_type,
                to_db_ts(event_date),
                title,
                description,
                importance,
                to_db_ts(utcnow()),
            ),
        )
        row = await self.db.fetch_one("SELECT * FROM timeline_events WHERE id = ?", (event_id,))
        return _row_to_event(row)

    async def list_timeline_events(
        self,
        limit: int = 50,
        event_type: Optional[str] = None,
        source_id: Optional[str] = None,
    ) -> List[TimelineEvent]:
        clauses, params = [], []
        if event_type:
            clauses.append("e.event_type = ?")
            params.append(event_type)
        if source_id:
            clauses.append("a.source_id = ?")
            params.append(source_id)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = await self.db.fetch_all(
            f"""
            SELECT e.* FROM timeline_events e JOIN articles a ON a.id = e.article_id
            {where} ORDER BY e.event_date DESC LIMIT ?
            """,
            tuple(params) + (limit,),
        )
        return [_row_to_event(r) for r in rows]

    async def count_timeline_events(self, article_id: str) -> int:
        return await self.db.fetch_value(
            "SELECT COUNT(*) FROM timeline_events WHERE article_id = ?", (article_id,)
        )

    # ------------------------------------------------------------------ #
    # Monitoring logs

    async def append_log(
        self,
        source_type: SourceType,
        action: str,
        status: LogStatus,
        message: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.db.execute(
            """
            INSERT INTO monitoring_logs (id, source_type, action, status, message, metadata, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_id(),
                SourceType(source_type).value,
                action,
                LogStatus(status).value,
                message,
                json.dumps(metadata or {}, default=str),
                to_db_ts(utcnow()),
            ),
        )

    async def list_logs(
        self, limit: int = 50, source_type: Optional[SourceType] = None
    ) -> List[MonitoringLogEntry]:
        if source_type is not None:
            rows = await self.db.fetch_all(
                "SELECT * FROM monitoring_logs WHERE source_type = ? ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (SourceType(source_type).value, limit),
            )
        else:
            rows = await self.db.fetch_all(
                "SELECT * FROM monitoring_logs ORDER BY created_at DESC, rowid DESC LIMIT ?",
                (limit,),
            )
        return [_row_to_log(r) for r in rows]
