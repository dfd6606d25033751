"""
SQLite store connection for sources, articles, timeline events and the
monitoring log. One aiosqlite connection is shared by the whole process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, List, Optional, Tuple

import aiosqlite


logger = logging.getLogger(__name__)


SCHEMA_VERSION = 1

_SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS sources (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        type TEXT NOT NULL,
        url TEXT NOT NULL UNIQUE,
        description TEXT,
        is_active INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS articles (
        id TEXT PRIMARY KEY,
        source_id TEXT NOT NULL REFERENCES sources(id),
        title TEXT NOT NULL,
        content TEXT NOT NULL,
        summary TEXT,
        ai_analysis TEXT,
        original_url TEXT,
        published_at TEXT NOT NULL,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PENDING',
        tags TEXT NOT NULL DEFAULT '[]',
        metadata TEXT NOT NULL DEFAULT '{}'
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_articles_title_source ON articles (title, source_id)",
    "CREATE INDEX IF NOT EXISTS idx_articles_created_at ON articles (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_articles_original_url ON articles (original_url)",
    """
    CREATE TABLE IF NOT EXISTS timeline_events (
        id TEXT PRIMARY KEY,
        article_id TEXT NOT NULL REFERENCES articles(id),
        event_type TEXT NOT NULL,
        event_date TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        importance INTEGER NOT NULL DEFAULT 1,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_timeline_article ON timeline_events (article_id)",
    """
    CREATE TABLE IF NOT EXISTS monitoring_logs (
        id TEXT PRIMARY KEY,
        source_type TEXT NOT NULL,
        action TEXT NOT NULL,
        status TEXT NOT NULL,
        message TEXT NOT NULL,
        metadata TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_logs_created_at ON monitoring_logs (created_at)",
]


class Database:
    """Async SQLite database wrapper.

    A single connection is shared by every caller. It runs in autocommit
    mode so each statement is atomic on its own; ``transaction()`` groups
    statements and holds the connection lock until commit or rollback.
    """

    def __init__(self, db_path: str = "monitor.db"):
        # Handle SQLite URL format if provided
        if db_path.startswith("sqlite"):
            # Handle sqlite+aiosqlite:///path format
            if "///" in db_path:
                actual_path = db_path.split("///")[-1]
            else:
                actual_path = db_path.split("//")[-1]
            self.db_path = Path(actual_path)
        else:
            self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Connect to the database and run migrations."""
        if self._connection:
            return

        # Open connection with a longer busy timeout
        self._connection = await aiosqlite.connect(
            str(self.db_path), timeout=30, isolation_level=None
        )
        self._connection.row_factory = aiosqlite.Row
        # Improve concurrency: use WAL journal mode and set busy timeout (ms)
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        await self._run_migrations()

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            await self.connect()
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Context manager for database transactions.

        Statements inside the block must go through the yielded connection,
        not through ``execute``/``fetch_*`` (those wait for the same lock).
        """
        conn = await self._conn()
        async with self._lock:
            await conn.execute("BEGIN")
            try:
                yield conn
            except BaseException:
                await conn.execute("ROLLBACK")
                raise
            else:
                await conn.execute("COMMIT")

    async def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Execute a SQL statement; returns the affected row count."""
        conn = await self._conn()
        async with self._lock:
            cursor = await conn.execute(sql, params)
            rowcount = cursor.rowcount
            await cursor.close()
            return rowcount

    async def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        """Fetch one row."""
        conn = await self._conn()
        async with self._lock:
            async with conn.execute(sql, params) as cursor:
                return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        """Fetch all rows."""
        conn = await self._conn()
        async with self._lock:
            async with conn.execute(sql, params) as cursor:
                return list(await cursor.fetchall())

    async def fetch_value(self, sql: str, params: Tuple[Any, ...] = ()) -> Any:
        """Fetch the first column of the first row (e.g. a COUNT)."""
        row = await self.fetch_one(sql, params)
        return row[0] if row is not None else None

    async def _run_migrations(self) -> None:
        """Run database migrations."""
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS migrations (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        async with self._connection.execute("SELECT MAX(version) FROM migrations") as cursor:
            row = await cursor.fetchone()
        current = row[0] or 0
        if current >= SCHEMA_VERSION:
            return

        await self._connection.execute("BEGIN")
        try:
            for statement in _SCHEMA:
                await self._connection.execute(statement)
            await self._connection.execute(
                "INSERT INTO migrations (version) VALUES (?)", (SCHEMA_VERSION,)
            )
        except Exception:
            await self._connection.execute("ROLLBACK")
            raise
        await self._connection.execute("COMMIT")
        logger.info(f"Applied schema version {SCHEMA_VERSION} to {self.db_path}")
