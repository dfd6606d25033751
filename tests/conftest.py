import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

# Never auto-start the scheduler or pick up a developer's .env values in tests
os.environ["SCHEDULER_MODE"] = "disabled"

from monitor.infra.db import Database
from monitor.log_sink import MonitoringLog
from monitor.models import SourceType
from monitor.store import ContentStore


T0 = datetime(2025, 7, 24, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeHttp:
    """Stands in for HttpClient; answers from a url → body mapping."""

    def __init__(self, text=None, json=None):
        self.text = text or {}
        self.json = json or {}
        self.requests = []
        self.closed = False

    async def get_text(self, url, **kwargs):
        self.requests.append(url)
        if url not in self.text:
            raise ConnectionError(f"no route to {url}")
        return self.text[url]

    async def get_json(self, url, **kwargs):
        self.requests.append((url, kwargs.get("params")))
        query = (kwargs.get("params") or {}).get("query")
        if query not in self.json:
            raise ConnectionError(f"no results for {query}")
        return self.json[query]

    async def close(self):
        self.closed = True


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "monitor-test.db"))
    await database.connect()
    yield database
    await database.close()


@pytest.fixture
def store(db):
    return ContentStore(db)


@pytest.fixture
def monitoring_log(store):
    return MonitoringLog(store)


@pytest_asyncio.fixture
async def news_source(store):
    return await store.create_source("Test Wire", SourceType.NEWS_ARTICLE, "https://wire.example/rss")


@pytest_asyncio.fixture
async def social_source(store):
    return await store.create_source(
        "Facebook Search: border", SourceType.FACEBOOK_POST, "facebook-search:border"
    )
