"""
Tests for the duplicate collapse engine.

Covers exact (title, source) groups, the title-prefix/time-gap fuzzy rule,
removal of dependent timeline events, idempotence and the summary log entry.
"""

from datetime import timedelta

import pytest

from monitor.dedup import DuplicateCollapseEngine, TitlePrefixPolicy
from monitor.models import ContentItem, LogStatus, SourceType

from tests.conftest import T0

PREFIX_60 = ("Thailand and Cambodia resume border talks after shelling " * 2)[:60]


async def add(store, source, title, created_at, content="Body text"):
    return await store.create_article(source.id, title, content, created_at=created_at)


async def surviving_ids(store):
    items = await store.list_articles_created_since(T0 - timedelta(days=30))
    return [item.id for item in items]


@pytest.fixture
def engine(store, monitoring_log, clock):
    clock.now = T0 + timedelta(days=1)
    return DuplicateCollapseEngine(store, monitoring_log, clock=clock)


def item(title, source_id="src-1", minutes=0):
    return ContentItem(
        id=f"id-{title}-{minutes}",
        source_id=source_id,
        title=title,
        content="Body text",
        published_at=T0,
        created_at=T0 + timedelta(minutes=minutes),
    )


class TestTitlePrefixPolicy:

    def test_matches_on_lowercased_prefix(self):
        policy = TitlePrefixPolicy()
        assert policy.matches(item(PREFIX_60 + " a"), item(PREFIX_60.upper() + " b", minutes=30))

    def test_gap_is_strict(self):
        policy = TitlePrefixPolicy(max_gap=timedelta(hours=2))
        assert policy.matches(item("Same", minutes=0), item("Same", minutes=119))
        assert not policy.matches(item("Same", minutes=0), item("Same", minutes=120))

    def test_gap_is_symmetric(self):
        policy = TitlePrefixPolicy()
        assert policy.matches(item("Same", minutes=90), item("Same", minutes=0))

    def test_different_source_never_matches(self):
        policy = TitlePrefixPolicy()
        assert not policy.matches(item("Same"), item("Same", source_id="src-2"))

    def test_rejects_non_positive_prefix(self):
        with pytest.raises(ValueError):
            TitlePrefixPolicy(prefix_length=0)


class TestExactDuplicates:

    @pytest.mark.asyncio
    async def test_converges_to_earliest_created(self, store, engine, news_source):
        earliest = await add(store, news_source, "Border Talks Resume", T0)
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(hours=3))
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(hours=9))

        result = await engine.run()

        assert await surviving_ids(store) == [earliest.id]
        assert result.exact_duplicates == 1
        assert result.total_removed == 3

    @pytest.mark.asyncio
    async def test_same_title_different_source_is_kept(self, store, engine, news_source, social_source):
        await add(store, news_source, "Border Talks Resume", T0)
        await add(store, social_source, "Border Talks Resume", T0 + timedelta(minutes=5))

        result = await engine.run()

        assert result.total_removed == 0
        assert len(await surviving_ids(store)) == 2


class TestFuzzyDuplicates:

    @pytest.mark.asyncio
    async def test_collapses_inside_two_hours(self, store, engine, news_source):
        first = await add(store, news_source, PREFIX_60 + " today", T0)
        await add(store, news_source, PREFIX_60.upper() + " says ministry", T0 + timedelta(hours=1, minutes=59))

        result = await engine.run()

        assert await surviving_ids(store) == [first.id]
        assert result.exact_duplicates == 0
        assert result.fuzzy_duplicates == 1
        assert result.total_removed == 1

    @pytest.mark.asyncio
    async def test_keeps_both_beyond_two_hours(self, store, engine, news_source):
        await add(store, news_source, PREFIX_60 + " today", T0)
        await add(store, news_source, PREFIX_60 + " says ministry", T0 + timedelta(hours=2, minutes=1))

        result = await engine.run()

        assert result.total_removed == 0
        assert len(await surviving_ids(store)) == 2

    @pytest.mark.asyncio
    async def test_items_outside_window_are_ignored(self, store, engine, news_source):
        old = T0 - timedelta(days=10)
        await add(store, news_source, PREFIX_60 + " a", old)
        await add(store, news_source, PREFIX_60 + " b", old + timedelta(minutes=10))

        result = await engine.run()

        assert result.fuzzy_duplicates == 0
        assert len(await surviving_ids(store)) == 2

    @pytest.mark.asyncio
    async def test_item_matched_twice_is_removed_once(self, store, engine, news_source):
        first = await add(store, news_source, PREFIX_60 + " a", T0)
        await add(store, news_source, PREFIX_60 + " b", T0 + timedelta(minutes=20))
        await add(store, news_source, PREFIX_60 + " c", T0 + timedelta(minutes=40))

        result = await engine.run()

        # (a,b), (a,c) and (b,c) all match; b and c are each removed once
        assert result.fuzzy_duplicates == 3
        assert result.total_removed == 2
        assert await surviving_ids(store) == [first.id]

    @pytest.mark.asyncio
    async def test_custom_policy_constants(self, store, monitoring_log, clock, news_source):
        clock.now = T0 + timedelta(days=1)
        engine = DuplicateCollapseEngine(
            store,
            monitoring_log,
            policy=TitlePrefixPolicy(prefix_length=12, max_gap=timedelta(minutes=30)),
            clock=clock,
        )
        await add(store, news_source, "Border talks in Bangkok", T0)
        await add(store, news_source, "Border talks in Phnom Penh", T0 + timedelta(minutes=45))

        result = await engine.run()

        assert result.total_removed == 0


class TestCollapseRun:

    @pytest.mark.asyncio
    async def test_removes_dependent_timeline_events(self, store, engine, news_source):
        keep = await add(store, news_source, "Border Talks Resume", T0)
        drop = await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))
        await store.create_timeline_event(keep.id, "news_article", T0, "kept event")
        await store.create_timeline_event(drop.id, "news_article", T0, "dropped event")
        await store.create_timeline_event(drop.id, "news_article", T0, "dropped event 2")

        await engine.run()

        assert await store.count_timeline_events(drop.id) == 0
        assert await store.count_timeline_events(keep.id) == 1

    @pytest.mark.asyncio
    async def test_second_run_removes_nothing(self, store, engine, news_source):
        await add(store, news_source, "Border Talks Resume", T0)
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))
        await add(store, news_source, PREFIX_60 + " x", T0)
        await add(store, news_source, PREFIX_60 + " y", T0 + timedelta(hours=1))

        first = await engine.run()
        second = await engine.run()

        assert first.total_removed == 2
        assert second.total_removed == 0
        assert second.exact_duplicates == 0
        assert second.fuzzy_duplicates == 0

    @pytest.mark.asyncio
    async def test_scenario_counts_match_rows_removed(self, store, engine, news_source):
        a = await add(store, news_source, "Border Talks Resume", T0)
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))

        result = await engine.run()
        assert await surviving_ids(store) == [a.id]
        assert result.total_removed == 1

        # C differs from A only past the prefix, inside the gap
        long_a = await add(store, news_source, PREFIX_60 + " - Reuters", T0 + timedelta(minutes=5))
        await add(store, news_source, PREFIX_60 + " Today", T0 + timedelta(hours=1))
        # D shares A's short title but nothing with the long ones
        await add(store, news_source, "Border Talks Resume Today", T0 + timedelta(hours=1))

        before = await store.count_articles()
        result = await engine.run()
        after = await store.count_articles()

        assert result.total_removed == before - after == 1
        assert result.exact_duplicates == 0
        assert result.fuzzy_duplicates == 1
        assert set(await surviving_ids(store)) >= {a.id, long_a.id}

    @pytest.mark.asyncio
    async def test_writes_summary_log_entry(self, store, engine, news_source):
        await add(store, news_source, "Border Talks Resume", T0)
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))

        await engine.run()

        entry = (await store.list_logs(limit=1))[0]
        assert entry.action == "cleanup_duplicates"
        assert entry.status == LogStatus.SUCCESS
        assert entry.source_type == SourceType.NEWS_ARTICLE
        assert entry.metadata["totalRemoved"] == 1
        assert entry.metadata["exactDuplicates"] == 1
        assert entry.metadata["fuzzyDuplicates"] == 0

    @pytest.mark.asyncio
    async def test_failure_is_logged_and_raised(self, store, engine, monkeypatch):
        async def broken():
            raise RuntimeError("database is locked")

        monkeypatch.setattr(store, "find_exact_duplicate_groups", broken)

        with pytest.raises(RuntimeError):
            await engine.run()

        entry = (await store.list_logs(limit=1))[0]
        assert entry.status == LogStatus.ERROR
        assert "database is locked" in entry.message

    @pytest.mark.asyncio
    async def test_failed_removal_is_skipped(self, store, engine, news_source, monkeypatch):
        await add(store, news_source, "Border Talks Resume", T0)
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=30))
        await add(store, news_source, "Border Talks Resume", T0 + timedelta(minutes=40))

        real_delete = store.delete_article
        calls = []

        async def flaky_delete(article_id):
            calls.append(article_id)
            if len(calls) == 1:
                raise RuntimeError("disk I/O error")
            return await real_delete(article_id)

        monkeypatch.setattr(store, "delete_article", flaky_delete)

        result = await engine.run()

        # the failed exact removal is picked up again by the fuzzy phase
        assert len(calls) == 3
        assert result.exact_duplicates == 1
        assert result.fuzzy_duplicates == 1
        assert result.total_removed == 2
        assert await store.count_articles() == 1
