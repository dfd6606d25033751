"""
Tests for monitor pipelines and the news/social/ingest plugins.

Network access is replaced by FakeHttp from conftest.
"""

import json
from datetime import datetime, timezone

import pytest

from monitor.config import Settings
from monitor.errors import MonitorError, NotFoundError
from monitor.ingestion import IngestionService
from monitor.models import LogStatus, ParsedItem, RawItem, SourceType
from monitor.pipeline import DEFAULT_PIPELINES, MonitorRunner, load_pipelines_config
from monitor.plugin_loader import list_available, refresh_registry
from monitor.relevance import extract_keywords, is_conflict_related, is_social_post_related

from plugins.ingest import ArticleSink
from plugins.news import ArticleContentEnricher, RssParser
from plugins.news.enricher import extract_article_text
from plugins.social import SocialPostParser

from tests.conftest import FakeHttp

FEED_URL = "https://feeds.example/world.xml"
LONG_BODY = ("Thai and Cambodian foreign ministers met in Bangkok to discuss the "
             "border dispute and agreed on a ceasefire monitoring mechanism. ") * 2

RSS = f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Example World</title>
    <link>https://feeds.example</link>
    <item>
      <title>Thailand and Cambodia hold border talks</title>
      <link>https://feeds.example/articles/1</link>
      <description>&lt;p&gt;{LONG_BODY}&lt;/p&gt;</description>
      <pubDate>Thu, 24 Jul 2025 06:30:00 GMT</pubDate>
    </item>
    <item>
      <title>Stock markets rally in Europe</title>
      <link>https://feeds.example/articles/2</link>
      <description>Shares rose across the continent.</description>
      <pubDate>Thu, 24 Jul 2025 07:00:00 GMT</pubDate>
    </item>
    <item>
      <title>Cambodia reports border shelling</title>
      <link>https://feeds.example/articles/3</link>
      <description>Short teaser.</description>
      <pubDate>Thu, 24 Jul 2025 07:30:00 GMT</pubDate>
    </item>
  </channel>
</rss>
"""

ARTICLE_HTML = f"""
<html><body>
  <nav>Home | World | Sport</nav>
  <article><h1>Cambodia reports border shelling</h1><p>{LONG_BODY}</p></article>
  <footer>Copyright</footer>
  <script>var tracking = 1;</script>
</body></html>
"""

FEEDS = [{"name": "Example World", "url": FEED_URL, "website": "https://feeds.example"}]


def parsed(title, content, url, source_url="https://feeds.example/rss"):
    return ParsedItem(topic="article", content={
        "title": title,
        "content": content,
        "url": url,
        "published_at": datetime(2025, 7, 24, 6, 30, tzinfo=timezone.utc),
        "source_name": "Example World",
        "source_url": source_url,
        "metadata": {"author": None, "sourceWebsite": "https://feeds.example"},
        "timeline": {"event_type": "news_article", "title": f"Example World: {title}"},
    })


async def stream(items):
    for item in items:
        yield item


async def collect(aiter):
    return [item async for item in aiter]


class TestRelevance:

    def test_both_countries_is_relevant(self):
        assert is_conflict_related("Thailand and Cambodia sign an MoU")

    def test_one_country_needs_conflict_term(self):
        assert not is_conflict_related("Thai cuisine festival opens")
        assert is_conflict_related("Thai troops deployed", title="")

    def test_khmer_terms(self):
        assert is_conflict_related("ជម្លោះព្រំដែន កម្ពុជា")

    def test_unrelated(self):
        assert not is_conflict_related("Stock markets rally in Europe")

    def test_social_rule_is_looser(self):
        assert is_social_post_related("Queues at the Poipet crossing this morning")
        assert not is_social_post_related("Lovely weather today")

    def test_extract_keywords_dedupes_and_caps(self):
        keywords = extract_keywords("Thailand border Thailand ceasefire dispute embassy " * 3)
        assert keywords[:2] == ["thailand", "border"]
        assert len(keywords) == len(set(keywords))
        assert len(keywords) <= 15


class TestNewsPlugin:

    @pytest.mark.asyncio
    async def test_parser_keeps_relevant_entries(self):
        parser = RssParser()
        raw = RawItem(source="rss.test", payload=RSS.encode(), metadata=FEEDS[0])

        items = await parser.parse(raw)

        titles = [item.content["title"] for item in items]
        assert titles == ["Thailand and Cambodia hold border talks", "Cambodia reports border shelling"]
        first = items[0].content
        assert first["url"] == "https://feeds.example/articles/1"
        assert first["published_at"] == datetime(2025, 7, 24, 6, 30, tzinfo=timezone.utc)
        assert "<p>" not in first["content"]
        assert first["source_url"] == FEED_URL
        assert parser.stats() == {"fetched": 3, "relevant": 2}

    def test_extract_article_text_skips_boilerplate(self):
        text = extract_article_text(ARTICLE_HTML)
        assert text.startswith("Cambodia reports border shelling")
        assert "Home | World" not in text
        assert "tracking" not in text
        assert "Copyright" not in text

    @pytest.mark.asyncio
    async def test_enricher_scrapes_short_items_and_drops_stubs(self):
        http = FakeHttp(text={"https://feeds.example/articles/3": ARTICLE_HTML})
        enricher = ArticleContentEnricher(http=http)
        items = [
            parsed("Long", LONG_BODY, "https://feeds.example/articles/1"),
            parsed("Short", "Short teaser.", "https://feeds.example/articles/3"),
            parsed("Stub", "Tiny.", "https://feeds.example/articles/404"),
        ]

        out = await collect(enricher(stream(items)))

        assert [item.content["title"] for item in out] == ["Long", "Short"]
        assert len(out[1].content["content"]) > 100
        assert http.requests == ["https://feeds.example/articles/3", "https://feeds.example/articles/404"]
        assert enricher.stats() == {"scraped": 1, "tooShort": 1}


class TestSocialPlugin:

    @pytest.mark.asyncio
    async def test_parser_maps_posts(self):
        body = {"results": [
            {
                "post_id": "111",
                "message": "Statement on the Thailand Cambodia border situation and ongoing talks.",
                "timestamp": 1753340400,
                "author": {"id": "9", "name": "Ministry of Foreign Affairs"},
                "url": "https://facebook.com/mfa/posts/111",
            },
            {"post_id": "112", "message": "Too short", "timestamp": 1753340400},
            {"post_id": "113", "message": "A long post about the weather and a football game last night.",
             "timestamp": 1753340400},
        ]}
        raw = RawItem(
            source="social.search",
            payload=json.dumps(body).encode(),
            metadata={"query": "Thailand Cambodia border", "preset": "search"},
        )
        parser = SocialPostParser()

        items = await parser.parse(raw)

        assert len(items) == 1
        record = items[0].content
        assert record["title"] == "Ministry of Foreign Affairs - 2025-07-24"
        assert record["url"] == "https://facebook.com/mfa/posts/111"
        assert record["source_url"] == "facebook-search:Thailand Cambodia border"
        assert record["metadata"]["postId"] == "111"
        assert parser.stats() == {"fetched": 3, "relevant": 1}

    @pytest.mark.asyncio
    async def test_official_preset_naming(self):
        body = [{"id": "7", "text": "Royal Thai Government statement on border cooperation with Cambodia."}]
        raw = RawItem(
            source="social.official",
            payload=json.dumps(body).encode(),
            metadata={"query": "Royal Thai Government", "preset": "official"},
        )

        items = await SocialPostParser().parse(raw)

        record = items[0].content
        assert record["source_url"] == "facebook-official:royal-thai-government"
        assert record["url"] == "https://facebook.com/7"
        assert record["timeline"]["title"] == "Official: Unknown User posted update"


class TestArticleSink:

    @pytest.mark.asyncio
    async def test_ingests_new_items_and_skips_known_urls(self, store, monitoring_log):
        ingestion = IngestionService(store, monitoring_log)
        items = [
            parsed("Border talks", LONG_BODY, "https://feeds.example/articles/1"),
            parsed("Border talks again", LONG_BODY, "https://feeds.example/articles/1"),
            parsed("Ceasefire holds", LONG_BODY, "https://feeds.example/articles/2"),
        ]

        sink = ArticleSink(store=store, ingestion=ingestion, source_type=SourceType.NEWS_ARTICLE)
        await collect(sink(stream(items)))

        assert sink.stats() == {"created": 2, "skipped": 1, "failed": 0, "timelineEvents": 2}
        sources = await store.list_sources(with_counts=True)
        assert [(s.url, s.article_count) for s in sources] == [("https://feeds.example/rss", 2)]

        articles, total = await store.list_articles()
        assert total == 2
        assert all("border" in a.tags for a in articles)
        events = await store.list_timeline_events()
        assert {e.title for e in events} == {"Example World: Border talks", "Example World: Ceasefire holds"}

        second = ArticleSink(store=store, ingestion=ingestion)
        await collect(second(stream(items)))
        assert second.stats()["created"] == 0
        assert second.stats()["skipped"] == 3


class TestMonitorRunner:

    def test_plugins_are_discovered(self):
        refresh_registry()
        available = list_available()
        for cfg in DEFAULT_PIPELINES.values():
            for stage in cfg["chain"]:
                assert stage["class"] in available

    def test_missing_config_falls_back_to_defaults(self, tmp_path):
        assert load_pipelines_config(str(tmp_path / "absent.yml")) == DEFAULT_PIPELINES

    @pytest.mark.asyncio
    async def test_unknown_monitor(self, store, monitoring_log):
        runner = MonitorRunner(DEFAULT_PIPELINES, monitoring_log, resources={})
        with pytest.raises(NotFoundError):
            await runner.run("nope")

    @pytest.mark.asyncio
    async def test_news_run_end_to_end(self, store, monitoring_log):
        http = FakeHttp(text={FEED_URL: RSS, "https://feeds.example/articles/3": ARTICLE_HTML})
        pipelines = {
            "news": {
                "source_type": "NEWS_ARTICLE",
                "chain": [
                    {"class": "news.RssFetcher", "kwargs": {"feeds": FEEDS}},
                    {"class": "news.RssParser"},
                    {"class": "news.ArticleContentEnricher"},
                    {"class": "ingest.ArticleSink"},
                ],
            }
        }
        ingestion = IngestionService(store, monitoring_log)
        runner = MonitorRunner(
            pipelines,
            monitoring_log,
            resources={"store": store, "ingestion": ingestion, "log": monitoring_log, "http": http},
        )

        result = await runner.run("news")

        assert result["success"] is True
        assert result["fetched"] == 3
        assert result["created"] == 2
        assert http.closed

        logs = await store.list_logs(source_type=SourceType.NEWS_ARTICLE)
        actions = [(entry.action, entry.status) for entry in logs]
        assert actions[0] == ("monitoring_completed", LogStatus.SUCCESS)
        assert actions[-1] == ("monitoring_started", LogStatus.INFO)

    @pytest.mark.asyncio
    async def test_failed_feed_is_logged_and_run_continues(self, store, monitoring_log):
        http = FakeHttp(text={})
        pipelines = {
            "news": {
                "source_type": "NEWS_ARTICLE",
                "chain": [
                    {"class": "news.RssFetcher", "kwargs": {"feeds": FEEDS}},
                    {"class": "news.RssParser"},
                    {"class": "ingest.ArticleSink"},
                ],
            }
        }
        runner = MonitorRunner(
            pipelines,
            monitoring_log,
            resources={
                "store": store,
                "ingestion": IngestionService(store, monitoring_log),
                "log": monitoring_log,
                "http": http,
            },
        )

        result = await runner.run("news")

        assert result["feedErrors"] == 1
        assert result["created"] == 0
        actions = [entry.action for entry in await store.list_logs()]
        assert "source_processing" in actions

    @pytest.mark.asyncio
    async def test_social_run_without_api_key_fails(self, store, monitoring_log):
        runner = MonitorRunner(
            DEFAULT_PIPELINES,
            monitoring_log,
            resources={
                "store": store,
                "ingestion": IngestionService(store, monitoring_log),
                "log": monitoring_log,
                "http": FakeHttp(),
                "settings": Settings(social_api_key=None),
            },
        )

        with pytest.raises(MonitorError, match="SOCIAL_API_KEY"):
            await runner.run("facebook")

        entry = (await store.list_logs(limit=1))[0]
        assert entry.action == "monitoring_error"
        assert entry.status == LogStatus.ERROR
        assert entry.source_type == SourceType.FACEBOOK_POST
