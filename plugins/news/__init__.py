"""
News plugin: RSS feeds of international and regional outlets.

This plugin provides:
- RssFetcher: downloads each configured feed
- RssParser: turns feed entries into article records, keeping relevant ones
- ArticleContentEnricher: scrapes the article page when the feed text is short
"""

from .fetcher import NEWS_SOURCES, RssFetcher
from .parser import RssParser
from .enricher import ArticleContentEnricher

__all__ = [
    "NEWS_SOURCES",
    "RssFetcher",
    "RssParser",
    "ArticleContentEnricher",
]
