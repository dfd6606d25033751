"""
Social plugin: public posts found through the RapidAPI Facebook scraper.

This plugin provides:
- SocialSearchFetcher: runs each search query against the scraper API
- SocialPostParser: maps posts to article records
"""

from .fetcher import OFFICIAL_QUERIES, SEARCH_QUERIES, SocialSearchFetcher
from .parser import SocialPostParser

__all__ = [
    "OFFICIAL_QUERIES",
    "SEARCH_QUERIES",
    "SocialSearchFetcher",
    "SocialPostParser",
]
