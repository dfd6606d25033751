"""social.parser – scraper search JSON → article records."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from monitor.interfaces import Parser
from monitor.models import ParsedItem, RawItem
from monitor.relevance import is_social_post_related

from .fetcher import PRESETS

logger = logging.getLogger(__name__)

__all__ = ["SocialPostParser", "extract_post_content", "normalize_post"]

MIN_CONTENT_CHARS = 50


def _post_list(body: Any) -> List[Dict[str, Any]]:
    if isinstance(body, dict):
        body = body.get("results") or body.get("data") or []
    return [p for p in body if isinstance(p, dict)] if isinstance(body, list) else []


def normalize_post(raw: Dict[str, Any], fetched_at: datetime) -> Dict[str, Any]:
    """Map one search result to a uniform post dict."""
    author = raw.get("author") or {}
    timestamp = raw.get("timestamp")
    if timestamp:
        created = datetime.fromtimestamp(float(timestamp), tz=timezone.utc)
    else:
        created = fetched_at

    attachments = []
    image = raw.get("image")
    if isinstance(image, dict) and image.get("uri"):
        attachments.append({"type": "photo", "url": image["uri"]})

    return {
        "id": str(raw.get("post_id") or raw.get("id") or ""),
        "message": raw.get("message") or raw.get("text") or "",
        "story": raw.get("story") or "",
        "created_time": created,
        "from": {
            "id": str(author.get("id") or "unknown"),
            "name": author.get("name") or "Unknown User",
        },
        "link": raw.get("external_url"),
        "permalink_url": raw.get("url"),
        "attachments": attachments,
    }


def extract_post_content(post: Dict[str, Any]) -> str:
    message = post.get("message") or ""
    story = post.get("story") or ""

    content = message
    if story and not message:
        content = story
    elif story and message:
        content = f"{message}\n\n{story}"

    texts = [
        f"{att.get('title') or ''} {att.get('description') or ''}".strip()
        for att in post.get("attachments") or []
        if att.get("title") or att.get("description")
    ]
    if texts:
        content += "\n\n" + "\n".join(texts)

    return content.strip()


class SocialPostParser(Parser):
    """Transform stage 2 – yields ``article`` ParsedItems for usable posts."""

    name = "SocialPostParser"

    def __init__(self, *, relevance_filter: bool = True, min_length: int = MIN_CONTENT_CHARS, **_: Any) -> None:
        self._filter = relevance_filter
        self._min_length = min_length
        self._seen = 0
        self._relevant = 0

    async def parse(self, item: RawItem) -> List[ParsedItem]:
        try:
            body = json.loads(item.payload)
        except ValueError as e:
            logger.warning(f"Invalid JSON from {item.source}: {e}")
            return []

        query: str = item.metadata.get("query", "")
        preset = PRESETS[item.metadata.get("preset", "search")]
        slug = "-".join(query.lower().split())

        out: List[ParsedItem] = []
        for raw in _post_list(body):
            self._seen += 1
            post = normalize_post(raw, item.fetched_at)
            content = extract_post_content(post)
            if len(content) < self._min_length:
                continue
            if self._filter and not is_social_post_related(content):
                continue

            self._relevant += 1
            author = post["from"]["name"]
            created: datetime = post["created_time"]
            out.append(ParsedItem(
                topic="article",
                content={
                    "title": f"{author} - {created.date().isoformat()}",
                    "content": content,
                    "url": post["permalink_url"] or _fallback_url(post["id"]),
                    "published_at": created,
                    "source_name": preset["source_name"].format(query=query),
                    "source_url": preset["source_url"].format(query=query, slug=slug),
                    "source_description": f"Facebook posts related to: {query}",
                    "metadata": {
                        "postId": post["id"],
                        "searchQuery": query,
                        "fromName": author,
                        "fromId": post["from"]["id"],
                        "link": post["link"],
                    },
                    "timeline": {
                        "event_type": "facebook_post",
                        "title": preset["timeline_title"].format(author=author, query=query),
                    },
                },
            ))

        logger.info(f"Query {query!r}: {len(out)} usable posts")
        return out

    def stats(self) -> Dict[str, Any]:
        return {"fetched": self._seen, "relevant": self._relevant}


def _fallback_url(post_id: str) -> Optional[str]:
    return f"https://facebook.com/{post_id}" if post_id else None
