"""
Core data models for the monitoring platform.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SourceType(str, Enum):
    FACEBOOK_POST = "FACEBOOK_POST"
    NEWS_ARTICLE = "NEWS_ARTICLE"


class ContentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    ANALYZED = "ANALYZED"
    ERROR = "ERROR"


class LogStatus(str, Enum):
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"


class ApiModel(BaseModel):
    """Base for models exchanged over HTTP: camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# --------------------------------------------------------------------------- #
# Pipeline items


class RawItem(BaseModel):
    """Raw data fetched from a source."""
    source: str
    payload: bytes
    fetched_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ParsedItem(BaseModel):
    """Parsed and structured data."""
    topic: str
    content: Dict[str, Any]
    discovered_at: datetime = Field(default_factory=utcnow)


# --------------------------------------------------------------------------- #
# Persisted entities


class SourceRef(ApiModel):
    """Resolved source info attached to content items."""
    name: str
    type: SourceType


class Source(ApiModel):
    id: str
    name: str
    type: SourceType
    url: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: datetime
    article_count: Optional[int] = None


class ContentItem(ApiModel):
    """A single ingested article or social post."""
    id: str
    source_id: str
    title: str
    content: str
    summary: Optional[str] = None
    ai_analysis: Optional[str] = None
    original_url: Optional[str] = None
    published_at: datetime
    created_at: datetime
    status: ContentStatus = ContentStatus.PENDING
    tags: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    source: Optional[SourceRef] = None


class TimelineEvent(ApiModel):
    id: str
    article_id: str
    event_type: str
    event_date: datetime
    title: str
    description: Optional[str] = None
    importance: int = 1
    created_at: datetime


class MonitoringLogEntry(ApiModel):
    id: str
    source_type: SourceType
    action: str
    status: LogStatus
    message: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# --------------------------------------------------------------------------- #
# Inputs and results


class ArticleCandidate(ApiModel):
    """Normalized record handed to the ingestion path.

    Required fields are optional here so that validation can report every
    missing field at once instead of failing on the first.
    """
    source_id: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    original_url: Optional[str] = None
    summary: Optional[str] = None
    ai_analysis: Optional[Any] = None
    published_at: Optional[datetime] = None
    tags: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None


class SourceCandidate(ApiModel):
    name: Optional[str] = None
    type: Optional[SourceType] = None
    url: Optional[str] = None
    description: Optional[str] = None


class SourceUpdate(ApiModel):
    name: Optional[str] = None
    type: Optional[SourceType] = None
    url: Optional[str] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class TimelineCandidate(ApiModel):
    article_id: Optional[str] = None
    event_type: Optional[str] = None
    event_date: Optional[datetime] = None
    title: Optional[str] = None
    description: Optional[str] = None
    importance: Optional[int] = None


class CollapseResult(ApiModel):
    total_removed: int = 0
    exact_duplicates: int = 0
    fuzzy_duplicates: int = 0
