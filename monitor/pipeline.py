"""
Monitor pipelines: Fetcher → Parser → ... → Sink chains declared in YAML.

A monitor run is what the scheduled jobs ultimately trigger. It fetches from
an external feed and hands every surviving item to the ingestion path.
"""

import logging
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List

import yaml

from .errors import NotFoundError
from .interfaces import Transform
from .log_sink import MonitoringLog
from .models import SourceType
from .plugin_loader import get as load_transform_class

logger = logging.getLogger(__name__)


DEFAULT_PIPELINES: Dict[str, Dict[str, Any]] = {
    "news": {
        "source_type": "NEWS_ARTICLE",
        "chain": [
            {"class": "news.RssFetcher"},
            {"class": "news.RssParser"},
            {"class": "news.ArticleContentEnricher"},
            {"class": "ingest.ArticleSink"},
        ],
    },
    "facebook": {
        "source_type": "FACEBOOK_POST",
        "chain": [
            {"class": "social.SocialSearchFetcher"},
            {"class": "social.SocialPostParser"},
            {"class": "ingest.ArticleSink"},
        ],
    },
    "official-pages": {
        "source_type": "FACEBOOK_POST",
        "chain": [
            {"class": "social.SocialSearchFetcher", "kwargs": {"preset": "official", "limit": 3}},
            {"class": "social.SocialPostParser"},
            {"class": "ingest.ArticleSink"},
        ],
    },
}


async def _drain(stages: List[Transform]) -> int:
    """Execute a pipeline by connecting transform stages; returns items out."""

    async def seed() -> AsyncIterator[None]:
        """Seed the pipeline with a single None value."""
        yield None

    stream: AsyncIterator[Any] = seed()
    count = 0

    # Use AsyncExitStack to properly manage context managers
    async with AsyncExitStack() as stack:
        for stage in stages:
            if hasattr(stage, "__aenter__"):
                await stack.enter_async_context(stage)

        for stage in stages:
            stream = stage(stream)

        # Sinks do the work; draining the final stream drives the chain
        async for _ in stream:
            count += 1
    return count


def build_stages(cfg: Dict[str, Any], resources: Dict[str, Any]) -> List[Transform]:
    """Instantiate every stage of a pipeline config.

    Shared resources (store, ingestion service, settings) are passed to each
    stage as keyword arguments next to the stage's own ``kwargs``.
    """
    stages: List[Transform] = []
    for entry in cfg["chain"]:
        cls = load_transform_class(entry["class"])
        kwargs = {**resources, **entry.get("kwargs", {})}
        stages.append(cls(**kwargs))
    return stages


async def run_pipeline(cfg: Dict[str, Any], resources: Dict[str, Any]) -> Dict[str, Any]:
    """Run a single pipeline; returns the merged stage counters."""
    stages = build_stages(cfg, resources)
    emitted = await _drain(stages)

    stats: Dict[str, Any] = {"emitted": emitted}
    for stage in stages:
        stats.update(stage.stats())
    return stats


def load_pipelines_config(config_path: str = "jobs.yml") -> Dict[str, Dict[str, Any]]:
    """Load pipeline configuration from YAML, falling back to DEFAULT_PIPELINES."""
    path = Path(config_path)

    if not path.exists():
        logger.warning(f"Pipeline config file not found: {config_path}; using defaults")
        return dict(DEFAULT_PIPELINES)

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    if "pipelines" not in data:
        logger.warning(f"No 'pipelines' key found in {config_path}; using defaults")
        return dict(DEFAULT_PIPELINES)

    pipelines = data["pipelines"]

    # Convert list format to dict format
    if isinstance(pipelines, list):
        return {p["name"]: p for p in pipelines}

    return pipelines


class MonitorRunner:
    """Runs named monitor pipelines and records each run in the monitoring log."""

    def __init__(
        self,
        pipelines: Dict[str, Dict[str, Any]],
        log: MonitoringLog,
        resources: Dict[str, Any],
    ):
        self.pipelines = pipelines
        self.log = log
        self.resources = resources

    def names(self) -> List[str]:
        return sorted(self.pipelines)

    def source_type(self, name: str) -> SourceType:
        if name not in self.pipelines:
            raise NotFoundError(f"Unknown monitor: {name}")
        return SourceType(self.pipelines[name].get("source_type", SourceType.NEWS_ARTICLE))

    async def run(self, name: str) -> Dict[str, Any]:
        source_type = self.source_type(name)
        cfg = self.pipelines[name]
        logger.info(f"Starting monitor pipeline: {name}")
        await self.log.info(source_type, "monitoring_started", f"{name} monitoring cycle started",
                            pipeline=name)

        try:
            stats = await run_pipeline(cfg, {**self.resources, "source_type": source_type})
        except Exception as e:
            logger.error(f"Monitor pipeline {name} failed: {e}", exc_info=True)
            await self.log.error(source_type, "monitoring_error", f"{name} monitoring failed: {e}",
                                 pipeline=name, error=repr(e))
            raise

        await self.log.success(
            source_type,
            "monitoring_completed",
            f"{name} monitoring completed. Fetched {stats.get('fetched', 0)}, "
            f"ingested {stats.get('created', 0)} new items",
            pipeline=name,
            **stats,
        )
        logger.info(f"Monitor pipeline completed: {name} {stats}")
        return {"success": True, "pipeline": name, **stats}
