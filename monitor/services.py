"""
Process-wide service wiring.

Everything is constructed once from Settings and handed to the HTTP layer,
the CLI and the tests as a single container.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from .analytics import ActivityRollup
from .config import Settings, get_settings
from .dedup import DuplicateCollapseEngine, TitlePrefixPolicy
from .infra.db import Database
from .ingestion import IngestionService
from .jobs import http_action_factory, load_job_registry, load_timezone
from .log_sink import MonitoringLog
from .pipeline import MonitorRunner, load_pipelines_config
from .scheduler import MonitoringScheduler
from .store import ContentStore


logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: Database
    store: ContentStore
    log: MonitoringLog
    ingestion: IngestionService
    collapse: DuplicateCollapseEngine
    monitors: MonitorRunner
    scheduler: MonitoringScheduler
    analytics: ActivityRollup

    async def start(self) -> None:
        await self.db.connect()
        if self.settings.scheduler_enabled:
            jobs = await self.scheduler.initialize()
            logger.info(f"Scheduler auto-initialized with {len(jobs)} job(s)")
        else:
            logger.info("Scheduler mode disabled; waiting for an explicit initialize")

    async def stop(self) -> None:
        await self.scheduler.close()
        await self.db.close()


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()

    db = Database(settings.database_url)
    store = ContentStore(db)
    log = MonitoringLog(store)
    ingestion = IngestionService(store, log)

    policy = TitlePrefixPolicy(
        prefix_length=settings.dedup_title_prefix,
        max_gap=timedelta(minutes=settings.dedup_max_gap_minutes),
    )
    collapse = DuplicateCollapseEngine(
        store, log, policy=policy, window=timedelta(days=settings.dedup_window_days)
    )

    monitors = MonitorRunner(
        load_pipelines_config(settings.jobs_config),
        log,
        resources={"store": store, "ingestion": ingestion, "log": log, "settings": settings},
    )

    timezone = load_timezone(settings.jobs_config, default=settings.scheduler_timezone)
    scheduler = MonitoringScheduler(
        load_job_registry(settings.jobs_config),
        http_action_factory(settings.api_base_url, settings.job_timeout),
        log,
        timezone=timezone,
    )

    return Services(
        settings=settings,
        db=db,
        store=store,
        log=log,
        ingestion=ingestion,
        collapse=collapse,
        monitors=monitors,
        scheduler=scheduler,
        analytics=ActivityRollup(store, log),
    )
