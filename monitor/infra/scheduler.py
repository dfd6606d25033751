"""
Cron timers for the monitoring jobs, on top of APScheduler's asyncio scheduler.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter


logger = logging.getLogger(__name__)


def has_numeric_day_of_week(cron_expression: str) -> bool:
    """True when the day-of-week field uses numbers.

    croniter counts 0 as Sunday while APScheduler counts 0 as Monday, so a
    numeric day would validate as one day and fire on another.
    """
    fields = cron_expression.split()
    return len(fields) == 5 and re.search(r"\d", fields[4]) is not None


def validate_cron_expression(cron_expression: str) -> bool:
    """Validate a 5-field cron expression using croniter.

    Day-of-week must be ``*`` or names (``mon``, ``sun``).
    """
    if len(cron_expression.split()) != 5:
        return False
    if has_numeric_day_of_week(cron_expression):
        logger.error(f"Numeric day-of-week in '{cron_expression}'; use names such as mon or sun")
        return False
    try:
        croniter(cron_expression)
        return True
    except Exception as e:
        logger.error(f"Invalid cron expression '{cron_expression}': {e}")
        return False


def build_cron_trigger(cron_expression: str, timezone: str) -> CronTrigger:
    """Turn ``minute hour day month day_of_week`` into an APScheduler trigger.

    Day-of-week is given by name (``sun``, ``mon``).
    """
    if not validate_cron_expression(cron_expression):
        raise ValueError(f"Invalid cron expression: {cron_expression}")

    minute, hour, day, month, day_of_week = cron_expression.split()
    return CronTrigger(
        minute=minute,
        hour=hour,
        day=day,
        month=month,
        day_of_week=day_of_week,
        timezone=timezone,
    )


class Scheduler:
    """Async task scheduler wrapper around APScheduler.

    Jobs live in memory only: the registry is re-applied on every start.
    Each job allows a single running instance, so a tick that comes due
    while the previous run is still in flight is skipped by APScheduler.
    """

    def __init__(self, timezone: str = "Asia/Bangkok"):
        job_defaults = {
            "coalesce": True,
            "max_instances": 1,
            "misfire_grace_time": 60,  # seconds
        }
        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone=timezone)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start firing timers; jobs may be added before or after."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info(f"Scheduler started (timezone {self.timezone})")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    def add_cron_job(
        self,
        func: Callable,
        cron_expression: str,
        job_id: str,
        args: Optional[List[Any]] = None,
        **kwargs,
    ) -> None:
        """Add (or replace) a job that runs on a cron schedule."""
        trigger = build_cron_trigger(cron_expression, self.timezone)
        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            name=job_id,
            args=args or [],
            replace_existing=True,
            **kwargs,
        )
        logger.info(f"Added cron job: {job_id} ({cron_expression})")

    def remove_job(self, job_id: str) -> bool:
        """Remove a job by ID. Returns False if no such job exists."""
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        logger.info(f"Removed job: {job_id}")
        return True

    def has_job(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None

    def job_ids(self) -> List[str]:
        return [job.id for job in self._scheduler.get_jobs()]

    def list_jobs(self) -> Dict[str, Any]:
        """Scheduled jobs by id with their next fire time and trigger."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": getattr(job, "next_run_time", None),
                "trigger": str(job.trigger),
            }
        return jobs
