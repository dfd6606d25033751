"""
Monitoring scheduler service.

Owns one timer per active registry job. Each firing runs the job's action
and writes a start entry followed by a success or error entry to the
monitoring log. A failing action never disturbs the timer or other jobs.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

from .infra.scheduler import Scheduler
from .interfaces import JobAction
from .jobs import Job
from .log_sink import MonitoringLog
from .models import utcnow


logger = logging.getLogger(__name__)

ACTION = "scheduled_monitoring"


class MonitoringScheduler:
    """Lifecycle of the recurring monitoring jobs.

    Constructed once at process start and passed to whatever needs to
    control it (HTTP handlers, CLI, startup hook).
    """

    def __init__(
        self,
        registry: List[Job],
        action_factory: Callable[[Job], JobAction],
        log: MonitoringLog,
        timezone: str = "Asia/Bangkok",
        scheduler: Optional[Scheduler] = None,
    ):
        self.registry = list(registry)
        self.action_factory = action_factory
        self.log = log
        self.timezone = timezone
        self._scheduler = scheduler or Scheduler(timezone=timezone)
        self._jobs: Dict[str, Job] = {}
        self._actions: Dict[str, JobAction] = {}
        self._running: Dict[str, asyncio.Lock] = {}
        self._initialized = False

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    async def initialize(self) -> List[str]:
        """Schedule every active job. Calling it again is a no-op."""
        if self._initialized:
            return self.list_active()

        await self._scheduler.start()
        for job in self.registry:
            if not job.active:
                logger.info(f"Skipping inactive job: {job.name}")
                continue
            self._schedule(job)

        self._initialized = True
        logger.info(f"Monitoring scheduler initialized with {len(self._jobs)} job(s)")
        return self.list_active()

    def _schedule(self, job: Job) -> None:
        self._actions[job.name] = self.action_factory(job)
        self._running.setdefault(job.name, asyncio.Lock())
        self._scheduler.add_cron_job(self.execute_job, job.schedule, job_id=job.name, args=[job.name])
        self._jobs[job.name] = job
        logger.info(f"Scheduled job: {job.name} with schedule: {job.schedule}")

    def stop(self, name: str) -> bool:
        """Cancel future firings of one job. Unknown names are ignored."""
        job = self._jobs.pop(name, None)
        if job is None:
            return False
        self._scheduler.remove_job(name)
        logger.info(f"Stopped job: {name}")
        return True

    def stop_all(self) -> None:
        """Cancel every timer and return to the uninitialized state.

        Runs already in flight complete and still write their log entries.
        """
        for name in list(self._jobs):
            self.stop(name)
        self._initialized = False

    def list_active(self) -> List[str]:
        return list(self._jobs)

    def next_runs(self) -> Dict[str, Any]:
        jobs = self._scheduler.list_jobs()
        runs = {}
        for name in self._jobs:
            next_run = jobs.get(name, {}).get("next_run")
            runs[name] = next_run.isoformat() if next_run else None
        return runs

    async def close(self) -> None:
        """Tear down timers and the underlying scheduler (process shutdown)."""
        self.stop_all()
        await self._scheduler.stop()

    async def execute_job(self, name: str) -> Optional[Dict[str, Any]]:
        """Run one job now and log its outcome.

        Returns the action's result, or None when the run failed or was
        skipped because the same job is still running.
        """
        job = self._job_definition(name)
        if job is None:
            logger.error(f"Unknown job: {name}")
            return None

        lock = self._running.setdefault(name, asyncio.Lock())
        if lock.locked():
            logger.warning(f"Job {name} is still running; skipping this firing")
            await self.log.warning(
                job.log_source_type,
                ACTION,
                f"Scheduled {name} skipped: previous run still in progress",
                jobName=name,
                timestamp=utcnow().isoformat(),
            )
            return None

        async with lock:
            return await self._run(job)

    def _job_definition(self, name: str) -> Optional[Job]:
        if name in self._jobs:
            return self._jobs[name]
        for job in self.registry:
            if job.name == name:
                return job
        return None

    async def _run(self, job: Job) -> Optional[Dict[str, Any]]:
        source_type = job.log_source_type
        logger.info(f"Executing scheduled job: {job.name}")
        await self.log.info(
            source_type,
            ACTION,
            f"Scheduled {job.name} started",
            jobName=job.name,
            schedule=job.schedule,
            timestamp=utcnow().isoformat(),
        )

        try:
            action = self._actions.get(job.name) or self.action_factory(job)
            result = await action.run()
        except Exception as e:
            logger.error(f"Scheduled job {job.name} failed: {e}")
            await self.log.error(
                source_type,
                ACTION,
                f"Scheduled {job.name} failed: {e}",
                jobName=job.name,
                error=repr(e),
                timestamp=utcnow().isoformat(),
            )
            return None

        logger.info(f"Scheduled job {job.name} completed: {result}")
        await self.log.success(
            source_type,
            ACTION,
            f"Scheduled {job.name} completed successfully",
            jobName=job.name,
            result=result,
            timestamp=utcnow().isoformat(),
        )
        return result
