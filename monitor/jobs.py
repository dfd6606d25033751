"""
Job registry and job actions.

The registry is a static list read once at startup (from ``jobs.yml`` when
present, otherwise the defaults below). Changing a schedule means editing
the file and restarting the service.
"""

import logging
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import yaml
from pydantic import BaseModel, field_validator

from .errors import JobActionError
from .infra.http import HttpClient
from .infra.scheduler import has_numeric_day_of_week, validate_cron_expression
from .interfaces import JobAction
from .models import SourceType


logger = logging.getLogger(__name__)


def source_type_for_endpoint(endpoint: str) -> SourceType:
    """Log category for a job target; social monitors log as FACEBOOK_POST."""
    if "/official-pages" in endpoint or "/facebook" in endpoint:
        return SourceType.FACEBOOK_POST
    return SourceType.NEWS_ARTICLE


class Job(BaseModel):
    """One registry entry."""

    name: str
    schedule: str
    endpoint: str
    active: bool = True
    source_type: Optional[SourceType] = None

    @field_validator("schedule")
    @classmethod
    def _check_schedule(cls, value: str) -> str:
        if has_numeric_day_of_week(value):
            raise ValueError(f"day-of-week must be given by name (mon, sun, ...), not number: {value!r}")
        if not validate_cron_expression(value):
            raise ValueError(f"invalid cron expression: {value!r}")
        return value

    @property
    def log_source_type(self) -> SourceType:
        return self.source_type or source_type_for_endpoint(self.endpoint)


DEFAULT_TIMEZONE = "Asia/Bangkok"

DEFAULT_JOBS: List[Job] = [
    Job(name="official-pages-monitoring", schedule="*/10 * * * *",
        endpoint="/api/monitor/official-pages"),
    Job(name="facebook-search-monitoring", schedule="0 8-20/2 * * *",
        endpoint="/api/monitor/facebook"),
    Job(name="facebook-search-monitoring-offhours", schedule="0 1,5,21 * * *",
        endpoint="/api/monitor/facebook"),
    Job(name="news-monitoring", schedule="*/15 * * * *",
        endpoint="/api/monitor/news"),
    Job(name="daily-conflict-analytics", schedule="0 23 * * *",
        endpoint="/api/analytics/daily-summary"),
    Job(name="weekly-trend-analysis", schedule="30 23 * * sun",
        endpoint="/api/analytics/weekly-trends"),
    Job(name="duplicate-cleanup", schedule="45 */6 * * *",
        endpoint="/api/admin/cleanup-duplicates"),
]


def load_job_registry(config_path: str = "jobs.yml") -> List[Job]:
    """Load the job list from YAML, falling back to DEFAULT_JOBS.

    Names must be unique; a duplicate name is a configuration error.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Job config file not found: {config_path}; using built-in registry")
        return list(DEFAULT_JOBS)

    with path.open() as f:
        data = yaml.safe_load(f) or {}

    raw_jobs = data.get("jobs")
    if raw_jobs is None:
        logger.warning(f"No 'jobs' key found in {config_path}; using built-in registry")
        return list(DEFAULT_JOBS)

    # Accept both list and mapping form, like the pipelines section
    if isinstance(raw_jobs, dict):
        raw_jobs = [{"name": name, **cfg} for name, cfg in raw_jobs.items()]

    jobs = [Job(**entry) for entry in raw_jobs]
    names = [job.name for job in jobs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ValueError(f"Duplicate job names in {config_path}: {', '.join(duplicates)}")
    return jobs


def load_timezone(config_path: str = "jobs.yml", default: str = DEFAULT_TIMEZONE) -> str:
    path = Path(config_path)
    if not path.exists():
        return default
    with path.open() as f:
        data = yaml.safe_load(f) or {}
    return data.get("timezone") or default


class HttpJobAction(JobAction):
    """POSTs to a monitoring endpoint; any non-2xx response is a failure."""

    def __init__(self, url: str, timeout: float = 300.0):
        self.url = url
        self.timeout = timeout

    @property
    def description(self) -> str:
        return f"POST {self.url}"

    async def run(self) -> Dict[str, Any]:
        # One attempt only: a retried POST could run the monitor twice.
        async with HttpClient(timeout=self.timeout, max_retries=1,
                              default_headers={"Content-Type": "application/json"}) as http:
            try:
                result = await http.post_json(self.url)
            except Exception as e:
                raise JobActionError(f"{self.description} failed: {e}") from e
        if result is None:
            return {}
        if not isinstance(result, dict):
            return {"result": result}
        return result


class CallableJobAction(JobAction):
    """Runs an in-process coroutine function as the job target."""

    def __init__(self, func: Callable[[], Awaitable[Optional[Dict[str, Any]]]], description: str = ""):
        self.func = func
        self._description = description or getattr(func, "__name__", "callable")

    @property
    def description(self) -> str:
        return self._description

    async def run(self) -> Dict[str, Any]:
        result = await self.func()
        return result or {}


def http_action_factory(base_url: str, timeout: float) -> Callable[[Job], JobAction]:
    """Build JobActions that POST to ``base_url + job.endpoint``."""

    def factory(job: Job) -> JobAction:
        url = job.endpoint if job.endpoint.startswith("http") else f"{base_url.rstrip('/')}{job.endpoint}"
        return HttpJobAction(url, timeout=timeout)

    return factory
