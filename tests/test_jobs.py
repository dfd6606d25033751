"""
Tests for the job registry, cron validation and job actions.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError as PydanticValidationError

from monitor.errors import JobActionError
from monitor.infra.scheduler import build_cron_trigger, validate_cron_expression
from monitor.jobs import (
    DEFAULT_JOBS,
    CallableJobAction,
    HttpJobAction,
    Job,
    http_action_factory,
    load_job_registry,
    load_timezone,
    source_type_for_endpoint,
)
from monitor.models import SourceType


class TestRegistry:

    def test_default_registry(self):
        names = [job.name for job in DEFAULT_JOBS]
        assert len(names) == 7
        assert len(set(names)) == 7
        assert all(job.active for job in DEFAULT_JOBS)

    def test_shipped_config_matches_defaults(self):
        jobs = load_job_registry(str(Path(__file__).parent.parent / "jobs.yml"))
        assert [(j.name, j.schedule, j.endpoint) for j in jobs] == [
            (j.name, j.schedule, j.endpoint) for j in DEFAULT_JOBS
        ]

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_job_registry(str(tmp_path / "absent.yml")) == DEFAULT_JOBS

    def test_list_form(self, tmp_path):
        path = tmp_path / "jobs.yml"
        path.write_text(
            "jobs:\n"
            "  - name: news-monitoring\n"
            "    schedule: '*/5 * * * *'\n"
            "    endpoint: /api/monitor/news\n"
            "  - name: paused\n"
            "    schedule: '0 3 * * *'\n"
            "    endpoint: /api/monitor/facebook\n"
            "    active: false\n"
        )

        jobs = load_job_registry(str(path))

        assert [job.name for job in jobs] == ["news-monitoring", "paused"]
        assert jobs[1].active is False
        assert jobs[1].log_source_type == SourceType.FACEBOOK_POST

    def test_mapping_form(self, tmp_path):
        path = tmp_path / "jobs.yml"
        path.write_text(
            "jobs:\n"
            "  duplicate-cleanup:\n"
            "    schedule: '45 */6 * * *'\n"
            "    endpoint: /api/admin/cleanup-duplicates\n"
        )

        jobs = load_job_registry(str(path))

        assert jobs[0].name == "duplicate-cleanup"
        assert jobs[0].schedule == "45 */6 * * *"

    def test_duplicate_names_rejected(self, tmp_path):
        path = tmp_path / "jobs.yml"
        path.write_text(
            "jobs:\n"
            "  - {name: a, schedule: '* * * * *', endpoint: /api/monitor/news}\n"
            "  - {name: a, schedule: '0 * * * *', endpoint: /api/monitor/news}\n"
        )

        with pytest.raises(ValueError, match="Duplicate job names"):
            load_job_registry(str(path))

    def test_invalid_schedule_rejected(self):
        with pytest.raises(PydanticValidationError):
            Job(name="bad", schedule="every day", endpoint="/api/monitor/news")

    @pytest.mark.parametrize("schedule", ["30 23 * * 0", "0 9 * * 1-5", "0 9 * * */2"])
    def test_numeric_day_of_week_rejected(self, schedule):
        with pytest.raises(PydanticValidationError, match="day-of-week must be given by name"):
            Job(name="weekly", schedule=schedule, endpoint="/api/analytics/weekly-trends")

    def test_named_day_of_week_accepted(self):
        job = Job(name="weekly", schedule="30 23 * * sun", endpoint="/api/analytics/weekly-trends")
        assert job.schedule == "30 23 * * sun"

    def test_yaml_registry_rejects_numeric_day_of_week(self, tmp_path):
        path = tmp_path / "jobs.yml"
        path.write_text(
            "jobs:\n"
            "  - {name: weekly-trends, schedule: '30 23 * * 0', endpoint: /api/analytics/weekly-trends}\n"
        )

        with pytest.raises(PydanticValidationError):
            load_job_registry(str(path))

    def test_timezone_from_config(self, tmp_path):
        path = tmp_path / "jobs.yml"
        path.write_text("timezone: Asia/Phnom_Penh\n")

        assert load_timezone(str(path)) == "Asia/Phnom_Penh"
        assert load_timezone(str(tmp_path / "absent.yml"), default="UTC") == "UTC"

    @pytest.mark.parametrize("endpoint,expected", [
        ("/api/monitor/news", SourceType.NEWS_ARTICLE),
        ("/api/monitor/facebook", SourceType.FACEBOOK_POST),
        ("/api/monitor/official-pages", SourceType.FACEBOOK_POST),
        ("/api/admin/cleanup-duplicates", SourceType.NEWS_ARTICLE),
    ])
    def test_source_type_for_endpoint(self, endpoint, expected):
        assert source_type_for_endpoint(endpoint) == expected


class TestCron:

    @pytest.mark.parametrize("expr", ["*/10 * * * *", "0 8-20/2 * * *", "30 23 * * sun"])
    def test_valid(self, expr):
        assert validate_cron_expression(expr)

    @pytest.mark.parametrize("expr", ["0 0 * * * *", "* * *", "61 * * * *", "30 23 * * 0"])
    def test_invalid(self, expr):
        assert not validate_cron_expression(expr)

    def test_trigger_uses_timezone(self):
        trigger = build_cron_trigger("0 23 * * *", "Asia/Bangkok")
        assert str(trigger.timezone) == "Asia/Bangkok"

    def test_trigger_rejects_bad_expression(self):
        with pytest.raises(ValueError):
            build_cron_trigger("nonsense", "UTC")


class TestActions:

    def test_factory_joins_base_url(self):
        factory = http_action_factory("http://localhost:8000/", timeout=5)
        action = factory(DEFAULT_JOBS[0])
        assert action.url == "http://localhost:8000/api/monitor/official-pages"
        assert action.description == "POST http://localhost:8000/api/monitor/official-pages"

    @pytest.mark.asyncio
    async def test_unreachable_target_raises(self):
        action = HttpJobAction("http://127.0.0.1:9/api/monitor/news", timeout=2)
        with pytest.raises(JobActionError):
            await action.run()

    @pytest.mark.asyncio
    async def test_callable_action(self):
        async def cleanup():
            return {"totalRemoved": 2}

        action = CallableJobAction(cleanup)

        assert action.description == "cleanup"
        assert await action.run() == {"totalRemoved": 2}
