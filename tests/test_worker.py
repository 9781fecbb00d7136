"""Tests for the worker's cron schedule"""

from nannygold.config import settings
from nannygold.worker import (
    WorkerSettings,
    authorize_upcoming_period_task,
    capture_due_authorizations_task,
)


def job_for(coroutine):
    return next(job for job in WorkerSettings.cron_jobs if job.coroutine is coroutine)


class TestCronSchedule:
    def test_authorization_runs_monthly(self):
        job = job_for(authorize_upcoming_period_task)
        assert job.day == settings.authorization_day_of_month
        assert job.hour == 2

    def test_capture_runs_every_day(self):
        job = job_for(capture_due_authorizations_task)
        assert job.day is None
        assert (job.hour, job.minute) == (3, 0)
