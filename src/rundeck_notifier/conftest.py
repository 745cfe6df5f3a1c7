from __future__ import annotations

import io

import pytest

from rundeck_notifier.build import BuildContext, ChangeEntry
from rundeck_notifier.config import RemoteSite, StepConfig
from rundeck_notifier.rundeck.api_client import JobNotFoundError
from rundeck_notifier.rundeck.models import Execution, ExecutionStatus, RundeckJob
from rundeck_notifier.ui.console import Console


class FakeRundeck:
    """In-memory stand-in for RundeckClient that records every call."""

    url = "https://rundeck.example.com/"
    login = "admin"

    def __init__(self, jobs=None, initial_status="running", statuses=None):
        self.jobs = {job.id: job for job in (jobs or [])}
        self.initial_status = initial_status
        self.statuses = list(statuses or [])
        self.calls = []
        self.ping_error = None
        self.auth_error = None
        self.find_error = None
        self.trigger_error = None
        self.poll_error = None

    def ping(self):
        self.calls.append(("ping",))
        if self.ping_error:
            raise self.ping_error

    def test_auth(self):
        self.calls.append(("test_auth",))
        if self.auth_error:
            raise self.auth_error

    def find_job(self, project, group_path, name):
        self.calls.append(("find_job", project, group_path, name))
        if self.find_error:
            raise self.find_error
        for job in self.jobs.values():
            if (job.project, job.group, job.name) == (project, group_path, name):
                return job
        raise JobNotFoundError(f"No job '{name}' in group '{group_path}' of project '{project}'")

    def get_job(self, job_id):
        self.calls.append(("get_job", job_id))
        if job_id not in self.jobs:
            raise JobNotFoundError(f"No job with the ID '{job_id}'", status=404)
        return self.jobs[job_id]

    def trigger_job(self, job_id, options=None, node_filters=None):
        self.calls.append(("trigger_job", job_id, dict(options or {}), dict(node_filters or {})))
        if self.trigger_error:
            raise self.trigger_error
        return self._execution(self.initial_status)

    def get_execution(self, execution_id):
        self.calls.append(("get_execution", execution_id))
        if self.poll_error:
            raise self.poll_error
        status = self.statuses.pop(0) if self.statuses else "running"
        return self._execution(status)

    def _execution(self, status):
        return Execution(
            id=42,
            url=f"{self.url}project/ops/execution/show/42",
            status=ExecutionStatus.from_api(status),
            raw_status=status,
            started_at=1000.0,
            ended_at=None if status == "running" else 1065.0,
        )

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


DEPLOY_JOB = RundeckJob(id="0b6b8a3e-1111-4b7e-9c2d-deploy000001", name="deploy", project="ops", group="web/prod")


@pytest.fixture
def fake_rundeck():
    return FakeRundeck(jobs=[DEPLOY_JOB])


@pytest.fixture
def log():
    return io.StringIO()


@pytest.fixture
def console(log):
    return Console(out=log, err=log)


@pytest.fixture
def site():
    return RemoteSite(name="main", url="https://rundeck.example.com", token="s3cret")


@pytest.fixture
def step():
    return StepConfig(job_identifier=DEPLOY_JOB.id)


@pytest.fixture
def build():
    return BuildContext(
        display_name="app #12",
        changes=[ChangeEntry(author="alice", message="Fix login form")],
        env={"VERSION": "1.4.2", "BUILD_NUMBER": "12"},
        artifacts=["app-1.4.2.war", "build.zip", "notes.txt"],
    )


@pytest.fixture
def no_sleep():
    calls = []

    def _sleep(seconds):
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
