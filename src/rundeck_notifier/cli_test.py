from __future__ import annotations

import json

import pytest
from click.testing import CliRunner

from rundeck_notifier import notifier, validation
from rundeck_notifier.cli import cli
from rundeck_notifier.conftest import DEPLOY_JOB, FakeRundeck


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "rundeck.json"
    path.write_text(json.dumps({
        "sites": [
            {"name": "main", "url": "https://rundeck.example.com", "token": "t"},
            {"name": "legacy", "url": "http://old:4440", "login": "admin", "password": "admin"},
        ],
        "steps": {
            "deploy": {
                "job_identifier": "ops:web/prod/deploy",
                "options": "version=${VERSION}",
                "wait_for_completion": True,
                "fail_build_on_failure": True,
            },
        },
    }))
    return path


@pytest.fixture
def rundeck(monkeypatch):
    fake = FakeRundeck(jobs=[DEPLOY_JOB], initial_status="succeeded")
    monkeypatch.setattr(notifier, "resolve_client", lambda site: fake)
    monkeypatch.setattr(validation, "resolve_client", lambda site: fake)
    return fake


def _build_file(tmp_path, **overrides):
    data = {"display_name": "app #12", "env": {"VERSION": "1.4.2"}, "artifacts": ["app.war"]}
    data.update(overrides)
    path = tmp_path / "build.json"
    path.write_text(json.dumps(data))
    return path


def test_sites(config_file):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "sites"])
    assert result.exit_code == 0
    assert "https://rundeck.example.com/" in result.output
    assert "login admin" in result.output


def test_missing_config(tmp_path):
    result = CliRunner().invoke(cli, ["--config", str(tmp_path / "nope.json"), "sites"])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_test_connection(config_file, rundeck):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "test-connection", "--site", "main"])
    assert result.exit_code == 0
    assert "credentials are valid" in result.output


def test_check_job_unknown_site(config_file, rundeck):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "check-job", "ops:deploy", "--site", "qa"])
    assert result.exit_code == 1
    assert "Unknown Rundeck site 'qa'" in result.output


def test_check_job(config_file, rundeck):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "check-job", "ops:web/prod/deploy"])
    assert result.exit_code == 0
    assert f"Your Rundeck job is : {DEPLOY_JOB.id}" in result.output
    assert f"Job page: https://rundeck.example.com/project/ops/job/show/{DEPLOY_JOB.id}" in result.output


def test_notify_named_step(config_file, rundeck, tmp_path):
    badges = tmp_path / "badges.json"
    result = CliRunner().invoke(cli, [
        "--config", str(config_file),
        "notify", "--step", "deploy",
        "--option", "env=prod",
        "--build-file", str(_build_file(tmp_path)),
        "--badge-file", str(badges),
    ])

    assert result.exit_code == 0, result.output
    assert "Notification succeeded ! Execution #42" in result.output
    trigger = [c for c in rundeck.calls if c[0] == "trigger_job"][0]
    assert trigger[1] == DEPLOY_JOB.id
    assert trigger[2] == {"version": "1.4.2", "env": "prod"}
    assert json.loads(badges.read_text())[0]["url"].endswith("/execution/show/42")


def test_notify_failure_fails_the_build(config_file, rundeck, tmp_path):
    rundeck.initial_status = "failed"
    result = CliRunner().invoke(cli, [
        "--config", str(config_file),
        "notify", "--step", "deploy",
        "--build-file", str(_build_file(tmp_path)),
    ])
    assert result.exit_code == 1


def test_notify_failure_deferred(config_file, rundeck, tmp_path):
    rundeck.initial_status = "failed"
    result = CliRunner().invoke(cli, [
        "--config", str(config_file),
        "notify", "--step", "deploy", "--no-fail-build",
        "--build-file", str(_build_file(tmp_path)),
    ])
    assert result.exit_code == 0
    assert "build result stays SUCCESS" in result.output


def test_notify_needs_a_job(config_file, rundeck):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "notify"])
    assert result.exit_code == 1
    assert "No job to run" in result.output


def test_notify_unknown_step(config_file, rundeck):
    result = CliRunner().invoke(cli, ["--config", str(config_file), "notify", "--step", "nope"])
    assert result.exit_code == 1
    assert "Unknown step" in result.output


def test_notify_adhoc_job_with_node_filters(config_file, rundeck, tmp_path):
    result = CliRunner().invoke(cli, [
        "--config", str(config_file),
        "notify", "--job", "some-uuid", "--site", "legacy",
        "--node-filter", "tags=web",
        "--build-file", str(_build_file(tmp_path)),
    ])
    assert result.exit_code == 0, result.output
    assert ("trigger_job", "some-uuid", {}, {"tags": "web"}) in rundeck.calls
    assert rundeck.count("find_job") == 0


def test_check_url():
    ok = CliRunner().invoke(cli, ["check-url", "https://rundeck.example.com"])
    assert ok.exit_code == 0
    assert "OK: https://rundeck.example.com is a valid URL." in ok.output

    bad = CliRunner().invoke(cli, ["check-url", "rundeck.example.com"])
    assert bad.exit_code == 1
    assert "ERROR: rundeck.example.com is not a valid URL." in bad.output

    missing = CliRunner().invoke(cli, ["check-url"])
    assert missing.exit_code == 1
    assert "URL mandatory" in missing.output


def test_check_regex():
    assert CliRunner().invoke(cli, ["check-regex", "app-.*\\.war"]).exit_code == 0

    bad = CliRunner().invoke(cli, ["check-regex", "[oops"])
    assert bad.exit_code == 1
    assert "ERROR:" in bad.output
