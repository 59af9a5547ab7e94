from __future__ import annotations

import http.client
import json
import urllib.error

import pytest

from buildserver.deploy import RECOVERY_STEP, build_deploy_pipeline, deploy_steps
from buildserver.errors import RecoveryError, StepError
from buildserver.pipeline import BuildContext
from buildserver.steps import site

from conftest import SIM, FakeRunner, make_job


@pytest.fixture(autouse=True)
def _offline_site(monkeypatch):
    def fake_urlopen(url, timeout):
        raise urllib.error.URLError("offline")

    monkeypatch.setattr(site.urllib.request, "urlopen", fake_urlopen)


def _mainline_checkouts(runner: FakeRunner):
    return [cwd.name for cmd, cwd in runner.calls if cmd == "git checkout master"]


def test_step_order() -> None:
    assert [s.name for s in deploy_steps()] == [
        "create scratch directory",
        "write dependencies manifest",
        "pull orchestrator",
        "pull tooling",
        "clone missing repos",
        "install dependencies",
        "pull mainline",
        "checkout dependency revisions",
        "checkout sim revision",
        "build",
        "generate thumbnails",
        "create version directory",
        "copy build output",
        "write latest htaccess",
        "write download htaccess",
        "write translations manifest",
        "notify site",
        "register in catalog",
        "copy to secondary host",
        RECOVERY_STEP,
        "remove scratch directory",
    ]


def test_full_deploy_publishes_and_cleans_up(workspace) -> None:
    runner = FakeRunner()
    job = make_job(version="1.2.3-rc.1", locales=("en", "xx"))
    ctx = BuildContext.create(job, workspace, runner)

    result = build_deploy_pipeline().run(ctx)

    assert result.ok, result.error
    version_dir = workspace.destination_root / SIM / "1.2.3"
    assert (version_dir / f"{SIM}_en.html").exists()
    assert (version_dir / f"{SIM}.xml").read_text(encoding="utf-8").count("<simulation ") == 2
    assert (workspace.destination_root / SIM / ".htaccess").exists()
    assert json.loads(workspace.catalog_file.read_text(encoding="utf-8"))[0]["simTitle"] == "Foo Sim"
    assert not ctx.scratch_dir.exists()

    commands = runner.commands()
    assert "npm install" in commands
    assert "grunt build --brand=phet --lint=false --locales=en,xx" in commands
    assert commands.index("git checkout def456") < commands.index("git checkout abc123")
    assert commands.index("git checkout abc123") < commands.index("grunt build --brand=phet --lint=false --locales=en,xx")
    # success path ends with the same normalization the abort path uses
    assert _mainline_checkouts(runner) == ["foo", "joist", "babel"]


def test_build_failure_restores_mainline_then_fails(workspace) -> None:
    runner = FakeRunner(fail=lambda cmd, cwd: cmd.startswith("grunt build"))
    ctx = BuildContext.create(make_job(), workspace, runner)

    result = build_deploy_pipeline().run(ctx)

    assert isinstance(result.error, StepError)
    assert result.failed_step == "build"
    assert _mainline_checkouts(runner) == ["foo", "joist", "babel"]
    assert runner.commands()[-1] == "git checkout master"
    assert not (workspace.destination_root / SIM).exists()


def test_failed_recovery_reports_recovery_error_once(workspace) -> None:
    runner = FakeRunner(fail=lambda cmd, cwd: cmd.startswith("grunt build") or cmd == "git checkout master")
    ctx = BuildContext.create(make_job(), workspace, runner)

    result = build_deploy_pipeline().run(ctx)

    assert isinstance(result.error, RecoveryError)
    assert result.error.original.step == "build"
    # one recovery attempt: each repo is tried exactly once
    assert _mainline_checkouts(runner) == ["foo", "joist", "babel"]


def test_missing_repo_is_cloned_before_use(workspace) -> None:
    runner = FakeRunner()
    job = make_job(deps={"joist": "def456", "scenery": "5ce9e"})
    ctx = BuildContext.create(job, workspace, runner)

    result = build_deploy_pipeline().run(ctx)

    assert result.ok, result.error
    commands = runner.commands()
    assert commands.index("git clone https://github.com/phetsims/scenery.git scenery") < commands.index("git checkout 5ce9e")


def test_missing_repo_that_cannot_be_cloned_fails(workspace) -> None:
    runner = FakeRunner(fail=lambda cmd, cwd: "scenery" in cmd)
    job = make_job(deps={"joist": "def456", "scenery": "5ce9e"})
    ctx = BuildContext.create(job, workspace, runner)

    result = build_deploy_pipeline().run(ctx)

    assert result.failed_step == "clone missing repos"
    assert "scenery" in result.error.command
    assert "npm install" not in runner.commands()


def test_notify_failure_does_not_fail_the_deploy(workspace) -> None:
    # site notification is forced offline by the autouse fixture
    result = build_deploy_pipeline().run(BuildContext.create(make_job(), workspace, FakeRunner()))
    assert result.ok


def test_garbled_site_reply_does_not_fail_the_deploy(workspace, monkeypatch) -> None:
    def fake_urlopen(url, timeout):
        raise http.client.BadStatusLine("garbage")

    monkeypatch.setattr(site.urllib.request, "urlopen", fake_urlopen)
    runner = FakeRunner()

    result = build_deploy_pipeline().run(BuildContext.create(make_job(), workspace, runner))

    assert result.ok
    assert "notify site" in result.completed_steps
    assert _mainline_checkouts(runner) == [SIM, "joist", "babel"]
