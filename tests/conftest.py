"""Shared test fixtures."""

from __future__ import annotations

import json
import shlex
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from buildserver.model import Job, Revision, Version
from buildserver.runner import CommandResult, CommandRunner
from buildserver.settings import Settings

SIM = "foo"


class FakeRunner(CommandRunner):
    """
    Records commands instead of running them. `fail(command, cwd)` decides
    which commands exit non-zero; `git clone` creates the target working copy.
    """

    def __init__(self, fail: Optional[Callable[[str, Path], bool]] = None, *, clone_creates: bool = True):
        super().__init__()
        self.calls: List[Tuple[str, Path]] = []
        self.fail = fail or (lambda command, cwd: False)
        self.clone_creates = clone_creates

    def run(self, command: str, cwd) -> CommandResult:
        cwd = Path(cwd)
        self.calls.append((command, cwd))
        failed = self.fail(command, cwd)
        if not failed and command.startswith("git clone") and self.clone_creates:
            dest = shlex.split(command)[-1]
            (cwd / dest / ".git").mkdir(parents=True, exist_ok=True)
        return CommandResult(
            command=command,
            cwd=str(cwd),
            exit_code=1 if failed else 0,
            stderr="boom" if failed else "",
        )

    def commands(self) -> List[str]:
        return [c for c, _ in self.calls]


def make_repo(root: Path, name: str) -> Path:
    repo = root / name
    (repo / ".git").mkdir(parents=True, exist_ok=True)
    return repo


def make_job(sim: str = SIM, *, version: str = "1.2.3", deps: Optional[dict] = None, locales=("*",)) -> Job:
    repos = {sim: Revision(sha="abc123", branch="master")}
    for name, sha in (deps or {"joist": "def456"}).items():
        repos[name] = Revision(sha=sha)
    return Job(
        sim_name=sim,
        version=Version.parse(version),
        repos=repos,
        locales=tuple(locales),
        server="figaro.colorado.edu",
        authorization="secret",
    )


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch, tmp_path):
    """Never read a developer's real deploy config during tests."""
    monkeypatch.setenv("BUILD_SERVER_CONFIG", str(tmp_path / "no-such-config.json"))
    for name in ("BUILD_SERVER_AUTHORIZATION_CODE", "BUILD_SERVER_REPOS_ROOT", "BUILD_SERVER_DESTINATION_ROOT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        repos_root=tmp_path / "repos",
        destination_root=tmp_path / "htdocs",
        authorization_code="secret",
        step_timeout_seconds=0,
    )


@pytest.fixture()
def workspace(settings) -> Settings:
    """
    A complete set of working copies for sim `foo`: built output for `en` and
    `xx`, an `xx` translation in babel and an empty catalog.
    """
    root = settings.repos_root
    for name in ("chipper", "perennial", "babel", "rosetta", "joist"):
        make_repo(root, name)
    sim_dir = make_repo(root, SIM)

    (sim_dir / "package.json").write_text(json.dumps({"name": SIM, "phet": {}}), encoding="utf-8")
    (sim_dir / f"{SIM}-strings_en.json").write_text(
        json.dumps({"foo.name": {"value": "Foo Sim"}}), encoding="utf-8"
    )
    build = sim_dir / "build"
    build.mkdir()
    (build / f"{SIM}_en.html").write_text("<html>en</html>", encoding="utf-8")
    (build / f"{SIM}_xx.html").write_text("<html>xx</html>", encoding="utf-8")

    babel = root / "babel" / SIM
    babel.mkdir(parents=True)
    (babel / f"{SIM}-strings_xx.json").write_text(
        json.dumps({"foo.name": {"value": "Foo XX"}}), encoding="utf-8"
    )

    catalog = settings.catalog_file
    catalog.parent.mkdir(parents=True)
    catalog.write_text("[]", encoding="utf-8")
    return settings
