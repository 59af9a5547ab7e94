# steps/repos.py
from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Dict, Iterable

from .. import git
from ..errors import StepError
from ..model import Revision
from ..pipeline import BuildContext
from ..runner import CommandRunner

logger = logging.getLogger(__name__)

# keys in a dependencies.json that are not repositories
NON_REPO_KEYS = frozenset({"comment"})


# ---------------------------------------------------------------------
# Dependency manifest
# ---------------------------------------------------------------------

def write_manifest(path: Path, repos: Dict[str, Revision]) -> None:
    """Persist the dependency map so later steps read it from disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    data = {name: rev.to_dict() for name, rev in repos.items()}
    path.write_text(json.dumps(data, indent=2), encoding="utf-8")
    logger.info("wrote file %s", path)


def read_manifest(path: Path) -> Dict[str, Revision]:
    """Read a dependencies.json file back into a repository -> revision map."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object")

    repos: Dict[str, Revision] = {}
    for name, entry in data.items():
        if name in NON_REPO_KEYS:
            continue
        if not isinstance(entry, dict) or not entry.get("sha"):
            raise ValueError(f"{path}: entry for {name!r} has no sha")
        repos[name] = Revision(sha=str(entry["sha"]), branch=entry.get("branch"))
    return repos


# ---------------------------------------------------------------------
# Working copy operations
# ---------------------------------------------------------------------

def checkout_revisions(
    runner: CommandRunner,
    repos_root: Path,
    revisions: Dict[str, Revision],
    *,
    step: str = "checkout dependency revisions",
    skip: Iterable[str] = (),
) -> None:
    """Check out the declared revision of every repository in `revisions`."""
    skipped = set(skip)
    for name, rev in revisions.items():
        if name in skipped:
            continue
        repo = repos_root / name
        if not git.is_repo(repo):
            raise StepError(step=step, message=f"{name} is not a repo", cwd=str(repo))
        runner.check(step, git.checkout(rev.sha), repo)


def restore_mainline(
    runner: CommandRunner,
    repos_root: Path,
    names: Iterable[str],
    branch: str,
    *,
    step: str = "checkout mainline",
) -> None:
    """
    Put every existing working copy back on `branch`. Idempotent. Missing
    repositories are skipped because nothing can be left checked out in them.
    Every repository is attempted before the first failure is raised.
    """
    first_error = None
    for name in names:
        repo = repos_root / name
        if not git.is_repo(repo):
            continue
        result = runner.run(git.checkout(branch), repo)
        if not result.ok and first_error is None:
            first_error = StepError(
                step=step,
                message=f"could not restore {name} to {branch}",
                command=result.command,
                cwd=result.cwd,
                exit_code=result.exit_code,
                output=result.diagnostic,
            )
    if first_error is not None:
        raise first_error


# ---------------------------------------------------------------------
# Pipeline actions
# ---------------------------------------------------------------------

def make_scratch_dir(ctx: BuildContext) -> None:
    ctx.scratch_dir.mkdir(parents=True, exist_ok=True)


def write_dependencies(ctx: BuildContext) -> None:
    write_manifest(ctx.manifest_path, ctx.job.repos)


def clone_missing_repos(ctx: BuildContext) -> None:
    """
    Clone every repository of the job that has no local working copy.
    A repository that still is not a working copy afterwards fails the step.
    """
    step = "clone missing repos"
    ctx.repos_root.mkdir(parents=True, exist_ok=True)
    for name in ctx.repositories.all():
        repo = ctx.repo_dir(name)
        if git.is_repo(repo):
            continue
        logger.info("cloning missing repo %s", name)
        url = ctx.settings.clone_url_template.format(repo=name)
        ctx.runner.check(step, git.clone(url, Path(name)), ctx.repos_root)
        if not git.is_repo(repo):
            raise StepError(step=step, message=f"clone of {name} did not produce a working copy", cwd=str(repo))


def pull_mainline(ctx: BuildContext) -> None:
    """Pull every dependency and the translations repo."""
    step = "pull mainline"
    for name in ctx.repositories.all():
        repo = ctx.repo_dir(name)
        if not git.is_repo(repo):
            raise StepError(step=step, message=f"{name} is not a repo", cwd=str(repo))
        logger.info("pulling from %s", name)
        ctx.runner.check(step, git.pull(), repo)


def checkout_dependency_revisions(ctx: BuildContext) -> None:
    # the manifest on disk is the single source of truth for this step
    revisions = read_manifest(ctx.manifest_path)
    checkout_revisions(ctx.runner, ctx.repos_root, revisions, skip=[ctx.job.sim_name])


def checkout_sim_revision(ctx: BuildContext) -> None:
    rev = ctx.job.repos[ctx.job.sim_name]
    ctx.runner.check("checkout sim revision", git.checkout(rev.sha), ctx.sim_dir)


def checkout_mainline_all(ctx: BuildContext) -> None:
    restore_mainline(
        ctx.runner,
        ctx.repos_root,
        ctx.repositories.all(),
        ctx.settings.mainline_branch,
    )


def remove_scratch_dir(ctx: BuildContext) -> None:
    if ctx.scratch_dir.exists():
        shutil.rmtree(ctx.scratch_dir)
