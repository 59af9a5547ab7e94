# git.py
# Small, focused set of Git command builders.
# The pipeline runs every git invocation through the CommandRunner so that
# failures surface as StepErrors; this module only decides what to run.

from __future__ import annotations

import shlex
from pathlib import Path


def is_repo(path: Path) -> bool:
    """
    Return True if `path` looks like a Git working copy.

    A `.git` entry may be a directory (normal clone) or a file (worktree or
    submodule), so only existence is checked.
    """
    return (path / ".git").exists()


def pull() -> str:
    """Fast-forward the current branch from its upstream."""
    return "git pull"


def checkout(revision: str) -> str:
    """
    Check out a commit SHA or branch name.

    Used both for pinning declared revisions and for restoring mainline.
    """
    return f"git checkout {shlex.quote(revision)}"


def clone(url: str, dest: Path) -> str:
    """Clone `url` into `dest` (run from the parent directory)."""
    return f"git clone {shlex.quote(url)} {shlex.quote(str(dest))}"


def commit_all(message: str) -> str:
    # `-a` stages modified tracked files only; the catalog file is always tracked
    return f"git commit -a -m {shlex.quote(message)}"


def push(remote: str, branch: str) -> str:
    return f"git push {shlex.quote(remote)} {shlex.quote(branch)}"
