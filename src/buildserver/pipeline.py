# pipeline.py
from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Union

from .errors import BuildServerError, RecoveryError, StepError
from .model import Job, RepositorySet
from .runner import CommandRunner
from .settings import Settings

logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------
# Per-job context
# ----------------------------------------------------------------------

@dataclass
class BuildContext:
    """
    State threaded through the steps of a single job. Created per job and
    never shared between jobs.
    """
    job: Job
    settings: Settings
    runner: CommandRunner
    repositories: RepositorySet
    sim_title: Optional[str] = None
    completed: List[str] = field(default_factory=list)

    @classmethod
    def create(cls, job: Job, settings: Settings, runner: CommandRunner) -> BuildContext:
        return cls(
            job=job,
            settings=settings,
            runner=runner,
            repositories=RepositorySet.for_job(job, settings.translations_repo),
        )

    @property
    def server(self) -> str:
        return self.job.server or self.settings.production_server

    @property
    def repos_root(self) -> Path:
        return self.settings.repos_root

    def repo_dir(self, name: str) -> Path:
        return self.settings.repos_root / name

    @property
    def sim_dir(self) -> Path:
        return self.repo_dir(self.job.sim_name)

    @property
    def build_output_dir(self) -> Path:
        return self.sim_dir / "build"

    @property
    def orchestrator_dir(self) -> Path:
        return self.settings.orchestrator_dir

    @property
    def tooling_dir(self) -> Path:
        return self.settings.tooling_dir

    @property
    def scratch_dir(self) -> Path:
        # an absolute scratch_dir replaces the orchestrator prefix
        return self.settings.orchestrator_dir / self.settings.scratch_dir

    @property
    def manifest_path(self) -> Path:
        return self.scratch_dir / "dependencies.json"

    @property
    def destination_dir(self) -> Path:
        return self.settings.destination_root / self.job.sim_name

    @property
    def version_dir(self) -> Path:
        return self.destination_dir / str(self.job.version)

    def template_values(self) -> Dict[str, str]:
        job = self.job
        sim_rev = job.repos.get(job.sim_name)
        return {
            "sim": job.sim_name,
            "version": str(job.version),
            "locales": job.locales_arg,
            "sha": sim_rev.sha if sim_rev else "",
            "server": self.server,
        }

    def render(self, template: str) -> str:
        """Fill a command template; every substituted value is shell-quoted."""
        values = {k: shlex.quote(v) for k, v in self.template_values().items()}
        return template.format(**values)


# ----------------------------------------------------------------------
# Step descriptors
# ----------------------------------------------------------------------

Action = Callable[[BuildContext], None]


@dataclass(frozen=True)
class Step:
    """
    A named unit of work. Any exception escaping `action` is a step failure.
    `recovery` marks the mainline-restore step, whose failure is terminal.
    """
    name: str
    action: Action
    recovery: bool = False


def sh(
    name: str,
    cmd: Union[str, Callable[[BuildContext], str]],
    *,
    cwd: Callable[[BuildContext], Path],
) -> Step:
    """Create a step that runs an external command and fails on non-zero exit."""

    def action(ctx: BuildContext) -> None:
        command = cmd(ctx) if callable(cmd) else ctx.render(cmd)
        ctx.runner.check(name, command, cwd(ctx))

    return Step(name=name, action=action)


def local(name: str, fn: Action, *, recovery: bool = False) -> Step:
    """Create a step that performs a local action."""
    return Step(name=name, action=fn, recovery=recovery)


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class RunResult:
    """Success marker, or the error that ended the job."""
    job: Job
    error: Optional[BuildServerError] = None
    completed_steps: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def failed_step(self) -> Optional[str]:
        if isinstance(self.error, StepError):
            return self.error.step
        if isinstance(self.error, RecoveryError):
            if self.error.original is not None and isinstance(self.error.original, StepError):
                return self.error.original.step
            return self.error.recovery.step
        return None


# ----------------------------------------------------------------------
# Abort handling
# ----------------------------------------------------------------------

class AbortHandler:
    """
    Runs the recovery step exactly once after a failure. A failing recovery
    yields a RecoveryError and is never retried.
    """

    def __init__(self, recovery: Step):
        self.recovery = recovery

    def abort(self, ctx: BuildContext, error: StepError) -> BuildServerError:
        logger.error("[%s] build aborted at step '%s': %s", ctx.job.label, error.step, error)
        try:
            self.recovery.action(ctx)
        except Exception as e:
            recovery_error = _as_step_error(self.recovery.name, e)
            logger.error(
                "[%s] error running '%s', build aborted without further recovery: %s",
                ctx.job.label,
                self.recovery.name,
                recovery_error,
            )
            return RecoveryError(recovery=recovery_error, original=error)
        logger.info(
            "[%s] build aborted: restored mainline for every repo in case pinned revisions were still checked out",
            ctx.job.label,
        )
        return error


def _as_step_error(step: str, exc: Exception) -> StepError:
    if isinstance(exc, StepError):
        return exc
    return StepError(step=step, message=f"{type(exc).__name__}: {exc}")


# ----------------------------------------------------------------------
# Driver
# ----------------------------------------------------------------------

class Pipeline:
    """
    Fixed, ordered list of steps executed by a single driver loop.

    Each step either succeeds (continue) or fails (abort, then stop). There is
    no skipping ahead and no retry.
    """

    def __init__(self, steps: Sequence[Step], abort_handler: AbortHandler):
        names = [s.name for s in steps]
        if len(set(names)) != len(names):
            dupes = sorted({n for n in names if names.count(n) > 1})
            raise ValueError(f"Duplicate step names found: {dupes}")
        self.steps = tuple(steps)
        self.abort_handler = abort_handler

    @property
    def step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def run(self, ctx: BuildContext) -> RunResult:
        label = ctx.job.label
        for step in self.steps:
            logger.info("[%s] > %s", label, step.name)
            try:
                step.action(ctx)
            except Exception as e:
                step_error = _as_step_error(step.name, e)
                if step.recovery:
                    logger.error(
                        "[%s] error running '%s', build aborted to avoid an infinite loop: %s",
                        label,
                        step.name,
                        step_error,
                    )
                    error: BuildServerError = RecoveryError(recovery=step_error)
                else:
                    error = self.abort_handler.abort(ctx, step_error)
                return RunResult(job=ctx.job, error=error, completed_steps=list(ctx.completed))
            ctx.completed.append(step.name)

        logger.info("[%s] all %d steps finished", label, len(self.steps))
        return RunResult(job=ctx.job, completed_steps=list(ctx.completed))
