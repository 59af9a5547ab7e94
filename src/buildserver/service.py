# service.py
from __future__ import annotations

import logging
from typing import Optional

from .deploy import build_deploy_pipeline
from .errors import BuildServerError
from .model import Job
from .notify import Notifier
from .pipeline import BuildContext, Pipeline, RunResult
from .runner import CommandRunner
from .settings import Settings
from .taskqueue import QueuedJob, TaskQueue

logger = logging.getLogger(__name__)


class BuildService:
    """Wires the pipeline, the single-slot queue and the notifier together."""

    def __init__(
        self,
        settings: Settings,
        *,
        runner: Optional[CommandRunner] = None,
        pipeline: Optional[Pipeline] = None,
        notifier: Optional[Notifier] = None,
    ):
        self.settings = settings
        self.runner = runner or CommandRunner(
            timeout=settings.step_timeout_seconds,
            verbose=settings.verbose,
        )
        self.pipeline = pipeline or build_deploy_pipeline()
        self.notifier = notifier or Notifier(settings.email, timeout=settings.notify_timeout_seconds)
        self.queue = TaskQueue(self.run_job)

    def start(self) -> None:
        self.queue.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.queue.stop(timeout)

    def run_job(self, job: Job) -> RunResult:
        logger.info("building sim %s", job.label)
        ctx = BuildContext.create(job, self.settings, self.runner)
        return self.pipeline.run(ctx)

    def submit(self, job: Job) -> QueuedJob:
        def on_complete(error: Optional[BuildServerError]) -> None:
            self.notifier.notify(RunResult(job=job, error=error))

        return self.queue.enqueue(job, on_complete)
