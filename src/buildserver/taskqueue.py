# taskqueue.py
from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Optional

from .errors import BuildServerError, StepError
from .model import Job
from .pipeline import RunResult

logger = logging.getLogger(__name__)

OnComplete = Callable[[Optional[BuildServerError]], None]
JobRunner = Callable[[Job], RunResult]


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class QueuedJob:
    """A job plus its completion callback while the queue owns it."""
    id: int
    job: Job
    on_complete: Optional[OnComplete]
    state: JobState = JobState.QUEUED
    result: Optional[RunResult] = field(default=None, repr=False)


class TaskQueue:
    """
    Single-concurrency FIFO queue.

    `enqueue` returns immediately; one worker thread runs jobs strictly one at
    a time in arrival order, and each job's callback fires exactly once when
    it leaves RUNNING. Nothing is ever dropped or cancelled.
    """

    def __init__(self, run_job: JobRunner, *, name: str = "build-queue"):
        self._run_job = run_job
        self._name = name
        self._pending: "queue.Queue[Optional[QueuedJob]]" = queue.Queue()
        self._lock = threading.Lock()
        self._ids = itertools.count(1)
        self._jobs: Dict[int, QueuedJob] = {}
        self._running: Optional[QueuedJob] = None
        self._thread: Optional[threading.Thread] = None
        self._stopping = False

    # ---- lifecycle ----

    def start(self) -> None:
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stopping = False
            self._thread = threading.Thread(target=self._worker, name=self._name, daemon=True)
            self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Let queued jobs drain, then stop the worker."""
        with self._lock:
            thread = self._thread
            self._stopping = True
        if thread is None:
            return
        self._pending.put(None)
        thread.join(timeout)

    def join(self) -> None:
        """Block until every job enqueued so far has completed."""
        self._pending.join()

    # ---- admission ----

    def enqueue(self, job: Job, on_complete: Optional[OnComplete] = None) -> QueuedJob:
        with self._lock:
            if self._stopping:
                raise RuntimeError("queue is stopping; not accepting jobs")
            entry = QueuedJob(id=next(self._ids), job=job, on_complete=on_complete)
            self._jobs[entry.id] = entry
            self._pending.put(entry)
        logger.info("queuing build for %s (job %d, %d waiting)", job.label, entry.id, self.depth)
        return entry

    # ---- introspection ----

    @property
    def depth(self) -> int:
        """Jobs waiting for the slot, not counting the running one."""
        with self._lock:
            return sum(1 for e in self._jobs.values() if e.state is JobState.QUEUED)

    @property
    def running(self) -> Optional[QueuedJob]:
        with self._lock:
            return self._running

    # ---- worker ----

    def _worker(self) -> None:
        while True:
            entry = self._pending.get()
            try:
                if entry is None:
                    return
                self._process(entry)
            finally:
                self._pending.task_done()

    def _process(self, entry: QueuedJob) -> None:
        with self._lock:
            entry.state = JobState.RUNNING
            self._running = entry
        logger.info("building %s (job %d)", entry.job.label, entry.id)

        try:
            result = self._run_job(entry.job)
        except Exception as e:
            logger.exception("job %d crashed outside the pipeline", entry.id)
            result = RunResult(
                job=entry.job,
                error=StepError(step="run job", message=f"{type(e).__name__}: {e}"),
            )

        with self._lock:
            entry.result = result
            entry.state = JobState.SUCCEEDED if result.ok else JobState.FAILED
            self._running = None
            # finished jobs are discarded once their callback fires
            self._jobs.pop(entry.id, None)

        if entry.on_complete is None:
            return
        try:
            entry.on_complete(result.error)
        except Exception:
            logger.exception("completion callback for job %d raised", entry.id)
