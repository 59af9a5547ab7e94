from __future__ import annotations

import threading
import time

import pytest

from buildserver.errors import StepError
from buildserver.pipeline import RunResult
from buildserver.taskqueue import JobState, TaskQueue

from conftest import make_job


class GatedRunner:
    """Job runner that blocks each job until released and tracks overlap."""

    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.lock = threading.Lock()
        self.active = 0
        self.max_active = 0
        self.order = []
        self.gates = {}
        self.started = threading.Event()

    def gate(self, sim):
        return self.gates.setdefault(sim, threading.Event())

    def __call__(self, job):
        with self.lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
            self.order.append(job.sim_name)
        self.started.set()
        self.gate(job.sim_name).wait(5)
        time.sleep(0.01)
        with self.lock:
            self.active -= 1
        if job.sim_name in self.fail_for:
            return RunResult(job=job, error=StepError(step="build", message="failed"))
        return RunResult(job=job)


@pytest.fixture()
def queue_and_runner():
    runner = GatedRunner(fail_for={"sim-2"})
    q = TaskQueue(runner)
    q.start()
    yield q, runner
    for gate in runner.gates.values():
        gate.set()
    q.stop(timeout=5)


def test_enqueue_returns_before_job_completes(queue_and_runner) -> None:
    q, runner = queue_and_runner
    done = threading.Event()

    entry = q.enqueue(make_job("sim-0"), lambda err: done.set())

    assert not done.is_set()
    assert runner.started.wait(5)
    assert q.running is entry
    assert entry.state is JobState.RUNNING

    runner.gate("sim-0").set()
    assert done.wait(5)


def test_jobs_run_one_at_a_time_in_fifo_order(queue_and_runner) -> None:
    q, runner = queue_and_runner
    completions = []
    names = [f"sim-{i}" for i in range(6)]
    for name in names:
        q.enqueue(make_job(name), lambda err, n=name: completions.append(n))

    # nothing but the first job may start while it holds the slot
    assert runner.started.wait(5)
    time.sleep(0.05)
    assert runner.order == ["sim-0"]
    assert q.depth == 5

    for name in names:
        runner.gate(name).set()
    q.join()

    assert runner.max_active == 1
    assert runner.order == names
    assert completions == names


def test_callback_fires_exactly_once_with_error(queue_and_runner) -> None:
    q, runner = queue_and_runner
    calls = {"sim-1": [], "sim-2": []}
    for name in calls:
        q.enqueue(make_job(name), calls[name].append)
        runner.gate(name).set()
    q.join()

    assert calls["sim-1"] == [None]
    assert len(calls["sim-2"]) == 1
    assert isinstance(calls["sim-2"][0], StepError)


def test_enqueue_from_many_threads_never_drops(queue_and_runner) -> None:
    q, runner = queue_and_runner
    completed = []

    def submit(i):
        name = f"t-{i}"
        runner.gate(name).set()
        q.enqueue(make_job(name), lambda err: completed.append(name))

    threads = [threading.Thread(target=submit, args=(i,)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    q.join()

    assert sorted(completed) == sorted(f"t-{i}" for i in range(20))
    assert completed == runner.order
    assert runner.max_active == 1


def test_same_artifact_twice_is_queued_not_rejected(queue_and_runner) -> None:
    q, runner = queue_and_runner
    results = []
    first = q.enqueue(make_job("dup"), results.append)
    assert runner.started.wait(5)
    second = q.enqueue(make_job("dup"), results.append)

    assert first.state is JobState.RUNNING
    assert second.state is JobState.QUEUED
    assert q.depth == 1

    runner.gate("dup").set()
    q.join()
    assert results == [None, None]
    assert runner.max_active == 1


def test_crashing_runner_still_completes_job() -> None:
    def explode(job):
        raise RuntimeError("worker bug")

    q = TaskQueue(explode)
    q.start()
    errors = []
    q.enqueue(make_job(), errors.append)
    q.join()
    q.stop(timeout=5)

    assert len(errors) == 1
    assert isinstance(errors[0], StepError)
    assert "worker bug" in errors[0].message


def test_raising_callback_does_not_stop_the_queue() -> None:
    q = TaskQueue(lambda job: RunResult(job=job))
    q.start()
    seen = []

    def bad_callback(err):
        raise ValueError("callback bug")

    q.enqueue(make_job("a"), bad_callback)
    q.enqueue(make_job("b"), seen.append)
    q.join()
    q.stop(timeout=5)

    assert seen == [None]


def test_stopped_queue_refuses_new_jobs() -> None:
    q = TaskQueue(lambda job: RunResult(job=job))
    q.start()
    q.stop(timeout=5)
    with pytest.raises(RuntimeError, match="not accepting"):
        q.enqueue(make_job())
