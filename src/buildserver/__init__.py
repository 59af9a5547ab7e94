from .model import Job, Revision, Version
from .pipeline import Pipeline, RunResult, Step
from .service import BuildService
from .taskqueue import TaskQueue

__all__ = ["Job", "Revision", "Version", "Pipeline", "RunResult", "Step", "BuildService", "TaskQueue"]
