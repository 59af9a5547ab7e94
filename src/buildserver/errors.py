# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


class BuildServerError(Exception):
    """Base class for every error the build server reports."""


class InputError(BuildServerError):
    """
    Malformed or missing request fields, or an authorization mismatch.
    Raised before a job is enqueued; never reaches the queue.
    """

    def __init__(self, message: str, *, unauthorized: bool = False):
        super().__init__(message)
        self.message = message
        self.unauthorized = unauthorized


@dataclass
class StepError(BuildServerError):
    """
    A pipeline step failed. Carries enough context to diagnose the failure
    without reproducing it.
    """
    step: str
    message: str
    command: Optional[str] = None
    cwd: Optional[str] = None
    exit_code: Optional[int] = None
    output: str = ""

    def __str__(self) -> str:
        lines = [f"step '{self.step}' failed: {self.message}"]
        if self.command:
            lines.append(f"command={self.command}")
        if self.cwd:
            lines.append(f"cwd={self.cwd}")
        if self.exit_code is not None:
            lines.append(f"exit_code={self.exit_code}")
        if self.output:
            lines.append(f"output={self.output}")
        return "\n".join(lines)


@dataclass
class RecoveryError(BuildServerError):
    """
    Restoring working copies to mainline failed. Terminal for the job and never
    followed by another recovery attempt: repositories may be left in an
    inconsistent state.
    """
    recovery: StepError
    original: Optional[BuildServerError] = field(default=None)

    def __str__(self) -> str:
        lines = [
            "recovery failed, repositories may be left in an inconsistent state",
            f"recovery: {self.recovery}",
        ]
        if self.original is not None:
            lines.append(f"original: {self.original}")
        return "\n".join(lines)


class NotifyError(BuildServerError):
    """Notification side channel failed. Logged only, never escalated."""
