# runner.py
from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from .errors import StepError

logger = logging.getLogger(__name__)

# keep the tail of long tool output; grunt builds are chatty
OUTPUT_TAIL = 4000

TIMEOUT_EXIT_CODE = -9
MISSING_CWD_EXIT_CODE = 127


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command. Interpretation is up to the caller."""
    command: str
    cwd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def diagnostic(self) -> str:
        text = "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)
        return text[-OUTPUT_TAIL:]


class CommandRunner:
    """
    Runs shell commands in a working directory and reports their status.

    `run` never raises on a non-zero exit; `check` turns a failure into a
    StepError for the pipeline; `run_best_effort` logs a failure and moves on.
    """

    def __init__(
        self,
        *,
        timeout: Optional[float] = None,
        verbose: bool = False,
        env: Optional[Dict[str, str]] = None,
    ):
        self.timeout = timeout or None
        self.verbose = verbose
        self.env = env

    def run(self, command: str, cwd: str | Path) -> CommandResult:
        cwd_p = Path(cwd)
        logger.info("running command: %s (cwd=%s)", command, cwd_p)
        if not cwd_p.is_dir():
            return CommandResult(
                command=command,
                cwd=str(cwd_p),
                exit_code=MISSING_CWD_EXIT_CODE,
                stderr=f"working directory not found: {cwd_p}",
            )

        env = os.environ.copy()
        env.update(self.env or {})
        try:
            proc = subprocess.run(
                command,
                shell=True,
                cwd=str(cwd_p),
                env=env,
                text=True,
                capture_output=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            result = CommandResult(
                command=command,
                cwd=str(cwd_p),
                exit_code=TIMEOUT_EXIT_CODE,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr) + f"\ntimed out after {self.timeout}s",
                timed_out=True,
            )
        else:
            result = CommandResult(
                command=command,
                cwd=str(cwd_p),
                exit_code=proc.returncode,
                stdout=proc.stdout or "",
                stderr=proc.stderr or "",
            )

        if self.verbose:
            if result.stdout:
                logger.info(result.stdout)
            if result.stderr:
                logger.info(result.stderr)
        if result.ok:
            logger.info("%s ran successfully in directory: %s", command, cwd_p)
        return result

    def check(self, step: str, command: str, cwd: str | Path) -> CommandResult:
        """Run `command` and raise StepError if it did not succeed."""
        result = self.run(command, cwd)
        if not result.ok:
            raise StepError(
                step=step,
                message="command timed out" if result.timed_out else "command failed",
                command=command,
                cwd=result.cwd,
                exit_code=result.exit_code,
                output=result.diagnostic,
            )
        return result

    def run_best_effort(self, command: str, cwd: str | Path) -> CommandResult:
        """Run `command`; a failure is logged as a warning and otherwise ignored."""
        result = self.run(command, cwd)
        if not result.ok:
            logger.warning(
                "%s had error (exit=%s) in %s: %s",
                command,
                result.exit_code,
                result.cwd,
                result.diagnostic,
            )
        return result


def _decode(data) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
