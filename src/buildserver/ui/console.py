"""Console output formatting for the build server CLI."""

from __future__ import annotations

import sys
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_server_started(self, host: str, port: int, repos_root: str, log_file: Optional[str]) -> None:
        """Print server start information."""
        print("\nBUILD SERVER STARTED")
        print(f"Listening on: http://{host}:{port}")
        print(f"Repos root: {repos_root}")
        print(f"Log file: {log_file or '(none)'}")
        print()

    def print_deploy_queued(self, sim_name: str, version: str, message: str, position: int) -> None:
        """Print the acknowledgement of a queued deploy."""
        print("\nDEPLOY QUEUED")
        print(f"Sim: {sim_name}")
        print(f"Version: {version}")
        print(f"Waiting ahead: {position}")
        print(message)

    def print_checkout(self, repo: str, revision: str) -> None:
        print(f"  {repo}: {revision}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
