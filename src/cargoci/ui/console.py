"""Console output formatting utilities for cargo-ci."""

from __future__ import annotations

import sys
import threading
from typing import Iterable, Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # jobs run on worker threads; keep each message's lines together
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        repository: str,
        workflow: str,
        branch: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Workflow: {workflow}",
            f"Branch: {branch}",
            f"Jobs: {job_count}",
            "",
        )

    def print_plan(self, stages: Iterable[Iterable[str]], skipped: Iterable[str] = ()) -> None:
        """Print the execution plan, one line per stage."""
        lines = []
        for idx, stage in enumerate(stages):
            lines.append(f"  stage {idx + 1}: {', '.join(stage)}")
        for job_id in skipped:
            lines.append(f"  {job_id} (skipped: not selected)")
        self._emit(*lines)

    def print_job_start(self, job_id: str) -> None:
        """Print job start message."""
        self._emit(f"\nJOB STARTED: {job_id}")

    def print_step(self, job_id: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job_id}] STEP: {name}")

    def print_success(self, job_id: str) -> None:
        self._emit(f"[{job_id}] STATUS: success")

    def print_job_failure(self, job_id: str, exc: Exception) -> None:
        """
        Print a job failure.

        Only the first line of the error is shown unless debug mode is on;
        captured command output is shown in full in debug mode.
        """
        lines = [f"JOB FAILED: {job_id}"]
        exit_code = getattr(exc, "exit_code", None)
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        details = getattr(exc, "details", None) or {}
        if details.get("hint"):
            lines.append(f"Hint: {details['hint']}")
        reason = str(exc)
        if self.debug:
            lines.append(f"Error details: {reason}")
            for name in ("stdout", "stderr"):
                out = getattr(exc, name, "")
                if out:
                    lines.append(f"--- {name} ---")
                    lines.append(out.rstrip())
        else:
            lines.append(f"Error: {reason.splitlines()[0] if reason else 'Unknown error'}")
            stderr = getattr(exc, "stderr", "")
            if stderr:
                lines.append(stderr.rstrip().splitlines()[-1])
        self._emit(*lines)

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for job_id, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            lines.append(f"  {job_id}: {status_display}")
        self._emit(*lines)

    def print_issues(self, issues: Iterable) -> None:
        self._emit(*(f"  {issue}" for issue in issues))

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
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


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
