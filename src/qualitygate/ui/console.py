"""Console output formatting utilities for qualitygate."""

from __future__ import annotations

import sys
import threading
from typing import Optional, Sequence

from ..model import HygieneViolation, JobResult, PipelineReport, Status

_STATUS_LABEL = {
    Status.PASSED: "PASS",
    Status.FAILED: "FAIL",
    Status.SKIPPED: "SKIP",
}


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, show_output: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            show_output: If True, dump captured tool output of failed jobs
        """
        self.debug = debug
        self.show_output = show_output
        self._lock = threading.Lock()

    def _print(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._print("", title, "-" * len(title))

    def print_run_started(
        self,
        root: str,
        subset: str,
        job_count: int,
        checks: Sequence[str] = (),
    ) -> None:
        """Print run start information."""
        self._print(
            "",
            "RUN STARTED",
            f"Root: {root}",
            f"Subset: {subset}",
            f"Jobs: {job_count}",
            f"Hygiene checks: {', '.join(checks) if checks else 'none'}",
            "",
        )

    def print_job_start(self, name: str) -> None:
        self._print(f"JOB STARTED: {name}")

    def print_job_finished(self, result: JobResult) -> None:
        """Live line printed as soon as a job reaches a terminal state."""
        self._print(f"JOB {result.status.value.upper()}: {result.name}" + (f" ({result.reason})" if result.reason else ""))

    def print_job_result(self, result: JobResult) -> None:
        label = _STATUS_LABEL.get(result.status, result.status.value.upper())
        line = f"  [{label}] {result.name}"
        if result.metric is not None:
            line += f"  metric={result.metric:g}"
        if result.margin is not None:
            line += f" margin={result.margin:+g}"
        if result.reason:
            line += f"  ({result.reason})"
        self._print(line)
        if result.status is Status.FAILED and result.output and (self.show_output or self.debug):
            tail = result.output.splitlines()[-40:]
            self._print(*(f"      {t}" for t in tail))

    def print_violations(self, check: str, violations: Sequence[HygieneViolation]) -> None:
        if not violations:
            self._print(f"  [PASS] {check}")
            return
        self._print(f"  [FAIL] {check}: {len(violations)} violation(s)")
        self._print(*(f"      {v.location()}: {v.reason}" for v in violations))

    def print_report(self, report: PipelineReport) -> None:
        """Print the final per-job and per-check summary plus the verdict."""
        self._print("", "=" * 40, "RESULTS", "=" * 40)
        for result in report.results.values():
            self.print_job_result(result)
        if report.violations:
            self.print_header("HYGIENE")
            for check in sorted(report.violations):
                self.print_violations(check, report.violations[check])
        self.print_verdict(report)

    def print_verdict(self, report: PipelineReport) -> None:
        if report.passed:
            self._print("", "VERDICT: PASS")
            return
        why = []
        failed = report.failed_jobs()
        if failed:
            why.append(f"jobs: {', '.join(failed)}")
        bad_checks = sorted(c for c, v in report.violations.items() if v)
        if bad_checks:
            why.append(f"hygiene: {', '.join(bad_checks)}")
        self._print("", f"VERDICT: FAIL ({'; '.join(why)})")

    def print_plan(self, rows: Sequence[tuple[str, list[str], bool]]) -> None:
        """Print execution order: (job, needs, enabled)."""
        self.print_header("PLAN")
        for pos, (name, needs, enabled) in enumerate(rows, start=1):
            state = "" if enabled else "  (disabled)"
            after = f"  needs: {', '.join(needs)}" if needs else ""
            self._print(f"  {pos}. {name}{after}{state}")

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
        lines = ["", f"ERROR: {title}", message]
        if details:
            lines.extend(f"  {d}" for d in details)
        if suggestion:
            lines.extend(["", suggestion])
        self._print(*lines, err=True)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            text = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
            self._print(text.rstrip("\n"), err=True)
        else:
            self._print(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        self._print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._print(f"[DEBUG] {message}", err=True)


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
