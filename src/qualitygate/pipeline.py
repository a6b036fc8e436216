# pipeline.py
from __future__ import annotations

import os
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from .dag import JobGraph
from .errors import ConfigError
from .hygiene import DEFAULT_IGNORE, Scanner, collect_files
from .model import HygieneViolation, Job, JobResult, PipelineReport, Status
from .rules import RuleSet
from .runner import run_job
from .thresholds import ThresholdSpec
from .ui.console import Console

RunFn = Callable[[Job], JobResult]


def _default_workers() -> int:
    c = os.cpu_count() or 2
    return max(1, c - 1)


def _guarded(run_fn: RunFn, job: Job) -> JobResult:
    """A crash inside one job becomes that job's FAILED result."""
    try:
        result = run_fn(job)
    except Exception as e:
        return JobResult(name=job.name, status=Status.FAILED, reason=f"internal error: {e}", error="internal")
    if result.name != job.name:
        return JobResult(
            name=job.name, status=Status.FAILED,
            reason=f"runner returned result for {result.name!r}", error="internal",
        )
    return result


def _scan(scanner: Scanner, root: Path, files: Sequence[str]) -> List[HygieneViolation]:
    try:
        return scanner.scan(root, files)
    except Exception as e:
        return [HygieneViolation(check=scanner.name, path=".", reason=f"scanner error: {e}")]


class _ResultTable:
    """
    Write-once result table with the per-job state machine:

        PENDING -> RUNNING -> {PASSED, FAILED, SKIPPED}
        PENDING -> SKIPPED
    """

    def __init__(self, graph: JobGraph):
        self.graph = graph
        self.state: List[Status] = [Status.PENDING] * len(graph)
        self.results: Dict[int, JobResult] = {}

    def start(self, i: int) -> None:
        if self.state[i] is not Status.PENDING:
            raise RuntimeError(f"job {self.graph.jobs[i].name!r} started from state {self.state[i].value}")
        self.state[i] = Status.RUNNING

    def record(self, i: int, result: JobResult) -> None:
        if self.state[i].terminal or i in self.results:
            raise RuntimeError(f"result for job {self.graph.jobs[i].name!r} recorded twice")
        if not result.status.terminal:
            raise RuntimeError(f"job {result.name!r} recorded with non-terminal status {result.status.value}")
        self.state[i] = result.status
        self.results[i] = result

    def blocker(self, i: int) -> Optional[JobResult]:
        """First dependency that ended without passing, if any."""
        for d in self.graph.deps[i]:
            if self.state[d] in (Status.FAILED, Status.SKIPPED):
                return self.results[d]
        return None

    def ready(self, i: int) -> bool:
        return all(self.state[d] is Status.PASSED for d in self.graph.deps[i])


def select_jobs(graph: JobGraph, select: Optional[Iterable[str]]) -> set[int]:
    """Selected jobs plus everything they transitively need."""
    if select is None:
        return set(range(len(graph)))
    roots = []
    for name in select:
        if name not in graph.index:
            raise ConfigError(f"unknown job selected: '{name}'", {"known": sorted(graph.index)})
        roots.append(graph.index[name])
    return graph.ancestors(roots)


def run_pipeline(
    jobs: Sequence[Job],
    *,
    root: str | Path = ".",
    rules: Optional[RuleSet] = None,
    thresholds: Optional[Mapping[str, ThresholdSpec]] = None,
    select: Optional[Iterable[str]] = None,
    scanners: Sequence[Scanner] = (),
    files: Optional[Sequence[str]] = None,
    ignore: Sequence[str] = DEFAULT_IGNORE,
    run_fn: Optional[RunFn] = None,
    max_workers: int | None = None,
    deadline: float | None = None,
    fail_fast: bool = False,
    console: Optional[Console] = None,
) -> PipelineReport:
    """
    Validate the job graph, run jobs in dependency order (in parallel where
    the graph allows), run hygiene scanners alongside, and build the report.

    - ConfigError (cycle, unknown job, missing rules) is raised before
      anything executes.
    - A job starts only after all of its dependencies PASSED; a FAILED or
      SKIPPED dependency skips every transitive dependent without running it.
    - Disabled and unselected jobs are SKIPPED and not counted; an enabled
      job skipped because of them still counts.
    - `deadline` (seconds from start): jobs not yet started once it elapses
      are SKIPPED("timeout"); running jobs are left to finish.
    - `fail_fast`: after the first failure no new job is started.
    """
    root_p = Path(root).resolve()
    graph = JobGraph.build(jobs)
    order = graph.topological_order()
    selected = select_jobs(graph, select)

    for i in sorted(selected):
        job = graph.jobs[i]
        if job.enabled and job.uses_rules and rules is None:
            raise ConfigError(f"job '{job.name}' needs a rule file but none was loaded")

    if run_fn is None:
        run_fn = partial(run_job, root=root_p, rules=rules, thresholds=thresholds)
    if max_workers is None:
        max_workers = _default_workers()
    if scanners and files is None:
        files = collect_files(root_p, ignore)

    table = _ResultTable(graph)

    def record(i: int, result: JobResult) -> None:
        table.record(i, result)
        if console is not None:
            console.print_job_finished(result)

    for i in order:
        job = graph.jobs[i]
        if i not in selected:
            table.record(i, JobResult.skipped(job.name, "not selected", counted=False))
        elif not job.enabled:
            record(i, JobResult.skipped(job.name, "disabled", counted=False))

    started = time.monotonic()
    stop_reason: Optional[str] = None
    in_flight: Dict[Future, int] = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool, \
            ThreadPoolExecutor(max_workers=max(1, len(scanners))) as hygiene_pool:
        scans = {hygiene_pool.submit(_scan, s, root_p, files or ()): s.name for s in scanners}

        while True:
            if deadline is not None and stop_reason is None and time.monotonic() - started >= deadline:
                stop_reason = "timeout"

            # topological order lets skips cascade in a single pass
            for i in order:
                if table.state[i] is not Status.PENDING:
                    continue
                job = graph.jobs[i]
                dep = table.blocker(i)
                if dep is not None:
                    verb = "failed" if dep.status is Status.FAILED else "skipped"
                    record(i, JobResult.skipped(job.name, f"dependency {dep.name} {verb}"))
                elif table.ready(i):
                    if stop_reason is not None:
                        record(i, JobResult.skipped(job.name, stop_reason))
                        continue
                    table.start(i)
                    if console is not None:
                        console.print_job_start(job.name)
                    in_flight[pool.submit(_guarded, run_fn, job)] = i

            if not in_flight:
                break

            timeout = None
            if deadline is not None and stop_reason is None:
                timeout = max(0.0, deadline - (time.monotonic() - started))

            # join barrier: block until some job completes (or the deadline hits)
            done, _ = wait(list(in_flight), timeout=timeout, return_when=FIRST_COMPLETED)
            for fut in done:
                i = in_flight.pop(fut)
                result = fut.result()
                record(i, result)
                if result.status is Status.FAILED and fail_fast and stop_reason is None:
                    stop_reason = "fail-fast"

        violations = {scans[fut]: fut.result() for fut in scans}

    leftover = [graph.jobs[i].name for i in order if not table.state[i].terminal]
    if leftover:
        raise RuntimeError(f"jobs never reached a terminal state: {leftover}")

    if console is not None:
        console.print_debug(f"pipeline finished in {time.monotonic() - started:.2f}s")

    return PipelineReport(
        results={graph.jobs[i].name: table.results[i] for i in range(len(graph))},
        violations=violations,
    )
