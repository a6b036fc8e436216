"""Tests for the pipeline orchestrator: ordering, skipping, concurrency, report."""

from __future__ import annotations

import sys
import threading
from pathlib import Path

import pytest

from conftest import SpyRunner, make_job
from qualitygate.dsl import cmd, job, lint_step, metric
from qualitygate.errors import ConfigError
from qualitygate.hygiene import MarkerScanner
from qualitygate.model import EXIT_HYGIENE_FAILURE, EXIT_JOB_FAILURE, EXIT_OK, JobResult, Status
from qualitygate.pipeline import run_pipeline
from qualitygate.thresholds import threshold_specs


def test_all_passing_jobs(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("test"), make_job("coverage", ["test"]), make_job("lint", ["test"])]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy, max_workers=2)

    assert report.passed
    assert report.exit_code == EXIT_OK
    assert spy.calls[0] == "test"
    assert sorted(spy.calls) == ["coverage", "lint", "test"]


def test_cycle_aborts_before_any_job_runs(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("a", ["b"]), make_job("b", ["a"]), make_job("c")]

    with pytest.raises(ConfigError, match="cycle"):
        run_pipeline(jobs, root=tmp_path, run_fn=spy)

    assert spy.calls == []


def test_dependents_of_failed_job_are_skipped_not_invoked(tmp_path: Path) -> None:
    spy = SpyRunner(outcomes={"a": Status.FAILED})
    jobs = [make_job("a"), make_job("b", ["a"]), make_job("c", ["b"]), make_job("d")]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy)

    assert spy.calls.count("b") == 0
    assert spy.calls.count("c") == 0
    assert report.results["b"].status is Status.SKIPPED
    assert report.results["b"].reason == "dependency a failed"
    assert report.results["c"].reason == "dependency b skipped"
    assert report.results["d"].status is Status.PASSED
    assert report.failed_jobs() == ["a", "b", "c"]
    assert report.exit_code == EXIT_JOB_FAILURE


def test_every_declared_job_reported_once_in_order(tmp_path: Path) -> None:
    spy = SpyRunner(outcomes={"test": Status.FAILED})
    jobs = [
        make_job("test"),
        make_job("coverage", ["test"]),
        make_job("mutation", ["test"], enabled=False),
        make_job("docs"),
    ]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy)

    assert list(report.results) == ["test", "coverage", "mutation", "docs"]
    assert all(r.status.terminal for r in report.results.values())


def test_independent_jobs_run_concurrently(tmp_path: Path) -> None:
    barrier = threading.Barrier(2, timeout=5)

    def run_fn(j):
        # both jobs must be in flight at the same time to get past the barrier
        barrier.wait()
        return JobResult(name=j.name, status=Status.PASSED)

    report = run_pipeline([make_job("lint"), make_job("test")], root=tmp_path, run_fn=run_fn, max_workers=2)

    assert report.results["lint"].status is Status.PASSED
    assert report.results["test"].status is Status.PASSED


def test_dependent_waits_for_all_dependencies(tmp_path: Path) -> None:
    spy = SpyRunner(delays={"slow": 0.2})
    jobs = [make_job("slow"), make_job("fast"), make_job("report", ["slow", "fast"])]

    run_pipeline(jobs, root=tmp_path, run_fn=spy, max_workers=2)

    assert spy.calls[-1] == "report"


def test_disabled_job_is_skipped_and_not_counted(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("test"), make_job("mutation", ["test"], enabled=False)]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy)

    assert "mutation" not in spy.calls
    assert report.results["mutation"].status is Status.SKIPPED
    assert report.results["mutation"].reason == "disabled"
    assert not report.results["mutation"].counted
    assert report.passed


def test_enabled_dependent_of_disabled_job_fails_the_gate(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("test"), make_job("mutation", ["test"], enabled=False), make_job("after", ["mutation"])]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy)

    assert "after" not in spy.calls
    assert report.results["after"].status is Status.SKIPPED
    assert report.results["after"].reason == "dependency mutation skipped"
    assert report.results["after"].counted
    assert not report.passed
    assert report.failed_jobs() == ["after"]
    assert report.exit_code == EXIT_JOB_FAILURE


def test_selection_pulls_in_dependencies(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("test"), make_job("coverage", ["test"]), make_job("lint", ["test"])]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy, select=["coverage"])

    assert sorted(spy.calls) == ["coverage", "test"]
    assert report.results["lint"].reason == "not selected"
    assert report.passed


def test_unknown_selection_is_config_error(spy: SpyRunner, tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="unknown job"):
        run_pipeline([make_job("test")], root=tmp_path, run_fn=spy, select=["nope"])
    assert spy.calls == []


def test_missing_rules_is_config_error_before_execution(spy: SpyRunner, tmp_path: Path) -> None:
    jobs = [make_job("test"), job("lint", lint_step("Clippy", "cargo", "clippy"), needs=["test"])]

    with pytest.raises(ConfigError, match="rule file"):
        run_pipeline(jobs, root=tmp_path, run_fn=spy)
    assert spy.calls == []


def test_expired_deadline_skips_unstarted_jobs(spy: SpyRunner, tmp_path: Path) -> None:
    report = run_pipeline([make_job("a"), make_job("b", ["a"])], root=tmp_path, run_fn=spy, deadline=0.0)

    assert spy.calls == []
    assert report.results["a"].reason == "timeout"
    assert report.results["b"].reason == "dependency a skipped"
    assert not report.passed


def test_deadline_lets_running_jobs_finish(tmp_path: Path) -> None:
    spy = SpyRunner(delays={"a": 0.6})

    report = run_pipeline([make_job("a"), make_job("b", ["a"])], root=tmp_path, run_fn=spy, deadline=0.2)

    assert report.results["a"].status is Status.PASSED
    assert report.results["b"].status is Status.SKIPPED
    assert report.results["b"].reason == "timeout"
    assert spy.calls == ["a"]


def test_fail_fast_stops_new_jobs(tmp_path: Path) -> None:
    spy = SpyRunner(outcomes={"a": Status.FAILED}, delays={"b": 0.3})
    jobs = [make_job("a"), make_job("b"), make_job("c", ["b"])]

    report = run_pipeline(jobs, root=tmp_path, run_fn=spy, max_workers=2, fail_fast=True)

    assert report.results["b"].status is Status.PASSED
    assert report.results["c"].reason == "fail-fast"
    assert "c" not in spy.calls


def test_crashing_runner_fails_only_that_job(tmp_path: Path) -> None:
    def run_fn(j):
        if j.name == "boom":
            raise RuntimeError("runner exploded")
        return JobResult(name=j.name, status=Status.PASSED)

    report = run_pipeline([make_job("boom"), make_job("fine")], root=tmp_path, run_fn=run_fn)

    assert report.results["boom"].status is Status.FAILED
    assert report.results["boom"].error == "internal"
    assert "runner exploded" in report.results["boom"].reason
    assert report.results["fine"].status is Status.PASSED


def test_marker_violation_fails_even_when_jobs_pass(spy: SpyRunner, tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "foo.txt").write_text("work\nTODO finish this\n", encoding="utf-8")

    report = run_pipeline([make_job("test")], root=tmp_path, run_fn=spy, scanners=[MarkerScanner()])

    assert report.jobs_passed
    assert not report.passed
    assert report.exit_code == EXIT_HYGIENE_FAILURE
    violations = report.violations["markers"]
    assert len(violations) == 1
    assert (violations[0].path, violations[0].line) == ("src/foo.txt", 2)


def test_hygiene_runs_without_jobs(tmp_path: Path) -> None:
    (tmp_path / "clean.txt").write_text("ok\n", encoding="utf-8")

    report = run_pipeline([], root=tmp_path, scanners=[MarkerScanner()])

    assert report.results == {}
    assert report.violations == {"markers": []}
    assert report.passed


def test_coverage_scenario_with_real_runner(tmp_path: Path) -> None:
    jobs = [
        job("test", cmd("Test", sys.executable, "-c", "pass")),
        job(
            "coverage",
            cmd("Report", sys.executable, "-c", "print('Total coverage: 87.5%')"),
            needs=["test"],
            metric=metric("coverage", label="Total coverage:"),
        ),
        job("mutation", cmd("Mutants", "qualitygate-no-such-tool"), needs=["test"], enabled=False),
    ]

    report = run_pipeline(jobs, root=tmp_path, thresholds=threshold_specs({"coverage": 90.0, "mutation": 100.0}))

    coverage = report.results["coverage"]
    assert coverage.status is Status.FAILED
    assert coverage.margin == pytest.approx(-2.5)
    assert report.results["mutation"].reason == "disabled"
    assert report.failed_jobs() == ["coverage"]
    assert not report.passed
