"""Tests for the job runner against real subprocesses."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from qualitygate.dsl import cmd, job, lint_step, metric, sh
from qualitygate.errors import ConfigError, ParseError
from qualitygate.model import MetricRule, Status
from qualitygate.rules import RuleSet
from qualitygate.runner import extract_metric, run_job
from qualitygate.thresholds import threshold_specs

PY = sys.executable


def _py(name: str, code: str):
    return cmd(name, PY, "-c", code)


def test_passing_job_captures_output(tmp_path: Path) -> None:
    result = run_job(job("hello", _py("Say hi", "print('hello from tool')")), root=tmp_path)

    assert result.status is Status.PASSED
    assert result.exit_code == 0
    assert "hello from tool" in result.output


def test_non_zero_exit_fails_and_stops_later_steps(tmp_path: Path) -> None:
    marker = tmp_path / "second-ran"
    result = run_job(
        job(
            "build",
            _py("Compile", "import sys; sys.stderr.write('boom\\n'); sys.exit(3)"),
            _py("Never", f"open({str(marker)!r}, 'w').close()"),
        ),
        root=tmp_path,
    )

    assert result.status is Status.FAILED
    assert result.exit_code == 3
    assert result.error == "exit"
    assert "boom" in result.output
    assert not marker.exists()


def test_shell_step(tmp_path: Path) -> None:
    result = run_job(job("shell", sh("Exit", "echo partial && exit 5")), root=tmp_path)

    assert result.status is Status.FAILED
    assert result.exit_code == 5
    assert "partial" in result.output


def test_missing_tool_is_spawn_failure(tmp_path: Path) -> None:
    result = run_job(job("lint", cmd("Clippy", "qualitygate-no-such-tool", "--check")), root=tmp_path)

    assert result.status is Status.FAILED
    assert result.error == "spawn"
    assert result.exit_code is None
    assert "qualitygate-no-such-tool" in result.reason


def test_shell_command_not_found_is_spawn_failure(tmp_path: Path) -> None:
    result = run_job(job("mutation", sh("Mutants", "qualitygate-no-such-tool run")), root=tmp_path)

    assert result.status is Status.FAILED
    assert result.error == "spawn"
    assert "qualitygate-no-such-tool" in result.reason


def test_shell_exit_127_without_missing_command_is_exit_failure(tmp_path: Path) -> None:
    result = run_job(job("custom", sh("Exit", "exit 127")), root=tmp_path)

    assert result.status is Status.FAILED
    assert result.error == "exit"
    assert result.exit_code == 127


def test_missing_cwd_is_spawn_failure(tmp_path: Path) -> None:
    result = run_job(job("t", _py("Noop", "pass"), cwd="does-not-exist"), root=tmp_path)

    assert result.status is Status.FAILED
    assert result.error == "spawn"
    assert "cwd not found" in result.reason


def test_env_and_cwd_are_applied(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    result = run_job(
        job(
            "env",
            _py("Show", "import os; print(os.environ['QG_VALUE'], os.path.basename(os.getcwd()))"),
            env={"QG_VALUE": 42},
            cwd="sub",
        ),
        root=tmp_path,
    )

    assert result.status is Status.PASSED
    assert "42 sub" in result.output


def test_rules_expand_into_argv(tmp_path: Path) -> None:
    step = lint_step("Lint", PY, "-c", "import sys; print('|'.join(sys.argv[1:]))")
    result = run_job(job("lint", step), root=tmp_path, rules=RuleSet(("-W pedantic", "-D warnings")))

    assert result.status is Status.PASSED
    assert "-W|pedantic|-D|warnings" in result.output


def test_rules_required_but_missing(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="rule file"):
        run_job(job("lint", lint_step("Lint", PY, "-c", "pass")), root=tmp_path)


def test_coverage_below_threshold_fails_with_margin(tmp_path: Path) -> None:
    result = run_job(
        job(
            "coverage",
            _py("Report", "print('Total coverage: 87.50%')"),
            metric=metric("coverage", label="Total coverage:"),
        ),
        root=tmp_path,
        thresholds=threshold_specs({"coverage": 90.0}),
    )

    assert result.status is Status.FAILED
    assert result.error == "threshold"
    assert result.exit_code == 0
    assert result.metric == pytest.approx(87.5)
    assert result.margin == pytest.approx(-2.5)


def test_metric_at_threshold_passes(tmp_path: Path) -> None:
    result = run_job(
        job("coverage", _py("Report", "print('Total coverage: 90%')"), metric=metric("coverage", label="Total coverage:")),
        root=tmp_path,
        thresholds=threshold_specs({"coverage": 90.0}),
    )

    assert result.status is Status.PASSED
    assert result.margin == 0.0


def test_metric_without_threshold_is_recorded(tmp_path: Path) -> None:
    result = run_job(
        job("bench", _py("Report", "print('score: 12.25')"), metric=metric("score", label="score:")),
        root=tmp_path,
        thresholds=threshold_specs({"coverage": 90.0}),
    )

    assert result.status is Status.PASSED
    assert result.metric == pytest.approx(12.25)
    assert result.margin is None


def test_missing_metric_is_parse_failure_not_exit_failure(tmp_path: Path) -> None:
    result = run_job(
        job("coverage", _py("Report", "print('format changed')"), metric=metric("coverage", label="Total coverage:")),
        root=tmp_path,
        thresholds=threshold_specs({"coverage": 90.0}),
    )

    assert result.status is Status.FAILED
    assert result.error == "parse"
    assert result.exit_code == 0


def test_exit_status_wins_over_metric(tmp_path: Path) -> None:
    result = run_job(
        job(
            "coverage",
            _py("Report", "import sys; print('Total coverage: 99%'); sys.exit(1)"),
            metric=metric("coverage", label="Total coverage:"),
        ),
        root=tmp_path,
        thresholds=threshold_specs({"coverage": 90.0}),
    )

    assert result.error == "exit"
    assert result.metric is None


def test_extract_metric_label_and_pattern() -> None:
    text = "running 12 tests\nTOTAL    812     41    94.95%\n"

    assert extract_metric(MetricRule("coverage", pattern=r"^TOTAL\s.*?(\d+(?:\.\d+)?)%\s*$"), text) == pytest.approx(94.95)
    assert extract_metric(MetricRule("tests", label="running"), text) == 12.0
    assert extract_metric(MetricRule("score", label="mutation score"), "mutation score - 87.5%") == 87.5
    assert extract_metric(MetricRule("delta", label="delta:"), "delta: -2.5") == -2.5

    with pytest.raises(ParseError):
        extract_metric(MetricRule("coverage", label="Total coverage:"), text, job="coverage")


def test_metric_rule_needs_exactly_one_source() -> None:
    with pytest.raises(ValueError):
        MetricRule("coverage")
    with pytest.raises(ValueError):
        MetricRule("coverage", label="a", pattern="b")
