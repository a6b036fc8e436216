# qualitygate_workflow.py
# Gate for qualitygate itself: tests, coverage, ruff with the directives in .lints.
from __future__ import annotations

from qualitygate.dsl import cmd, job, lint_step, metric, wf


def workflow():
    return wf(
        job(
            "test",
            cmd("Run pytest", "python", "-m", "pytest", "-q"),
        ),
        job(
            "coverage",
            cmd("Coverage", "python", "-m", "pytest", "-q", "--cov=qualitygate", "--cov-report=term"),
            needs=["test"],
            # pytest-cov: "TOTAL    812     41    95%"
            metric=metric("coverage", pattern=r"^TOTAL\s.*?(\d+(?:\.\d+)?)%\s*$"),
        ),
        job(
            "lint",
            lint_step("Ruff check", "ruff", "check", "src", "tests"),
            cmd("Ruff format check", "ruff", "format", "--check", "src", "tests"),
            needs=["test"],
        ),
        job(
            "mutation",
            cmd("Mutation tests", "mutmut", "run"),
            needs=["test"],
            metric=metric("mutation", label="mutation score:"),
            enabled=False,
        ),
    )
