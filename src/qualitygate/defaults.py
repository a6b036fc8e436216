# defaults.py
# Built-in workflow, used when no workflow file is configured:
#
#   test ──┬── coverage   (metric "coverage", minimum 90)
#          ├── lint       (clippy + rules file, rustfmt, cargo-deny)
#          └── mutation   (disabled; metric "mutation", minimum 100)
#
# Hygiene checks are not jobs; they run alongside every subset that asks for them.
from __future__ import annotations

from typing import List

from .dsl import cmd, job, lint_step, metric, sh, wf
from .model import Job

GRCOV = (
    "grcov . --binary-path ./target/debug/ -s . --branch"
    " --ignore-not-existing --excl-start '#\\[cfg\\(test\\)\\]' --keep-only 'src/**/*'"
)


def workflow() -> List[Job]:
    return wf(
        job(
            "test",
            cmd("Build", "cargo", "build", "--all-targets"),
            cmd("Test", "cargo", "test", "--all-features", "--all-targets"),
        ),
        job(
            "coverage",
            cmd("Instrumented tests", "cargo", "test", "--lib"),
            sh("Coverage summary", GRCOV + " -t markdown"),
            # html report is left in ./coverage/ for upload
            sh("Coverage report", GRCOV + " -t html -o ./coverage/"),
            needs=["test"],
            env={
                "RUSTFLAGS": "-Cinstrument-coverage",
                "LLVM_PROFILE_FILE": "target/coverage/%p-%m.profraw",
            },
            # grcov markdown ends with "Total coverage: 87.50%"
            metric=metric("coverage", label="Total coverage:"),
        ),
        job(
            "lint",
            lint_step("Clippy", "cargo", "clippy", "--all-targets", "--", "-D", "warnings"),
            cmd("Rustfmt", "cargo", "fmt", "--", "--check"),
            cmd("Dependency policy", "cargo", "deny", "check"),
            needs=["test"],
        ),
        job(
            "mutation",
            cmd("Mutation tests", "cargo", "mutagen"),
            needs=["test"],
            metric=metric("mutation", pattern=r"(\d+(?:\.\d+)?)%\s+mutation score"),
            enabled=False,
        ),
    )
