# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Union

RULES_PLACEHOLDER = "{rules}"


@dataclass(frozen=True)
class Step:
    """
    A single command inside a job.

    `run` is either a shell string or an argv sequence. The argv element
    `{rules}` expands to the loaded RuleSet.
    """
    name: str
    run: Union[str, Sequence[str]]
    cwd: str | None = None

    @property
    def uses_shell(self) -> bool:
        return isinstance(self.run, str)

    @property
    def uses_rules(self) -> bool:
        return not self.uses_shell and RULES_PLACEHOLDER in self.run

    def display(self) -> str:
        if self.uses_shell:
            return self.run
        return " ".join(self.run)


@dataclass(frozen=True)
class MetricRule:
    """
    Where a numeric metric lives in a tool's output.

    Either `label` (first number following the label) or `pattern`
    (regex with one capture group) must be set.
    """
    name: str
    label: str | None = None
    pattern: str | None = None

    def __post_init__(self) -> None:
        if (self.label is None) == (self.pattern is None):
            raise ValueError(f"metric {self.name!r} needs exactly one of label/pattern")


@dataclass
class Job:
    """
    A verification job: steps + dependencies + optional metric.

    Canonical dependency field: `needs`
    """
    name: str
    steps: list[Step]
    needs: list[str] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    cwd: str | None = None
    metric: Optional[MetricRule] = None
    enabled: bool = True

    @property
    def uses_rules(self) -> bool:
        return any(s.uses_rules for s in self.steps)


class Status(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self in (Status.PASSED, Status.FAILED, Status.SKIPPED)


@dataclass(frozen=True)
class JobResult:
    name: str
    status: Status
    exit_code: int | None = None
    output: str = ""
    metric: float | None = None
    margin: float | None = None
    reason: str | None = None
    # "exit" | "spawn" | "parse" | "threshold" | "internal" for failures
    error: str | None = None
    # disabled / not-selected jobs never count towards the verdict
    counted: bool = True

    @property
    def passed(self) -> bool:
        return self.status is Status.PASSED

    @classmethod
    def skipped(cls, name: str, reason: str, *, counted: bool = True) -> "JobResult":
        return cls(name=name, status=Status.SKIPPED, reason=reason, counted=counted)


@dataclass(frozen=True)
class HygieneViolation:
    check: str
    path: str
    reason: str
    line: int | None = None

    def location(self) -> str:
        return self.path if self.line is None else f"{self.path}:{self.line}"


EXIT_OK = 0
EXIT_JOB_FAILURE = 1
EXIT_HYGIENE_FAILURE = 3
EXIT_CONFIG_ERROR = 4


@dataclass(frozen=True)
class PipelineReport:
    """Every declared job exactly once, plus the findings of each hygiene check."""
    results: Dict[str, JobResult]
    violations: Dict[str, List[HygieneViolation]] = field(default_factory=dict)

    @property
    def jobs_passed(self) -> bool:
        return all(r.passed for r in self.results.values() if r.counted)

    @property
    def hygiene_passed(self) -> bool:
        return all(not v for v in self.violations.values())

    @property
    def passed(self) -> bool:
        return self.jobs_passed and self.hygiene_passed

    @property
    def exit_code(self) -> int:
        if not self.jobs_passed:
            return EXIT_JOB_FAILURE
        if not self.hygiene_passed:
            return EXIT_HYGIENE_FAILURE
        return EXIT_OK

    def failed_jobs(self) -> list[str]:
        return [n for n, r in self.results.items() if r.counted and not r.passed]

    def all_violations(self) -> list[HygieneViolation]:
        return [v for check in sorted(self.violations) for v in self.violations[check]]
