# runner.py
from __future__ import annotations

import os
import re
import shlex
import subprocess
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from .errors import ConfigError, ParseError, ToolInvocationError
from .model import RULES_PLACEHOLDER, Job, JobResult, MetricRule, Status, Step
from .rules import RuleSet
from .thresholds import ThresholdSpec

TOOL_HINTS = {
    "cargo": "Install a Rust toolchain (rustup) or fix PATH.",
    "grcov": "Install grcov (cargo install grcov) or fix PATH.",
    "cargo-deny": "Install cargo-deny (cargo install cargo-deny).",
    "bash": "Install bash or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "python3": "Install Python 3 or fix PATH (python3).",
}

# keep the tail of very chatty tools only
OUTPUT_LIMIT = 64_000

_NUMBER = r"([-+]?\d+(?:\.\d+)?)"


# ----------------------------------------------------------------------
# Metric extraction
# ----------------------------------------------------------------------

def metric_regex(rule: MetricRule) -> "re.Pattern[str]":
    if rule.pattern is not None:
        return re.compile(rule.pattern, re.MULTILINE)
    # first number after the label, on the same line
    return re.compile(re.escape(rule.label) + r"[^\d\n]*?" + _NUMBER)


def extract_metric(rule: MetricRule, text: str, *, job: str = "") -> float:
    """
    Pull one float out of tool output.

    Raises ParseError when nothing matches, so callers can tell a changed
    output format apart from a failing tool.
    """
    m = metric_regex(rule).search(text)
    if not m:
        raise ParseError(job=job, metric=rule.name, expected=rule.pattern or repr(rule.label))
    raw = m.group(1) if m.groups() else m.group(0)
    try:
        return float(raw)
    except ValueError:
        raise ParseError(job=job, metric=rule.name, expected=rule.pattern or repr(rule.label)) from None


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def expand_argv(step: Step, rules: Optional[RuleSet]) -> List[str]:
    argv: List[str] = []
    for word in step.run:
        if word == RULES_PLACEHOLDER:
            if rules is None:
                raise ConfigError(f"step '{step.name}' needs a rule file but none was loaded")
            argv.extend(rules.argv())
        else:
            argv.append(word)
    return argv


def _tool_of(step: Step) -> str:
    if step.uses_shell:
        words = shlex.split(step.run)
        return words[0] if words else ""
    return step.run[0] if step.run else ""


def _run_step(
    job: Job,
    step: Step,
    root: Path,
    env: Dict[str, str],
    rules: Optional[RuleSet],
) -> subprocess.CompletedProcess:
    cwd = (root / (step.cwd or job.cwd or ".")).resolve()
    if not cwd.is_dir():
        raise ToolInvocationError(
            job=job.name, step=step.name, cmd=step.display(), cause=f"cwd not found: {cwd}"
        )

    if step.uses_shell:
        cmd, shell = step.run, True
    else:
        cmd, shell = expand_argv(step, rules), False

    try:
        proc = subprocess.run(
            cmd,
            shell=shell,
            cwd=str(cwd),
            env=env,
            text=True,
            errors="replace",
            capture_output=True,
        )
    except (FileNotFoundError, PermissionError) as e:
        tool = _tool_of(step)
        raise ToolInvocationError(
            job=job.name,
            step=step.name,
            cmd=step.display(),
            cause=f"{tool}: {e.strerror or e}",
            hint=TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."),
        ) from e

    # a shell reports a missing command as 127 rather than raising
    if shell and proc.returncode == 127:
        tool = _tool_of(step)
        if tool and "not found" in proc.stderr:
            raise ToolInvocationError(
                job=job.name, step=step.name, cmd=step.display(),
                cause=f"{tool}: command not found",
                hint=TOOL_HINTS.get(tool, f"Install {tool} or fix PATH."),
            )
    return proc


def _collect(step: Step, proc: subprocess.CompletedProcess) -> str:
    parts = [f"$ {step.display()}"]
    if proc.stdout:
        parts.append(proc.stdout.rstrip("\n"))
    if proc.stderr:
        parts.append(proc.stderr.rstrip("\n"))
    return "\n".join(parts)


def run_job(
    job: Job,
    *,
    root: str | Path = ".",
    rules: Optional[RuleSet] = None,
    thresholds: Optional[Mapping[str, ThresholdSpec]] = None,
) -> JobResult:
    """
    Run every step of `job` in order and derive its verdict.

    Verdict priority:
      1. a step exits non-zero          -> FAILED (error="exit")
      2. metric rule + threshold found  -> threshold verdict
      3. otherwise                      -> PASSED

    Spawn failures and missing metrics are folded into a FAILED result
    (error="spawn" / "parse"); only ConfigError propagates.
    """
    root_p = Path(root).resolve()
    env = os.environ.copy()
    env.update(job.env or {})

    chunks: List[str] = []
    raw: List[str] = []

    def output() -> str:
        text = "\n".join(chunks)
        return text[-OUTPUT_LIMIT:]

    for step in job.steps:
        try:
            proc = _run_step(job, step, root_p, env, rules)
        except ToolInvocationError as e:
            chunks.append(f"$ {step.display()}")
            return JobResult(
                name=job.name, status=Status.FAILED, output=output(),
                reason=str(e).splitlines()[0] + (f" ({e.hint})" if e.hint else ""),
                error="spawn",
            )
        chunks.append(_collect(step, proc))
        raw.extend((proc.stdout, proc.stderr))
        if proc.returncode != 0:
            return JobResult(
                name=job.name, status=Status.FAILED, exit_code=proc.returncode,
                output=output(), reason=f"step '{step.name}' exited {proc.returncode}",
                error="exit",
            )

    if job.metric is None:
        return JobResult(name=job.name, status=Status.PASSED, exit_code=0, output=output())

    text = "\n".join(raw)
    try:
        value = extract_metric(job.metric, text, job=job.name)
    except ParseError as e:
        return JobResult(
            name=job.name, status=Status.FAILED, exit_code=0, output=output(),
            reason=str(e), error="parse",
        )

    spec = (thresholds or {}).get(job.metric.name)
    if spec is None:
        return JobResult(name=job.name, status=Status.PASSED, exit_code=0, output=output(), metric=value)

    verdict = spec.check(value)
    if verdict.passed:
        return JobResult(
            name=job.name, status=Status.PASSED, exit_code=0, output=output(),
            metric=value, margin=verdict.margin,
        )
    return JobResult(
        name=job.name, status=Status.FAILED, exit_code=0, output=output(),
        metric=value, margin=verdict.margin,
        reason=f"{job.metric.name} {value:g} below minimum {spec.minimum:g}",
        error="threshold",
    )

