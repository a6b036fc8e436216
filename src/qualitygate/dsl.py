# src/qualitygate/dsl.py
from __future__ import annotations

import runpy
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

from .errors import ConfigError
from .model import RULES_PLACEHOLDER, Job, MetricRule, Step


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


def cmd(name: str, *argv: str, cwd: str | None = None) -> Step:
    """Create a step that runs an argv directly, without a shell."""
    if not argv:
        raise ValueError(f"cmd({name!r}) needs a command")
    return Step(name=name, run=tuple(argv), cwd=cwd)


def lint_step(name: str, tool: str, *args: str, cwd: str | None = None) -> Step:
    """
    Create a static-analysis step; the loaded RuleSet is appended to `args`.

        lint_step("clippy", "cargo", "clippy", "--all-targets", "--", "-D", "warnings")
    """
    return Step(name=name, run=(tool, *args, RULES_PLACEHOLDER), cwd=cwd)


def metric(name: str, *, label: str | None = None, pattern: str | None = None) -> MetricRule:
    return MetricRule(name=name, label=label, pattern=pattern)


# ---------------------------------------------------------------------
# Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), cmd(...))
    needs: Optional[List[str]] = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,
    metric: Optional[MetricRule] = None,
    enabled: bool = True,
) -> Job:
    if not steps:
        raise ValueError(f"job({name!r}) must have at least one step")

    steps_final = list(steps)
    if cwd is not None:
        steps_final = [s if s.cwd is not None else replace(s, cwd=cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        # force values to str for env compatibility
        env={k: str(v) for k, v in (env or {}).items()},
        metric=metric,
        enabled=enabled,
    )


def wf(*jobs: Job) -> List[Job]:
    """
    Workflow definition helper.

        from qualitygate.dsl import wf, job, sh

        def workflow():
            return wf(
                job(...),
                job(...),
            )

    Or use JOBS directly:
        JOBS = wf(job(...), job(...))
    """
    return list(jobs)


# ---------------------------------------------------------------------
# Workflow loading (local file)
# ---------------------------------------------------------------------

def load_workflow(path: str | Path) -> List[Job]:
    """
    Load a workflow from a python file path.

    The file must define either:
      - workflow() -> List[Job]
      - JOBS = [Job, ...]

    Any problem loading it is a ConfigError.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise ConfigError(f"workflow file not found: {wf_path}")
    if wf_path.suffix != ".py":
        raise ConfigError(f"workflow must be a .py file, got: {wf_path.name}")

    module_name = f"qualitygate_workflow_{wf_path.stem}"
    try:
        globals_dict = runpy.run_path(str(wf_path), run_name=module_name)
        if callable(globals_dict.get("workflow")):
            jobs = globals_dict["workflow"]()
        else:
            jobs = globals_dict.get("JOBS")
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"workflow {wf_path.name} failed to load", {"cause": e}) from e

    if not isinstance(jobs, list) or not all(isinstance(j, Job) for j in jobs):
        raise ConfigError(
            "workflow must return/define a List[Job]",
            {"hint": "define workflow() -> List[Job] or JOBS = [Job, ...]", "file": wf_path},
        )
    return jobs
