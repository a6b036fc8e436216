"""Shared pytest fixtures."""

from __future__ import annotations

import threading
import time
from typing import Dict, List, Optional

import pytest

from qualitygate.model import Job, JobResult, Status, Step


def make_job(name: str, needs: Optional[List[str]] = None, **kwargs) -> Job:
    return Job(name=name, steps=[Step(name=name, run=("true",))], needs=list(needs or []), **kwargs)


class SpyRunner:
    """Stands in for the job runner: records calls, returns canned verdicts."""

    def __init__(
        self,
        outcomes: Optional[Dict[str, Status]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.outcomes = outcomes or {}
        self.delays = delays or {}
        self.calls: List[str] = []
        self._lock = threading.Lock()

    def __call__(self, job: Job) -> JobResult:
        with self._lock:
            self.calls.append(job.name)
        time.sleep(self.delays.get(job.name, 0.0))
        status = self.outcomes.get(job.name, Status.PASSED)
        return JobResult(name=job.name, status=status, exit_code=0 if status is Status.PASSED else 1)


@pytest.fixture
def spy() -> SpyRunner:
    return SpyRunner()
