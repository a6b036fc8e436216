# thresholds.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Mapping

DEFAULT_THRESHOLDS: Dict[str, float] = {
    "coverage": 90.0,
    "mutation": 100.0,
}


@dataclass(frozen=True)
class ThresholdResult:
    passed: bool
    margin: float


def evaluate(metric: float, minimum: float) -> ThresholdResult:
    """Inclusive: a metric equal to the minimum passes. Margin is signed."""
    return ThresholdResult(passed=metric >= minimum, margin=metric - minimum)


@dataclass(frozen=True)
class ThresholdSpec:
    metric: str
    minimum: float

    def check(self, value: float) -> ThresholdResult:
        return evaluate(value, self.minimum)


def threshold_specs(minimums: Mapping[str, float]) -> Dict[str, ThresholdSpec]:
    return {name: ThresholdSpec(name, float(value)) for name, value in minimums.items()}
