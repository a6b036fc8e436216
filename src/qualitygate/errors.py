# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


class GateError(Exception):
    """Base class for every error raised by qualitygate."""


@dataclass
class ConfigError(GateError):
    """
    Malformed rule file, cyclic job graph, missing configuration.

    Always raised before any job runs.
    """
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"config: {self.message}"]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class ToolInvocationError(GateError):
    """An external command could not be spawned."""
    job: str
    step: str
    cmd: str
    cause: str
    hint: str | None = None

    def __str__(self) -> str:
        lines = [f"spawn: {self.cause}", f"job={self.job}", f"step={self.step}", f"cmd={self.cmd}"]
        if self.hint:
            lines.append(f"hint={self.hint}")
        return "\n".join(lines)


@dataclass
class ParseError(GateError):
    """The tool ran but its output did not contain the required metric."""
    job: str
    metric: str
    expected: str

    def __str__(self) -> str:
        return f"parse: metric '{self.metric}' not found in output of {self.job} (looked for {self.expected})"
