from .dsl import job, sh, cmd, lint_step, metric, wf, load_workflow
from .model import Job, Step, MetricRule, JobResult, Status, HygieneViolation, PipelineReport
from .errors import ConfigError, ToolInvocationError, ParseError
from .pipeline import run_pipeline
from .runner import run_job
from .rules import RuleSet, load_rules
from .thresholds import evaluate

__all__ = [
    "job", "sh", "cmd", "lint_step", "metric", "wf", "load_workflow",
    "Job", "Step", "MetricRule", "JobResult", "Status", "HygieneViolation", "PipelineReport",
    "ConfigError", "ToolInvocationError", "ParseError",
    "run_pipeline", "run_job", "RuleSet", "load_rules", "evaluate",
]
