# cli.py
from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Tuple

import click

from qualitygate import defaults
from qualitygate.config import GateConfig, load_config
from qualitygate.dag import JobGraph
from qualitygate.dsl import load_workflow
from qualitygate.errors import ConfigError
from qualitygate.model import EXIT_CONFIG_ERROR, EXIT_JOB_FAILURE, Job
from qualitygate.pipeline import run_pipeline, select_jobs
from qualitygate.rules import RuleSet, load_rules
from qualitygate.ui.console import Console, get_console, set_console

DEFAULT_WORKFLOW = "qualitygate_workflow.py"

SUBSET_HELP = {
    "all": "Run every job and every hygiene check.",
    "lint-only": "Run the static-analysis job (and what it needs) plus hygiene checks.",
    "coverage-only": "Run the coverage job (and what it needs).",
    "test-only": "Run the build/test job.",
    "hygiene-only": "Run only the hygiene checks.",
}


def discover_workflow(root: Path, workflow_arg: str | None) -> List[Job]:
    """
    Jobs from --workflow / config, else qualitygate_workflow.py in the root,
    else the built-in workflow.
    """
    if workflow_arg:
        path = Path(workflow_arg)
        if not path.is_absolute():
            path = root / path
        return load_workflow(path)

    default = root / DEFAULT_WORKFLOW
    if default.exists():
        return load_workflow(default)
    return defaults.workflow()


def rules_if_needed(root: Path, config: GateConfig, jobs: List[Job], select) -> Optional[RuleSet]:
    """Load the rule file only when a selected, enabled job consumes it."""
    graph = JobGraph.build(jobs)
    chosen = select_jobs(graph, select)
    if any(graph.jobs[i].enabled and graph.jobs[i].uses_rules for i in chosen):
        return load_rules(root / config.rules_file)
    return None


def _parse_thresholds(ctx, param, values: Tuple[str, ...]) -> dict[str, float]:
    out: dict[str, float] = {}
    for text in values:
        name, sep, value = text.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected METRIC=VALUE, got {text!r}")
        try:
            out[name.strip()] = float(value)
        except ValueError:
            raise click.BadParameter(f"{value!r} is not a number") from None
    return out


def run_options(fn):
    """Options shared by every subset command."""
    options = [
        click.option("--workflow", default=None, help=f"Workflow file (defaults to {DEFAULT_WORKFLOW} if present, else the built-in workflow)"),
        click.option("--threshold", "thresholds", multiple=True, callback=_parse_thresholds, metavar="METRIC=VALUE", help="Override a metric minimum (repeatable)"),
        click.option("--coverage-threshold", type=float, default=None, envvar="QUALITYGATE_COVERAGE_THRESHOLD", help="Minimum coverage percentage"),
        click.option("--mutation-threshold", type=float, default=None, envvar="QUALITYGATE_MUTATION_THRESHOLD", help="Minimum mutation score percentage"),
        click.option("--enable", "enable", multiple=True, metavar="JOB", help="Enable a job disabled by configuration (repeatable)"),
        click.option("--disable", "disable", multiple=True, metavar="JOB", help="Disable a job (repeatable)"),
        click.option("--workers", type=click.IntRange(min=1), default=None, help="Number of parallel workers"),
        click.option("--deadline", type=click.FloatRange(min=0), default=None, help="Seconds after which no new job is started"),
        click.option("--fail-fast/--no-fail-fast", default=None, help="Stop starting new jobs after the first failure"),
        click.option("--show-output", is_flag=True, default=False, help="Print captured output of failed jobs"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def execute(ctx: click.Context, subset_name: str, opts: dict) -> None:
    console = get_console()
    console.show_output = console.show_output or opts["show_output"]
    root = Path(ctx.obj["root"]).resolve()

    try:
        config = load_config(root, ctx.obj["config"])

        thresholds = dict(opts["thresholds"])
        if opts["coverage_threshold"] is not None:
            thresholds["coverage"] = opts["coverage_threshold"]
        if opts["mutation_threshold"] is not None:
            thresholds["mutation"] = opts["mutation_threshold"]
        enabled = {name: True for name in opts["enable"]}
        enabled.update({name: False for name in opts["disable"]})
        config = config.with_overrides(thresholds=thresholds, enabled=enabled)

        subset = config.subset(subset_name)
        jobs = config.apply(discover_workflow(root, opts["workflow"] or config.workflow))
        select = None if subset.jobs is None else list(subset.jobs)
        rules = rules_if_needed(root, config, jobs, select)
        scanners = config.hygiene.scanners() if subset.hygiene else []

        console.print_run_started(
            root=str(root),
            subset=subset_name,
            job_count=len(jobs),
            checks=[s.name for s in scanners],
        )
        if rules is not None:
            console.print_debug(f"rules: {rules.render()}")

        fail_fast = opts["fail_fast"] if opts["fail_fast"] is not None else config.fail_fast
        report = run_pipeline(
            jobs,
            root=root,
            rules=rules,
            thresholds=config.threshold_specs(),
            select=select,
            scanners=scanners,
            ignore=config.hygiene.ignore,
            max_workers=opts["workers"] or config.workers,
            deadline=opts["deadline"] if opts["deadline"] is not None else config.deadline,
            fail_fast=fail_fast,
            console=console,
        )
    except ConfigError as e:
        lines = str(e).splitlines()
        console.print_error("Configuration error", lines[0], details=lines[1:] or None)
        sys.exit(EXIT_CONFIG_ERROR)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_JOB_FAILURE)

    console.print_report(report)
    sys.exit(report.exit_code)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--root", default=".", type=click.Path(exists=True, file_okay=False), help="Source tree to check")
@click.option("--config", "config_path", default=None, help="Config file (defaults to qualitygate.toml or [tool.qualitygate] in pyproject.toml)")
@click.pass_context
def cli(ctx, debug, root, config_path):
    """qualitygate: run build, test, coverage, lint and hygiene gates."""
    set_console(Console(debug=debug))
    ctx.ensure_object(dict)
    ctx.obj["root"] = root
    ctx.obj["config"] = config_path


def _subset_command(name: str, help_text: str):
    @run_options
    @click.pass_context
    def command(ctx, **opts):
        execute(ctx, name, opts)

    command.__doc__ = help_text
    return cli.command(name=name)(command)


for _name, _help in SUBSET_HELP.items():
    _subset_command(_name, _help)


@cli.command(name="run")
@click.argument("subset")
@run_options
@click.pass_context
def run(ctx, subset, **opts):
    """Run a named subset, including ones defined in configuration."""
    execute(ctx, subset, opts)


@cli.command()
@click.pass_context
def rules(ctx):
    """Print the lint directives the static-analysis job will receive."""
    console = get_console()
    root = Path(ctx.obj["root"]).resolve()
    try:
        config = load_config(root, ctx.obj["config"])
        ruleset = load_rules(root / config.rules_file)
    except ConfigError as e:
        lines = str(e).splitlines()
        console.print_error("Configuration error", lines[0], details=lines[1:] or None)
        sys.exit(EXIT_CONFIG_ERROR)

    for rule in ruleset:
        console.print_info(rule)
    console.print_debug(f"rendered: {ruleset.render()}")


@cli.command()
@click.argument("subset", default="all")
@click.option("--workflow", default=None, help="Workflow file")
@click.pass_context
def plan(ctx, subset, workflow):
    """Show execution order for a subset without running anything."""
    console = get_console()
    root = Path(ctx.obj["root"]).resolve()
    try:
        config = load_config(root, ctx.obj["config"])
        chosen = config.subset(subset)
        jobs = config.apply(discover_workflow(root, workflow or config.workflow))
        graph = JobGraph.build(jobs)
        selected = select_jobs(graph, None if chosen.jobs is None else list(chosen.jobs))
    except ConfigError as e:
        lines = str(e).splitlines()
        console.print_error("Configuration error", lines[0], details=lines[1:] or None)
        sys.exit(EXIT_CONFIG_ERROR)

    rows = [
        (graph.jobs[i].name, list(graph.jobs[i].needs), graph.jobs[i].enabled)
        for i in graph.topological_order()
        if i in selected
    ]
    console.print_plan(rows)
    if chosen.hygiene:
        console.print_info(f"  + hygiene: {', '.join(config.hygiene.checks)}")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
