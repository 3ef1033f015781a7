"""Command-line interface for planbot."""

from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path

import click
from rich.console import Console as RichConsole
from rich.logging import RichHandler

from planbot import __version__
from planbot.config import (
    OUTCOMES_FILE,
    ProjectConfig,
    RunContext,
    find_project_root,
    get_planbot_dir,
    is_free_form_key,
    load_config,
    load_run_context,
    save_config,
    set_config_value,
)
from planbot.exceptions import ConfigError, GitHubError, ReportError, StepFailedError
from planbot.pipeline.outcomes import OutcomeRecord, StepOutcome, check_gate
from planbot.ui.console import Console

console = Console()

OUTCOME_CHOICE = click.Choice([o.value for o in StepOutcome])


def _get_project_root(path: str | None = None) -> Path:
    """Resolve the project root: --path, else the nearest .planbot, else cwd."""
    if path:
        root = Path(path).resolve()
        if not root.exists():
            console.error(f"Path does not exist: {path}")
            sys.exit(1)
        return root
    return find_project_root() or Path.cwd()


def _load_config(root: Path) -> ProjectConfig:
    try:
        return load_config(root)
    except (ConfigError, ValueError) as e:
        console.error(str(e))
        sys.exit(1)


def _outcomes_path(root: Path, outcomes: str | None) -> Path:
    return Path(outcomes) if outcomes else get_planbot_dir(root) / OUTCOMES_FILE


def _load_outcomes(path: Path) -> OutcomeRecord:
    try:
        return OutcomeRecord.load(path)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


def _run_context(config: ProjectConfig) -> RunContext:
    try:
        return load_run_context(working_directory=config.terraform.working_directory)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="planbot")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(verbose: bool):
    """planbot - post Terraform plans to pull requests and gate on the result."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=RichConsole(stderr=True), show_path=False)],
    )


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--working-directory", "-w", default=None, help="Terraform working directory.")
@click.option("--title", default=None, help="Title used in plan comments.")
def init(path: str | None, working_directory: str | None, title: str | None):
    """Create .planbot/config.json for a repository."""
    root = Path(path or ".").resolve()
    if not root.exists():
        console.error(f"Path does not exist: {root}")
        sys.exit(1)

    console.banner()
    config = _load_config(root)
    config.name = root.name
    config.root_path = str(root)
    if working_directory:
        config.terraform.working_directory = working_directory
    if title:
        config.reporter.title = title

    save_config(root, config)
    console.success(f"Configuration saved to {get_planbot_dir(root)}")


# =========================================================================
# Terraform steps
# =========================================================================

def _do_plan(root: Path, config: ProjectConfig, plan_file: Path, outcomes_path: Path) -> OutcomeRecord:
    """Run the plan steps, render the plan text and persist the outcomes."""
    from planbot.pipeline.terraform import run_plan_steps, runner_from_config, write_plan_text

    runner = runner_from_config(config.terraform, root)
    console.info(f"Running Terraform in {runner.working_dir}")

    try:
        record, results = run_plan_steps(runner, config.terraform)
    except ConfigError as e:
        console.error(str(e))
        sys.exit(1)

    for result in results:
        if not result.ok and result.stderr:
            console.warning(f"terraform {result.name}: {result.stderr.strip()}")

    shown = write_plan_text(runner, config.terraform.plan_out, plan_file)
    if shown.ok:
        console.success(f"Plan written to {plan_file}")
    else:
        console.warning(f"Could not render plan; wrote empty {plan_file}")

    record.save(outcomes_path)
    console.show_outcomes(record)
    return record


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--plan-file", default=None, help="Where to write the rendered plan text.")
@click.option("--outcomes", default=None, help="Where to write the step outcome record.")
def plan(path: str | None, plan_file: str | None, outcomes: str | None):
    """Run terraform fmt, init, validate and plan, recording every outcome.

    Failing steps do not stop the run here; use `planbot gate` afterwards.
    """
    root = _get_project_root(path)
    config = _load_config(root)
    _do_plan(
        root, config,
        Path(plan_file or config.reporter.plan_file),
        _outcomes_path(root, outcomes),
    )


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--outcomes", default=None, help="Step outcome record to check.")
@click.option("--step", default="plan", show_default=True, help="Step whose failure fails the run.")
def gate(path: str | None, outcomes: str | None, step: str):
    """Exit non-zero if the guarded Terraform step failed."""
    root = _get_project_root(path)
    record = _load_outcomes(_outcomes_path(root, outcomes))
    _do_gate(record, step)


def _do_gate(record: OutcomeRecord, step: str) -> None:
    try:
        check_gate(record, step)
    except StepFailedError as e:
        console.error(str(e))
        sys.exit(1)
    console.success(f"Terraform {step}: {record.outcome_of(step).value}")


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--output", "-o", "outputs", multiple=True, help="Terraform output to export (repeatable).")
@click.option("--force", is_flag=True, help="Apply even when this is not a push to the main branch.")
def apply(path: str | None, outputs: tuple[str, ...], force: bool):
    """Apply the saved plan and export Terraform outputs.

    Only runs on a push to the main branch unless --force is given. Outputs
    are printed as name=value and appended to $GITHUB_OUTPUT when set.
    """
    from planbot.pipeline.terraform import runner_from_config

    root = _get_project_root(path)
    config = _load_config(root)
    context = _run_context(config)

    if not force and not context.is_main_push(config.github.main_branch):
        console.info(f"Not a push to {config.github.main_branch}; skipping apply")
        return

    runner = runner_from_config(config.terraform, root)
    result = runner.apply(config.terraform.plan_out)
    if not result.ok:
        console.error(f"terraform apply failed: {result.stderr.strip()}")
        sys.exit(1)
    console.success("Terraform apply complete")

    exported = []
    for name in outputs or config.terraform.outputs:
        out = runner.output(name)
        if not out.ok:
            console.error(f"terraform output {name} failed: {out.stderr.strip()}")
            sys.exit(1)
        exported.append(f"{name}={out.stdout.strip()}")

    for line in exported:
        click.echo(line)

    github_output = os.environ.get("GITHUB_OUTPUT")
    if github_output and exported:
        with open(github_output, "a") as f:
            f.write("\n".join(exported) + "\n")


# =========================================================================
# Plan Bot
# =========================================================================

def _do_report(
    config: ProjectConfig,
    context: RunContext,
    record: OutcomeRecord,
    plan_file: Path,
    fail_on_post_error: bool,
) -> None:
    from planbot.github.plan_bot import make_poster, report_plan_file

    try:
        post = make_poster(context, token=config.github.token, timeout=config.github.timeout)
        results = report_plan_file(
            plan_file, record, context, post,
            max_chunk_size=config.reporter.max_chunk_size,
            title=config.reporter.title,
        )
    except GitHubError as e:
        console.error(str(e))
        sys.exit(1)

    if not results:
        console.info("Plan is empty; nothing to post")
        return

    console.show_post_results(results)
    failed = sum(1 for r in results if not r.ok)
    if not failed:
        console.success(f"Posted {len(results)} plan comment(s) to #{context.issue_number}")
        return

    err = ReportError(failed, len(results))
    if fail_on_post_error:
        console.error(str(err))
        sys.exit(1)
    console.warning(str(err))


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--plan-file", default=None, help="Rendered plan text to post.")
@click.option("--outcomes", default=None, help="Step outcome record to read labels from.")
@click.option("--fmt-outcome", type=OUTCOME_CHOICE, default=None, help="Override the fmt outcome label.")
@click.option("--init-outcome", type=OUTCOME_CHOICE, default=None, help="Override the init outcome label.")
@click.option("--plan-outcome", type=OUTCOME_CHOICE, default=None, help="Override the plan outcome label.")
@click.option("--max-chunk-size", type=click.IntRange(min=1), default=None, help="Maximum characters per comment chunk.")
@click.option("--title", default=None, help="Title used in plan comments.")
@click.option("--fail-on-post-error/--no-fail-on-post-error", default=None,
              help="Exit non-zero if any part could not be posted.")
@click.option("--force", is_flag=True, help="Post even when the event is not a pull request.")
def report(
    path: str | None,
    plan_file: str | None,
    outcomes: str | None,
    fmt_outcome: str | None,
    init_outcome: str | None,
    plan_outcome: str | None,
    max_chunk_size: int | None,
    title: str | None,
    fail_on_post_error: bool | None,
    force: bool,
):
    """Post the rendered plan to the pull request, one comment per chunk.

    Usage in CI:

        planbot report --plan-file /tmp/plan.txt --plan-outcome success
    """
    root = _get_project_root(path)
    config = _load_config(root)
    context = _run_context(config)

    if not force and not context.is_pull_request:
        console.info(f"Event '{context.event_name}' is not a pull request; skipping report")
        return

    record = _load_outcomes(_outcomes_path(root, outcomes))
    for step, value in (("fmt", fmt_outcome), ("init", init_outcome), ("plan", plan_outcome)):
        if value:
            record.record(step, StepOutcome(value))

    if max_chunk_size:
        config.reporter.max_chunk_size = max_chunk_size
    if title:
        config.reporter.title = title
    if fail_on_post_error is None:
        fail_on_post_error = config.reporter.fail_on_post_error

    _do_report(config, context, record, Path(plan_file or config.reporter.plan_file), fail_on_post_error)


@main.command()
@click.option("--path", "-p", default=None, help="Path to the project root.")
@click.option("--plan-file", default=None, help="Where to write the rendered plan text.")
@click.option("--outcomes", default=None, help="Where to write the step outcome record.")
@click.option("--fail-on-post-error/--no-fail-on-post-error", default=None,
              help="Exit non-zero if any part could not be posted.")
def run(path: str | None, plan_file: str | None, outcomes: str | None, fail_on_post_error: bool | None):
    """Plan, report to the pull request (if any), then gate on the plan step."""
    root = _get_project_root(path)
    config = _load_config(root)
    context = _run_context(config)
    plan_path = Path(plan_file or config.reporter.plan_file)

    record = _do_plan(root, config, plan_path, _outcomes_path(root, outcomes))

    if context.is_pull_request:
        if fail_on_post_error is None:
            fail_on_post_error = config.reporter.fail_on_post_error
        _do_report(config, context, record, plan_path, fail_on_post_error)

    _do_gate(record, "plan")


@main.command("chunk")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--max-chunk-size", type=click.IntRange(min=1), default=None, help="Maximum characters per chunk.")
@click.option("--path", "-p", default=None, help="Path to the project root.")
def chunk_cmd(file: str, max_chunk_size: int | None, path: str | None):
    """Show how a plan file would be split into comments."""
    from planbot.github.chunker import chunk

    root = _get_project_root(path)
    config = _load_config(root)
    size = max_chunk_size or config.reporter.max_chunk_size

    text = Path(file).read_text(encoding="utf-8", errors="replace")
    chunks = chunk(text, size)
    if not chunks:
        console.info("File is empty; no comments would be posted")
        return
    console.show_chunks(chunks, size)


# =========================================================================
# Config Management
# =========================================================================

@main.command("config")
@click.argument("action", type=click.Choice(["set", "get", "show"]))
@click.argument("key", required=False)
@click.argument("value", required=False)
@click.option("--path", "-p", default=None, help="Path to the project root.")
def config_cmd(action: str, key: str | None, value: str | None, path: str | None):
    """Manage planbot configuration."""
    root = _get_project_root(path)
    config = _load_config(root)

    if action == "show":
        console.console.print_json(json.dumps(config.model_dump(), indent=2))
    elif action == "get":
        if not key:
            console.error("Usage: planbot config get <key>")
            sys.exit(1)
        data = config.model_dump()
        for part in key.split("."):
            if isinstance(data, dict) and part in data:
                data = data[part]
            else:
                console.error(f"Unknown key: {key}")
                sys.exit(1)
        console.console.print(f"{key} = {data}")
    elif action == "set":
        if not key or value is None:
            console.error("Usage: planbot config set <key> <value>")
            sys.exit(1)
        try:
            # Try to parse as JSON for non-string values
            if is_free_form_key(key):
                parsed_value = value
            else:
                try:
                    parsed_value = json.loads(value)
                except json.JSONDecodeError:
                    parsed_value = value

            config = set_config_value(config, key, parsed_value)
            save_config(root, config)
            console.success(f"Set {key} = {parsed_value}")
        except KeyError:
            console.error(f"Unknown config key: {key}")
            sys.exit(1)
        except ValueError as e:
            console.error(f"Invalid value for {key}: {e}")
            sys.exit(1)


if __name__ == "__main__":
    main()
