"""Thin wrapper around the Terraform CLI.

Terraform is treated as an external tool: its exit code and its text output
are the only things we depend on. Nothing here raises on a failing step;
failures are reported through :class:`StepResult` so the caller can keep
going and gate later.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from planbot.config import TerraformConfig, resolve_values
from planbot.pipeline.outcomes import OutcomeRecord, StepOutcome

logger = logging.getLogger("planbot.terraform")

PLAN_STEPS = ("fmt", "init", "validate", "plan")


@dataclass
class StepResult:
    """Result of one Terraform invocation."""
    name: str
    outcome: StepOutcome
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome == StepOutcome.SUCCESS


class TerraformRunner:
    """Runs Terraform subcommands in a working directory."""

    def __init__(self, working_dir: Path, binary: str = "terraform", timeout: int = 1800) -> None:
        self.working_dir = working_dir
        self.binary = binary
        self.timeout = timeout

    def _run(self, name: str, *args: str) -> StepResult:
        cmd = [self.binary, *args]
        logger.debug(f"Running {' '.join(cmd)} in {self.working_dir}")
        try:
            result = subprocess.run(
                cmd,
                cwd=self.working_dir,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError:
            logger.error(f"Terraform binary not found: {self.binary}")
            return StepResult(name, StepOutcome.FAILURE, 127, stderr=f"{self.binary}: command not found")
        except subprocess.TimeoutExpired:
            logger.error(f"terraform {name} timed out after {self.timeout}s")
            return StepResult(name, StepOutcome.FAILURE, -1, stderr=f"timed out after {self.timeout}s")

        outcome = StepOutcome.from_returncode(result.returncode)
        if outcome == StepOutcome.FAILURE:
            logger.warning(f"terraform {name} exited with {result.returncode}")
        return StepResult(name, outcome, result.returncode, result.stdout, result.stderr)

    def fmt_check(self) -> StepResult:
        return self._run("fmt", "fmt", "-check")

    def init(self, backend_config: Mapping[str, str] | None = None) -> StepResult:
        args = ["init", "-input=false"]
        for key, value in (backend_config or {}).items():
            args.append(f"-backend-config={key}={value}")
        return self._run("init", *args)

    def validate(self) -> StepResult:
        return self._run("validate", "validate", "-no-color")

    def plan(self, variables: Mapping[str, str] | None = None, out: str = "tfplan") -> StepResult:
        args = ["plan", "-input=false", "-no-color"]
        for key, value in (variables or {}).items():
            args.append(f"-var={key}={value}")
        args.append(f"-out={out}")
        return self._run("plan", *args)

    def show(self, plan_file: str = "tfplan") -> StepResult:
        """Render a saved plan as human-readable text (in ``stdout``)."""
        return self._run("show", "show", "-no-color", plan_file)

    def apply(self, plan_file: str = "tfplan") -> StepResult:
        return self._run("apply", "apply", "-auto-approve", "-input=false", plan_file)

    def output(self, name: str) -> StepResult:
        return self._run("output", "output", "-raw", name)


def runner_from_config(config: TerraformConfig, root: Path) -> TerraformRunner:
    working_dir = Path(config.working_directory)
    if not working_dir.is_absolute():
        working_dir = root / working_dir
    return TerraformRunner(working_dir, binary=config.binary, timeout=config.timeout)


def run_plan_steps(
    runner: TerraformRunner,
    config: TerraformConfig,
    environ: Mapping[str, str] | None = None,
) -> tuple[OutcomeRecord, list[StepResult]]:
    """Run fmt, init, validate and plan, recording every outcome.

    A failing step does not stop the later ones; the decision to fail the
    run is left to :func:`planbot.pipeline.outcomes.check_gate`.
    """
    backend_config = resolve_values(config.backend_config, environ)
    variables = resolve_values(config.variables, environ)

    results = [
        runner.fmt_check(),
        runner.init(backend_config),
        runner.validate(),
        runner.plan(variables, out=config.plan_out),
    ]

    record = OutcomeRecord()
    for result in results:
        record.record(result.name, result.outcome)
    return record, results


def write_plan_text(runner: TerraformRunner, plan_file: str, dest: Path) -> StepResult:
    """Render ``plan_file`` into ``dest``.

    If the plan cannot be rendered (e.g. the plan step failed and no plan
    file exists), ``dest`` is still written, empty, so the report step
    posts nothing rather than stale text.
    """
    result = runner.show(plan_file)
    dest.parent.mkdir(parents=True, exist_ok=True)
    dest.write_text(result.stdout if result.ok else "", encoding="utf-8")
    return result
