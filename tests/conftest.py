"""Shared test fixtures for planbot."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path

import pytest

SAMPLE_PLAN = """\
Terraform used the selected providers to generate the following execution
plan. Resource actions are indicated with the following symbols:
  + create

Terraform will perform the following actions:

  # aws_instance.server will be created
  + resource "aws_instance" "server" {
      + ami           = "ami-0c55b159cbfafe1f0"
      + instance_type = "t2.micro"
      + key_name      = "deployer"
    }

Plan: 1 to add, 0 to change, 0 to destroy.
"""


class FakeProcesses:
    """Stands in for subprocess.run, answering both terraform and gh calls."""

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self.terraform: dict[str, tuple[int, str, str]] = {"show": (0, SAMPLE_PLAN, "")}
        self.gh_fail_on: set[int] = set()
        self.gh_stdout: str | None = None
        self.posted: list[str] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        if cmd[0] == "gh":
            self.posted.append(json.loads(kwargs["input"])["body"])
            n = len(self.posted)
            if n in self.gh_fail_on:
                return subprocess.CompletedProcess(cmd, 1, "", "HTTP 502: Bad Gateway")
            if self.gh_stdout is not None:
                return subprocess.CompletedProcess(cmd, 0, self.gh_stdout, "")
            response = {
                "id": 1000 + n,
                "html_url": f"https://github.com/acme/infra/pull/42#issuecomment-{1000 + n}",
            }
            return subprocess.CompletedProcess(cmd, 0, json.dumps(response), "")

        returncode, stdout, stderr = self.terraform.get(cmd[1], (0, "", ""))
        return subprocess.CompletedProcess(cmd, returncode, stdout, stderr)

    def terraform_subcommands(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "terraform"]


@pytest.fixture
def fake_processes(monkeypatch: pytest.MonkeyPatch) -> FakeProcesses:
    fake = FakeProcesses()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def event_file(tmp_path: Path) -> Path:
    """A pull_request event payload for PR #42."""
    path = tmp_path / "event.json"
    path.write_text(json.dumps({"action": "opened", "number": 42, "pull_request": {"number": 42}}))
    return path


@pytest.fixture
def pr_env(monkeypatch: pytest.MonkeyPatch, event_file: Path) -> dict[str, str]:
    """GitHub Actions environment for a pull_request run."""
    env = {
        "GITHUB_ACTOR": "octocat",
        "GITHUB_EVENT_NAME": "pull_request",
        "GITHUB_WORKFLOW": "CI/CD",
        "GITHUB_REPOSITORY": "acme/infra",
        "GITHUB_REF": "refs/pull/42/merge",
        "GITHUB_EVENT_PATH": str(event_file),
        "GITHUB_TOKEN": "ghs_test",
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    return env


@pytest.fixture
def push_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> dict[str, str]:
    """GitHub Actions environment for a push to main."""
    event = tmp_path / "push_event.json"
    event.write_text(json.dumps({"ref": "refs/heads/main"}))
    env = {
        "GITHUB_ACTOR": "octocat",
        "GITHUB_EVENT_NAME": "push",
        "GITHUB_WORKFLOW": "CI/CD",
        "GITHUB_REPOSITORY": "acme/infra",
        "GITHUB_REF": "refs/heads/main",
        "GITHUB_EVENT_PATH": str(event),
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("GITHUB_OUTPUT", raising=False)
    return env


@pytest.fixture
def plan_file(tmp_path: Path) -> Path:
    path = tmp_path / "plan.txt"
    path.write_text(SAMPLE_PLAN)
    return path
