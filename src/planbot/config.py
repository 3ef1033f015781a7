"""Configuration management for planbot."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from planbot.exceptions import ConfigError

PLANBOT_DIR = ".planbot"
CONFIG_FILE = "config.json"
OUTCOMES_FILE = "outcomes.json"

DEFAULT_MAX_CHUNK_SIZE = 65536  # GitHub's maximum comment body length
ENV_PREFIX = "env:"

PULL_REQUEST_EVENTS = ("pull_request", "pull_request_target")
FREE_FORM_MAPS = ("backend_config", "variables")


class ReporterConfig(BaseModel):
    """Pull request plan report configuration."""

    max_chunk_size: int = Field(default=DEFAULT_MAX_CHUNK_SIZE, gt=0)
    plan_file: str = "/tmp/plan.txt"
    title: str = "Terraform Plan"
    fail_on_post_error: bool = False


class TerraformConfig(BaseModel):
    """How the Terraform CLI is invoked."""

    working_directory: str = "./terraform"
    binary: str = "terraform"
    plan_out: str = "tfplan"
    backend_config: dict[str, str] = Field(default_factory=dict)
    variables: dict[str, str] = Field(default_factory=dict)
    outputs: list[str] = Field(default_factory=list)
    timeout: int = 1800


class GitHubConfig(BaseModel):
    """GitHub API access configuration."""

    token_env: str = "GITHUB_TOKEN"
    timeout: int = 30
    main_branch: str = "main"

    @property
    def token(self) -> str | None:
        return os.environ.get(self.token_env) or None


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    reporter: ReporterConfig = Field(default_factory=ReporterConfig)
    terraform: TerraformConfig = Field(default_factory=TerraformConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


class RunContext(BaseModel):
    """Metadata about the current pipeline run, supplied by the CI host.

    Immutable; built once per invocation and passed explicitly to whatever
    needs it.
    """

    model_config = ConfigDict(frozen=True)

    actor: str = ""
    event_name: str = ""
    workflow: str = ""
    working_directory: str = ""
    repository: str = ""
    issue_number: int | None = None
    ref: str = ""

    @property
    def is_pull_request(self) -> bool:
        return self.event_name in PULL_REQUEST_EVENTS

    def is_main_push(self, branch: str = "main") -> bool:
        return self.event_name == "push" and self.ref == f"refs/heads/{branch}"


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a .planbot directory."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / PLANBOT_DIR).is_dir():
            return current
        current = current.parent
    if (current / PLANBOT_DIR).is_dir():
        return current
    return None


def get_planbot_dir(root: Path) -> Path:
    """Get the .planbot directory for a project root."""
    return root / PLANBOT_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .planbot/config.json."""
    config_path = get_planbot_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
        return ProjectConfig(**data)
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .planbot/config.json."""
    pb_dir = get_planbot_dir(root)
    pb_dir.mkdir(parents=True, exist_ok=True)
    config_path = pb_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def is_free_form_key(key: str) -> bool:
    """True for keys inside terraform.backend_config or terraform.variables.

    Those maps take arbitrary keys, and their values are passed to Terraform
    as raw strings.
    """
    parts = key.split(".")
    return len(parts) == 3 and parts[0] == "terraform" and parts[1] in FREE_FORM_MAPS


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'reporter.title')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target and not is_free_form_key(key):
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    return ProjectConfig(**data)


def resolve_values(values: Mapping[str, str], environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Resolve ``env:NAME`` references so secrets stay out of config.json."""
    env = os.environ if environ is None else environ
    resolved = {}
    for key, value in values.items():
        if isinstance(value, str) and value.startswith(ENV_PREFIX):
            name = value[len(ENV_PREFIX):]
            if name not in env:
                raise ConfigError(f"Environment variable '{name}' referenced by '{key}' is not set")
            resolved[key] = env[name]
        else:
            resolved[key] = str(value)
    return resolved


def _issue_number_from_event(event_path: str | None) -> int | None:
    if not event_path or not Path(event_path).exists():
        return None
    try:
        with open(event_path) as f:
            event = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read event payload {event_path}: {e}") from e

    for key in ("pull_request", "issue"):
        number = (event.get(key) or {}).get("number")
        if number:
            return int(number)
    number = event.get("number")
    return int(number) if number else None


def load_run_context(
    working_directory: str = "",
    environ: Mapping[str, str] | None = None,
) -> RunContext:
    """Build the run context from GitHub Actions environment variables."""
    env = os.environ if environ is None else environ
    return RunContext(
        actor=env.get("GITHUB_ACTOR", ""),
        event_name=env.get("GITHUB_EVENT_NAME", ""),
        workflow=env.get("GITHUB_WORKFLOW", ""),
        working_directory=working_directory,
        repository=env.get("GITHUB_REPOSITORY", ""),
        issue_number=_issue_number_from_event(env.get("GITHUB_EVENT_PATH")),
        ref=env.get("GITHUB_REF", ""),
    )
