"""Step outcomes and the deferred fail-fast gate.

Every Terraform step runs to completion and records its outcome here. A
final gate then decides whether the run as a whole fails, based on one
named step (``plan`` by default).
"""

from __future__ import annotations

import json
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from planbot.exceptions import ConfigError, StepFailedError


class StepOutcome(str, Enum):
    """Outcome labels, matching the ones GitHub Actions reports for steps."""

    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @classmethod
    def from_returncode(cls, returncode: int) -> StepOutcome:
        return cls.SUCCESS if returncode == 0 else cls.FAILURE


class OutcomeRecord(BaseModel):
    """Ordered record of step name -> outcome for one pipeline run."""

    steps: dict[str, StepOutcome] = Field(default_factory=dict)

    def record(self, name: str, outcome: StepOutcome) -> None:
        self.steps[name] = outcome

    def outcome_of(self, name: str) -> StepOutcome:
        return self.steps.get(name, StepOutcome.SKIPPED)

    def failed_steps(self) -> list[str]:
        return [name for name, outcome in self.steps.items() if outcome == StepOutcome.FAILURE]

    def save(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.model_dump(mode="json"), indent=2))

    @classmethod
    def load(cls, path: Path) -> OutcomeRecord:
        """Load a record written by :meth:`save`; a missing file is an empty record."""
        if not path.exists():
            return cls()
        try:
            return cls(**json.loads(path.read_text()))
        except (json.JSONDecodeError, TypeError, ValidationError) as e:
            raise ConfigError(f"Invalid outcome record {path}: {e}") from e


def check_gate(record: OutcomeRecord, step: str = "plan") -> None:
    """Fail the run if the guarded step failed.

    Raises:
        StepFailedError: If ``step`` was recorded as a failure.
    """
    if record.outcome_of(step) == StepOutcome.FAILURE:
        raise StepFailedError(step)
