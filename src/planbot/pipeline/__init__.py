"""Terraform pipeline steps and the outcome gate."""

from planbot.pipeline.outcomes import OutcomeRecord, StepOutcome, check_gate

__all__ = ["OutcomeRecord", "StepOutcome", "check_gate"]
