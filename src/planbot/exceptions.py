"""Custom exceptions for planbot."""


class PlanBotError(Exception):
    """Base exception for all planbot errors."""


class ConfigError(PlanBotError):
    """Configuration-related errors."""


class GitHubError(PlanBotError):
    """GitHub context or API errors."""


class ReportError(PlanBotError):
    """Raised when posting the plan report did not fully succeed."""

    def __init__(self, failed: int, total: int):
        self.failed = failed
        self.total = total
        super().__init__(f"{failed} of {total} plan comment(s) could not be posted")


class StepFailedError(PlanBotError):
    """Raised by the outcome gate when a guarded step failed."""

    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Terraform step '{step}' failed")
