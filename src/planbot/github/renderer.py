"""Markdown renderer for Plan Bot comments.

Each comment carries:
  - Part header ("Part # 2 of 3")
  - Outcome badges for the fmt, init and plan steps
  - One chunk of the plan in a collapsible code block
  - Attribution footer (pusher, event, working directory, workflow)
"""

from __future__ import annotations

from planbot.config import RunContext
from planbot.pipeline.outcomes import OutcomeRecord

# (step name, label, emoji) in the order they appear in the comment
OUTCOME_LINES = (
    ("fmt", "Terraform Format and Style", "🖌"),
    ("init", "Terraform Initialization", "⚙️"),
    ("plan", "Terraform Plan", "📖"),
)


def render_plan_comment(
    chunk: str,
    part: int,
    total: int,
    outcomes: OutcomeRecord,
    context: RunContext,
    title: str = "Terraform Plan",
) -> str:
    """Render one part of the plan as a GitHub markdown comment."""
    sections: list[str] = []

    sections.append(f"### {title} Part # {part} of {total}")
    for step, label, emoji in OUTCOME_LINES:
        sections.append(f"#### {label} {emoji}`{outcomes.outcome_of(step).value}`")
    sections.append("")

    sections.append("<details><summary>Show Plan</summary>")
    sections.append("")
    sections.append(_fence(chunk))
    sections.append(chunk)
    sections.append(_fence(chunk))
    sections.append("")
    sections.append("</details>")
    sections.append("")

    sections.append(_footer(context))
    return "\n".join(sections)


def _fence(chunk: str) -> str:
    """Pick a backtick fence longer than any backtick run inside the chunk."""
    longest = run = 0
    for ch in chunk:
        run = run + 1 if ch == "`" else 0
        longest = max(longest, run)
    return "`" * max(3, longest + 1)


def _footer(context: RunContext) -> str:
    return (
        f"*Pusher: @{context.actor}, "
        f"Action: `{context.event_name}`, "
        f"Working Directory: `{context.working_directory}`, "
        f"Workflow: `{context.workflow}`*"
    )
