"""Plan Bot - posts a Terraform plan to a pull request.

This is the main entry point for the GitHub Action. It:
1. Reads the rendered plan text
2. Splits it into chunks that fit GitHub's comment size limit
3. Renders one markdown comment per chunk
4. Posts the comments in order and reports how each post went

Posting is best-effort: a failed post is recorded and the remaining parts
are still posted. Nothing is retried, and nothing is deduplicated against
earlier runs, so re-running on the same PR adds another full set of
comments. A failure in the middle leaves a gap in the posted parts.

Usage:
    planbot report --plan-file /tmp/plan.txt
"""

from __future__ import annotations

import json
import logging
import os
import subprocess
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from planbot.config import RunContext
from planbot.exceptions import GitHubError
from planbot.github.chunker import chunk
from planbot.github.renderer import render_plan_comment
from planbot.pipeline.outcomes import OutcomeRecord

logger = logging.getLogger("planbot.github")


@dataclass
class PostResult:
    """Outcome of posting one comment."""
    part: int
    total: int
    ok: bool
    comment_id: int | None = None
    url: str = ""
    error: str = ""


PostFn = Callable[[str], PostResult]


def post_comment(
    repository: str,
    issue_number: int,
    body: str,
    token: str | None = None,
    timeout: int = 30,
) -> PostResult:
    """Create a comment on an issue or PR using the GitHub CLI.

    The body goes over stdin as JSON, so plan text of any size or content is
    passed through untouched. Never raises; failures come back as
    ``ok=False`` with the reason in ``error``.
    """
    env = dict(os.environ)
    if token:
        env["GH_TOKEN"] = token

    try:
        result = subprocess.run(
            ["gh", "api", "--method", "POST",
             f"repos/{repository}/issues/{issue_number}/comments",
             "--input", "-"],
            input=json.dumps({"body": body}),
            capture_output=True, text=True, encoding="utf-8", timeout=timeout, env=env,
        )
    except FileNotFoundError:
        return PostResult(part=0, total=0, ok=False, error="gh CLI not found")
    except subprocess.TimeoutExpired:
        return PostResult(part=0, total=0, ok=False, error=f"gh api timed out after {timeout}s")

    if result.returncode != 0:
        return PostResult(part=0, total=0, ok=False, error=result.stderr.strip() or f"gh exited {result.returncode}")

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError:
        return PostResult(part=0, total=0, ok=False, error="unparsable response from gh api")
    if not isinstance(data, dict):
        return PostResult(part=0, total=0, ok=False, error="unexpected response from gh api")

    return PostResult(part=0, total=0, ok=True, comment_id=data.get("id"), url=data.get("html_url", ""))


def make_poster(context: RunContext, token: str | None = None, timeout: int = 30) -> PostFn:
    """Bind ``post_comment`` to the PR described by ``context``."""
    if not context.repository or not context.issue_number:
        raise GitHubError(
            "No pull request to comment on (GITHUB_REPOSITORY or the event's PR number is missing)"
        )

    def post(body: str) -> PostResult:
        return post_comment(context.repository, context.issue_number, body, token=token, timeout=timeout)

    return post


def report(
    chunks: list[str],
    outcomes: OutcomeRecord,
    context: RunContext,
    post: PostFn,
    title: str = "Terraform Plan",
) -> list[PostResult]:
    """Post one comment per chunk, in order, and return a result per chunk."""
    total = len(chunks)
    results: list[PostResult] = []

    for i, text in enumerate(chunks):
        body = render_plan_comment(text, i + 1, total, outcomes, context, title=title)
        result = post(body)
        result.part = i + 1
        result.total = total
        if result.ok:
            logger.info(f"Posted plan part {i + 1}/{total}: {result.url}")
        else:
            logger.warning(f"Failed to post plan part {i + 1}/{total}: {result.error}")
        results.append(result)

    return results


def report_plan_file(
    plan_path: Path,
    outcomes: OutcomeRecord,
    context: RunContext,
    post: PostFn,
    max_chunk_size: int,
    title: str = "Terraform Plan",
) -> list[PostResult]:
    """Read the rendered plan from disk, chunk it, and post it."""
    if not plan_path.exists():
        raise GitHubError(f"Plan file not found: {plan_path}")

    plan = plan_path.read_text(encoding="utf-8", errors="replace")
    chunks = chunk(plan, max_chunk_size)
    logger.debug(f"Plan of {len(plan)} characters split into {len(chunks)} part(s)")
    return report(chunks, outcomes, context, post, title=title)
