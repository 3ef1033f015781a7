"""Tests for the Plan Bot: chunking, rendering and posting."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from planbot.config import RunContext
from planbot.exceptions import GitHubError
from planbot.github.chunker import chunk
from planbot.github.plan_bot import (
    PostResult,
    make_poster,
    post_comment,
    report,
    report_plan_file,
)
from planbot.github.renderer import _fence, render_plan_comment
from planbot.pipeline.outcomes import OutcomeRecord, StepOutcome

from conftest import SAMPLE_PLAN


@pytest.fixture
def context() -> RunContext:
    return RunContext(
        actor="octocat",
        event_name="pull_request",
        workflow="CI/CD",
        working_directory="./terraform",
        repository="acme/infra",
        issue_number=42,
    )


@pytest.fixture
def outcomes() -> OutcomeRecord:
    record = OutcomeRecord()
    record.record("fmt", StepOutcome.SUCCESS)
    record.record("init", StepOutcome.SUCCESS)
    record.record("validate", StepOutcome.SUCCESS)
    record.record("plan", StepOutcome.SUCCESS)
    return record


class RecordingPoster:
    """Collects comment bodies instead of calling GitHub."""

    def __init__(self, fail_on: set[int] | None = None) -> None:
        self.bodies: list[str] = []
        self.fail_on = fail_on or set()

    def __call__(self, body: str) -> PostResult:
        self.bodies.append(body)
        n = len(self.bodies)
        if n in self.fail_on:
            return PostResult(part=0, total=0, ok=False, error="HTTP 502")
        return PostResult(part=0, total=0, ok=True, comment_id=n, url=f"https://example.test/{n}")


class TestChunker:
    def test_exact_split_lengths(self):
        chunks = chunk("x" * 70000, 65536)
        assert [len(c) for c in chunks] == [65536, 4464]

    def test_empty_text(self):
        assert chunk("", 65536) == []
        assert chunk("", 1) == []

    def test_text_of_exactly_max_size(self):
        text = "a" * 100
        assert chunk(text, 100) == [text]

    def test_shorter_than_max_size(self):
        assert chunk("abc", 10) == ["abc"]

    @pytest.mark.parametrize("size", [1, 2, 3, 7, 64, 1000])
    def test_invariants(self, size: int):
        chunks = chunk(SAMPLE_PLAN, size)
        assert "".join(chunks) == SAMPLE_PLAN
        assert len(chunks) == math.ceil(len(SAMPLE_PLAN) / size)
        assert all(len(c) == size for c in chunks[:-1])
        assert 1 <= len(chunks[-1]) <= size

    def test_split_ignores_line_boundaries(self):
        assert chunk("ab\ncd\n", 4) == ["ab\nc", "d\n"]

    def test_multibyte_characters_counted_once(self):
        assert chunk("ééé", 2) == ["éé", "é"]

    @pytest.mark.parametrize("size", [0, -1])
    def test_non_positive_size_rejected(self, size: int):
        with pytest.raises(ValueError):
            chunk("abc", size)


class TestRenderer:
    def test_header_has_part_and_total(self, outcomes, context):
        body = render_plan_comment("plan", 2, 3, outcomes, context)
        assert body.startswith("### Terraform Plan Part # 2 of 3")

    def test_outcome_labels(self, context):
        record = OutcomeRecord()
        record.record("fmt", StepOutcome.FAILURE)
        record.record("plan", StepOutcome.SUCCESS)
        body = render_plan_comment("plan", 1, 1, record, context)
        assert "#### Terraform Format and Style 🖌`failure`" in body
        assert "#### Terraform Initialization ⚙️`skipped`" in body
        assert "#### Terraform Plan 📖`success`" in body

    def test_chunk_in_collapsible_code_block(self, outcomes, context):
        body = render_plan_comment(SAMPLE_PLAN, 1, 1, outcomes, context)
        assert "<details><summary>Show Plan</summary>" in body
        assert f"```\n{SAMPLE_PLAN}\n```" in body
        assert "</details>" in body

    def test_footer(self, outcomes, context):
        body = render_plan_comment("plan", 1, 1, outcomes, context)
        assert body.endswith(
            "*Pusher: @octocat, Action: `pull_request`, "
            "Working Directory: `./terraform`, Workflow: `CI/CD`*"
        )

    def test_custom_title(self, outcomes, context):
        body = render_plan_comment("plan", 1, 1, outcomes, context, title="Staging Plan")
        assert body.startswith("### Staging Plan Part # 1 of 1")

    def test_fence_longer_than_backticks_in_chunk(self):
        assert _fence("no ticks") == "```"
        assert _fence("a ```` b") == "`````"


class TestReport:
    def test_one_post_per_chunk_in_order(self, outcomes, context):
        poster = RecordingPoster()
        results = report(["first", "second", "third"], outcomes, context, poster)

        assert len(poster.bodies) == 3
        assert "Part # 1 of 3" in poster.bodies[0] and "first" in poster.bodies[0]
        assert "Part # 2 of 3" in poster.bodies[1] and "second" in poster.bodies[1]
        assert "Part # 3 of 3" in poster.bodies[2] and "third" in poster.bodies[2]
        assert [(r.part, r.total, r.ok) for r in results] == [(1, 3, True), (2, 3, True), (3, 3, True)]

    def test_no_chunks_no_posts(self, outcomes, context):
        poster = RecordingPoster()
        assert report(chunk("", 65536), outcomes, context, poster) == []
        assert poster.bodies == []

    def test_failed_post_does_not_stop_the_rest(self, outcomes, context):
        poster = RecordingPoster(fail_on={2})
        results = report(["a", "b", "c"], outcomes, context, poster)

        assert len(poster.bodies) == 3
        assert [r.ok for r in results] == [True, False, True]
        assert results[1].part == 2
        assert results[1].error == "HTTP 502"

    def test_reporting_twice_posts_duplicates(self, outcomes, context):
        poster = RecordingPoster()
        chunks = chunk("x" * 70000, 65536)
        report(chunks, outcomes, context, poster)
        report(chunks, outcomes, context, poster)

        assert len(poster.bodies) == 4
        assert poster.bodies[:2] == poster.bodies[2:]

    def test_report_plan_file(self, plan_file: Path, outcomes, context):
        poster = RecordingPoster()
        results = report_plan_file(plan_file, outcomes, context, poster, max_chunk_size=100)
        assert len(results) == math.ceil(len(SAMPLE_PLAN) / 100)
        assert all(r.ok for r in results)

    def test_report_missing_plan_file(self, tmp_path: Path, outcomes, context):
        with pytest.raises(GitHubError):
            report_plan_file(tmp_path / "missing.txt", outcomes, context, RecordingPoster(), 100)

    def test_report_plan_file_with_invalid_utf8(self, tmp_path: Path, outcomes, context):
        plan_path = tmp_path / "plan.txt"
        plan_path.write_bytes(b"resource \xff\xfe tag\n")
        poster = RecordingPoster()

        results = report_plan_file(plan_path, outcomes, context, poster, max_chunk_size=65536)

        assert [r.ok for r in results] == [True]
        assert "resource \ufffd\ufffd tag" in poster.bodies[0]


class TestPostComment:
    def test_post_comment_success(self, fake_processes):
        result = post_comment("acme/infra", 42, "hello", token="ghs_test")
        assert result.ok
        assert result.comment_id == 1001
        assert fake_processes.posted == ["hello"]
        cmd = fake_processes.calls[0]
        assert cmd[:4] == ["gh", "api", "--method", "POST"]
        assert "repos/acme/infra/issues/42/comments" in cmd

    def test_post_comment_failure(self, fake_processes):
        fake_processes.gh_fail_on = {1}
        result = post_comment("acme/infra", 42, "hello")
        assert not result.ok
        assert "502" in result.error

    def test_post_comment_without_gh(self, monkeypatch):
        import subprocess

        def missing(*args, **kwargs):
            raise FileNotFoundError("gh")

        monkeypatch.setattr(subprocess, "run", missing)
        result = post_comment("acme/infra", 42, "hello")
        assert not result.ok
        assert "gh CLI not found" in result.error

    def test_make_poster_requires_pr(self):
        with pytest.raises(GitHubError):
            make_poster(RunContext(repository="acme/infra"))

    def test_make_poster_posts_to_context_pr(self, fake_processes, context):
        post = make_poster(context)
        assert post("body").ok
        assert "repos/acme/infra/issues/42/comments" in fake_processes.calls[0]

    @pytest.mark.parametrize("stdout", ["null", "[]", '"ok"'])
    def test_post_comment_non_object_response(self, fake_processes, stdout: str):
        fake_processes.gh_stdout = stdout
        result = post_comment("acme/infra", 42, "hello")
        assert not result.ok
        assert "unexpected response" in result.error

    def test_post_comment_timeout(self, monkeypatch):
        import subprocess

        def slow(cmd, **kwargs):
            raise subprocess.TimeoutExpired(cmd, kwargs.get("timeout"))

        monkeypatch.setattr(subprocess, "run", slow)
        result = post_comment("acme/infra", 42, "hello", timeout=5)
        assert not result.ok
        assert "timed out after 5s" in result.error
