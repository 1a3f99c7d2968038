"""Core review orchestration.

run_review drives one whole run:
    collect changed files (git) → limit sizes → review each file → render report

Per file, CodeReviewer.review_file does:
    dependency hints → prompt → LLM call with bounded retry → parse → score

A file that cannot be reviewed yields a ReviewFailure value instead of an
exception; review_files turns each failure into a report entry carrying one
Error comment and a score of 0, so a failing file never aborts the batch.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Union

from difflens_core.config import CLIENT_OPENAI, RunConfiguration, load_rules, resolve_ignore_file
from difflens_core.git.repository import GitRepository, collect_changed_files
from difflens_core.models import SEVERITIES, SEVERITY_WEIGHTS, ChangedFile, FileReviewResult, ReviewComment
from difflens_core.prompt import build_review_prompt, parse_review_response
from difflens_core.providers.base import BaseClient, ChatOptions, user_message
from difflens_core.providers.lmstudio import LMStudioClient
from difflens_core.providers.openai import OpenAICompatibleClient
from difflens_core.report import render_report, write_report
from difflens_core.utils.code import limit_size
from difflens_core.utils.dependencies import DependencyHinter
from difflens_core.utils.ignore import IgnoreMatcher

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
DEFAULT_MAX_TOKENS = 2000

_MAX_SCORE = 100
_MIN_SCORE = 20

STAGE_PROCESS = "process"
STAGE_REVIEW = "review"

_FAILURE_PREFIX = {
    STAGE_PROCESS: "Could not process file",
    STAGE_REVIEW: "Could not complete code review",
}


@dataclass(frozen=True)
class ReviewFailure:
    """A file whose review could not be completed.

    ``stage`` is "process" when preparing the prompt failed and "review" when
    the model call or its response failed on every attempt.
    """

    path: str
    stage: str
    message: str

    def to_result(self, changed_file: ChangedFile | None = None) -> FileReviewResult:
        comment = ReviewComment(line=1, severity="Error", message=f"{_FAILURE_PREFIX[self.stage]}: {self.message}")
        return FileReviewResult(
            path=self.path,
            comments=[comment],
            overall_score=0,
            diff_content=changed_file.diff_content if changed_file else "",
            full_content=changed_file.full_content if changed_file else "",
        )


FileOutcome = Union[FileReviewResult, ReviewFailure]


@dataclass
class ReviewSummary:
    """What a run produced; the CLI uses it to print the closing table."""

    repository_path: str
    model: str
    results: list[FileReviewResult] = field(default_factory=list)
    output_path: str | None = None
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def failed_files(self) -> list[str]:
        return [r.path for r in self.results if r.overall_score == 0]


def calculate_score(comments: list[ReviewComment]) -> int:
    """Score a file from 100 (no comments) down to a floor of 20.

    The penalty is the sum of the comments' severity weights (unknown
    severities add nothing), raised to at least the number of comments:
    ``max(sum_of_weights, len(comments))``. The score is
    ``100 - min(2 * penalty, 80)``.
    """
    if not comments:
        return _MAX_SCORE

    total_penalty = sum(SEVERITY_WEIGHTS.get(c.severity, 0) for c in comments)
    # TODO: the count floor only matters for unknown severities; decide whether a per-comment minimum was meant.
    total_penalty = max(total_penalty, len(comments))

    score = _MAX_SCORE - min(total_penalty * 2, _MAX_SCORE - _MIN_SCORE)
    return int(max(_MIN_SCORE, round(score)))


def get_client(config: RunConfiguration) -> BaseClient:
    if config.client == CLIENT_OPENAI:
        return OpenAICompatibleClient(base_url=config.url, model=config.model, api_key=config.openai_api_key)
    return LMStudioClient(base_url=config.url)


class CodeReviewer:
    """Reviews changed files one at a time against a set of rules."""

    def __init__(
        self,
        client: BaseClient,
        model: str,
        temperature: float,
        hinter: DependencyHinter | None = None,
        ignore_matcher: IgnoreMatcher | None = None,
        max_attempts: int = MAX_ATTEMPTS,
        max_tokens: int | None = DEFAULT_MAX_TOKENS,
        stream: bool = False,
        logger: logging.Logger | None = None,
    ):
        self.client = client
        self.options = ChatOptions(model=model, temperature=temperature, max_tokens=max_tokens)
        self.hinter = hinter or DependencyHinter()
        self.ignore_matcher = ignore_matcher
        self.max_attempts = max_attempts
        self.stream = stream
        self.logger = logger if logger is not None else logging.getLogger(__name__)

    def _complete(self, prompt: str) -> str:
        messages = [user_message(prompt)]
        if self.stream:
            return "".join(self.client.get_streaming_response(messages, self.options))
        return self.client.get_response(messages, self.options)

    def request_review(self, path: str, prompt: str) -> list[ReviewComment]:
        """Ask the model for a review, retrying immediately on any failure.

        A transport error and an unparseable reply both count as a failed
        attempt. The error from the last attempt is re-raised.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return parse_review_response(self._complete(prompt))
            except Exception as e:
                if attempt == self.max_attempts:
                    self.logger.error("%s: review failed after %d attempts: %s", path, self.max_attempts, e)
                    raise
                self.logger.warning("%s: review attempt %d/%d failed: %s", path, attempt, self.max_attempts, e)
        raise ValueError("max_attempts must be at least 1")

    def review_file(self, changed_file: ChangedFile, rules: str) -> FileOutcome | None:
        """Review one file. Returns None when the file is ignored."""
        path = changed_file.path
        if self.ignore_matcher is not None and self.ignore_matcher.should_ignore(path):
            self.logger.info("Skipping ignored file: %s", path)
            return None

        try:
            dependencies = self.hinter.analyze(path, changed_file.full_content)
            prompt = build_review_prompt(changed_file, dependencies, rules)
        except Exception as e:
            self.logger.error("Error processing file %s: %s", path, e)
            return ReviewFailure(path=path, stage=STAGE_PROCESS, message=str(e))

        try:
            comments = self.request_review(path, prompt)
        except Exception as e:
            return ReviewFailure(path=path, stage=STAGE_REVIEW, message=str(e))

        return FileReviewResult(
            path=path,
            comments=comments,
            overall_score=calculate_score(comments),
            diff_content=changed_file.diff_content,
            full_content=changed_file.full_content,
        )

    def review_files(
        self,
        changed_files: list[ChangedFile],
        rules: str,
        severities=None,
        on_file: Callable[[int, int, str], None] | None = None,
    ) -> list[FileReviewResult]:
        """Review files sequentially and return one result per non-ignored file.

        ``severities`` limits which comments are kept in successful results;
        the score is computed before filtering, and comments with an
        unrecognised severity are always kept. ``on_file(index, total, path)``
        is called before each file is reviewed.
        """
        results: list[FileReviewResult] = []
        total = len(changed_files)
        for index, changed_file in enumerate(changed_files, 1):
            if on_file is not None:
                on_file(index, total, changed_file.path)
            outcome = self.review_file(changed_file, rules)
            if outcome is None:
                continue
            if isinstance(outcome, ReviewFailure):
                results.append(outcome.to_result(changed_file))
                continue
            if severities is not None:
                # Non-canonical severities cannot be selected, so they are never filtered out.
                outcome.comments = [
                    c for c in outcome.comments if c.severity in severities or c.severity not in SEVERITIES
                ]
            results.append(outcome)
        return results


def run_review(
    config: RunConfiguration,
    client: BaseClient | None = None,
    on_file: Callable[[int, int, str], None] | None = None,
    cwd: str | Path | None = None,
) -> ReviewSummary:
    """Run the full review pipeline for one repository and write the report.

    Git failures (RepositoryError, CommandError) propagate; per-file review
    failures are recorded in the results. When there is nothing to review the
    summary has no results and no report is written.
    """
    ignore_path = resolve_ignore_file(config.ignore_file, config.directory, cwd=cwd)
    if ignore_path is not None:
        logger.info("Using ignore file: %s", ignore_path)
    ignore_matcher = IgnoreMatcher.load(ignore_path, extra_patterns=config.exclude)

    repo = GitRepository(config.directory)
    rules = load_rules(config.rules_file)

    changed_files = collect_changed_files(repo, config.start_commit, config.end_commit, ignore_matcher)
    summary = ReviewSummary(repository_path=config.directory, model=config.model)
    if not changed_files:
        return summary

    changed_files = [limit_size(f, config.max_size) for f in changed_files]

    owns_client = client is None
    client = client if client is not None else get_client(config)
    try:
        reviewer = CodeReviewer(
            client,
            model=config.model,
            temperature=config.temperature,
            hinter=DependencyHinter(config.directory),
            ignore_matcher=ignore_matcher,
            stream=config.stream,
        )
        summary.results = reviewer.review_files(changed_files, rules, severities=config.severities, on_file=on_file)
    finally:
        if owns_client:
            client.close()

    write_report(config.output, render_report(summary.results, config))
    summary.output_path = config.output
    return summary
