"""Local git access for the review pipeline.

All git interaction goes through GitRepository, a narrow wrapper over the
git executable with three operations: list the paths changed in a revision
range, read a file as of a revision, and diff a single path. The reviewer
never spawns processes itself.
"""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING

from difflens_core.models import ChangedFile

if TYPE_CHECKING:
    from difflens_core.utils.ignore import IgnoreMatcher

logger = logging.getLogger(__name__)

DEFAULT_START_REF = "HEAD~1"
DEFAULT_END_REF = "HEAD"


class GitError(Exception):
    """Base class for git failures that abort the run."""


class RepositoryError(GitError):
    """The directory is not the root of a git working tree."""


class CommandError(GitError):
    """A git invocation exited with a non-zero status or timed out."""

    def __init__(self, message: str, command: list[str] | None = None, returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = list(command or [])
        self.returncode = returncode
        self.stderr = stderr


def is_git_repository(path: str | Path) -> bool:
    # .git is a directory in a normal clone and a file in worktrees/submodules.
    return (Path(path) / ".git").exists()


class GitRepository:
    """Runs git commands against one working tree.

    ``timeout`` is in seconds; None (the default) waits for git indefinitely.
    """

    def __init__(self, path: str | Path, timeout: float | None = None, git_executable: str = "git"):
        path = Path(path)
        if not path.is_dir():
            raise RepositoryError(f"Repository not found: {path}")
        if not is_git_repository(path):
            raise RepositoryError(f"Not a git repository (no .git at {path})")
        self.path = path
        self.timeout = timeout
        self.git_executable = git_executable

    def run(self, args: list[str]) -> str:
        """Run ``git <args>`` in the working tree and return its stdout.

        stdout and stderr are both captured in full before returning. stderr
        output from a successful command is logged rather than treated as a
        failure.
        """
        cmd = [self.git_executable, *args]
        try:
            result = subprocess.run(
                cmd,
                cwd=self.path,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CommandError(f"Git command timed out after {self.timeout}s: {' '.join(cmd)}", command=cmd) from e
        except OSError as e:
            raise CommandError(f"Failed to execute git command '{' '.join(cmd)}': {e}", command=cmd) from e

        stderr = result.stderr or ""
        if result.returncode != 0:
            raise CommandError(
                f"Git command failed ({result.returncode}): {' '.join(cmd)}\n{stderr.strip()}",
                command=cmd,
                returncode=result.returncode,
                stderr=stderr,
            )
        for line in stderr.splitlines():
            if line.strip():
                logger.debug("[git] %s", line)
        return result.stdout

    def _list_paths(self, start_ref: str, end_ref: str, diff_filter: str) -> list[str]:
        # -z keeps paths verbatim; without it git C-quotes non-ASCII names.
        output = self.run(["diff", "--name-only", "-z", f"--diff-filter={diff_filter}", start_ref, end_ref])
        return [path for path in output.split("\0") if path]

    def list_changed_paths(self, start_ref: str, end_ref: str) -> list[str]:
        # Deleted paths have no content at end_ref to review.
        return self._list_paths(start_ref, end_ref, "d")

    def list_deleted_paths(self, start_ref: str, end_ref: str) -> list[str]:
        return self._list_paths(start_ref, end_ref, "D")

    def read_file_at(self, ref: str, path: str) -> str:
        return self.run(["show", f"{ref}:{path}"])

    def diff_one_file(self, start_ref: str, end_ref: str, path: str) -> str:
        return self.run(["--no-pager", "diff", start_ref, end_ref, "--", path])


def parse_diff_changes(diff_text: str) -> list[str]:
    """Return the added and removed lines of a unified diff.

    Lines starting with a doubled marker (``++``/``--``) are treated as file
    headers and dropped, as are hunk headers and context lines.
    """
    changes = []
    for line in diff_text.splitlines():
        if line.startswith("+") and not line.startswith("++"):
            changes.append(line)
        elif line.startswith("-") and not line.startswith("--"):
            changes.append(line)
    return changes


def collect_changed_files(
    repo: GitRepository,
    start_ref: str | None = None,
    end_ref: str | None = None,
    ignore_matcher: IgnoreMatcher | None = None,
) -> list[ChangedFile]:
    """Enumerate the files changed between two revisions with their content and diff.

    Ignored paths are dropped before any per-file git call is made. Defaults
    to the last commit (``HEAD~1``..``HEAD``).
    """
    start = start_ref or DEFAULT_START_REF
    end = end_ref or DEFAULT_END_REF

    for path in repo.list_deleted_paths(start, end):
        logger.info("Skipping deleted file: %s", path)

    changed: list[ChangedFile] = []
    for path in repo.list_changed_paths(start, end):
        if ignore_matcher is not None and ignore_matcher.should_ignore(path):
            logger.info("Ignoring %s", path)
            continue
        full_content = repo.read_file_at(end, path)
        diff_content = repo.diff_one_file(start, end, path)
        changed.append(
            ChangedFile(
                path=path,
                changes=parse_diff_changes(diff_content),
                diff_content=diff_content,
                full_content=full_content,
            )
        )
    return changed
