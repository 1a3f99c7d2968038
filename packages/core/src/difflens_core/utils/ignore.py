"""Path exclusion for files that should never reach the reviewer.

Patterns are glob-like strings read from a ``.reviewignore`` file (one per
line, ``#`` comments allowed) on top of a built-in default set. Matching is
case-insensitive and the first matching pattern wins. There is no negation:
once a path matches it stays ignored.

Supported forms, checked in this order:
- ``**/bin``         substring match on everything after the ``**``
- ``node_modules/**`` path starts with the directory prefix
- ``*.dll``, ``a?.txt`` anchored wildcard match on the whole path
- ``bin/``           directory name appears anywhere in the path
- ``Thumbs.db``      plain substring match
"""

from __future__ import annotations

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_FILENAME = ".reviewignore"

DEFAULT_PATTERNS = (
    "bin/",
    "obj/",
    "node_modules/",
    ".git/",
    "__pycache__/",
    "*.pyc",
    "*.pyo",
    "*.dll",
    "*.exe",
    "*.pdb",
    "*.so",
    "*.dylib",
    "vendor/",
    "packages/",
    ".vs/",
    "Thumbs.db",
    ".DS_Store",
)


def read_ignore_file(ignore_file: str | Path) -> list[str]:
    """Return the patterns listed in an ignore file.

    Blank lines and ``#`` comments are skipped. A missing or unreadable file
    yields an empty list and a warning; it never raises.
    """
    path = Path(ignore_file)
    if not path.exists():
        return []
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read ignore file %s: %s", path, e)
        return []

    patterns = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        patterns.append(stripped)
    return patterns


def _wildcard_to_regex(pattern: str) -> re.Pattern:
    escaped = re.escape(pattern).replace(r"\*", ".*").replace(r"\?", ".")
    return re.compile(escaped)


def _normalize(text: str) -> str:
    return text.replace("\\", "/").lower()


class IgnoreMatcher:
    """Decides whether a repository path is excluded from review.

    The pattern list is fixed at construction; build one with ``load`` to get
    the defaults plus any user patterns.
    """

    def __init__(self, patterns=()):
        unique: list[str] = []
        for pattern in patterns:
            if pattern not in unique:
                unique.append(pattern)
        self._patterns = tuple(unique)
        self._regex_cache: dict[str, re.Pattern] = {}

    @classmethod
    def load(cls, ignore_file: str | Path | None = None, extra_patterns=()) -> IgnoreMatcher:
        """Default patterns, then the ignore file's patterns, then ``extra_patterns``."""
        patterns = list(DEFAULT_PATTERNS)
        if ignore_file is not None:
            patterns.extend(read_ignore_file(ignore_file))
        patterns.extend(extra_patterns or ())
        return cls(patterns)

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    def should_ignore(self, path: str) -> bool:
        if not path:
            return False
        normalized = _normalize(path)
        return any(self._matches(normalized, _normalize(p)) for p in self._patterns)

    def _matches(self, path: str, pattern: str) -> bool:
        if pattern.startswith("**"):
            return pattern[2:] in path
        if pattern.endswith("/**"):
            return path.startswith(pattern[:-3] + "/")
        if "*" in pattern or "?" in pattern:
            regex = self._regex_cache.get(pattern)
            if regex is None:
                regex = self._regex_cache[pattern] = _wildcard_to_regex(pattern)
            return regex.fullmatch(path) is not None
        if pattern.endswith("/"):
            return pattern.rstrip("/") + "/" in path
        return pattern in path
