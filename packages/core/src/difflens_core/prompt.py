"""Review prompt construction and response parsing.

The prompt is a single user message made of fixed sections: a context
header, the review rules, the changed lines, a numbered excerpt of the file
around the first hunk, and the JSON output contract. The reply is expected
to be one JSON object; parse_review_response turns it into ReviewComments or
raises so the caller can retry.
"""

from __future__ import annotations

import json
import re

from difflens_core.models import ChangedFile, ReviewComment, normalize_severity
from difflens_core.utils.code import infer_language

HUNK_HEADER_RE = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@", re.MULTILINE)

CONTEXT_MARGIN = 3
MAX_DEPENDENCIES_SHOWN = 5

_REQUIRED_COMMENT_FIELDS = ("line", "severity", "message")

RESPONSE_FORMAT = """=== REVIEW REQUEST ===
Please provide a detailed code review of this file based on the rules provided above.
Focus on:
- Code quality and best practices
- Potential security issues
- Performance considerations
- Error handling
- Maintainability

Respond with **only** a JSON object of this exact shape:
{
  "comments": [
    {
      "line": <line number in the new file (integer)>,
      "severity": "Info|Warning|Error|Critical",
      "message": "<specific description of the issue>",
      "suggestion": "<how to improve or fix>"
    }
  ]
}
If there are no issues, return: {"comments": []}
Do not return any text outside the JSON object.

=== SYSTEM NOTE ===
Review only the shown code context and highlighted changes.
Be constructive with your feedback - suggest specific improvements when issues are found.
Focus on high-impact issues first (Critical > Error > Warning > Info)."""


class ResponseFormatError(ValueError):
    """The model's reply does not match the expected comment structure."""


def first_changed_range(diff_text: str) -> tuple[int, int] | None:
    """Return ``(start, count)`` of the new-file side of the first hunk header."""
    match = HUNK_HEADER_RE.search(diff_text or "")
    if not match:
        return None
    start = int(match.group(3))
    count = int(match.group(4)) if match.group(4) is not None else 1
    return start, count


def excerpt_bounds(total_lines: int, diff_text: str, margin: int = CONTEXT_MARGIN) -> tuple[int, int]:
    """1-based inclusive line range of the file excerpt shown to the model.

    The first hunk's new-file range plus ``margin`` lines on each side,
    clipped to the file; the whole file when the diff has no hunk header.
    """
    changed = first_changed_range(diff_text)
    if changed is None:
        return 1, total_lines
    start, count = changed
    first = max(1, start - margin)
    last = min(total_lines, start + max(count, 1) - 1 + margin)
    if first > last:
        return 1, total_lines
    return first, last


def split_lines(content: str) -> list[str]:
    """Split on ``\\n`` only, the way git counts lines, so numbers line up with hunk headers."""
    lines = content.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def render_excerpt(content: str, diff_text: str, language: str = "") -> str:
    lines = split_lines(content)
    if not lines:
        return ""
    first, last = excerpt_bounds(len(lines), diff_text)
    numbered = "\n".join(f"{n:04d}: {lines[n - 1]}" for n in range(first, last + 1))
    return f"```{language.lower()}\n{numbered}\n```"


def build_review_prompt(changed_file: ChangedFile, dependencies: dict[str, str], rules: str) -> str:
    language = infer_language(changed_file.path)
    sections = []

    header = [
        "=== CODE REVIEW CONTEXT ===",
        f"FILE: {changed_file.path}",
        f"LANGUAGE: {language}",
    ]
    if dependencies:
        header.append("DEPENDENCIES FOUND:")
        for name, description in list(dependencies.items())[:MAX_DEPENDENCIES_SHOWN]:
            header.append(f" - {name}: {description}")
        if len(dependencies) > MAX_DEPENDENCIES_SHOWN:
            header.append(f" ... and {len(dependencies) - MAX_DEPENDENCIES_SHOWN} more dependencies")
    sections.append("\n".join(header))

    sections.append(f"=== REVIEW RULES ===\n{rules.strip()}")

    if changed_file.changes:
        changes = "\n".join(changed_file.changes)
        sections.append(
            "=== GIT DIFF CONTEXT ===\n"
            "The following changes were made to this file:\n"
            f"```diff\n{changes}\n```"
        )

    excerpt = render_excerpt(changed_file.full_content, changed_file.diff_content, language)
    sections.append("=== FILE CONTENT ===" + (f"\n{excerpt}" if excerpt else ""))

    sections.append(RESPONSE_FORMAT)
    return "\n\n".join(sections) + "\n"


def _strip_fences(raw: str) -> str:
    # Only the outer fence; backticks inside string values are left alone.
    cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
    return re.sub(r"\s*```$", "", cleaned.strip())


def extract_json_object(text: str) -> str | None:
    """Return the first balanced ``{...}`` block in ``text``, ignoring braces inside strings."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def _lower_keys(obj: dict) -> dict:
    return {str(k).lower(): v for k, v in obj.items()}


def parse_review_response(raw: str) -> list[ReviewComment]:
    """Parse the model's reply into review comments.

    Raises json.JSONDecodeError or ResponseFormatError (both ValueErrors) when
    the reply is not the expected ``{"comments": [...]}`` object.
    """
    if raw is None or not raw.strip():
        raise ResponseFormatError("Empty response from model")

    cleaned = _strip_fences(raw)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        candidate = extract_json_object(cleaned)
        if candidate is None:
            raise
        data = json.loads(candidate)

    if not isinstance(data, dict):
        raise ResponseFormatError(f"Expected a JSON object, got {type(data).__name__}")
    data = _lower_keys(data)
    items = data.get("comments")
    if not isinstance(items, list):
        raise ResponseFormatError("Response has no 'comments' list")

    comments = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ResponseFormatError(f"Comment {index} is not an object")
        item = _lower_keys(item)
        missing = [name for name in _REQUIRED_COMMENT_FIELDS if item.get(name) is None]
        if missing:
            raise ResponseFormatError(f"Comment {index} is missing {', '.join(missing)}")
        try:
            line = int(item["line"])
        except (TypeError, ValueError) as e:
            raise ResponseFormatError(f"Comment {index} has a non-integer line: {item['line']!r}") from e
        comments.append(
            ReviewComment(
                line=max(line, 1),
                severity=normalize_severity(item["severity"]),
                message=str(item["message"]),
                suggestion=str(item.get("suggestion") or ""),
            )
        )
    return comments
