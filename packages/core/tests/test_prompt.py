"""Tests for prompt construction and model reply parsing."""

import json

import pytest

from difflens_core.models import ChangedFile
from difflens_core.prompt import (
    ResponseFormatError,
    build_review_prompt,
    excerpt_bounds,
    extract_json_object,
    first_changed_range,
    parse_review_response,
    render_excerpt,
    split_lines,
)

HUNK_DIFF = "--- a/f.py\n+++ b/f.py\n@@ -10,5 +12,7 @@ def handler():\n+x = 1\n"


def _content(n):
    return "\n".join(f"line {i}" for i in range(1, n + 1))


# ---------------------------------------------------------------------------
# Excerpt window
# ---------------------------------------------------------------------------


class TestExcerpt:
    def test_first_changed_range(self):
        assert first_changed_range(HUNK_DIFF) == (12, 7)

    def test_hunk_without_count_defaults_to_one(self):
        assert first_changed_range("@@ -3 +4 @@\n") == (4, 1)

    def test_window_around_first_hunk(self):
        assert excerpt_bounds(40, HUNK_DIFF) == (9, 21)

    def test_window_clipped_to_file(self):
        assert excerpt_bounds(14, HUNK_DIFF) == (9, 14)
        assert excerpt_bounds(40, "@@ -1,2 +1,2 @@\n") == (1, 5)

    def test_no_hunk_shows_whole_file(self):
        assert excerpt_bounds(40, "") == (1, 40)

    def test_render_numbers_lines(self):
        excerpt = render_excerpt(_content(40), HUNK_DIFF, "PY")
        lines = excerpt.splitlines()
        assert lines[0] == "```py"
        assert lines[1] == "0009: line 9"
        assert lines[-2] == "0021: line 21"
        assert lines[-1] == "```"
        assert "0008:" not in excerpt
        assert "0022:" not in excerpt

    def test_numbering_counts_newlines_only(self):
        # str.splitlines() also breaks on these; git does not.
        content = "a = 1\n\x0c\nb = 2\u2028still b\x85\nc = 3\n"
        excerpt = render_excerpt(content, "@@ -1,1 +3,1 @@\n")
        assert "0003: b = 2\u2028still b\x85" in excerpt
        assert "0004: c = 3" in excerpt
        assert "0005:" not in excerpt

    def test_split_lines_drops_trailing_newline_and_cr(self):
        assert split_lines("x\r\ny\n") == ["x", "y"]
        assert split_lines("x\n\n") == ["x", ""]

    def test_render_empty_content(self):
        assert render_excerpt("", HUNK_DIFF) == ""


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


class TestBuildReviewPrompt:
    def _changed(self, **kwargs):
        defaults = dict(path="src/app.py", changes=["+x = 1"], diff_content=HUNK_DIFF, full_content=_content(40))
        defaults.update(kwargs)
        return ChangedFile(**defaults)

    def test_sections_in_order(self):
        prompt = build_review_prompt(self._changed(), {}, "RULE ONE")
        order = [
            "=== CODE REVIEW CONTEXT ===",
            "=== REVIEW RULES ===",
            "=== GIT DIFF CONTEXT ===",
            "=== FILE CONTENT ===",
            "=== REVIEW REQUEST ===",
        ]
        positions = [prompt.index(marker) for marker in order]
        assert positions == sorted(positions)

    def test_header_fields(self):
        prompt = build_review_prompt(self._changed(), {}, "rules")
        assert "FILE: src/app.py" in prompt
        assert "LANGUAGE: PY" in prompt

    def test_rules_and_changes_included(self):
        prompt = build_review_prompt(self._changed(), {}, "Always check null handling")
        assert "Always check null handling" in prompt
        assert "```diff\n+x = 1\n```" in prompt

    def test_diff_section_omitted_without_changes(self):
        prompt = build_review_prompt(self._changed(changes=[]), {}, "rules")
        assert "=== GIT DIFF CONTEXT ===" not in prompt

    def test_dependencies_capped_at_five(self):
        deps = {f"dep{i}.py": "Python dependency" for i in range(8)}
        prompt = build_review_prompt(self._changed(), deps, "rules")
        assert "DEPENDENCIES FOUND:" in prompt
        assert " - dep4.py: Python dependency" in prompt
        assert "dep5.py" not in prompt
        assert "... and 3 more dependencies" in prompt

    def test_no_dependency_block_when_empty(self):
        assert "DEPENDENCIES FOUND" not in build_review_prompt(self._changed(), {}, "rules")

    def test_json_contract_included(self):
        prompt = build_review_prompt(self._changed(), {}, "rules")
        assert '"comments"' in prompt
        assert "Info|Warning|Error|Critical" in prompt


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------


VALID = json.dumps(
    {"comments": [{"line": 7, "severity": "Warning", "message": "Unused variable", "suggestion": "Remove it"}]}
)


class TestParseReviewResponse:
    def test_valid_reply(self):
        comments = parse_review_response(VALID)
        assert len(comments) == 1
        assert comments[0].line == 7
        assert comments[0].severity == "Warning"
        assert comments[0].message == "Unused variable"
        assert comments[0].suggestion == "Remove it"

    def test_no_comments(self):
        assert parse_review_response('{"comments": []}') == []

    def test_code_fences_stripped(self):
        assert len(parse_review_response(f"```json\n{VALID}\n```")) == 1

    def test_surrounding_prose_tolerated(self):
        assert len(parse_review_response(f"Here is my review:\n{VALID}\nHope this helps!")) == 1

    def test_keys_and_severity_case_insensitive(self):
        raw = json.dumps({"Comments": [{"Line": 2, "Severity": "critical", "Message": "SQL injection"}]})
        comments = parse_review_response(raw)
        assert comments[0].severity == "Critical"
        assert comments[0].suggestion == ""

    def test_unknown_severity_kept(self):
        raw = json.dumps({"comments": [{"line": 2, "severity": "Nitpick", "message": "m"}]})
        assert parse_review_response(raw)[0].severity == "Nitpick"

    def test_line_clamped_to_one(self):
        raw = json.dumps({"comments": [{"line": 0, "severity": "Info", "message": "m"}]})
        assert parse_review_response(raw)[0].line == 1

    def test_string_line_number_accepted(self):
        raw = json.dumps({"comments": [{"line": "12", "severity": "Info", "message": "m"}]})
        assert parse_review_response(raw)[0].line == 12

    def test_empty_reply_raises(self):
        with pytest.raises(ResponseFormatError):
            parse_review_response("   ")

    def test_not_json_raises(self):
        with pytest.raises(ValueError):
            parse_review_response("I could not review this file.")

    def test_missing_comments_key_raises(self):
        with pytest.raises(ResponseFormatError):
            parse_review_response('{"review": []}')

    def test_top_level_array_raises(self):
        with pytest.raises(ResponseFormatError):
            parse_review_response("[]")

    def test_missing_field_raises(self):
        with pytest.raises(ResponseFormatError, match="message"):
            parse_review_response('{"comments": [{"line": 1, "severity": "Info"}]}')

    def test_non_integer_line_raises(self):
        with pytest.raises(ResponseFormatError):
            parse_review_response('{"comments": [{"line": "ten", "severity": "Info", "message": "m"}]}')


class TestExtractJsonObject:
    def test_ignores_braces_in_strings(self):
        text = 'prefix {"a": "}{", "b": {"c": 1}} suffix'
        assert extract_json_object(text) == '{"a": "}{", "b": {"c": 1}}'

    def test_none_without_object(self):
        assert extract_json_object("no json here") is None
