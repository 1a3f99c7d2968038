"""Tests for language inference and size limiting."""

from difflens_core.models import ChangedFile
from difflens_core.utils.code import infer_language, limit_size, truncate_bytes


def test_infer_language():
    assert infer_language("src/app.py") == "PY"
    assert infer_language("Services\\UserService.cs") == "CS"
    assert infer_language("Makefile") == "UNKNOWN"


def test_truncate_bytes_under_limit_unchanged():
    assert truncate_bytes("short", 100) == "short"


def test_truncate_bytes_marks_cut():
    assert truncate_bytes("abcdefghij", 4) == "abcd\n... [truncated]"


def test_truncate_bytes_does_not_split_characters():
    # "é" is two bytes in UTF-8; cutting after one byte drops it.
    assert truncate_bytes("aé", 2) == "a\n... [truncated]"


def test_limit_size_small_file_returned_as_is():
    changed = ChangedFile(path="a.py", changes=["+x"], diff_content="+x", full_content="x")
    assert limit_size(changed, 100) is changed


def test_limit_size_truncates_content_and_diff():
    changed = ChangedFile(path="a.py", changes=["+x"], diff_content="d" * 50, full_content="c" * 50)
    limited = limit_size(changed, 10)
    assert limited.full_content == "c" * 10 + "\n... [truncated]"
    assert limited.diff_content == "d" * 10 + "\n... [truncated]"
    assert limited.changes == ["+x"]
