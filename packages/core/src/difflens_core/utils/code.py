from __future__ import annotations

import dataclasses
import posixpath

from difflens_core.models import ChangedFile

DEFAULT_MAX_SIZE = 1024 * 1024

_TRUNCATION_MARKER = "\n... [truncated]"


def infer_language(file_path: str) -> str:
    """Upper-cased extension without the dot ("PY", "CS"), or "UNKNOWN"."""
    ext = posixpath.splitext(file_path.replace("\\", "/"))[1]
    return ext.lstrip(".").upper() or "UNKNOWN"


def truncate_bytes(text: str, max_bytes: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= max_bytes:
        return text
    # A multi-byte character cut in half is dropped rather than replaced.
    return encoded[:max_bytes].decode("utf-8", errors="ignore") + _TRUNCATION_MARKER


def limit_size(changed_file: ChangedFile, max_bytes: int = DEFAULT_MAX_SIZE) -> ChangedFile:
    """Return the file with content and diff cut down to ``max_bytes`` each.

    The added/removed line list is left alone; it is derived from the diff
    and is normally far smaller than either.
    """
    full_content = truncate_bytes(changed_file.full_content, max_bytes)
    diff_content = truncate_bytes(changed_file.diff_content, max_bytes)
    if full_content is changed_file.full_content and diff_content is changed_file.diff_content:
        return changed_file
    return dataclasses.replace(changed_file, full_content=full_content, diff_content=diff_content)
