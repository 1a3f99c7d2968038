"""HTML report rendering.

The report is a static page whose viewer script reads one embedded JSON
object. render_report swaps the template's marker line for
``const config = {...};``; the shape of that object is the contract with
the viewer:

    repositoryPath, modelName, showDiff, showFullContent,
    files: [{path, comments: [{line, severity, message, suggestion}],
             overallScore, diffContent, fullContent}]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from difflens_core.config import RunConfiguration
    from difflens_core.models import FileReviewResult

TEMPLATE_MARKER = "// <INSERT CONFIG HERE>"

BUILTIN_TEMPLATE = Path(__file__).parent / "templates" / "report.html"


def build_report_data(results: list[FileReviewResult], config: RunConfiguration) -> dict:
    return {
        "repositoryPath": config.directory,
        "modelName": config.model,
        "showDiff": config.include_diff,
        "showFullContent": False,
        "files": [r.to_dict() for r in results],
    }


def render_report(
    results: list[FileReviewResult],
    config: RunConfiguration,
    template_path: str | Path | None = None,
) -> str:
    template = Path(template_path or BUILTIN_TEMPLATE).read_text(encoding="utf-8")
    if TEMPLATE_MARKER not in template:
        raise ValueError(f"Report template {template_path or BUILTIN_TEMPLATE} has no {TEMPLATE_MARKER!r} marker")
    payload = json.dumps(build_report_data(results, config), ensure_ascii=False)
    # Reviewed source may contain "</script>"; keep it from closing the viewer's script element.
    payload = payload.replace("</", "<\\/")
    return template.replace(TEMPLATE_MARKER, f"const config = {payload};", 1)


def write_report(output_path: str | Path, html: str) -> Path:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html, encoding="utf-8")
    return path
