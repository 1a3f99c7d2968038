"""Records passed between the stages of the review pipeline.

ChangedFile is produced by the git layer, ReviewComment by response parsing,
and FileReviewResult by the reviewer. All of them are plain dataclasses so
the report layer can serialise them without knowing how they were built.
"""

from __future__ import annotations

from dataclasses import dataclass, field

SEVERITIES = ("Info", "Warning", "Error", "Critical")

SEVERITY_WEIGHTS = {"Critical": 10, "Error": 5, "Warning": 2, "Info": 1}


def normalize_severity(value) -> str:
    """Map a severity string onto its canonical spelling, case-insensitively.

    Unrecognised values are returned unchanged (as a string) so they still
    reach the report; they carry no weight when scoring.
    """
    text = str(value).strip()
    for severity in SEVERITIES:
        if text.lower() == severity.lower():
            return severity
    return text


@dataclass(frozen=True)
class ChangedFile:
    """One path reported as changed between two revisions."""

    path: str
    changes: list[str] = field(default_factory=list)  # added/removed lines, "+"/"-" prefix kept
    diff_content: str = ""
    full_content: str = ""


@dataclass
class ReviewComment:
    line: int
    severity: str
    message: str
    suggestion: str = ""

    def to_dict(self) -> dict:
        return {
            "line": self.line,
            "severity": self.severity,
            "message": self.message,
            "suggestion": self.suggestion,
        }


@dataclass
class FileReviewResult:
    """Review outcome for a single file.

    overall_score is in [20, 100] for completed reviews; 0 marks a file whose
    review could not be completed.
    """

    path: str
    comments: list[ReviewComment] = field(default_factory=list)
    overall_score: int = 100
    diff_content: str = ""
    full_content: str = ""

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "comments": [c.to_dict() for c in self.comments],
            "overallScore": self.overall_score,
            "diffContent": self.diff_content,
            "fullContent": self.full_content,
        }

    def __str__(self) -> str:
        return f"{self.path} - Score: {self.overall_score}/100 ({len(self.comments)} comments)"
