# site_reports/parsing.py
import re
from typing import List, Optional

from ..models.models import AnalysisResult, ReportKind, Severity

DEFAULT_CONFIDENCE = 0.8
DEFAULT_SEVERITY: Severity = "medium"
FALLBACK_RECOMMENDATION = "Review the analysis and take appropriate action"

_CONFIDENCE_RE = re.compile(r"confidence[:\s]*(\d+(?:\.\d*)?)", re.IGNORECASE)
_SEVERITY_RE = re.compile(r"severity[:\s]*(low|medium|high)", re.IGNORECASE)
# Header match is case-insensitive, the block terminator "\n[A-Z]" is not.
_RECOMMENDATIONS_RE = re.compile(
    r"(?i:\b(?:recommendations?|actions?))[:\s]*(.*?)(?:\n\s*\n|\n[A-Z]|\Z)",
    re.DOTALL,
)
# Strips a run of stacked markers ("- 1. ", "\u2022 2) "); decimals like "1.5 m" are kept.
_BULLET_RE = re.compile(r"^(?:(?:[-*\u2022]+|\d+[.)](?!\d))\s*)+")


def parse_confidence(text: str) -> float:
    match = _CONFIDENCE_RE.search(text)
    return float(match.group(1)) if match else DEFAULT_CONFIDENCE


def parse_severity(text: str) -> Severity:
    match = _SEVERITY_RE.search(text)
    return match.group(1).lower() if match else DEFAULT_SEVERITY  # type: ignore[return-value]


def parse_recommendations(text: str) -> List[str]:
    match = _RECOMMENDATIONS_RE.search(text)
    if not match:
        return [FALLBACK_RECOMMENDATION]

    items = []
    for line in match.group(1).splitlines():
        line = _BULLET_RE.sub("", line.strip()).strip()
        if line:
            items.append(line)
    # A header with nothing under it yields an empty list, not the fallback.
    return items


def parse_analysis(text: str, kind: ReportKind) -> AnalysisResult:
    """
        Turn free-form analysis text into an AnalysisResult.

        Missing fields fall back to fixed defaults:
            confidence      -> 0.8 (no clamping, out-of-range values pass through)
            recommendations -> [FALLBACK_RECOMMENDATION] when no section exists
            severity        -> "medium" for issues, None for progress
        The description is the input text, unmodified.
    """
    severity: Optional[Severity] = parse_severity(text) if kind == "issue" else None
    return AnalysisResult(
        kind=kind,
        severity=severity,
        description=text,
        recommendations=parse_recommendations(text),
        confidence=parse_confidence(text),
    )
