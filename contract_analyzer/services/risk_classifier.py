"""
Overall risk tier classification.

The most severe itemized finding decides the tier. No findings, or findings
that cannot be read, count as low risk rather than as an error.
"""

from typing import Any, Optional

from ..models.schemas import RiskLevel

SUMMARY_MAX_CHARS = 5000
SUMMARY_PLACEHOLDER = "Summary not available"


def _risk_level_of(entry: Any) -> str:
    if isinstance(entry, dict):
        level = entry.get("level")
    else:
        level = getattr(entry, "level", None)
    return level.strip().lower() if isinstance(level, str) else ""


def classify_risk(risks: Any) -> RiskLevel:
    """
    Reduce itemized risks to one tier using worst-wins aggregation.

    Args:
        risks: Sequence of Risk models or raw dicts with a "level" key

    Returns:
        HIGH if any entry is high, else MEDIUM if any is medium, else LOW
    """
    if not isinstance(risks, (list, tuple)):
        return RiskLevel.LOW

    levels = {_risk_level_of(entry) for entry in risks}
    if RiskLevel.HIGH.value in levels:
        return RiskLevel.HIGH
    if RiskLevel.MEDIUM.value in levels:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def build_summary_text(summary: Optional[str]) -> str:
    """Short summary stored on the record alongside the full analysis."""
    if isinstance(summary, str) and summary:
        return summary[:SUMMARY_MAX_CHARS]
    return SUMMARY_PLACEHOLDER
