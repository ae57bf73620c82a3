"""
Functional programming utilities.

Pure functions that build the field changes applied to a contract record on
each lifecycle transition. Keeping them pure means every transition is one
dict handed to a single atomic store update.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..models.schemas import AnalysisResult, ContractStatus, RiskLevel

# Fields that only exist on an analyzed record
ANALYSIS_FIELDS = ("analysis", "risk_level", "summary_text", "analysis_completed_at")


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    Returns:
        Current datetime with UTC timezone

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def format_timestamp(dt: Optional[datetime] = None) -> str:
    """
    Format datetime as ISO 8601 string.

    Args:
        dt: Datetime to format, defaults to current UTC time

    Returns:
        ISO 8601 formatted string
    """
    if dt is None:
        dt = utc_now()
    return dt.isoformat()


def cleared_analysis_fields() -> Dict[str, Any]:
    """Field changes that remove every trace of a previous analysis."""
    return {field: None for field in ANALYSIS_FIELDS}


def analyzing_fields(started_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Field changes for entering "analyzing".

    Prior results and errors are cleared so a re-analysis never shows stale output.

    Example:
        >>> fields = analyzing_fields()
        >>> fields["status"], fields["error"], fields["analysis"]
        (<ContractStatus.ANALYZING: 'analyzing'>, None, None)
    """
    return {
        **cleared_analysis_fields(),
        "status": ContractStatus.ANALYZING,
        "analysis_started_at": started_at or utc_now(),
        "error": None,
    }


def analyzed_fields(
    analysis: AnalysisResult,
    risk_level: RiskLevel,
    summary_text: str,
    completed_at: Optional[datetime] = None
) -> Dict[str, Any]:
    """Field changes for entering "analyzed"."""
    return {
        "status": ContractStatus.ANALYZED,
        "analysis": analysis,
        "risk_level": risk_level,
        "summary_text": summary_text,
        "analysis_completed_at": completed_at or utc_now(),
        "error": None,
    }


def error_fields(message: str) -> Dict[str, Any]:
    """Field changes for entering "error". Analysis fields are nulled."""
    return {
        **cleared_analysis_fields(),
        "status": ContractStatus.ERROR,
        "error": message,
    }
