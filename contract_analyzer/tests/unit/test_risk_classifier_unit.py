"""
Unit tests for risk classification.

Tests cover:
- Worst-wins aggregation
- Tolerance of empty and malformed input
- Summary text truncation
"""

import pytest

from contract_analyzer.models.schemas import Risk, RiskLevel
from contract_analyzer.services.risk_classifier import (
    SUMMARY_MAX_CHARS,
    SUMMARY_PLACEHOLDER,
    build_summary_text,
    classify_risk,
)


class TestClassifyRisk:
    """Test worst-wins aggregation."""

    def test_any_high_is_high(self):
        risks = [{"level": "low"}, {"level": "high"}, {"level": "medium"}]
        assert classify_risk(risks) == RiskLevel.HIGH

    def test_medium_without_high_is_medium(self):
        risks = [Risk(level="low"), Risk(level="medium")]
        assert classify_risk(risks) == RiskLevel.MEDIUM

    def test_only_low_is_low(self):
        assert classify_risk([{"level": "low"}, {"level": "low"}]) == RiskLevel.LOW

    def test_levels_compared_case_insensitively(self):
        assert classify_risk([{"level": " HIGH "}]) == RiskLevel.HIGH

    @pytest.mark.parametrize("risks", [
        [],
        None,
        "high",
        {"level": "high"},
        [None, 42, "high", {"severity": "high"}, {"level": None}],
    ])
    def test_empty_or_malformed_input_is_low(self, risks):
        assert classify_risk(risks) == RiskLevel.LOW


class TestBuildSummaryText:
    """Test summary text for the record."""

    def test_short_summary_kept(self):
        assert build_summary_text("A short summary.") == "A short summary."

    def test_long_summary_truncated(self):
        summary = "x" * (SUMMARY_MAX_CHARS + 250)
        assert len(build_summary_text(summary)) == SUMMARY_MAX_CHARS

    @pytest.mark.parametrize("summary", ["", None])
    def test_missing_summary_uses_placeholder(self, summary):
        assert build_summary_text(summary) == SUMMARY_PLACEHOLDER
