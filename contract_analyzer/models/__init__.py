"""
Models package for the Contract Analysis API.

Pydantic schemas for contract records, analysis payloads, and API envelopes.
"""

from .schemas import (
    RiskLevel,
    ContractStatus,
    Contingency,
    ImportantDate,
    Risk,
    KeyTerm,
    AnalysisResult,
    StorageLocation,
    ContractRecord,
    AnalyzeRequest,
    AnalyzeResponse,
    ContractResponse,
    ErrorResponse,
)

__all__ = [
    "RiskLevel",
    "ContractStatus",
    "Contingency",
    "ImportantDate",
    "Risk",
    "KeyTerm",
    "AnalysisResult",
    "StorageLocation",
    "ContractRecord",
    "AnalyzeRequest",
    "AnalyzeResponse",
    "ContractResponse",
    "ErrorResponse",
]
