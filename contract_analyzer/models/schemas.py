"""
Pydantic schemas for the Contract Analysis API.

These models define the persisted contract record, the structured analysis
payload returned by the completion service, and the API request/response
envelopes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


class RiskLevel(str, Enum):
    """Overall risk tier for an analyzed contract."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ContractStatus(str, Enum):
    """Lifecycle states of a contract record."""
    UPLOADED = "uploaded"
    ANALYZING = "analyzing"
    ANALYZED = "analyzed"
    ERROR = "error"
    PENDING_REVIEW = "pending-review"


def _normalize_choice(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class AnalysisModel(BaseModel):
    """
    Base for models parsed from completion service output.

    Keys are camelCase on the wire. The completion service is probabilistic, so
    parsing never rejects a payload for one odd value: nulls and values that do
    not validate (unknown enum members, non-numeric day counts, a string where a
    list belongs) fall back to the field default.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data

    @field_validator("*", mode="wrap")
    @classmethod
    def fall_back_to_default(cls, value: Any, handler, info: ValidationInfo) -> Any:
        try:
            return handler(value)
        except ValidationError:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)


class Contingency(AnalysisModel):
    """A contingency clause and its deadline."""
    name: str = ""
    deadline: str = ""
    status: Literal["active", "expired", "waived", "satisfied"] = "active"
    description: str = ""
    days_remaining: Optional[int] = None
    critical: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _normalize_choice(v)


class ImportantDate(AnalysisModel):
    """A dated event in the contract timeline."""
    event: str = ""
    date: str = ""
    description: str = ""
    status: Literal["upcoming", "completed", "overdue"] = "upcoming"
    days_until: Optional[int] = None

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, v: Any) -> Any:
        return _normalize_choice(v)


class Risk(AnalysisModel):
    """An itemized risk finding."""
    level: Literal["high", "medium", "low"] = "low"
    category: str = ""
    description: str = ""
    recommendation: str = ""

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return _normalize_choice(v)


class KeyTerm(AnalysisModel):
    """A key commercial or legal term."""
    term: str = ""
    value: str = ""
    section: str = ""
    importance: Literal["critical", "important", "standard"] = "standard"
    explanation: Optional[str] = None

    @field_validator("importance", mode="before")
    @classmethod
    def normalize_importance(cls, v: Any) -> Any:
        return _normalize_choice(v)


class AnalysisResult(AnalysisModel):
    """Structured extraction of a real estate purchase contract."""
    summary: str = ""
    purchase_price: str = ""
    earnest_money: str = ""
    closing_date: str = ""
    inspection_period: str = ""
    financing_contingency: str = ""
    appraisal_contingency: str = ""
    contingencies: List[Contingency] = Field(default_factory=list)
    important_dates: List[ImportantDate] = Field(default_factory=list)
    risks: List[Risk] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    key_terms: List[KeyTerm] = Field(default_factory=list)

    @field_validator("contingencies", "important_dates", "risks", "key_terms", mode="before")
    @classmethod
    def keep_object_entries(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [entry for entry in v if isinstance(entry, (dict, BaseModel))]

    @field_validator("recommendations", mode="before")
    @classmethod
    def keep_text_entries(cls, v: Any) -> Any:
        if not isinstance(v, list):
            return []
        return [entry for entry in v if isinstance(entry, (str, int, float)) and not isinstance(entry, bool)]


class StorageLocation(BaseModel):
    """Pointer into the external blob store."""
    bucket: str = Field(..., description="Storage bucket name")
    path: str = Field(..., description="Object path within the bucket")


class ContractRecord(BaseModel):
    """Persisted metadata and lifecycle state for one uploaded contract."""
    id: str = Field(..., description="Unique contract identifier")
    owner_id: str = Field(..., description="Identity that uploaded the contract")
    name: str = Field(..., description="Original filename")
    mime_type: Optional[str] = Field(None, description="MIME type recorded at upload")
    size_bytes: Optional[int] = Field(None, ge=0, description="File size in bytes")
    storage: Optional[StorageLocation] = Field(None, description="Blob store location")
    status: ContractStatus = Field(
        default=ContractStatus.UPLOADED,
        description="Current lifecycle state"
    )
    risk_level: Optional[RiskLevel] = Field(
        None,
        description="Overall risk tier, present only when analyzed"
    )
    summary_text: Optional[str] = Field(
        None,
        description="Short summary, present only when analyzed"
    )
    analysis: Optional[AnalysisResult] = Field(
        None,
        description="Structured analysis, present only when analyzed"
    )
    error: Optional[str] = Field(
        None,
        description="Last failure message, present only when status is error"
    )
    uploaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the contract was uploaded"
    )
    analysis_started_at: Optional[datetime] = None
    analysis_completed_at: Optional[datetime] = None


class AnalyzeRequest(BaseModel):
    """Request body for POST /contracts/analyze."""
    contract_id: Optional[str] = Field(None, description="Contract to analyze")


class AnalyzeResponse(BaseModel):
    """Successful analysis response."""
    success: bool = True
    contract_id: str = Field(..., description="Analyzed contract identifier")
    status: ContractStatus = Field(..., description="Terminal status of the analysis")


class ContractResponse(BaseModel):
    """Current state of a contract record."""
    success: bool = True
    contract: ContractRecord


class ErrorResponse(BaseModel):
    """Standard error response format."""
    success: bool = False
    error: str = Field(..., description="Human-readable error message")
    details: Optional[Any] = Field(None, description="Additional error details")
