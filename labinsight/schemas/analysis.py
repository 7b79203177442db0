# labinsight/schemas/analysis.py
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

NOT_SPECIFIED = "Not specified"

Severity = Literal["low", "high", "critical"]
SEVERITIES = ("low", "high", "critical")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------- Input ----------
class PatientContext(_CamelModel):
    """Form data supplied with the upload. Used for record linkage only."""

    name: str
    age: int = Field(..., ge=0, le=120)
    gender: Literal["male", "female", "other"] = Field(..., description="male|female|other")
    phone_number: str

    @field_validator("gender", mode="before")
    @classmethod
    def _lower_gender(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


# ---------- Output ----------
class PatientDetails(_CamelModel):
    name: str = NOT_SPECIFIED
    age: str = NOT_SPECIFIED
    gender: str = NOT_SPECIFIED
    phone_number: str = NOT_SPECIFIED


class AbnormalValue(_CamelModel):
    parameter: str
    value: str
    normal_range: str
    severity: Severity


class AnalysisResult(_CamelModel):
    patient_details: PatientDetails = Field(default_factory=PatientDetails)
    summary: str
    simple_explanation: str
    abnormal_values: List[AbnormalValue] = Field(default_factory=list)
    detected_conditions: List[str] = Field(default_factory=list)
    possible_causes: List[str] = Field(default_factory=list)
    symptoms: List[str] = Field(default_factory=list)
    lifestyle_recommendations: List[str] = Field(default_factory=list)
    medication_guidance: List[str] = Field(default_factory=list)
    clinician_guidance: List[str] = Field(default_factory=list)

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True)


# ---------- Observability ----------
class AnalysisOutcome(str, Enum):
    AI_SUCCEEDED = "aiSucceeded"
    EXTRACT_FAILED_FALLBACK = "extractFailedFallback"
    INVOKE_FAILED_FALLBACK = "invokeFailedFallback"
    PARSE_FAILED_FALLBACK = "parseFailedFallback"

    @property
    def used_fallback(self) -> bool:
        return self is not AnalysisOutcome.AI_SUCCEEDED


class AnalysisReport(BaseModel):
    """What the orchestrator hands back: the result plus how it was produced."""

    model_config = ConfigDict(frozen=True)

    result: AnalysisResult
    outcome: AnalysisOutcome
    fallback_reason: Optional[str] = None
    request_id: str = ""
    states: List[str] = Field(default_factory=list)


__all__ = [
    "NOT_SPECIFIED",
    "SEVERITIES",
    "PatientContext",
    "PatientDetails",
    "AbnormalValue",
    "AnalysisResult",
    "AnalysisOutcome",
    "AnalysisReport",
]
