"""Turn a raw Gemini reply into a normalized AnalysisResult."""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from labinsight.schemas.analysis import (
    NOT_SPECIFIED,
    SEVERITIES,
    AbnormalValue,
    AnalysisResult,
    PatientDetails,
)
from labinsight.utils.exceptions import MalformedAnalysisResponse

DEFAULT_SUMMARY = "Analysis completed"
DEFAULT_EXPLANATION = "Please consult with a healthcare professional for detailed interpretation."

# output field -> reply keys accepted, preferred first
LIST_FIELDS = {
    "detected_conditions": ("detectedConditions", "detectedDiseases"),
    "possible_causes": ("possibleCauses",),
    "symptoms": ("symptoms",),
    "lifestyle_recommendations": ("lifestyleRecommendations",),
    "medication_guidance": ("medicationGuidance", "medicineRecommendations"),
    "clinician_guidance": ("clinicianGuidance", "doctorRecommendations"),
}

_SEVERITY_WORDS = (
    ("critical", ("critical", "severe", "very high", "very low", "panic")),
    ("high", ("high", "elevated", "above", "increased")),
    ("low", ("low", "decreased", "below", "borderline", "mild")),
)


def extract_json_span(raw: str) -> str:
    text = raw or ""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise MalformedAnalysisResponse("No valid JSON found in AI response")
    return text[start : end + 1]


def _text(value: Any, default: str) -> str:
    if value is None or isinstance(value, (dict, list)):
        return default
    out = str(value).strip()
    return out or default


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    out: List[str] = []
    for item in value:
        if isinstance(item, (str, int, float)) and not isinstance(item, bool):
            s = str(item).strip()
            if s:
                out.append(s)
    return out


def normalize_severity(value: Any) -> str:
    sev = str(value or "").strip().lower()
    if sev in SEVERITIES:
        return sev
    for severity, words in _SEVERITY_WORDS:
        if any(w in sev for w in words):
            return severity
    return "low"


def _abnormal_values(value: Any) -> List[AbnormalValue]:
    if not isinstance(value, list):
        return []
    out: List[AbnormalValue] = []
    for item in value:
        if not isinstance(item, dict):
            continue
        parameter = _text(item.get("parameter"), "")
        if not parameter:
            continue
        out.append(
            AbnormalValue(
                parameter=parameter,
                value=_text(item.get("value"), NOT_SPECIFIED),
                normal_range=_text(item.get("normalRange"), NOT_SPECIFIED),
                severity=normalize_severity(item.get("severity")),
            )
        )
    return out


def _patient_details(value: Any) -> PatientDetails:
    details = value if isinstance(value, dict) else {}
    return PatientDetails(
        name=_text(details.get("name"), NOT_SPECIFIED),
        age=_text(details.get("age"), NOT_SPECIFIED),
        gender=_text(details.get("gender"), NOT_SPECIFIED),
        phone_number=_text(details.get("phoneNumber"), NOT_SPECIFIED),
    )


def _first_present(parsed: Dict[str, Any], keys) -> Optional[Any]:
    for key in keys:
        if key in parsed:
            return parsed[key]
    return None


def parse_analysis_response(raw: str) -> AnalysisResult:
    """Decode the reply and fill every missing field with a safe default.

    Shape only; the medical content is passed through untouched.
    """
    span = extract_json_span(raw)
    try:
        parsed = json.loads(span)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise MalformedAnalysisResponse(f"Failed to parse AI response: {exc}") from exc
    if not isinstance(parsed, dict):
        raise MalformedAnalysisResponse("AI response JSON is not an object")

    lists = {field: _string_list(_first_present(parsed, keys)) for field, keys in LIST_FIELDS.items()}
    return AnalysisResult(
        patient_details=_patient_details(parsed.get("patientDetails")),
        summary=_text(parsed.get("summary"), DEFAULT_SUMMARY),
        simple_explanation=_text(parsed.get("simpleExplanation"), DEFAULT_EXPLANATION),
        abnormal_values=_abnormal_values(parsed.get("abnormalValues")),
        **lists,
    )


__all__ = ["parse_analysis_response", "extract_json_span", "normalize_severity"]
