"""Prompt construction for the Gemini report analysis call."""
from __future__ import annotations

import json

from labinsight.schemas.analysis import PatientContext

# Field name -> instruction shown to the model. Order is the output order.
RESPONSE_SCHEMA = {
    "patientDetails": {
        "name": "Exact patient name from the report (if not found, use 'Not specified')",
        "age": "Exact age from the report (if not found, use 'Not specified')",
        "gender": "Exact gender from the report (if not found, use 'Not specified')",
        "phoneNumber": "Phone number from the report (if not found, use 'Not specified')",
    },
    "summary": "Brief 2-3 sentence medical summary of the key findings from this specific report",
    "simpleExplanation": "Patient-friendly explanation of what the results mean (3-4 sentences, avoid jargon)",
    "abnormalValues": [
        {
            "parameter": "Exact test name from the report",
            "value": "Exact value with units from the report",
            "normalRange": "Standard normal range for this test",
            "severity": "low|high|critical (based on how far outside the normal range)",
        }
    ],
    "detectedConditions": [
        "Medical conditions these results may indicate, only when strongly supported by the abnormal values",
    ],
    "possibleCauses": [
        "Dietary, lifestyle and pathological reasons for the abnormal findings",
    ],
    "symptoms": [
        "Symptoms the patient might experience with these findings",
    ],
    "lifestyleRecommendations": [
        "Diet, exercise and lifestyle changes specific to the findings",
    ],
    "medicationGuidance": [
        "General medication categories or supplements to discuss, always deferring to the healthcare provider",
    ],
    "clinicianGuidance": [
        "Specialists to consult, follow-up urgency and additional tests that may be needed",
    ],
}


def _schema_block() -> str:
    return json.dumps(RESPONSE_SCHEMA, indent=2, ensure_ascii=False)


def build_analysis_prompt(report_text: str, context: PatientContext) -> str:
    """Return the instruction string for one report.

    Pure function of its inputs. Only age and gender from the form are passed
    along, as context for reference ranges; identifiers must come from the
    report itself.
    """
    fields = ", ".join(RESPONSE_SCHEMA.keys())
    return (
        "You are an expert medical AI assistant analyzing a health/lab report. "
        "Provide a patient-facing analysis based only on the report content below.\n\n"
        "--- Health Report Content ---\n"
        f"{report_text.strip()}\n"
        "--- End of Report ---\n\n"
        "--- Reference Context (for interpreting ranges only) ---\n"
        f"Age provided on the request form: {context.age}\n"
        f"Gender provided on the request form: {context.gender}\n\n"
        "INSTRUCTIONS:\n"
        "1. Extract patient details (name, age, gender, phone) ONLY from the report content; "
        "never copy them from the reference context or any other provided data.\n"
        "2. Identify only the lab values that are actually outside their normal ranges.\n"
        "3. Use severity 'low', 'high' or 'critical' and nothing else.\n"
        "4. Explain findings in patient-friendly language and be specific to the actual results.\n"
        "5. If information cannot be found in the report, say so instead of guessing.\n\n"
        f"Respond with a single JSON object containing exactly these fields: {fields}.\n"
        "Use this structure:\n"
        f"{_schema_block()}\n\n"
        "Return ONLY valid JSON, no additional text."
    )


__all__ = ["RESPONSE_SCHEMA", "build_analysis_prompt"]
