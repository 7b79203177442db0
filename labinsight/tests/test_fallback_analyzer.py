import pytest

from labinsight.schemas.analysis import NOT_SPECIFIED, SEVERITIES, AnalysisOutcome
from labinsight.services.fallback_analyzer import (
    AGE_EXTRACTORS,
    MAX_REPORTED,
    FallbackAnalyzer,
    extract_abnormal_values,
    extract_patient_details,
    first_match,
)

from conftest import SAMPLE_REPORT

LIST_FIELDS = (
    "abnormal_values",
    "detected_conditions",
    "possible_causes",
    "symptoms",
    "lifestyle_recommendations",
    "medication_guidance",
    "clinician_guidance",
)


def test_first_match_returns_first_non_none():
    calls = []

    def none(_t):
        calls.append("none")
        return None

    def hit(_t):
        calls.append("hit")
        return "x"

    def never(_t):
        calls.append("never")
        return "y"

    assert first_match([none, hit, never], "text") == "x"
    assert calls == ["none", "hit"]
    assert first_match([none], "text") is None


def test_age_label_is_extracted():
    assert extract_patient_details("Age: 45").age == "45"


def test_age_out_of_range_is_not_specified():
    assert extract_patient_details("Age: 200").age == NOT_SPECIFIED


def test_age_positional_pattern_used_when_label_missing():
    assert first_match(AGE_EXTRACTORS, "Jane Smith, 62 years old") == "62"


def test_name_stops_before_next_label_on_same_line():
    details = extract_patient_details("Name: John Doe    Age: 45 Years    Sex: Male")
    assert details.name == "John Doe"
    assert details.age == "45"
    assert details.gender == "Male"
    assert extract_patient_details("Patient Name: Ravi Kumar Age: 38").name == "Ravi Kumar"


def test_compact_age_suffix():
    details = extract_patient_details("Patient Name: Ravi Kumar\nAge: 45Y\nSex: M")
    assert details.name == "Ravi Kumar"
    assert details.age == "45"
    assert details.gender == "Male"


def test_combined_age_sex_label():
    details = extract_patient_details("Age/Sex: 45 Y / M")
    assert details.age == "45"
    assert details.gender == "Male"


def test_sample_report_identifiers():
    details = extract_patient_details(SAMPLE_REPORT)
    assert details.name == "Jane Smith"
    assert details.age == "45"
    assert details.gender == "Female"
    assert details.phone_number == "9876543210"


@pytest.mark.parametrize("text,expected", [
    ("Sex: M", "Male"),
    ("Gender : f", "Female"),
    ("The patient is a female aged 30", "Female"),
    ("nothing useful here", NOT_SPECIFIED),
])
def test_gender_normalization(text, expected):
    assert extract_patient_details(text).gender == expected


def test_short_phone_is_rejected():
    assert extract_patient_details("Phone: 12345").phone_number == NOT_SPECIFIED


def test_formatted_phone_is_accepted():
    details = extract_patient_details("Contact: +1 (555) 123-4567")
    assert details.phone_number == "+1 (555) 123-4567"


def test_empty_text_gives_placeholders():
    details = extract_patient_details("")
    assert (details.name, details.age, details.gender, details.phone_number) == (NOT_SPECIFIED,) * 4


def test_high_glucose_is_flagged():
    values = extract_abnormal_values("Glucose: 140 mg/dL")
    assert len(values) == 1
    v = values[0]
    assert v.parameter.lower() == "glucose"
    assert v.value == "140 mg/dL"
    assert v.severity == "high"
    assert v.normal_range == "70-100 mg/dL"


def test_normal_glucose_is_not_reported():
    assert extract_abnormal_values("Glucose: 90 mg/dL") == []


def test_hemoglobin_bands():
    assert extract_abnormal_values("Hemoglobin: 9.5 g/dL")[0].severity == "critical"
    assert extract_abnormal_values("Hemoglobin: 11 g/dL")[0].severity == "low"
    assert extract_abnormal_values("Hgb 19 g/dL")[0].severity == "high"
    assert extract_abnormal_values("Hemoglobin: 14 g/dL") == []


def test_parenthesised_alias_before_value():
    values = extract_abnormal_values("Hemoglobin (Hb): 8.0 g/dL")
    assert len(values) == 1
    assert values[0].parameter == "Hemoglobin"
    assert values[0].value == "8.0 g/dL"
    assert values[0].severity == "critical"


def test_hdl_is_not_mistaken_for_total_cholesterol():
    values = extract_abnormal_values("HDL Cholesterol: 35 mg/dL")
    assert len(values) == 1
    assert values[0].parameter == "HDL Cholesterol"
    assert values[0].severity == "low"


def test_uncoded_parameter_without_range_defaults_to_low():
    values = extract_abnormal_values("Total Protein: 7.1 g/dL")
    assert len(values) == 1
    assert values[0].severity == "low"
    assert values[0].normal_range == "Consult reference ranges"


def test_uncoded_parameter_uses_printed_range():
    assert extract_abnormal_values("Vitamin A: 40 ug/dL (20-60)") == []
    values = extract_abnormal_values("Vitamin A: 80 ug/dL (20-60)")
    assert values[0].severity == "high"
    assert values[0].normal_range == "20-60"


def test_results_keep_document_order_and_cap():
    text = "\n".join([
        "Glucose: 150 mg/dL",
        "Hemoglobin: 9 g/dL",
        "Creatinine: 2.1 mg/dL",
        "Sodium: 150 mEq/L",
        "Potassium: 6.0 mEq/L",
        "Calcium: 11 mg/dL",
        "Triglycerides: 250 mg/dL",
        "LDL: 190 mg/dL",
    ])
    values = extract_abnormal_values(text)
    assert len(values) == MAX_REPORTED
    assert [v.parameter for v in values] == [
        "Glucose", "Hemoglobin", "Creatinine", "Sodium", "Potassium", "Calcium",
    ]


def test_scanning_stops_after_eight_candidates():
    normals = "\n".join(["Glucose: 90 mg/dL"] * 8)
    assert extract_abnormal_values(normals + "\nGlucose: 300 mg/dL") == []


def test_analyze_with_text_uses_readable_boilerplate():
    report = FallbackAnalyzer().analyze(SAMPLE_REPORT, AnalysisOutcome.PARSE_FAILED_FALLBACK, "bad json")
    result = report.result
    assert report.outcome is AnalysisOutcome.PARSE_FAILED_FALLBACK
    assert report.fallback_reason == "bad json"
    assert [v.parameter for v in result.abnormal_values] == ["Glucose", "Hemoglobin"]
    assert "laboratory test results" in result.summary
    assert result.detected_conditions
    assert all("could not be read" not in s for s in result.clinician_guidance)


def test_analyze_empty_text_uses_unreadable_boilerplate():
    report = FallbackAnalyzer().analyze("", AnalysisOutcome.EXTRACT_FAILED_FALLBACK)
    result = report.result
    assert result.abnormal_values == []
    assert result.patient_details.name == NOT_SPECIFIED
    assert "could not be read" in result.summary
    for field in LIST_FIELDS[1:]:
        items = getattr(result, field)
        assert items, field
        assert any("could not be read" in s for s in items), field


@pytest.mark.parametrize("text", ["", "   ", SAMPLE_REPORT, "Glucose 30 mg/dL\nAge: 999", "{}"])
def test_every_field_present_and_severity_valid(text):
    payload = FallbackAnalyzer().build_result(text).to_payload()
    for key in ("abnormalValues", "detectedConditions", "possibleCauses", "symptoms",
                "lifestyleRecommendations", "medicationGuidance", "clinicianGuidance"):
        assert isinstance(payload[key], list)
    assert set(payload["patientDetails"]) == {"name", "age", "gender", "phoneNumber"}
    assert all(v["severity"] in SEVERITIES for v in payload["abnormalValues"])
