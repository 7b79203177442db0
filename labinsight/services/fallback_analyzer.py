"""
Deterministic report analysis used when the AI path is unavailable.

Behavior:
- Pull patient identifiers out of the report text with ordered regex
  extractors; the first extractor yielding a plausible value wins.
- Scan for known lab parameters followed by a number, keep only values
  outside their normal band and grade them low/high/critical.
- Fill the narrative fields from the YAML boilerplate tables. Nothing here
  ever names a diagnosis.
"""
from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import yaml

from labinsight.schemas.analysis import (
    NOT_SPECIFIED,
    AbnormalValue,
    AnalysisOutcome,
    AnalysisReport,
    AnalysisResult,
    PatientDetails,
)
from labinsight.services.lab_rules import (
    CONFIG_DIR,
    LabRuleSet,
    compare_to_range,
    default_rules,
    parse_reference_range,
)
from labinsight.utils.log import REQUEST_ID_CTX_VAR, get_logger

logger = get_logger("fallback")

NARRATIVES_PATH = CONFIG_DIR / "fallback_narratives.yaml"

MAX_CANDIDATES = 8
MAX_REPORTED = 6

Extractor = Callable[[str], Optional[str]]

NARRATIVE_FIELDS = (
    "detected_conditions",
    "possible_causes",
    "symptoms",
    "lifestyle_recommendations",
    "medication_guidance",
    "clinician_guidance",
)


# ---------------- Combinator ----------------
def first_match(extractors: Iterable[Extractor], text: str) -> Optional[str]:
    for extract in extractors:
        value = extract(text)
        if value is not None:
            return value
    return None


def _regex(pattern: str, flags: int = re.IGNORECASE) -> Callable[[str], Optional[str]]:
    compiled = re.compile(pattern, flags)

    def search(text: str) -> Optional[str]:
        match = compiled.search(text)
        return match.group(1) if match and match.group(1) else None

    return search


def _accepting(pattern: str, accept: Callable[[str], Optional[str]], flags: int = re.IGNORECASE) -> Extractor:
    """Extractor that only succeeds when ``accept`` turns the raw capture into a value."""
    search = _regex(pattern, flags)

    def extract(text: str) -> Optional[str]:
        raw = search(text)
        return accept(raw) if raw is not None else None

    return extract


# ---------------- Identifier validators ----------------
def _clean_name(raw: str) -> Optional[str]:
    name = re.sub(r"[^\w\s.]", "", raw.split("\n")[0]).strip()
    name = re.sub(r"\s+", " ", name)
    return name if 2 < len(name) < 50 else None


def _plausible_age(raw: str) -> Optional[str]:
    try:
        age = int(raw)
    except ValueError:
        return None
    return str(age) if 0 <= age <= 120 else None


def _normalize_gender(raw: str) -> Optional[str]:
    first = raw.strip().lower()[:1]
    if first == "m":
        return "Male"
    if first == "f":
        return "Female"
    return None


def _plausible_phone(raw: str) -> Optional[str]:
    phone = raw.strip()
    return phone if len(re.sub(r"\D", "", phone)) >= 10 else None


# A name stops at a wide gap, a line break or the next header label.
NAME_END = r"(?=[ \t]{2,}|[ \t]+(?:age|sex|gender|phone|mobile|dob|date)\b|[,;|\n]|$)"

# Label-anchored patterns first, positional ones last.
NAME_EXTRACTORS: Sequence[Extractor] = (
    _accepting(r"\b(?:patient\s*name|patient|name)\s*[:\-]\s*([A-Za-z][A-Za-z .]*?)" + NAME_END, _clean_name),
    _accepting(r"\b(?:mr|mrs|ms|miss|dr)\.?\s+([A-Za-z][A-Za-z .]*?)" + NAME_END, _clean_name),
    _accepting(r"^\s*([A-Z][a-z]+[ \t]+[A-Z][a-z]+)\b", _clean_name, re.MULTILINE),
)

AGE_EXTRACTORS: Sequence[Extractor] = (
    _accepting(r"\bage\s*[:\-]?\s*(\d{1,3})(?!\d)", _plausible_age),
    _accepting(r"\bage\s*/\s*sex\s*[:\-]?\s*(\d{1,3})(?!\d)", _plausible_age),
    _accepting(r"\b(\d{1,3})\s*(?:years?|yrs?|y/o|y\.o\.|y\b)", _plausible_age),
)

GENDER_EXTRACTORS: Sequence[Extractor] = (
    _accepting(r"\b(?:gender|sex)\s*[:\-]?\s*(male|female|m|f)\b", _normalize_gender),
    _accepting(r"(?:^|\s)(male|female)(?=\s|$|[,.;])", _normalize_gender),
    _accepting(r"\d{1,3}\s*(?:years?|yrs?|y)?\s*/\s*(m|f)\b", _normalize_gender),
)

PHONE_EXTRACTORS: Sequence[Extractor] = (
    _accepting(r"\b(?:phone|mobile|mob|contact|tel)(?:\s*no)?\.?\s*[:\-]?\s*(\+?[\d\-() \t]{10,}\d)", _plausible_phone),
    _accepting(r"(\+?\d{1,3}[-.\s]?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4})\b", _plausible_phone),
    _accepting(r"\b(\d{10})\b", _plausible_phone),
)


def extract_patient_details(text: str) -> PatientDetails:
    if not text or not text.strip():
        return PatientDetails()
    return PatientDetails(
        name=first_match(NAME_EXTRACTORS, text) or NOT_SPECIFIED,
        age=first_match(AGE_EXTRACTORS, text) or NOT_SPECIFIED,
        gender=first_match(GENDER_EXTRACTORS, text) or NOT_SPECIFIED,
        phone_number=first_match(PHONE_EXTRACTORS, text) or NOT_SPECIFIED,
    )


# ---------------- Abnormal values ----------------
UNIT = r"[A-Za-zµμ]+/[A-Za-z0-9.^]+|%|IU|fL"


@lru_cache(maxsize=4)
def _measurement_regex(vocabulary: str) -> re.Pattern:
    return re.compile(
        r"(?<![A-Za-z])(?P<name>" + vocabulary + r")(?![A-Za-z])"
        r"(?:[ \t]*\([^)\n]{1,15}\))?"
        r"[ \t]*[:=\-]?[ \t]*"
        r"(?P<value>\d+(?:\.\d+)?)"
        r"(?:[ \t]*(?P<unit>" + UNIT + r")(?![A-Za-z]))?"
        r"(?:[ \t]*[(\[](?P<range>[^)\]\n]{1,40})[)\]])?",
        re.IGNORECASE,
    )


def extract_abnormal_values(text: str, rules: Optional[LabRuleSet] = None) -> List[AbnormalValue]:
    """Flag out-of-band lab values in document order.

    Only the first ``MAX_CANDIDATES`` vocabulary hits are examined and at most
    ``MAX_REPORTED`` are returned.
    """
    if not text:
        return []
    rules = rules or default_rules()
    regex = _measurement_regex(rules.vocabulary_pattern())
    found: List[AbnormalValue] = []
    for examined, match in enumerate(regex.finditer(text)):
        if examined >= MAX_CANDIDATES or len(found) >= MAX_REPORTED:
            break
        name = re.sub(r"\s+", " ", match.group("name").strip())
        try:
            value_num = float(match.group("value"))
        except ValueError:
            continue
        unit = (match.group("unit") or "").strip()
        printed_range = (match.group("range") or "").strip()

        rule = rules.resolve(name)
        if rule is not None and rule.coded:
            severity = rule.classify(value_num)
            if severity is None:
                continue
            normal_range = rule.normal_range or rules.default_normal_range
        else:
            reference = parse_reference_range(printed_range)
            if reference:
                status = compare_to_range(value_num, reference)
                if status not in ("low", "high"):
                    continue
                severity = status
                normal_range = printed_range
            else:
                severity = rules.default_severity
                normal_range = (rule.normal_range if rule else None) or rules.default_normal_range

        found.append(
            AbnormalValue(
                parameter=name,
                value=f"{match.group('value')} {unit}".strip(),
                normal_range=normal_range,
                severity=severity,
            )
        )
    return found


# ---------------- Narratives ----------------
def load_narratives(path: Path = NARRATIVES_PATH) -> Dict[str, Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


@lru_cache(maxsize=1)
def default_narratives() -> Dict[str, Dict[str, Any]]:
    return load_narratives()


class FallbackAnalyzer:
    """Builds a complete AnalysisResult from raw text without any external call."""

    def __init__(self, rules: Optional[LabRuleSet] = None, narratives: Optional[Dict[str, Dict[str, Any]]] = None):
        self.rules = rules or default_rules()
        self.narratives = narratives or default_narratives()

    def build_result(self, text: str) -> AnalysisResult:
        has_text = bool(text and text.strip())
        copy = self.narratives["readable" if has_text else "unreadable"]
        lists = {name: [str(item) for item in (copy.get(name) or [])] for name in NARRATIVE_FIELDS}
        return AnalysisResult(
            patient_details=extract_patient_details(text),
            summary=str(copy["summary"]).strip(),
            simple_explanation=str(copy["simple_explanation"]).strip(),
            abnormal_values=extract_abnormal_values(text, self.rules) if has_text else [],
            **lists,
        )

    def analyze(
        self,
        text: str,
        outcome: AnalysisOutcome = AnalysisOutcome.INVOKE_FAILED_FALLBACK,
        reason: Optional[str] = None,
    ) -> AnalysisReport:
        result = self.build_result(text or "")
        logger.info({
            "function": "fallback_analysis",
            "outcome": outcome.value,
            "reason": reason,
            "abnormal_values": len(result.abnormal_values),
            "chars": len(text or ""),
        })
        return AnalysisReport(
            result=result,
            outcome=outcome,
            fallback_reason=reason,
            request_id=REQUEST_ID_CTX_VAR.get(),
        )


__all__ = [
    "FallbackAnalyzer",
    "first_match",
    "extract_patient_details",
    "extract_abnormal_values",
    "NAME_EXTRACTORS",
    "AGE_EXTRACTORS",
    "GENDER_EXTRACTORS",
    "PHONE_EXTRACTORS",
]
