import asyncio
import io
from typing import List

import pytest
from pypdf import PdfWriter

from labinsight.schemas.analysis import PatientContext
from labinsight.services.fallback_analyzer import FallbackAnalyzer
from labinsight.services.gemini import AnalysisInvoker
from labinsight.services.orchestrator import AnalysisOrchestrator
from labinsight.services.text_extractor import TextExtractor


SAMPLE_REPORT = """City Diagnostics Lab
Patient Name: Jane Smith
Age: 45 Years
Gender: Female
Phone: 9876543210

BIOCHEMISTRY
Glucose: 140 mg/dL
Hemoglobin: 9.2 g/dL
Total Cholesterol: 180 mg/dL
Sodium: 139 mEq/L
"""

AI_REPLY = """Here is the analysis you asked for:
```json
{
  "patientDetails": {"name": "Jane Smith", "age": "45", "gender": "Female", "phoneNumber": "9876543210"},
  "summary": "Fasting glucose is elevated and hemoglobin is low.",
  "simpleExplanation": "Your sugar is a bit high and your blood count is low.",
  "abnormalValues": [
    {"parameter": "Glucose", "value": "140 mg/dL", "normalRange": "70-100 mg/dL", "severity": "high"}
  ],
  "detectedConditions": ["Hyperglycemia"],
  "possibleCauses": ["Diet high in refined sugar"],
  "symptoms": ["Increased thirst"],
  "lifestyleRecommendations": ["Reduce sugary drinks"],
  "medicationGuidance": ["Discuss glucose-lowering options with your doctor"],
  "clinicianGuidance": ["See an endocrinologist"]
}
```
Let me know if you need anything else."""


def run(coro):
    return asyncio.run(coro)


def blank_pdf_bytes() -> bytes:
    writer = PdfWriter()
    writer.add_blank_page(width=612, height=792)
    buf = io.BytesIO()
    writer.write(buf)
    return buf.getvalue()


FAKE_PDF = b"%PDF-1.4\n% fake body, pages come from the patched reader\n"


@pytest.fixture
def patient_context() -> PatientContext:
    return PatientContext(name="Form Name", age=44, gender="female", phone_number="5550000000")


@pytest.fixture
def pdf_pages(monkeypatch):
    """Make the extractor see the given page texts, whatever bytes it receives."""
    pages: List[str] = []

    class _Pg:
        def __init__(self, text):
            self._text = text

        def extract_text(self):
            return self._text

    class _Reader:
        def __init__(self, *_a, **_k):
            self.pages = [_Pg(t) for t in pages]

    import labinsight.services.text_extractor as te
    monkeypatch.setattr(te, "PdfReader", _Reader)
    return pages


class FakeGenerate:
    """Stand-in for GeminiClient.generate that records prompts."""

    def __init__(self, reply: str = AI_REPLY, exc: Exception = None, hang: bool = False):
        self.reply = reply
        self.exc = exc
        self.hang = hang
        self.prompts: List[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.hang:
            await asyncio.Event().wait()
        if self.exc is not None:
            raise self.exc
        return self.reply


@pytest.fixture
def make_orchestrator():
    def _make(generate=None, timeout_s: float = 5.0) -> AnalysisOrchestrator:
        return AnalysisOrchestrator(
            extractor=TextExtractor(),
            invoker=AnalysisInvoker(generate or FakeGenerate(), timeout_s=timeout_s),
            fallback=FallbackAnalyzer(),
        )
    return _make
