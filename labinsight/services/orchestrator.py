"""End-to-end report analysis: extraction, AI analysis, parsing and fallback."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Callable, List, Optional

import httpx

from labinsight.schemas.analysis import AnalysisOutcome, AnalysisReport, AnalysisResult, PatientContext
from labinsight.services.fallback_analyzer import FallbackAnalyzer
from labinsight.services.gemini import AnalysisInvoker, build_gemini_invoker
from labinsight.services.prompt_builder import build_analysis_prompt
from labinsight.services.response_parser import parse_analysis_response
from labinsight.services.text_extractor import TextExtractor
from labinsight.settings import Settings, load_settings
from labinsight.utils.exceptions import (
    AnalysisServiceError,
    AnalysisTimeout,
    DocumentExtractionError,
    MalformedAnalysisResponse,
    ReportAnalysisError,
)
from labinsight.utils.log import REQUEST_ID_CTX_VAR, get_logger

logger = get_logger("pipeline")

PromptBuilder = Callable[[str, PatientContext], str]
ResponseParser = Callable[[str], AnalysisResult]


class AnalysisState(str, Enum):
    EXTRACTING = "extracting"
    ANALYZING = "analyzing"
    PARSING = "parsing"
    FALLBACK = "fallback"
    COMPLETED = "completed"


# state -> states it may move to
TRANSITIONS = {
    AnalysisState.EXTRACTING: {AnalysisState.ANALYZING, AnalysisState.FALLBACK},
    AnalysisState.ANALYZING: {AnalysisState.PARSING, AnalysisState.FALLBACK},
    AnalysisState.PARSING: {AnalysisState.COMPLETED, AnalysisState.FALLBACK},
    AnalysisState.FALLBACK: {AnalysisState.COMPLETED},
    AnalysisState.COMPLETED: set(),
}

FALLBACK_OUTCOMES = {
    AnalysisState.EXTRACTING: AnalysisOutcome.EXTRACT_FAILED_FALLBACK,
    AnalysisState.ANALYZING: AnalysisOutcome.INVOKE_FAILED_FALLBACK,
    AnalysisState.PARSING: AnalysisOutcome.PARSE_FAILED_FALLBACK,
}


class _Run:
    """Per-request state tracker. Never shared between requests."""

    def __init__(self, request_id: str):
        self.request_id = request_id
        self.state = AnalysisState.EXTRACTING
        self.history: List[str] = [self.state.value]

    def move(self, target: AnalysisState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal transition {self.state.value} -> {target.value}")
        self.state = target
        self.history.append(target.value)


class AnalysisOrchestrator:
    """Sequences the pipeline and guarantees a complete result.

    Only ``InvalidDocumentFormat`` (checked before the pipeline starts) and
    ``AnalysisUnavailable`` (the PDF library itself crashed) escape.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        invoker: AnalysisInvoker,
        fallback: Optional[FallbackAnalyzer] = None,
        prompt_builder: PromptBuilder = build_analysis_prompt,
        parser: ResponseParser = parse_analysis_response,
    ):
        self.extractor = extractor
        self.invoker = invoker
        self.fallback = fallback or FallbackAnalyzer()
        self.prompt_builder = prompt_builder
        self.parser = parser

    async def analyze(
        self,
        document_bytes: bytes,
        patient_context: PatientContext,
        request_id: Optional[str] = None,
    ) -> AnalysisReport:
        request_id = request_id or str(uuid.uuid4())
        token = REQUEST_ID_CTX_VAR.set(request_id)
        try:
            self.extractor.verify(document_bytes)
            return await self._run(document_bytes, patient_context, _Run(request_id))
        finally:
            REQUEST_ID_CTX_VAR.reset(token)

    async def _run(self, document_bytes: bytes, context: PatientContext, run: _Run) -> AnalysisReport:
        logger.info({"function": "analyze", "stage": run.state.value, "bytes": len(document_bytes)})
        try:
            text = self.extractor.extract(document_bytes)
        except DocumentExtractionError as exc:
            return self._fallback(run, "", exc)

        run.move(AnalysisState.ANALYZING)
        prompt = self.prompt_builder(text, context)
        logger.info({"function": "analyze", "stage": run.state.value, "prompt_chars": len(prompt)})
        try:
            reply = await self.invoker.invoke(prompt)
        except (AnalysisTimeout, AnalysisServiceError) as exc:
            return self._fallback(run, text, exc)

        run.move(AnalysisState.PARSING)
        logger.info({"function": "analyze", "stage": run.state.value, "reply_chars": len(reply)})
        try:
            result = self.parser(reply)
        except MalformedAnalysisResponse as exc:
            return self._fallback(run, text, exc)

        run.move(AnalysisState.COMPLETED)
        logger.info({
            "function": "analyze",
            "stage": run.state.value,
            "outcome": AnalysisOutcome.AI_SUCCEEDED.value,
            "abnormal_values": len(result.abnormal_values),
        })
        return AnalysisReport(
            result=result,
            outcome=AnalysisOutcome.AI_SUCCEEDED,
            request_id=run.request_id,
            states=list(run.history),
        )

    def _fallback(self, run: _Run, text: str, exc: ReportAnalysisError) -> AnalysisReport:
        failed = run.state
        outcome = FALLBACK_OUTCOMES[failed]
        reason = f"{exc.code}: {exc.message}"
        logger.warning({
            "function": "analyze",
            "stage": failed.value,
            "fallback": outcome.used_fallback,
            "outcome": outcome.value,
            "reason": reason,
        })
        run.move(AnalysisState.FALLBACK)
        report = self.fallback.analyze(text, outcome=outcome, reason=reason)
        run.move(AnalysisState.COMPLETED)
        return report.model_copy(update={"request_id": run.request_id, "states": list(run.history)})


def build_orchestrator(
    settings: Optional[Settings] = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> AnalysisOrchestrator:
    settings = settings or load_settings()
    return AnalysisOrchestrator(
        extractor=TextExtractor(),
        invoker=build_gemini_invoker(settings, http_client=http_client),
        fallback=FallbackAnalyzer(),
    )


__all__ = ["AnalysisState", "AnalysisOrchestrator", "TRANSITIONS", "build_orchestrator"]
