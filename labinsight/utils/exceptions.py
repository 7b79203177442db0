"""Error taxonomy for the analysis pipeline.

Only ``InvalidDocumentFormat`` and ``AnalysisUnavailable`` ever reach the
caller. Everything else is caught by the orchestrator and routed to the
fallback analyzer.
"""
from typing import Any, Dict, Optional

from labinsight.utils.log import REQUEST_ID_CTX_VAR


class ReportAnalysisError(Exception):
    code = "ANALYSIS_ERROR"
    stage = "analysis"
    fatal = False

    def __init__(self, message: str = "", details: Any = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "trace_id": REQUEST_ID_CTX_VAR.get(),
        }
        if self.details is not None:
            body["details"] = self.details
        return body


class InvalidDocumentFormat(ReportAnalysisError):
    code = "INVALID_DOCUMENT_FORMAT"
    stage = "validation"
    fatal = True


class DocumentExtractionError(ReportAnalysisError):
    code = "DOCUMENT_EXTRACTION_FAILED"
    stage = "extracting"


class EmptyDocumentContent(DocumentExtractionError):
    code = "EMPTY_DOCUMENT_CONTENT"


class AnalysisTimeout(ReportAnalysisError):
    code = "ANALYSIS_TIMEOUT"
    stage = "analyzing"

    def __init__(self, timeout_s: float, details: Any = None):
        super().__init__(f"AI analysis timed out after {timeout_s:g} seconds", details)
        self.timeout_s = timeout_s


class AnalysisServiceError(ReportAnalysisError):
    code = "ANALYSIS_SERVICE_ERROR"
    stage = "analyzing"


class MalformedAnalysisResponse(ReportAnalysisError):
    code = "MALFORMED_ANALYSIS_RESPONSE"
    stage = "parsing"


class AnalysisUnavailable(ReportAnalysisError):
    code = "ANALYSIS_UNAVAILABLE"
    stage = "extracting"
    fatal = True


def error_code(exc: Optional[BaseException]) -> str:
    if isinstance(exc, ReportAnalysisError):
        return exc.code
    return "INTERNAL_SERVER_ERROR"


__all__ = [
    "ReportAnalysisError",
    "InvalidDocumentFormat",
    "DocumentExtractionError",
    "EmptyDocumentContent",
    "AnalysisTimeout",
    "AnalysisServiceError",
    "MalformedAnalysisResponse",
    "AnalysisUnavailable",
    "error_code",
]
