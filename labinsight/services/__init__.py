# Mark services as a package and expose the pipeline entry points.

from .fallback_analyzer import FallbackAnalyzer  # noqa: F401
from .gemini import AnalysisInvoker, GeminiClient  # noqa: F401
from .orchestrator import AnalysisOrchestrator, build_orchestrator  # noqa: F401
from .text_extractor import TextExtractor  # noqa: F401

__all__ = [
    "AnalysisInvoker",
    "AnalysisOrchestrator",
    "FallbackAnalyzer",
    "GeminiClient",
    "TextExtractor",
    "build_orchestrator",
]
