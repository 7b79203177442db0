"""Gemini REST client and the timed invoker used by the analysis pipeline."""
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from labinsight.settings import DEFAULT_ANALYSIS_TIMEOUT_S, DEFAULT_GEMINI_BASE_URL, DEFAULT_GEMINI_MODEL
from labinsight.utils.exceptions import AnalysisServiceError, AnalysisTimeout
from labinsight.utils.log import get_logger

logger = get_logger("gemini")

Generate = Callable[[str], Awaitable[str]]


def _reply_text(data: Dict[str, Any]) -> str:
    return (
        (data.get("candidates") or [{}])[0]
        .get("content", {})
        .get("parts", [{}])[0]
        .get("text", "")
        or ""
    ).strip()


class GeminiClient:
    """Thin wrapper over ``models/{model}:generateContent``.

    The HTTP client is injected so tests can swap in ``httpx.MockTransport``.
    No timeout is enforced here; the invoker owns the deadline.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        base_url: str = DEFAULT_GEMINI_BASE_URL,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self._client = http_client

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def _post(self, client: httpx.AsyncClient, prompt: str) -> httpx.Response:
        return await client.post(
            self.url,
            params={"key": self.api_key},
            headers={"Content-Type": "application/json"},
            json={"contents": [{"role": "user", "parts": [{"text": prompt.strip()}]}]},
        )

    async def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise AnalysisServiceError("AI analysis skipped: model not configured or disabled.")
        if self._client is not None:
            r = await self._post(self._client, prompt)
        else:
            async with httpx.AsyncClient(timeout=None) as client:
                r = await self._post(client, prompt)
        r.raise_for_status()
        text = _reply_text(r.json())
        if not text:
            raise AnalysisServiceError("AI service returned an empty reply")
        return text

    async def ping(self) -> bool:
        """Connectivity check; never raises."""
        try:
            reply = await self.generate('Hello, please respond with "AI service is working"')
        except Exception:
            logger.warning("AI service connectivity check failed", exc_info=True)
            return False
        return "working" in reply.lower()


def _consume_result(task: "asyncio.Future[Any]") -> None:
    # An abandoned call may still fail later; retrieve it so asyncio stays quiet.
    if not task.cancelled():
        task.exception()


class AnalysisInvoker:
    """Races one generation call against a fixed deadline.

    Past the deadline the call is abandoned, not cancelled: it keeps running
    and its eventual result is ignored.
    """

    def __init__(self, generate: Generate, timeout_s: float = DEFAULT_ANALYSIS_TIMEOUT_S):
        self._generate = generate
        self.timeout_s = timeout_s

    async def invoke(self, prompt: str) -> str:
        task = asyncio.ensure_future(self._generate(prompt))
        done, _pending = await asyncio.wait({task}, timeout=self.timeout_s)
        if task not in done:
            task.add_done_callback(_consume_result)
            raise AnalysisTimeout(self.timeout_s)
        if task.cancelled():
            raise AnalysisServiceError("AI call was cancelled")
        try:
            return task.result()
        except AnalysisServiceError:
            raise
        except httpx.HTTPStatusError as exc:
            raise AnalysisServiceError(
                f"AI service returned HTTP {exc.response.status_code}",
                details={"status_code": exc.response.status_code},
            ) from exc
        except httpx.HTTPError as exc:
            raise AnalysisServiceError(f"AI service request failed: {exc}") from exc
        except Exception as exc:
            raise AnalysisServiceError(f"AI service call failed: {exc}") from exc


def build_gemini_invoker(settings, http_client: Optional[httpx.AsyncClient] = None) -> AnalysisInvoker:
    client = GeminiClient(
        api_key=settings.gemini_api_key if settings.ai_configured else "",
        model=settings.gemini_model,
        base_url=settings.gemini_base_url,
        http_client=http_client,
    )
    return AnalysisInvoker(client.generate, timeout_s=settings.analysis_timeout_s)


__all__ = ["GeminiClient", "AnalysisInvoker", "build_gemini_invoker"]
