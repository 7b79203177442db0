"""Environment-driven configuration for the analysis pipeline."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent
ENV_PATH = BASE_DIR.parent / ".env"

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_ANALYSIS_TIMEOUT_S = 180.0

_FALSE_WORDS = {"0", "false", "off", "no"}


def _env_float(name: str, default: float) -> float:
    try:
        value = float(os.getenv(name, default))
    except (ValueError, TypeError):
        return default
    return value if value > 0 else default


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str = ""
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_base_url: str = DEFAULT_GEMINI_BASE_URL
    analysis_timeout_s: float = DEFAULT_ANALYSIS_TIMEOUT_S
    ai_analysis_enabled: bool = True
    log_level: str = "INFO"

    @property
    def ai_configured(self) -> bool:
        return self.ai_analysis_enabled and bool(self.gemini_api_key)


def load_settings(env_path: Optional[Path] = None) -> Settings:
    """Read settings from the process environment (and an optional .env file)."""
    load_dotenv(env_path or ENV_PATH, override=False)
    enabled = (os.getenv("AI_ANALYSIS_ENABLED", "true") or "true").strip().lower()
    return Settings(
        gemini_api_key=(os.getenv("GEMINI_API_KEY", "") or "").strip(),
        # Model choice is deployment configuration; no probing of alternates.
        gemini_model=(os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL).strip(),
        gemini_base_url=(os.getenv("GEMINI_BASE_URL") or DEFAULT_GEMINI_BASE_URL).strip().rstrip("/"),
        analysis_timeout_s=_env_float("ANALYSIS_TIMEOUT_S", DEFAULT_ANALYSIS_TIMEOUT_S),
        ai_analysis_enabled=enabled not in _FALSE_WORDS,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )


__all__ = ["Settings", "load_settings"]
