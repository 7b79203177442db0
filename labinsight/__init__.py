"""LabInsight: health report analysis with a deterministic fallback."""

__version__ = "0.1.0"
