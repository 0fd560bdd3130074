"""Public analysis API."""

from .analyzer import AnalysisResult, PositionAnalyzer, parse_account

__all__ = [
    "AnalysisResult",
    "PositionAnalyzer",
    "parse_account",
]
