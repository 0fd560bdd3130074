"""Strategy detection."""

from .detector import DetectedPosition, StrategyDetector

__all__ = [
    "DetectedPosition",
    "StrategyDetector",
]
