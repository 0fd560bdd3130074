"""Raw position ingestion."""

from .normalizer import (
    NormalizationResult,
    RejectedLeg,
    normalize_expiry,
    normalize_leg,
    normalize_legs,
    parse_number,
)

__all__ = [
    "NormalizationResult",
    "RejectedLeg",
    "normalize_expiry",
    "normalize_leg",
    "normalize_legs",
    "parse_number",
]
