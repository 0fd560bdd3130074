"""Wheel Engine - options position analytics for wheel traders."""

from .__version__ import API_VERSION, __version__, __version_info__, get_version_string
from .analytics import WheelAnalytics, WheelSummary
from .api import AnalysisResult, PositionAnalyzer, parse_account
from .config import EngineConfig, load_config
from .greeks import GreeksCache, GreeksFetcher, GreeksResult, SlidingWindowRateLimiter
from .models import (
    AccountContext,
    GreeksQuote,
    OptionKind,
    OptionLeg,
    QuoteKey,
    RiskProfile,
    Strategy,
    StrategyType,
    WheelMetrics,
)
from .portfolio import normalize_legs
from .risk import RiskCalculator
from .strategy import StrategyDetector

__all__ = [
    # Models
    "AccountContext",
    "GreeksQuote",
    "OptionKind",
    "OptionLeg",
    "QuoteKey",
    "RiskProfile",
    "Strategy",
    "StrategyType",
    "WheelMetrics",
    # Pipeline
    "normalize_legs",
    "StrategyDetector",
    "RiskCalculator",
    "WheelAnalytics",
    "WheelSummary",
    # Greeks
    "GreeksCache",
    "GreeksFetcher",
    "GreeksResult",
    "SlidingWindowRateLimiter",
    # API
    "AnalysisResult",
    "PositionAnalyzer",
    "parse_account",
    # Config
    "EngineConfig",
    "load_config",
    # Version info
    "__version__",
    "__version_info__",
    "API_VERSION",
    "get_version_string",
]
