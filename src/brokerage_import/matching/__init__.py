"""Duplicate detection engine and time window analysis for brokerage emails."""

from brokerage_import.matching.engine import (
    DetectionResult,
    DuplicateDetector,
    DuplicateMatch,
    validate_result,
)
from brokerage_import.matching.time_window import (
    TimeBucket,
    TimeWindowAnalysis,
    analyze_partial_fills,
    analyze_split_orders,
    analyze_time_windows,
    classify_elapsed,
    detect_rapid_trading,
)

__all__ = [
    "DetectionResult",
    "DuplicateDetector",
    "DuplicateMatch",
    "TimeBucket",
    "TimeWindowAnalysis",
    "analyze_partial_fills",
    "analyze_split_orders",
    "analyze_time_windows",
    "classify_elapsed",
    "detect_rapid_trading",
    "validate_result",
]
