"""
Confidence scoring module.

Aggregates duplicate evidence into a verdict and scores review queue items.
"""

from .scorer import ConfidenceScorer, DetectionThresholds

__all__ = [
    "ConfidenceScorer",
    "DetectionThresholds",
]
