"""
Confidence scoring implementation.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ..schemas.detection import Recommendation, RiskLevel
from ..schemas.review import ReviewPriority

if TYPE_CHECKING:
    from ..config import DetectionConfig


@dataclass
class DetectionThresholds:
    """Thresholds turning an aggregated confidence into a verdict."""

    reject_threshold: float = 0.90  # At or above: REJECT
    review_threshold: float = 0.60  # At or above: REVIEW, below: ACCEPT

    # Risk buckets
    critical_risk: float = 0.90
    high_risk: float = 0.70
    medium_risk: float = 0.40

    @classmethod
    def from_config(cls, config: "DetectionConfig") -> "DetectionThresholds":
        return cls(
            reject_threshold=config.reject_threshold,
            review_threshold=config.review_threshold,
        )


class ConfidenceScorer:
    """
    Aggregates detection evidence and scores review queue items.

    Detection verdict:
    1. Overall confidence is the weighted mean of per-match confidences,
       weighted by the fixed weight of each match's detection level
    2. Risk and recommendation follow from fixed thresholds

    Queue scoring:
    - Priority = 0.4 * confidence + risk constant + time-risk constant
    - Risk score = 0.6 * confidence + 0.4 * time-risk constant (capped at 1)
    """

    # Priority contribution of the detection risk level
    RISK_PRIORITY = {
        RiskLevel.CRITICAL: 0.4,
        RiskLevel.HIGH: 0.3,
        RiskLevel.MEDIUM: 0.2,
        RiskLevel.LOW: 0.1,
    }

    # Priority contribution of the time-window duplicate risk
    TIME_RISK_PRIORITY = {
        RiskLevel.CRITICAL: 0.2,
        RiskLevel.HIGH: 0.15,
        RiskLevel.MEDIUM: 0.1,
        RiskLevel.LOW: 0.05,
    }

    # Time-window duplicate risk as a 0-1 factor for the risk score
    TIME_RISK_FACTOR = {
        RiskLevel.CRITICAL: 0.4,
        RiskLevel.HIGH: 0.3,
        RiskLevel.MEDIUM: 0.2,
        RiskLevel.LOW: 0.1,
    }

    # Priority bucket lower bounds, checked in order
    PRIORITY_BUCKETS = (
        (0.8, ReviewPriority.URGENT),
        (0.6, ReviewPriority.HIGH),
        (0.4, ReviewPriority.MEDIUM),
    )

    def __init__(self, thresholds: Optional[DetectionThresholds] = None):
        """Initialize scorer with thresholds."""
        self.thresholds = thresholds or DetectionThresholds()

    @staticmethod
    def aggregate(weighted: Iterable[tuple[float, float]]) -> float:
        """
        Weighted mean of (confidence, weight) pairs.

        Returns:
            Aggregated confidence (0.0 when there is no evidence)
        """
        total = 0.0
        total_weight = 0.0
        for confidence, weight in weighted:
            total += confidence * weight
            total_weight += weight
        if total_weight == 0:
            return 0.0
        return total / total_weight

    def risk_level(self, confidence: float) -> RiskLevel:
        if confidence >= self.thresholds.critical_risk:
            return RiskLevel.CRITICAL
        elif confidence >= self.thresholds.high_risk:
            return RiskLevel.HIGH
        elif confidence >= self.thresholds.medium_risk:
            return RiskLevel.MEDIUM
        else:
            return RiskLevel.LOW

    def recommendation(self, confidence: float) -> Recommendation:
        """
        Compute the recommendation for an aggregated confidence.

        Rules:
        - REJECT: confidence >= reject_threshold
        - REVIEW: confidence >= review_threshold
        - ACCEPT: Otherwise
        """
        if confidence >= self.thresholds.reject_threshold:
            return Recommendation.REJECT
        elif confidence >= self.thresholds.review_threshold:
            return Recommendation.REVIEW
        else:
            return Recommendation.ACCEPT

    def is_duplicate(self, confidence: float) -> bool:
        return confidence >= self.thresholds.review_threshold

    def priority_score(
        self,
        confidence: float,
        risk_level: RiskLevel,
        time_risk: Optional[RiskLevel] = None,
    ) -> float:
        """Priority score of a queue item (higher is more urgent)."""
        score = confidence * 0.4 + self.RISK_PRIORITY[risk_level]
        if time_risk is not None:
            score += self.TIME_RISK_PRIORITY[time_risk]
        return score

    def priority_bucket(self, score: float) -> ReviewPriority:
        for lower_bound, priority in self.PRIORITY_BUCKETS:
            if score >= lower_bound:
                return priority
        return ReviewPriority.LOW

    def calculate_priority(
        self,
        confidence: float,
        risk_level: RiskLevel,
        time_risk: Optional[RiskLevel] = None,
    ) -> ReviewPriority:
        """Bucketed review priority for a detection outcome."""
        return self.priority_bucket(self.priority_score(confidence, risk_level, time_risk))

    def calculate_risk_score(
        self,
        confidence: float,
        time_risk: Optional[RiskLevel] = None,
    ) -> float:
        """Queue risk score in [0, 1]; drives risk-based auto-escalation."""
        score = confidence * 0.6
        if time_risk is not None:
            score += self.TIME_RISK_FACTOR[time_risk] * 0.4
        return min(score, 1.0)

    @staticmethod
    def confidence_label(confidence: float) -> str:
        """Coarse label used for queue tags (high/medium/low)."""
        if confidence >= 0.8:
            return "high"
        if confidence >= 0.6:
            return "medium"
        return "low"
