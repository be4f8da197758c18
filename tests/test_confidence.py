"""Tests for confidence scoring."""

import pytest

from brokerage_import.config import DetectionConfig
from brokerage_import.confidence import ConfidenceScorer, DetectionThresholds
from brokerage_import.schemas import Recommendation, ReviewPriority, RiskLevel


class TestAggregate:
    """Tests for weighted mean aggregation."""

    def test_single_match(self):
        assert ConfidenceScorer.aggregate([(0.95, 0.9)]) == pytest.approx(0.95)

    def test_weighted_mean(self):
        """Each confidence is weighted by its level weight."""
        aggregated = ConfidenceScorer.aggregate([(1.0, 0.9), (0.5, 0.8)])

        assert aggregated == pytest.approx((0.9 + 0.4) / 1.7)

    def test_no_evidence(self):
        assert ConfidenceScorer.aggregate([]) == 0.0


class TestRecommendation:
    """Tests for the detection verdict."""

    @pytest.fixture
    def scorer(self):
        return ConfidenceScorer()

    @pytest.mark.parametrize(
        "confidence,expected",
        [
            (1.0, Recommendation.REJECT),
            (0.9, Recommendation.REJECT),
            (0.89, Recommendation.REVIEW),
            (0.6, Recommendation.REVIEW),
            (0.59, Recommendation.ACCEPT),
            (0.0, Recommendation.ACCEPT),
        ],
    )
    def test_thresholds(self, scorer, confidence, expected):
        assert scorer.recommendation(confidence) == expected

    def test_monotonic(self, scorer):
        """Higher confidence never yields a milder verdict."""
        order = [Recommendation.ACCEPT, Recommendation.REVIEW, Recommendation.REJECT]
        verdicts = [scorer.recommendation(step / 100) for step in range(101)]
        ranks = [order.index(v) for v in verdicts]

        assert ranks == sorted(ranks)
        assert scorer.recommendation(0.95) != Recommendation.ACCEPT
        assert scorer.recommendation(0.1) != Recommendation.REJECT

    @pytest.mark.parametrize(
        "confidence,expected",
        [
            (0.95, RiskLevel.CRITICAL),
            (0.7, RiskLevel.HIGH),
            (0.4, RiskLevel.MEDIUM),
            (0.39, RiskLevel.LOW),
        ],
    )
    def test_risk_levels(self, scorer, confidence, expected):
        assert scorer.risk_level(confidence) == expected

    def test_custom_thresholds_from_config(self):
        config = DetectionConfig(reject_threshold=0.95, review_threshold=0.5)
        scorer = ConfidenceScorer(DetectionThresholds.from_config(config))

        assert scorer.recommendation(0.92) == Recommendation.REVIEW
        assert scorer.recommendation(0.5) == Recommendation.REVIEW
        assert scorer.is_duplicate(0.5)


class TestQueueScoring:
    """Tests for review priority and risk score."""

    @pytest.fixture
    def scorer(self):
        return ConfidenceScorer()

    def test_urgent(self, scorer):
        priority = scorer.calculate_priority(1.0, RiskLevel.CRITICAL, RiskLevel.CRITICAL)
        assert priority == ReviewPriority.URGENT

    def test_high_with_time_risk(self, scorer):
        # 0.28 + 0.3 + 0.2
        priority = scorer.calculate_priority(0.7, RiskLevel.HIGH, RiskLevel.CRITICAL)
        assert priority == ReviewPriority.HIGH

    def test_medium_without_time_window(self, scorer):
        # 0.24 + 0.2
        assert scorer.calculate_priority(0.6, RiskLevel.MEDIUM) == ReviewPriority.MEDIUM

    def test_low(self, scorer):
        assert scorer.calculate_priority(0.3, RiskLevel.LOW) == ReviewPriority.LOW

    def test_risk_score(self, scorer):
        assert scorer.calculate_risk_score(0.7) == pytest.approx(0.42)
        assert scorer.calculate_risk_score(0.7, RiskLevel.LOW) == pytest.approx(0.46)
        assert scorer.calculate_risk_score(1.0, RiskLevel.CRITICAL) == pytest.approx(0.76)

    def test_deterministic(self, scorer):
        """Identical inputs always give identical scores."""
        first = (
            scorer.calculate_priority(0.75, RiskLevel.HIGH, RiskLevel.MEDIUM),
            scorer.calculate_risk_score(0.75, RiskLevel.MEDIUM),
        )
        second = (
            scorer.calculate_priority(0.75, RiskLevel.HIGH, RiskLevel.MEDIUM),
            scorer.calculate_risk_score(0.75, RiskLevel.MEDIUM),
        )

        assert first == second

    @pytest.mark.parametrize(
        "confidence,label",
        [(0.85, "high"), (0.65, "medium"), (0.3, "low")],
    )
    def test_confidence_label(self, confidence, label):
        assert ConfidenceScorer.confidence_label(confidence) == label
