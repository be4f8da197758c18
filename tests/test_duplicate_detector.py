"""Tests for multi-level duplicate detection."""

import json
import sqlite3
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from brokerage_import.matching import DuplicateDetector, TimeBucket, validate_result
from brokerage_import.schemas import (
    EMAIL_IDENTITY,
    ORDER_IDENTITY,
    TRANSACTION_FINGERPRINT,
    Recommendation,
    RiskLevel,
    TransactionKind,
)
from brokerage_import.state_store import CorpusProvider

SCOPE = "acct-1"


@pytest.fixture
def detector(store, config) -> DuplicateDetector:
    return DuplicateDetector(store, config)


def remember(detector, parsed, raw_headers=None):
    """Store an email in the corpus the way an accepted email is stored."""
    identification = detector.extractor.extract(
        parsed.subject, parsed.from_email, parsed.raw_content, raw_headers=raw_headers
    )
    return detector.persist(identification, parsed, SCOPE)


class TestEmptyCorpus:
    """Tests against an empty corpus."""

    def test_unique_email_accepted(self, detector, make_parsed):
        result = detector.detect(make_parsed(), SCOPE)

        assert result.recommendation == Recommendation.ACCEPT
        assert result.overall_confidence == 0.0
        assert result.risk_level == RiskLevel.LOW
        assert result.matches == []
        assert result.summary == "No duplicate indicators found. Email appears to be unique."
        assert result.identification is not None
        assert result.time_window is None
        assert not result.is_duplicate


class TestEmailIdentity:
    """Level 1: Message-ID and email hash."""

    def test_identical_email_rejected(self, detector, make_parsed, sample_headers):
        """The same email submitted twice is a confirmed duplicate."""
        parsed = make_parsed()
        remember(detector, parsed, sample_headers)

        result = detector.detect(parsed, SCOPE, raw_headers=sample_headers)

        assert result.recommendation == Recommendation.REJECT
        assert result.overall_confidence >= 0.9
        assert result.risk_level == RiskLevel.CRITICAL
        level_one = result.matches_at(EMAIL_IDENTITY)
        assert len(level_one) == 1
        assert level_one[0].confidence == 0.95
        assert level_one[0].matched_fields == ["message_id"]
        assert result.matches_at(ORDER_IDENTITY)
        assert result.matches_at(TRANSACTION_FINGERPRINT)

    def test_identical_content_without_message_id(self, detector, make_parsed):
        parsed = make_parsed()
        remember(detector, parsed)

        result = detector.detect(parsed, SCOPE)

        level_one = result.matches_at(EMAIL_IDENTITY)
        assert level_one[0].confidence == 0.90
        assert level_one[0].matched_fields == ["email_hash"]
        assert result.recommendation == Recommendation.REJECT

    def test_equal_message_id_alone_rejects(self, detector, make_parsed, sample_headers):
        """A shared Message-ID is enough even when nothing else matches."""
        remember(detector, make_parsed(), sample_headers)
        other = make_parsed(
            symbol="MSFT",
            transaction_type=TransactionKind.SELL,
            quantity=Decimal("5"),
            price=Decimal("300.00"),
            transaction_date="2025-03-12T18:00:00Z",
            subject="Order filled: MSFT",
            raw_content="<p>Sold 5 shares of MSFT at $300.00</p>",
        )

        result = detector.detect(other, SCOPE, raw_headers=sample_headers)

        assert [m.level for m in result.matches] == [EMAIL_IDENTITY]
        assert result.overall_confidence == pytest.approx(0.95)
        assert result.recommendation == Recommendation.REJECT

    def test_shared_html_skeleton_is_not_an_identity(self, detector, make_parsed):
        """Emails from the same template share markup lines but not identity."""
        skeleton = "<html>\n<body>\n<p>{}</p>\n</body>\n</html>"
        remember(
            detector,
            make_parsed(raw_content=skeleton.format("Bought 100 shares of AAPL at $150.50")),
        )
        other = make_parsed(
            symbol="TSLA",
            transaction_type=TransactionKind.SELL,
            quantity=Decimal("7"),
            price=Decimal("210.00"),
            total_amount=Decimal("1470.00"),
            transaction_date="2025-03-20T15:00:00Z",
            subject="Order filled: TSLA",
            raw_content=skeleton.format("Sold 7 shares of TSLA at $210.00"),
        )

        result = detector.detect(other, SCOPE)

        assert result.identification.message_id is None
        assert result.matches_at(EMAIL_IDENTITY) == []
        assert result.recommendation == Recommendation.ACCEPT


class TestOrderIdentity:
    """Level 2: order IDs, confirmation numbers and transaction hash."""

    def test_shared_order_id(self, detector, make_parsed):
        remember(
            detector,
            make_parsed(raw_content="<p>Order #WS1234567 filled: bought 100 AAPL</p>"),
        )
        resent = make_parsed(
            raw_content="<p>Resend for order #WS1234567: AAPL x100</p>",
        )

        result = detector.detect(resent, SCOPE)

        matches = result.matches_at(ORDER_IDENTITY)
        assert len(matches) == 1
        assert "order_ids" in matches[0].matched_fields
        assert matches[0].confidence >= 0.7
        assert result.is_duplicate


class TestTransactionFingerprint:
    """Level 3: transaction details and timing."""

    def test_near_identical_fill_not_accepted(self, detector, make_parsed):
        """BUY 100 AAPL @150.50 and @150.52, thirty seconds apart."""
        remember(
            detector,
            make_parsed(
                transaction_date="2025-06-17T10:30:00Z",
                raw_content="<p>Bought 100 shares of AAPL at $150.50</p>",
            ),
        )
        second = make_parsed(
            price=Decimal("150.52"),
            transaction_date="2025-06-17T10:30:30Z",
            raw_content="<p>Bought 100 shares of AAPL at $150.52</p>",
        )

        result = detector.detect(second, SCOPE)

        assert not result.matches_at(EMAIL_IDENTITY)
        assert not result.matches_at(ORDER_IDENTITY)
        fingerprint = result.matches_at(TRANSACTION_FINGERPRINT)
        assert len(fingerprint) == 1
        assert fingerprint[0].confidence == 1.0
        assert "price" not in fingerprint[0].matched_fields
        assert "Same minute execution" in fingerprint[0].reasons
        assert result.overall_confidence >= 0.6
        assert result.recommendation != Recommendation.ACCEPT
        assert result.time_window is not None
        assert result.time_window.bucket == TimeBucket.SAME_MINUTE

    def test_prior_transaction_within_tolerance(self, detector, store, make_parsed):
        """Differences within one cent against a persisted transaction."""
        transaction_id = store.record_transaction(make_parsed(), SCOPE)
        candidate = make_parsed(
            quantity=Decimal("100.01"),
            price=Decimal("150.51"),
            raw_content="<p>Bought AAPL</p>",
        )

        result = detector.detect(candidate, SCOPE)

        fingerprint = result.matches_at(TRANSACTION_FINGERPRINT)
        assert len(fingerprint) == 1
        assert fingerprint[0].existing_transaction.id == transaction_id
        assert fingerprint[0].existing_identification is None
        assert fingerprint[0].confidence >= 0.3
        assert result.recommendation != Recommendation.ACCEPT

    def test_only_tightest_window_counts(self, detector, store, make_parsed):
        store.record_transaction(make_parsed(), SCOPE)
        later = make_parsed(
            transaction_date="2025-03-10T15:00:00Z",
            raw_content="<p>Bought AAPL</p>",
        )

        result = detector.detect(later, SCOPE)

        match = result.matches_at(TRANSACTION_FINGERPRINT)[0]
        assert "Same hour execution" in match.reasons
        assert "Same day execution" not in match.reasons
        assert match.confidence == 1.0

    def test_unrelated_transaction_below_threshold(self, detector, store, make_parsed):
        store.record_transaction(make_parsed(), SCOPE)
        unrelated = make_parsed(
            symbol="MSFT",
            transaction_type=TransactionKind.DIVIDEND,
            quantity=Decimal("7"),
            price=Decimal("0.83"),
            transaction_date="2025-03-20T14:30:00Z",
            raw_content="<p>Dividend paid on MSFT</p>",
        )

        result = detector.detect(unrelated, SCOPE)

        assert result.matches == []
        assert result.recommendation == Recommendation.ACCEPT


class TestCorpusHandling:
    """Tests for corpus scoping, bounds and failures."""

    def test_scopes_are_isolated(self, detector, make_parsed):
        remember(detector, make_parsed())

        result = detector.detect(make_parsed(), "acct-2")

        assert result.recommendation == Recommendation.ACCEPT

    def test_lookups_are_bounded(self, config, clock, make_parsed):
        corpus = MagicMock(spec=CorpusProvider)
        corpus.find_prior_identifications.return_value = []
        corpus.find_prior_transactions.return_value = []
        detector = DuplicateDetector(corpus, config, clock=clock)

        detector.detect(make_parsed(), SCOPE)

        since = clock() - timedelta(days=90)
        corpus.find_prior_identifications.assert_called_once_with(SCOPE, since=since, limit=5000)
        corpus.find_prior_transactions.assert_called_once_with(SCOPE, since=since, limit=5000)

    def test_corpus_failure_returns_safe_default(self, config, make_parsed):
        """Detection never raises; a failing corpus means accept."""
        corpus = MagicMock(spec=CorpusProvider)
        corpus.find_prior_identifications.side_effect = sqlite3.OperationalError(
            "database is locked"
        )
        detector = DuplicateDetector(corpus, config)

        result = detector.detect(make_parsed(), SCOPE)

        assert result.overall_confidence == 0.0
        assert result.risk_level == RiskLevel.LOW
        assert result.recommendation == Recommendation.ACCEPT
        assert result.summary == "Error during duplicate detection: database is locked"
        assert result.processing_time_ms >= 0
        assert result.identification is not None


class TestDetectionResult:
    """Tests for result validation and export."""

    def test_consistent_result(self, detector, make_parsed):
        parsed = make_parsed()
        remember(detector, parsed)

        result = detector.detect(parsed, SCOPE)
        report = detector.validate_result(result)

        assert report.is_valid
        assert report.warnings == []

    def test_inconsistent_result_warns(self, make_detection):
        result = make_detection(0.95)
        result.recommendation = Recommendation.REVIEW

        report = validate_result(result)

        assert "High confidence duplicate should be rejected" in report.warnings
        assert "Duplicate detected but no matches found" in report.warnings

    def test_to_dict_is_json_serializable(self, detector, store, make_parsed):
        store.record_transaction(make_parsed(), SCOPE)
        remember(detector, make_parsed())

        result = detector.detect(make_parsed(), SCOPE)
        data = json.loads(json.dumps(result.to_dict()))

        assert data["recommendation"] == result.recommendation.value
        assert data["is_duplicate"] is True
        assert {m["level"] for m in data["matches"]} == {1, 2, 3}
        assert data["time_window"]["bucket"] == "same_second"

    def test_confidence_always_in_range(self, detector, store, make_parsed):
        for _ in range(3):
            store.record_transaction(make_parsed(), SCOPE)
            remember(detector, make_parsed())

        result = detector.detect(make_parsed(), SCOPE)

        assert 0.0 <= result.overall_confidence <= 1.0
