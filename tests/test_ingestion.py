"""Tests for the ingestion orchestration service."""

import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from brokerage_import.config import Config, IngestionConfig
from brokerage_import.matching import DuplicateDetector, TimeBucket
from brokerage_import.review import ReviewQueue, ReviewStatus
from brokerage_import.schemas import TransactionKind
from brokerage_import.services import IncomingEmail, IngestionDecision, IngestionService

SCOPE = "acct-1"


@pytest.fixture
def queue(config) -> ReviewQueue:
    return ReviewQueue(config.review_queue)


@pytest.fixture
def service(store, config, queue) -> IngestionService:
    detector = DuplicateDetector(store, config)
    return IngestionService(detector, queue, config, transaction_sink=store.record_transaction)


@pytest.fixture
def later_fill(sample_email_dict) -> dict:
    """Same order size three hours later at a different price."""
    email = dict(sample_email_dict)
    email.pop("raw_headers")
    email.update(
        id="uid-1002",
        price="151.50",
        totalAmount="15150.00",
        transactionDate="2025-03-10T17:30:00Z",
        rawContent="<p>Bought 100 shares of AAPL at $151.50 per share</p>",
    )
    return email


class TestIncomingEmail:
    """Tests for IncomingEmail.from_dict."""

    def test_flat_record(self, sample_email_dict, sample_headers):
        email = IncomingEmail.from_dict(sample_email_dict)

        assert email.source_id == "uid-1001"
        assert email.raw_headers == sample_headers
        assert email.parsed.symbol == "AAPL"
        assert email.parsed.transaction_type == TransactionKind.BUY

    def test_nested_transaction(self, sample_email_dict):
        email = IncomingEmail.from_dict(
            {"transaction": sample_email_dict, "rawHeaders": "Message-ID: <a@b>", "source_id": "f1"}
        )

        assert email.source_id == "f1"
        assert email.raw_headers == "Message-ID: <a@b>"

    def test_missing_fields(self):
        with pytest.raises(ValueError, match="Missing required fields"):
            IncomingEmail.from_dict({"symbol": "AAPL"})


class TestProcessEmail:
    """Tests for routing a single email."""

    def test_unique_email_accepted(self, service, store, sample_email_dict):
        outcome = service.process_email(sample_email_dict, SCOPE)

        assert outcome.decision == IngestionDecision.ACCEPTED
        assert outcome.source_id == "uid-1001"
        assert outcome.transaction_id.startswith("txn-")
        assert outcome.record_id is not None
        record = store.get_identification(outcome.record_id)
        assert record.transaction_id == outcome.transaction_id
        assert len(store.find_prior_transactions(SCOPE)) == 1

    def test_resubmitted_email_rejected(self, service, store, sample_email_dict):
        """The second copy of the same email is skipped and not stored."""
        service.process_email(sample_email_dict, SCOPE)

        outcome = service.process_email(sample_email_dict, SCOPE)

        assert outcome.decision == IngestionDecision.REJECTED
        assert outcome.transaction_id is None
        assert outcome.detection.overall_confidence >= 0.9
        assert store.get_stats()["identifications_total"] == 1
        assert store.get_stats()["transactions_total"] == 1

    def test_ambiguous_email_queued(self, service, queue, store, sample_email_dict, later_fill):
        service.process_email(sample_email_dict, SCOPE)

        outcome = service.process_email(later_fill, SCOPE)

        assert outcome.decision == IngestionDecision.REVIEW
        assert outcome.detection.overall_confidence == pytest.approx(0.85)
        assert outcome.detection.time_window.bucket == TimeBucket.SAME_DAY
        item = queue.get(outcome.queue_item_id)
        assert item.status == ReviewStatus.PENDING
        assert item.scope == SCOPE
        assert len(item.potential_duplicates) == 2
        # Queued emails are not added to the corpus
        assert store.get_stats()["identifications_total"] == 1

    def test_accept_without_sink(self, store, config, queue, sample_email_dict):
        service = IngestionService(DuplicateDetector(store, config), queue, config)

        outcome = service.process_email(sample_email_dict, SCOPE)

        assert outcome.decision == IngestionDecision.ACCEPTED
        assert outcome.transaction_id is None
        assert store.get_stats()["transactions_total"] == 0
        assert store.get_stats()["identifications_total"] == 1

    def test_missing_fields_invalid(self, service, sample_email_dict):
        email = dict(sample_email_dict)
        del email["symbol"]

        outcome = service.process_email(email, SCOPE)

        assert outcome.decision == IngestionDecision.INVALID
        assert outcome.errors == ["Missing required fields: symbol"]
        assert outcome.detection is None

    def test_negative_quantity_invalid(self, service, store, sample_email_dict):
        email = dict(sample_email_dict, quantity="-5")

        outcome = service.process_email(email, SCOPE)

        assert outcome.decision == IngestionDecision.INVALID
        assert "quantity must be a non-negative number" in outcome.errors
        assert store.get_stats()["identifications_total"] == 0

    @pytest.mark.parametrize("field", ["quantity", "price"])
    @pytest.mark.parametrize("value", ["NaN", "Infinity", "-inf", "sNaN"])
    def test_non_finite_amount_invalid(self, service, store, sample_email_dict, field, value):
        """Non-finite amounts are reported as invalid rather than raising."""
        email = dict(sample_email_dict, **{field: value})

        outcome = service.process_email(email, SCOPE)

        assert outcome.decision == IngestionDecision.INVALID
        assert outcome.errors == [f"{field} must be a finite number, got: {value!r}"]
        assert store.get_stats()["identifications_total"] == 0

    def test_non_finite_decimal_fails_validation(self, make_parsed):
        """Directly constructed transactions are checked as well."""
        parsed = make_parsed(quantity=Decimal("NaN"), price=Decimal("Infinity"))

        errors = parsed.validate()

        assert "quantity must be a non-negative number" in errors
        assert "price must be a non-negative number" in errors

    def test_outcome_to_dict(self, service, sample_email_dict):
        data = service.process_email(sample_email_dict, SCOPE).to_dict()

        assert data["decision"] == "ACCEPTED"
        assert data["detection"]["recommendation"] == "accept"


class TestProcessBatch:
    """Tests for concurrent batch ingestion."""

    def test_empty_batch(self, service):
        result = service.process_batch([], SCOPE)

        assert result.outcomes == []
        assert result.success

    def test_distinct_emails(self, service, sample_email_dict):
        sell = dict(sample_email_dict)
        sell.pop("raw_headers")
        sell.update(
            id="uid-2",
            symbol="MSFT",
            transactionType="sell",
            quantity="7",
            price="410.25",
            totalAmount="2871.75",
            transactionDate="2025-03-12T15:00:00Z",
            subject="Order filled: MSFT",
            rawContent="<p>Sold 7 shares of MSFT at $410.25 per share</p>",
        )
        dividend = dict(sell)
        dividend.update(
            id="uid-3",
            symbol="TSLA",
            transactionType="dividend",
            quantity="3",
            price="0.50",
            totalAmount="1.50",
            transactionDate="2025-03-20T15:00:00Z",
            subject="Dividend paid: TSLA",
            rawContent="<p>Dividend of $1.50 paid on TSLA</p>",
        )

        result = service.process_batch([sample_email_dict, sell, dividend], SCOPE)

        assert result.success
        assert [o.source_id for o in result.outcomes] == ["uid-1001", "uid-2", "uid-3"]
        assert result.count(IngestionDecision.ACCEPTED) == 3
        assert result.to_dict()["accepted"] == 3

    def test_invalid_email_does_not_fail_batch(self, service, sample_email_dict):
        result = service.process_batch([sample_email_dict, {"subject": "hello"}], SCOPE)

        assert result.success
        assert result.count(IngestionDecision.ACCEPTED) == 1
        assert result.count(IngestionDecision.INVALID) == 1

    def test_timeout_abandons_unfinished_emails(self, temp_db, queue, make_detection, sample_email_dict):
        release = threading.Event()

        def blocking_detect(*args, **kwargs):
            release.wait(5)
            return make_detection(0.0)

        detector = MagicMock()
        detector.detect.side_effect = blocking_detect
        config = Config(
            state_db_path=temp_db,
            ingestion=IngestionConfig(max_workers=1, batch_timeout_seconds=0.05),
        )
        service = IngestionService(detector, queue, config)

        try:
            result = service.process_batch([sample_email_dict, sample_email_dict], SCOPE)
        finally:
            release.set()

        assert result.timed_out
        assert not result.success
        assert result.outcomes == []
        assert result.errors == [
            "Email 0: abandoned after batch timeout",
            "Email 1: abandoned after batch timeout",
        ]

    def test_worker_failure_reported(self, config, make_detection, sample_email_dict):
        detector = MagicMock()
        detector.detect.return_value = make_detection(0.7)
        queue = MagicMock()
        queue.admit.side_effect = RuntimeError("queue unavailable")
        service = IngestionService(detector, queue, config)

        result = service.process_batch([sample_email_dict], SCOPE)

        assert not result.success
        assert not result.timed_out
        assert result.errors == ["Email 0: queue unavailable"]
