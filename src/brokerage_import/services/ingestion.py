"""Ingestion orchestration service.

Drives each parsed brokerage email through the pipeline:
- Validate the parsed transaction
- Run multi-level duplicate detection
- Accept: create the transaction (optional sink) and store the identification
- Review: admit to the manual review queue
- Reject: skip as a confirmed duplicate

Batches fan out over a bounded thread pool; a batch that runs past its
timeout is abandoned and the unfinished emails are reported.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from brokerage_import.schemas.detection import Recommendation
from brokerage_import.schemas.transaction import ParsedTransaction

if TYPE_CHECKING:
    from brokerage_import.config import Config
    from brokerage_import.matching.engine import DetectionResult, DuplicateDetector
    from brokerage_import.review.queue import ReviewQueue

logger = logging.getLogger(__name__)

# Creates the transaction for an accepted email and returns its ID
TransactionSink = Callable[[ParsedTransaction, str], str]


class IngestionDecision(str, Enum):
    """What happened to one email."""

    INVALID = "INVALID"  # Parsed record failed validation
    ACCEPTED = "ACCEPTED"  # Unique: transaction created
    REVIEW = "REVIEW"  # Ambiguous: queued for manual review
    REJECTED = "REJECTED"  # Confirmed duplicate: skipped


@dataclass
class IncomingEmail:
    """A parsed email as handed over by the mailbox poller."""

    parsed: ParsedTransaction
    raw_headers: Optional[str] = None
    text_content: Optional[str] = None
    source_id: Optional[str] = None  # e.g. IMAP UID or file name

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IncomingEmail:
        """Create from dictionary.

        Accepts either {"transaction": {...}, "raw_headers": ...} or a flat
        transaction record.

        Raises:
            ValueError: If the transaction record is malformed.
        """
        record = data.get("transaction", data)
        return cls(
            parsed=ParsedTransaction.from_dict(record),
            raw_headers=data.get("raw_headers") or data.get("rawHeaders"),
            text_content=data.get("text_content") or data.get("textContent"),
            source_id=data.get("source_id") or data.get("id"),
        )


@dataclass
class IngestionOutcome:
    """Result of ingesting one email."""

    decision: IngestionDecision
    source_id: Optional[str] = None
    detection: Optional[DetectionResult] = None
    queue_item_id: Optional[str] = None
    transaction_id: Optional[str] = None
    record_id: Optional[int] = None
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "decision": self.decision.value,
            "source_id": self.source_id,
            "queue_item_id": self.queue_item_id,
            "transaction_id": self.transaction_id,
            "record_id": self.record_id,
            "errors": self.errors,
            "detection": self.detection.to_dict() if self.detection else None,
        }


@dataclass
class BatchResult:
    """Result of ingesting a batch of emails."""

    outcomes: list[IngestionOutcome] = field(default_factory=list)
    duration_ms: int = 0
    timed_out: bool = False
    errors: list[str] = field(default_factory=list)

    def count(self, decision: IngestionDecision) -> int:
        return sum(1 for o in self.outcomes if o.decision == decision)

    @property
    def success(self) -> bool:
        """Return True if every email was processed."""
        return not self.timed_out and not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "processed": len(self.outcomes),
            "accepted": self.count(IngestionDecision.ACCEPTED),
            "review": self.count(IngestionDecision.REVIEW),
            "rejected": self.count(IngestionDecision.REJECTED),
            "invalid": self.count(IngestionDecision.INVALID),
            "duration_ms": self.duration_ms,
            "timed_out": self.timed_out,
            "errors": self.errors,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


class IngestionService:
    """Drives parsed emails through detection and routing.

    Usage:
        service = IngestionService(detector, queue, config)
        result = service.process_batch(emails, scope="account-1")
    """

    def __init__(
        self,
        detector: DuplicateDetector,
        queue: ReviewQueue,
        config: Config,
        transaction_sink: Optional[TransactionSink] = None,
    ) -> None:
        """Initialize the ingestion service.

        Args:
            detector: Duplicate detector (its corpus receives accepted emails).
            queue: Manual review queue.
            config: Application configuration.
            transaction_sink: Creates the transaction for an accepted email
                and returns its ID. Without one, accepted emails are only
                added to the corpus.
        """
        self.detector = detector
        self.queue = queue
        self.config = config
        self.transaction_sink = transaction_sink

    def process_email(
        self,
        email: Union[IncomingEmail, dict[str, Any]],
        scope: str,
    ) -> IngestionOutcome:
        """Ingest one email.

        Args:
            email: Parsed email (or its dictionary form).
            scope: Corpus scope (account or portfolio).

        Returns:
            IngestionOutcome describing the routing decision.
        """
        if not isinstance(email, IncomingEmail):
            try:
                email = IncomingEmail.from_dict(email)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning("Rejected malformed email record: %s", e)
                return IngestionOutcome(decision=IngestionDecision.INVALID, errors=[str(e)])

        outcome = IngestionOutcome(decision=IngestionDecision.INVALID, source_id=email.source_id)

        validation_errors = email.parsed.validate()
        if validation_errors:
            logger.warning(
                "Invalid parsed transaction %s: %s",
                email.source_id or email.parsed.subject,
                "; ".join(validation_errors),
            )
            outcome.errors = validation_errors
            return outcome

        identification = self.detector.extractor.extract(
            subject=email.parsed.subject,
            from_email=email.parsed.from_email,
            html_content=email.parsed.raw_content,
            text_content=email.text_content,
            raw_headers=email.raw_headers,
        )
        detection = self.detector.detect(email.parsed, scope, identification=identification)
        outcome.detection = detection

        if detection.recommendation == Recommendation.REJECT:
            outcome.decision = IngestionDecision.REJECTED
            logger.info("Skipped duplicate %s: %s", email.source_id or "email", detection.summary)

        elif detection.recommendation == Recommendation.REVIEW:
            item = self.queue.admit(email.parsed, identification, detection, scope)
            outcome.decision = IngestionDecision.REVIEW
            outcome.queue_item_id = item.id

        else:
            if self.transaction_sink is not None:
                outcome.transaction_id = self.transaction_sink(email.parsed, scope)
            outcome.record_id = self.detector.persist(
                identification, email.parsed, scope, transaction_id=outcome.transaction_id
            )
            outcome.decision = IngestionDecision.ACCEPTED
            logger.info(
                "Accepted %s %s %s (transaction=%s)",
                email.parsed.transaction_type.value,
                email.parsed.quantity,
                email.parsed.symbol,
                outcome.transaction_id,
            )

        return outcome

    def process_batch(
        self,
        emails: list[Union[IncomingEmail, dict[str, Any]]],
        scope: str,
    ) -> BatchResult:
        """Ingest a batch of emails with bounded concurrency.

        Outcomes are returned in input order. Emails still running when the
        batch timeout expires are abandoned and reported in errors.

        Args:
            emails: Parsed emails.
            scope: Corpus scope shared by the batch.

        Returns:
            BatchResult with per-email outcomes.
        """
        start_time = time.time()
        result = BatchResult()
        if not emails:
            return result

        settings = self.config.ingestion
        executor = ThreadPoolExecutor(
            max_workers=settings.max_workers, thread_name_prefix="ingest"
        )
        try:
            futures = [executor.submit(self.process_email, email, scope) for email in emails]
            wait(futures, timeout=settings.batch_timeout_seconds)

            for index, future in enumerate(futures):
                if not future.done():
                    future.cancel()
                    result.timed_out = True
                    result.errors.append(f"Email {index}: abandoned after batch timeout")
                    continue
                error = future.exception()
                if error is not None:
                    logger.error("Email %d failed: %s", index, error)
                    result.errors.append(f"Email {index}: {error}")
                    continue
                result.outcomes.append(future.result())
        finally:
            executor.shutdown(wait=not result.timed_out, cancel_futures=True)

        result.duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "Batch of %d processed in %dms: %d accepted, %d review, %d rejected, %d invalid",
            len(emails),
            result.duration_ms,
            result.count(IngestionDecision.ACCEPTED),
            result.count(IngestionDecision.REVIEW),
            result.count(IngestionDecision.REJECTED),
            result.count(IngestionDecision.INVALID),
        )
        if result.timed_out:
            logger.warning("Batch timed out after %.0fs", settings.batch_timeout_seconds)
        return result
