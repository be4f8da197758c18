"""Duplicate detection engine for brokerage trade confirmation emails.

Runs three independent detection levels against a bounded corpus of
previously processed emails and persisted transactions, then aggregates the
evidence into one confidence score and a recommendation:

- Level 1 (email identity): Message-ID or email hash equality
- Level 2 (order identity): Order ID / confirmation number overlap
- Level 3 (transaction fingerprint): Symbol, kind, amounts and timing
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

from ..confidence.scorer import ConfidenceScorer, DetectionThresholds
from ..extractors.identification import IdentificationExtractor, ValidationReport, overlap_ratio
from ..schemas.detection import (
    EMAIL_IDENTITY,
    ORDER_IDENTITY,
    TRANSACTION_FINGERPRINT,
    DetectionLevel,
    Recommendation,
    RiskLevel,
)
from ..schemas.identification import Identification, StoredEmailRecord
from ..schemas.transaction import ParsedTransaction, PriorTransaction
from .time_window import TimeWindowAnalysis, analyze_time_windows, same_amount

if TYPE_CHECKING:
    from ..config import Config
    from ..state_store.base import CorpusProvider

logger = logging.getLogger(__name__)

# Processing slower than this is flagged by validate_result
SLOW_DETECTION_MS = 5000


@dataclass
class DuplicateMatch:
    """Evidence from one detection level against one corpus entry."""

    level: DetectionLevel
    confidence: float
    matched_fields: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    existing_identification: Optional[Identification] = None
    existing_transaction: Optional[PriorTransaction] = None

    @property
    def weighted_confidence(self) -> float:
        """Get the weighted confidence for this match."""
        return self.confidence * self.level.weight

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "level": self.level.level,
            "level_name": self.level.name,
            "weight": self.level.weight,
            "confidence": self.confidence,
            "matched_fields": self.matched_fields,
            "reasons": self.reasons,
            "existing_identification": (
                self.existing_identification.to_dict() if self.existing_identification else None
            ),
            "existing_transaction": (
                self.existing_transaction.to_dict() if self.existing_transaction else None
            ),
        }


@dataclass
class DetectionResult:
    """Aggregated duplicate detection verdict for one email."""

    overall_confidence: float
    risk_level: RiskLevel
    recommendation: Recommendation
    summary: str
    processing_time_ms: float
    processed_at: str  # ISO timestamp
    matches: list[DuplicateMatch] = field(default_factory=list)
    identification: Optional[Identification] = None
    time_window: Optional[TimeWindowAnalysis] = None

    @property
    def is_duplicate(self) -> bool:
        """True when the confidence reached the review threshold."""
        return self.recommendation != Recommendation.ACCEPT

    def matches_at(self, level: DetectionLevel) -> list[DuplicateMatch]:
        return [m for m in self.matches if m.level.level == level.level]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "overall_confidence": self.overall_confidence,
            "risk_level": self.risk_level.value,
            "recommendation": self.recommendation.value,
            "is_duplicate": self.is_duplicate,
            "summary": self.summary,
            "processing_time_ms": self.processing_time_ms,
            "processed_at": self.processed_at,
            "matches": [m.to_dict() for m in self.matches],
            "identification": self.identification.to_dict() if self.identification else None,
            "time_window": self.time_window.to_dict() if self.time_window else None,
        }


def validate_result(
    result: DetectionResult,
    thresholds: Optional[DetectionThresholds] = None,
) -> ValidationReport:
    """Check a detection result for internal consistency."""
    thresholds = thresholds or DetectionThresholds()
    report = ValidationReport()

    if not 0.0 <= result.overall_confidence <= 1.0:
        report.errors.append("Overall confidence must be between 0 and 1")
    if not isinstance(result.risk_level, RiskLevel):
        report.errors.append(f"Invalid risk level: {result.risk_level!r}")
    if not isinstance(result.recommendation, Recommendation):
        report.errors.append(f"Invalid recommendation: {result.recommendation!r}")

    if (
        result.overall_confidence >= thresholds.reject_threshold
        and result.recommendation != Recommendation.REJECT
    ):
        report.warnings.append("High confidence duplicate should be rejected")
    if result.is_duplicate and not result.matches:
        report.warnings.append("Duplicate detected but no matches found")
    if result.processing_time_ms > SLOW_DETECTION_MS:
        report.warnings.append("Duplicate detection took longer than 5 seconds")

    return report


Comparable = Union[ParsedTransaction, PriorTransaction]


def _kind(value: Union[Enum, str]) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    return str(value).strip().lower().replace("-", "_")


class DuplicateDetector:
    """Multi-level duplicate detector.

    Stateless apart from its collaborators: every call to detect() reads the
    corpus and returns a fresh DetectionResult, so one detector can be shared
    between worker threads.

    Detection never raises. Any failure (corpus lookup included) produces the
    safe default: confidence 0, risk low, recommendation accept, with the
    reason in the summary.
    """

    # Level 1 confidences
    MESSAGE_ID_CONFIDENCE = 0.95
    EMAIL_HASH_CONFIDENCE = 0.90

    # Level 2 contributions
    ORDER_OVERLAP_WEIGHT = 0.7
    CONFIRMATION_OVERLAP_WEIGHT = 0.6
    TRANSACTION_HASH_BONUS = 0.5
    ORDER_MATCH_MIN = 0.4

    # Level 3 contributions
    SYMBOL_SCORE = 0.3
    KIND_SCORE = 0.2
    QUANTITY_SCORE = 0.25
    PRICE_SCORE = 0.25
    SAME_MINUTE_BONUS = 0.3
    SAME_HOUR_BONUS = 0.2
    SAME_DAY_BONUS = 0.1
    FINGERPRINT_MATCH_MIN = 0.3

    def __init__(
        self,
        corpus: CorpusProvider,
        config: Config,
        extractor: Optional[IdentificationExtractor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize the detector.

        Args:
            corpus: Source of prior identifications and transactions.
            config: Application configuration.
            extractor: Identification extractor (created when omitted).
            clock: Returns the current time (defaults to UTC now).
        """
        self.corpus = corpus
        self.config = config
        self.scorer = ConfidenceScorer(DetectionThresholds.from_config(config.detection))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.extractor = extractor or IdentificationExtractor(clock=self._clock)

    def detect(
        self,
        parsed: ParsedTransaction,
        scope: str,
        raw_headers: Optional[str] = None,
        text_content: Optional[str] = None,
        identification: Optional[Identification] = None,
    ) -> DetectionResult:
        """Run all detection levels for one parsed email.

        Args:
            parsed: Parsed transaction from the email.
            scope: Corpus scope (account or portfolio) to compare against.
            raw_headers: Raw email headers, used for Message-ID extraction.
            text_content: Plain-text body, if the email has one.
            identification: Precomputed identification (extracted when omitted).

        Returns:
            DetectionResult. Never raises.
        """
        started = time.perf_counter()

        try:
            if identification is None:
                identification = self.extractor.extract(
                    subject=parsed.subject,
                    from_email=parsed.from_email,
                    html_content=parsed.raw_content,
                    text_content=text_content,
                    raw_headers=raw_headers,
                )

            since = self._clock() - timedelta(days=self.config.detection.corpus_lookback_days)
            limit = self.config.detection.corpus_max_records
            records = self.corpus.find_prior_identifications(scope, since=since, limit=limit)
            priors = self.corpus.find_prior_transactions(scope, since=since, limit=limit)

            matches: list[DuplicateMatch] = []
            matches.extend(self._detect_email_identity(identification, records))
            matches.extend(self._detect_order_identity(identification, records))
            fingerprint_matches, counterpart = self._detect_transaction_fingerprint(
                parsed, records, priors
            )
            matches.extend(fingerprint_matches)

            time_window = None
            if counterpart is not None:
                time_window = analyze_time_windows(parsed, counterpart, self.config.time_windows)

            result = self._build_result(matches, identification, started, time_window)
            logger.info(
                "Detection for %s in %s: %s (%.1f%%, %d matches)",
                identification.email_hash,
                scope,
                result.recommendation.value,
                result.overall_confidence * 100,
                len(result.matches),
            )
            return result

        except Exception as e:
            logger.error("Duplicate detection failed for scope %s: %s", scope, e)
            return DetectionResult(
                overall_confidence=0.0,
                risk_level=RiskLevel.LOW,
                recommendation=Recommendation.ACCEPT,
                summary=f"Error during duplicate detection: {e}",
                processing_time_ms=self._elapsed_ms(started),
                processed_at=self._clock().isoformat(),
                identification=identification,
            )

    def persist(
        self,
        identification: Identification,
        parsed: ParsedTransaction,
        scope: str,
        transaction_id: Optional[str] = None,
    ) -> int:
        """Store an identification so later emails are compared against it.

        Returns:
            Corpus record ID.
        """
        record_id = self.corpus.persist_identification(
            identification, parsed, scope, transaction_id=transaction_id
        )
        logger.debug("Persisted identification %s as record %d", identification.email_hash, record_id)
        return record_id

    def validate_result(self, result: DetectionResult) -> ValidationReport:
        return validate_result(result, self.scorer.thresholds)

    # Level 1

    def _detect_email_identity(
        self,
        identification: Identification,
        records: list[StoredEmailRecord],
    ) -> list[DuplicateMatch]:
        matches = []
        for record in records:
            existing = record.identification
            if identification.message_id and identification.message_id == existing.message_id:
                matches.append(
                    DuplicateMatch(
                        level=EMAIL_IDENTITY,
                        confidence=self.MESSAGE_ID_CONFIDENCE,
                        matched_fields=["message_id"],
                        reasons=[f"Identical Message-ID: {identification.message_id}"],
                        existing_identification=existing,
                    )
                )
            elif identification.email_hash == existing.email_hash:
                matches.append(
                    DuplicateMatch(
                        level=EMAIL_IDENTITY,
                        confidence=self.EMAIL_HASH_CONFIDENCE,
                        matched_fields=["email_hash"],
                        reasons=["Identical email content hash"],
                        existing_identification=existing,
                    )
                )
        return matches

    # Level 2

    def _detect_order_identity(
        self,
        identification: Identification,
        records: list[StoredEmailRecord],
    ) -> list[DuplicateMatch]:
        matches = []
        for record in records:
            existing = record.identification
            confidence = 0.0
            matched_fields = []
            reasons = []

            order_ratio = overlap_ratio(identification.order_ids, existing.order_ids)
            if order_ratio > 0:
                shared = sorted(set(identification.order_ids) & set(existing.order_ids))
                confidence += self.ORDER_OVERLAP_WEIGHT * order_ratio
                matched_fields.append("order_ids")
                reasons.append(f"Matching order IDs: {', '.join(shared)}")

            confirmation_ratio = overlap_ratio(
                identification.confirmation_numbers, existing.confirmation_numbers
            )
            if confirmation_ratio > 0:
                shared = sorted(
                    set(identification.confirmation_numbers) & set(existing.confirmation_numbers)
                )
                confidence += self.CONFIRMATION_OVERLAP_WEIGHT * confirmation_ratio
                matched_fields.append("confirmation_numbers")
                reasons.append(f"Matching confirmation numbers: {', '.join(shared)}")

            if identification.transaction_hash == existing.transaction_hash:
                confidence += self.TRANSACTION_HASH_BONUS
                matched_fields.append("transaction_hash")
                reasons.append("Identical transaction fingerprint")

            if confidence >= self.ORDER_MATCH_MIN:
                matches.append(
                    DuplicateMatch(
                        level=ORDER_IDENTITY,
                        confidence=min(confidence, 1.0),
                        matched_fields=matched_fields,
                        reasons=reasons,
                        existing_identification=existing,
                    )
                )
        return matches

    # Level 3

    def _detect_transaction_fingerprint(
        self,
        parsed: ParsedTransaction,
        records: list[StoredEmailRecord],
        priors: list[PriorTransaction],
    ) -> tuple[list[DuplicateMatch], Optional[Comparable]]:
        """Compare transaction details against prior emails and transactions.

        Returns:
            Matches, plus the counterpart of the strongest match (for
            time window analysis).
        """
        matches = []
        best: Optional[tuple[float, Comparable]] = None

        candidates: list[tuple[Comparable, Optional[Identification], Optional[PriorTransaction]]]
        candidates = [(r.transaction, r.identification, None) for r in records]
        candidates.extend((prior, None, prior) for prior in priors)

        for other, existing_identification, existing_transaction in candidates:
            confidence, matched_fields, reasons = self._compare_transactions(parsed, other)
            if confidence < self.FINGERPRINT_MATCH_MIN:
                continue
            matches.append(
                DuplicateMatch(
                    level=TRANSACTION_FINGERPRINT,
                    confidence=confidence,
                    matched_fields=matched_fields,
                    reasons=reasons,
                    existing_identification=existing_identification,
                    existing_transaction=existing_transaction,
                )
            )
            if best is None or confidence > best[0]:
                best = (confidence, other)

        return matches, best[1] if best else None

    def _compare_transactions(
        self,
        parsed: ParsedTransaction,
        other: Comparable,
    ) -> tuple[float, list[str], list[str]]:
        confidence = 0.0
        matched_fields = []
        reasons = []

        if parsed.symbol.upper() == other.symbol.upper():
            confidence += self.SYMBOL_SCORE
            matched_fields.append("symbol")
            reasons.append(f"Same symbol: {parsed.symbol}")

        if _kind(parsed.transaction_type) == _kind(other.transaction_type):
            confidence += self.KIND_SCORE
            matched_fields.append("transaction_type")
            reasons.append(f"Same transaction type: {_kind(parsed.transaction_type)}")

        if same_amount(parsed.quantity, other.quantity):
            confidence += self.QUANTITY_SCORE
            matched_fields.append("quantity")
            reasons.append(f"Same quantity: {parsed.quantity}")

        if same_amount(parsed.price, other.price):
            confidence += self.PRICE_SCORE
            matched_fields.append("price")
            reasons.append(f"Same price: {parsed.price}")

        # Only the tightest window counts
        elapsed = abs((parsed.executed_at - other.executed_at).total_seconds())
        windows = self.config.time_windows
        if elapsed <= windows.same_minute:
            confidence += self.SAME_MINUTE_BONUS
            matched_fields.append("timing")
            reasons.append("Same minute execution")
        elif elapsed <= windows.same_hour:
            confidence += self.SAME_HOUR_BONUS
            matched_fields.append("timing")
            reasons.append("Same hour execution")
        elif elapsed <= windows.same_day:
            confidence += self.SAME_DAY_BONUS
            matched_fields.append("timing")
            reasons.append("Same day execution")

        return min(confidence, 1.0), matched_fields, reasons

    # Aggregation

    def _build_result(
        self,
        matches: list[DuplicateMatch],
        identification: Identification,
        started: float,
        time_window: Optional[TimeWindowAnalysis],
    ) -> DetectionResult:
        confidence = self.scorer.aggregate((m.confidence, m.level.weight) for m in matches)
        confidence = min(max(confidence, 0.0), 1.0)
        recommendation = self.scorer.recommendation(confidence)

        return DetectionResult(
            overall_confidence=confidence,
            risk_level=self.scorer.risk_level(confidence),
            recommendation=recommendation,
            summary=self._summarize(matches, confidence, recommendation),
            processing_time_ms=self._elapsed_ms(started),
            processed_at=self._clock().isoformat(),
            matches=matches,
            identification=identification,
            time_window=time_window,
        )

    @staticmethod
    def _summarize(
        matches: list[DuplicateMatch],
        confidence: float,
        recommendation: Recommendation,
    ) -> str:
        if not matches:
            return "No duplicate indicators found. Email appears to be unique."

        parts = [f"Duplicate detection confidence: {confidence * 100:.1f}%."]
        labels = (
            (EMAIL_IDENTITY, "email identity"),
            (ORDER_IDENTITY, "order identity"),
            (TRANSACTION_FINGERPRINT, "transaction fingerprint"),
        )
        for level, label in labels:
            count = sum(1 for m in matches if m.level.level == level.level)
            if count:
                parts.append(f"Found {count} {label} match(es).")
        parts.append(f"Recommendation: {recommendation.value.upper()}.")
        return " ".join(parts)

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return (time.perf_counter() - started) * 1000

    def to_dict(self) -> dict[str, Any]:
        """Describe the detector's levels and thresholds."""
        thresholds = self.scorer.thresholds
        return {
            "levels": [
                {"level": lvl.level, "name": lvl.name, "weight": lvl.weight}
                for lvl in (EMAIL_IDENTITY, ORDER_IDENTITY, TRANSACTION_FINGERPRINT)
            ],
            "reject_threshold": thresholds.reject_threshold,
            "review_threshold": thresholds.review_threshold,
            "corpus_lookback_days": self.config.detection.corpus_lookback_days,
            "corpus_max_records": self.config.detection.corpus_max_records,
        }
