"""
Manual review queue for ambiguous duplicate cases.

A bounded, prioritized, in-memory store of queue items keyed by generated
ID. The queue exclusively owns item lifecycle: callers receive snapshots
and change items only through the operations below, each of which returns
a QueueOperationResult and performs no mutation on failure.

Lifecycle:
    pending -> in_review -> approved | rejected
    pending -> deferred -> pending (requeue_deferred)
    pending -> pending (escalate, escalation_level + 1)
    any -> removed (remove or capacity eviction)
"""

import logging
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional, Union

from ..config import ReviewQueueConfig
from ..confidence.scorer import ConfidenceScorer
from ..matching.engine import DetectionResult
from ..matching.time_window import TimeWindowAnalysis
from ..schemas.identification import Identification
from ..schemas.review import ReviewAction, ReviewDecision, ReviewPriority, ReviewStatus
from ..schemas.transaction import ParsedTransaction

logger = logging.getLogger(__name__)

# Reserved reviewer identity for automatic actions (escalation, expiry, eviction)
SYSTEM_REVIEWER = "system"

EXPIRY_NOTE = "Item expired without manual review"
EVICTION_NOTE = "Auto-approved to make room in queue"


@dataclass(frozen=True)
class PotentialDuplicate:
    """One piece of detection evidence shown to the reviewer."""

    similarity: float
    reason: str
    email_hash: Optional[str] = None
    transaction_id: Optional[str] = None
    level: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "level": self.level,
            "similarity": self.similarity,
            "reason": self.reason,
            "email_hash": self.email_hash,
            "transaction_id": self.transaction_id,
        }


@dataclass
class ReviewQueueItem:
    """An ambiguous email awaiting a human decision."""

    id: str
    parsed: ParsedTransaction
    identification: Identification
    detection: DetectionResult
    scope: str
    queued_at: datetime
    priority: ReviewPriority
    status: ReviewStatus
    confidence: float
    risk_score: float
    time_window: Optional[TimeWindowAnalysis] = None
    potential_duplicates: list[PotentialDuplicate] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    escalation_level: int = 0
    last_escalated_at: Optional[datetime] = None
    automatic_expiry_at: Optional[datetime] = None

    # Review metadata (set by review actions)
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    review_reason: Optional[str] = None
    review_decision: Optional[ReviewDecision] = None
    processing_time_ms: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""

        def iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "id": self.id,
            "scope": self.scope,
            "status": self.status.value,
            "priority": self.priority.value,
            "confidence": self.confidence,
            "risk_score": self.risk_score,
            "escalation_level": self.escalation_level,
            "tags": list(self.tags),
            "queued_at": iso(self.queued_at),
            "automatic_expiry_at": iso(self.automatic_expiry_at),
            "reviewed_by": self.reviewed_by,
            "reviewed_at": iso(self.reviewed_at),
            "review_notes": self.review_notes,
            "review_decision": self.review_decision.value if self.review_decision else None,
            "processing_time_ms": self.processing_time_ms,
            "transaction": self.parsed.to_dict(),
            "identification": self.identification.to_dict(),
            "detection": self.detection.to_dict(),
            "time_window": self.time_window.to_dict() if self.time_window else None,
            "potential_duplicates": [d.to_dict() for d in self.potential_duplicates],
        }


@dataclass
class QueueOperationResult:
    """Typed outcome of a queue mutation."""

    success: bool
    item: Optional[ReviewQueueItem] = None
    error: Optional[str] = None


@dataclass
class ReviewQueueFilter:
    """Query filter; every set criterion must match."""

    status: Union[ReviewStatus, list[ReviewStatus], None] = None
    priority: Union[ReviewPriority, list[ReviewPriority], None] = None
    scope: Optional[str] = None
    symbol: Optional[str] = None
    queued_from: Optional[datetime] = None
    queued_to: Optional[datetime] = None
    escalation_level: Optional[int] = None
    tags: list[str] = field(default_factory=list)
    reviewed_by: Optional[str] = None
    min_confidence: Optional[float] = None
    max_confidence: Optional[float] = None
    min_risk_score: Optional[float] = None
    max_risk_score: Optional[float] = None

    def matches(self, item: ReviewQueueItem) -> bool:
        if self.status is not None and item.status not in _as_list(self.status):
            return False
        if self.priority is not None and item.priority not in _as_list(self.priority):
            return False
        if self.scope is not None and item.scope != self.scope:
            return False
        if self.symbol is not None and item.parsed.symbol != self.symbol:
            return False
        if self.queued_from is not None and item.queued_at < self.queued_from:
            return False
        if self.queued_to is not None and item.queued_at > self.queued_to:
            return False
        if self.escalation_level is not None and item.escalation_level != self.escalation_level:
            return False
        if self.tags and not all(tag in item.tags for tag in self.tags):
            return False
        if self.reviewed_by is not None and item.reviewed_by != self.reviewed_by:
            return False
        if self.min_confidence is not None and item.confidence < self.min_confidence:
            return False
        if self.max_confidence is not None and item.confidence > self.max_confidence:
            return False
        if self.min_risk_score is not None and item.risk_score < self.min_risk_score:
            return False
        if self.max_risk_score is not None and item.risk_score > self.max_risk_score:
            return False
        return True


@dataclass
class ReviewQueueStats:
    """Point-in-time queue statistics."""

    total: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
    by_escalation_level: dict[int, int]
    average_review_time_ms: float
    health_score: int
    processed_today: int
    added_today: int
    average_processing_time_today_ms: float
    oldest_pending_at: Optional[datetime] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "total": self.total,
            "by_status": dict(self.by_status),
            "by_priority": dict(self.by_priority),
            "by_escalation_level": {str(k): v for k, v in self.by_escalation_level.items()},
            "average_review_time_ms": self.average_review_time_ms,
            "oldest_pending_at": (
                self.oldest_pending_at.isoformat() if self.oldest_pending_at else None
            ),
            "health_score": self.health_score,
            "throughput": {
                "processed_today": self.processed_today,
                "added_today": self.added_today,
                "average_processing_time_ms": self.average_processing_time_today_ms,
            },
        }


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else [value]


def _snapshot(item: ReviewQueueItem) -> ReviewQueueItem:
    """Copy an item so callers never hold the queue's own record."""
    return replace(
        item,
        tags=list(item.tags),
        potential_duplicates=list(item.potential_duplicates),
    )


class ReviewQueue:
    """
    Bounded, prioritized manual review queue.

    Thread-safe: one re-entrant lock guards the item table, so eviction and
    statistics always observe a consistent snapshot.
    """

    # Action -> (resulting status, recorded decision)
    TERMINAL_ACTIONS = {
        ReviewAction.APPROVE: (ReviewStatus.APPROVED, ReviewDecision.ACCEPT),
        ReviewAction.REJECT: (ReviewStatus.REJECTED, ReviewDecision.REJECT),
        ReviewAction.MERGE: (ReviewStatus.APPROVED, ReviewDecision.MERGE),
        ReviewAction.SPLIT: (ReviewStatus.APPROVED, ReviewDecision.SPLIT),
    }

    # Fields accepted by list_items(sort_by=...)
    SORTABLE_FIELDS = (
        "priority",
        "queued_at",
        "confidence",
        "risk_score",
        "escalation_level",
        "status",
        "scope",
        "reviewed_at",
        "automatic_expiry_at",
        "id",
    )

    def __init__(
        self,
        config: Optional[ReviewQueueConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
        scorer: Optional[ConfidenceScorer] = None,
    ):
        """
        Initialize the queue.

        Args:
            config: Queue settings (capacity, escalation, expiry)
            clock: Returns the current time (defaults to UTC now)
            scorer: Priority and risk scoring (default thresholds if omitted)
        """
        self.config = config or ReviewQueueConfig()
        self.scorer = scorer or ConfidenceScorer()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._items: dict[str, ReviewQueueItem] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    # Admission

    def admit(
        self,
        parsed: ParsedTransaction,
        identification: Identification,
        detection: DetectionResult,
        scope: str,
        time_window: Optional[TimeWindowAnalysis] = None,
    ) -> ReviewQueueItem:
        """
        Add an ambiguous email to the queue.

        Never fails for capacity: when full, the oldest pending low-priority
        item is auto-approved and evicted first.

        Args:
            parsed: Parsed transaction of the email
            identification: Its identification
            detection: Detection result that routed it here
            scope: Corpus scope (account or portfolio)
            time_window: Timing analysis (defaults to the detection's)

        Returns:
            Snapshot of the admitted item
        """
        if time_window is None:
            time_window = detection.time_window
        time_risk = time_window.duplicate_risk if time_window else None
        confidence = detection.overall_confidence

        with self._lock:
            now = self._clock()
            item = ReviewQueueItem(
                id=f"queue-{uuid.uuid4().hex}",
                parsed=parsed,
                identification=identification,
                detection=detection,
                scope=scope,
                queued_at=now,
                priority=self.scorer.calculate_priority(
                    confidence, detection.risk_level, time_risk
                ),
                status=ReviewStatus.PENDING,
                confidence=confidence,
                risk_score=self.scorer.calculate_risk_score(confidence, time_risk),
                time_window=time_window,
                potential_duplicates=[
                    PotentialDuplicate(
                        level=match.level.level,
                        similarity=match.confidence,
                        reason="; ".join(match.reasons),
                        email_hash=(
                            match.existing_identification.email_hash
                            if match.existing_identification
                            else None
                        ),
                        transaction_id=(
                            match.existing_transaction.id if match.existing_transaction else None
                        ),
                    )
                    for match in detection.matches
                ],
                tags=self._generate_tags(parsed, detection, time_window),
            )
            if self.config.auto_expiry_enabled:
                item.automatic_expiry_at = now + timedelta(hours=self.config.auto_expiry_hours)

            while self._items and len(self._items) >= self.config.max_queue_size:
                self._make_room()

            self._items[item.id] = item
            logger.info(
                "Queued %s for review (priority=%s, risk=%.2f, scope=%s)",
                item.id,
                item.priority.value,
                item.risk_score,
                scope,
            )

            self.check_auto_escalation(item.id)
            return _snapshot(item)

    # Review lifecycle

    def claim(self, item_id: str, reviewer_id: str) -> QueueOperationResult:
        """Move a pending item to in_review for a reviewer."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return QueueOperationResult(False, error="Queue item not found")
            if item.status != ReviewStatus.PENDING:
                return QueueOperationResult(
                    False, error=f"Item is not pending (status: {item.status.value})"
                )
            if not reviewer_id:
                return QueueOperationResult(False, error="Reviewer ID is required")
            if reviewer_id == SYSTEM_REVIEWER:
                return QueueOperationResult(
                    False, error=f"Reviewer ID '{SYSTEM_REVIEWER}' is reserved"
                )

            item.status = ReviewStatus.IN_REVIEW
            item.reviewed_by = reviewer_id
            logger.info("Item %s claimed for review by %s", item_id, reviewer_id)
            return QueueOperationResult(True, item=_snapshot(item))

    def release(self, item_id: str) -> QueueOperationResult:
        """Return an in_review item to pending and clear its reviewer."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None:
                return QueueOperationResult(False, error="Queue item not found")
            if item.status != ReviewStatus.IN_REVIEW:
                return QueueOperationResult(
                    False, error=f"Item is not in review (status: {item.status.value})"
                )

            item.status = ReviewStatus.PENDING
            item.reviewed_by = None
            logger.info("Item %s released back to pending", item_id)
            return QueueOperationResult(True, item=_snapshot(item))

    def review(
        self,
        item_id: str,
        action: Union[ReviewAction, str],
        reviewer_id: str,
        notes: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> QueueOperationResult:
        """
        Apply a reviewer's action to a pending or in_review item.

        Args:
            item_id: Queue item ID
            action: approve, reject, escalate, defer, merge or split
            reviewer_id: Reviewer identity (SYSTEM_REVIEWER is reserved)
            notes: Free-text review notes
            reason: Short reason for the action

        Returns:
            QueueOperationResult with the updated item snapshot
        """
        try:
            action = ReviewAction(action)
        except ValueError:
            return QueueOperationResult(False, error=f"Unknown review action: {action}")

        if not reviewer_id:
            return QueueOperationResult(False, error="Reviewer ID is required")
        if reviewer_id == SYSTEM_REVIEWER:
            return QueueOperationResult(
                False, error=f"Reviewer ID '{SYSTEM_REVIEWER}' is reserved"
            )

        with self._lock:
            return self._review(item_id, action, reviewer_id, notes, reason)

    def requeue_deferred(self) -> list[ReviewQueueItem]:
        """
        Return deferred items whose deferral expired to pending.

        Returns:
            Snapshots of the requeued items
        """
        requeued = []
        with self._lock:
            now = self._clock()
            for item in self._items.values():
                if item.status != ReviewStatus.DEFERRED:
                    continue
                if item.automatic_expiry_at is not None and item.automatic_expiry_at > now:
                    continue
                item.status = ReviewStatus.PENDING
                item.automatic_expiry_at = (
                    now + timedelta(hours=self.config.auto_expiry_hours)
                    if self.config.auto_expiry_enabled
                    else None
                )
                requeued.append(_snapshot(item))

        if requeued:
            logger.info("Requeued %d deferred items", len(requeued))
        return requeued

    def remove(self, item_id: str, reason: str) -> QueueOperationResult:
        """Delete an item from the queue."""
        with self._lock:
            item = self._items.pop(item_id, None)
            if item is None:
                return QueueOperationResult(False, error="Queue item not found")
            logger.info("Removed item %s from queue: %s", item_id, reason)
            return QueueOperationResult(True, item=_snapshot(item))

    def get(self, item_id: str) -> Optional[ReviewQueueItem]:
        with self._lock:
            item = self._items.get(item_id)
            return _snapshot(item) if item else None

    # Automatic actions

    def check_auto_escalation(self, item_id: str) -> bool:
        """
        Escalate a pending item that waited too long or carries high risk.

        An item escalated before only escalates again once another full
        escalation period has passed since its last escalation.

        Returns:
            True if the item was escalated
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status != ReviewStatus.PENDING:
                return False

            now = self._clock()
            threshold = timedelta(hours=self.config.escalation_time_hours)
            if item.last_escalated_at is not None and now - item.last_escalated_at < threshold:
                return False

            waited_too_long = now - item.queued_at >= threshold
            high_risk = item.risk_score >= self.config.escalation_risk_score
            if not (waited_too_long or high_risk):
                return False

            result = self._review(
                item_id,
                ReviewAction.ESCALATE,
                SYSTEM_REVIEWER,
                notes=None,
                reason="Automatic escalation due to time in queue or high risk score",
            )
            return result.success

    def check_all_escalations(self) -> int:
        """
        Run the escalation check over every pending item.

        Returns:
            Number of items escalated
        """
        with self._lock:
            pending = [i.id for i in self._items.values() if i.status == ReviewStatus.PENDING]
            escalated = sum(1 for item_id in pending if self.check_auto_escalation(item_id))

        if escalated:
            logger.info("Auto-escalated %d queue items", escalated)
        return escalated

    def process_expired_items(self) -> int:
        """
        Auto-approve pending items whose expiry passed.

        Returns:
            Number of items approved
        """
        with self._lock:
            now = self._clock()
            expired = [
                item.id
                for item in self._items.values()
                if item.status == ReviewStatus.PENDING
                and item.automatic_expiry_at is not None
                and item.automatic_expiry_at <= now
            ]
            for item_id in expired:
                self._review(
                    item_id,
                    ReviewAction.APPROVE,
                    SYSTEM_REVIEWER,
                    notes=EXPIRY_NOTE,
                    reason="Automatic approval due to expiry",
                )

        if expired:
            logger.info("Processed %d expired queue items", len(expired))
        return len(expired)

    # Queries

    def list_items(
        self,
        filter: Optional[ReviewQueueFilter] = None,
        sort_by: Optional[str] = None,
        sort_order: str = "desc",
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> list[ReviewQueueItem]:
        """
        Query queue items.

        Default order is priority descending, then oldest first.

        Raises:
            ValueError: If sort_by or sort_order is not supported
        """
        if sort_by is not None and sort_by not in self.SORTABLE_FIELDS:
            raise ValueError(f"Cannot sort by {sort_by!r}")
        if sort_order not in ("asc", "desc"):
            raise ValueError(f"sort_order must be 'asc' or 'desc', got {sort_order!r}")

        with self._lock:
            items = [i for i in self._items.values() if filter is None or filter.matches(i)]

            if sort_by is None:
                items.sort(key=lambda i: (-i.priority.rank, i.queued_at))
            else:
                present = [i for i in items if getattr(i, sort_by) is not None]
                missing = [i for i in items if getattr(i, sort_by) is None]
                present.sort(key=lambda i: _sort_value(i, sort_by), reverse=sort_order == "desc")
                items = present + missing

            if offset:
                items = items[offset:]
            if limit is not None:
                items = items[:limit]
            return [_snapshot(i) for i in items]

    def stats(self) -> ReviewQueueStats:
        """Compute queue statistics from a consistent snapshot."""
        with self._lock:
            items = [_snapshot(i) for i in self._items.values()]
            now = self._clock()

        today_start = now.replace(hour=0, minute=0, second=0, microsecond=0)

        by_status = {status.value: 0 for status in ReviewStatus}
        by_priority = {priority.value: 0 for priority in ReviewPriority}
        by_escalation: dict[int, int] = {}
        for item in items:
            by_status[item.status.value] += 1
            by_priority[item.priority.value] += 1
            by_escalation[item.escalation_level] = by_escalation.get(item.escalation_level, 0) + 1

        timed = [i.processing_time_ms for i in items if i.processing_time_ms is not None]
        pending = [i for i in items if i.status == ReviewStatus.PENDING]
        processed_today = [
            i
            for i in items
            if i.status.is_terminal and i.reviewed_at is not None and i.reviewed_at >= today_start
        ]
        timed_today = [
            i.processing_time_ms for i in processed_today if i.processing_time_ms is not None
        ]

        return ReviewQueueStats(
            total=len(items),
            by_status=by_status,
            by_priority=by_priority,
            by_escalation_level=dict(sorted(by_escalation.items())),
            average_review_time_ms=sum(timed) / len(timed) if timed else 0.0,
            oldest_pending_at=min((i.queued_at for i in pending), default=None),
            health_score=self._health_score(items, pending, now),
            processed_today=len(processed_today),
            added_today=sum(1 for i in items if i.queued_at >= today_start),
            average_processing_time_today_ms=(
                sum(timed_today) / len(timed_today) if timed_today else 0.0
            ),
        )

    def export_stats(self) -> dict[str, Any]:
        """Read-only statistics snapshot for dashboards."""
        exported = self.stats().to_dict()
        exported["max_queue_size"] = self.config.max_queue_size
        exported["exported_at"] = self._clock().isoformat()
        return exported

    # Internals (caller holds the lock)

    def _review(
        self,
        item_id: str,
        action: ReviewAction,
        reviewer_id: str,
        notes: Optional[str],
        reason: Optional[str],
    ) -> QueueOperationResult:
        item = self._items.get(item_id)
        if item is None:
            return QueueOperationResult(False, error="Queue item not found")
        if item.status not in (ReviewStatus.PENDING, ReviewStatus.IN_REVIEW):
            return QueueOperationResult(
                False,
                error=f"Item is not available for review (status: {item.status.value})",
            )

        self._apply(item, action, reviewer_id, notes, reason)
        logger.info("Review action %s on %s by %s", action.value, item_id, reviewer_id)
        return QueueOperationResult(True, item=_snapshot(item))

    def _apply(
        self,
        item: ReviewQueueItem,
        action: ReviewAction,
        reviewer_id: str,
        notes: Optional[str],
        reason: Optional[str],
    ) -> None:
        now = self._clock()
        processing_time = None
        if item.status == ReviewStatus.IN_REVIEW:
            processing_time = (now - item.queued_at).total_seconds() * 1000

        if action in self.TERMINAL_ACTIONS:
            item.status, item.review_decision = self.TERMINAL_ACTIONS[action]
        elif action == ReviewAction.ESCALATE:
            item.escalation_level += 1
            item.last_escalated_at = now
            item.status = ReviewStatus.PENDING
            item.tags.append(f"escalated-level-{item.escalation_level}")
        elif action == ReviewAction.DEFER:
            item.status = ReviewStatus.DEFERRED
            item.automatic_expiry_at = now + timedelta(hours=self.config.defer_hours)

        item.reviewed_by = reviewer_id
        item.reviewed_at = now
        item.review_notes = notes
        item.review_reason = reason
        item.processing_time_ms = processing_time

    def _make_room(self) -> None:
        """
        Evict one item to stay within capacity.

        Preference order:
        1. Oldest pending low-priority item (auto-approved first)
        2. Oldest already-decided item
        3. Oldest lowest-priority open item (auto-approved first)
        """
        items = list(self._items.values())

        low_pending = [
            i
            for i in items
            if i.status == ReviewStatus.PENDING and i.priority == ReviewPriority.LOW
        ]
        if low_pending:
            victim = min(low_pending, key=lambda i: i.queued_at)
            self._apply(victim, ReviewAction.APPROVE, SYSTEM_REVIEWER, EVICTION_NOTE, None)
        else:
            decided = [i for i in items if i.status.is_terminal]
            if decided:
                victim = min(decided, key=lambda i: i.queued_at)
            else:
                victim = min(items, key=lambda i: (i.priority.rank, i.queued_at))
                self._apply(victim, ReviewAction.APPROVE, SYSTEM_REVIEWER, EVICTION_NOTE, None)

        del self._items[victim.id]
        logger.warning(
            "Review queue at capacity (%d): evicted %s (status=%s, priority=%s)",
            self.config.max_queue_size,
            victim.id,
            victim.status.value,
            victim.priority.value,
        )

    def _health_score(
        self,
        items: list[ReviewQueueItem],
        pending: list[ReviewQueueItem],
        now: datetime,
    ) -> int:
        if not items:
            return 100

        score = 100.0
        score -= min(50.0, len(items) / self.config.max_queue_size * 50)

        if pending:
            stale_after = timedelta(hours=self.config.stale_item_hours)
            stale = [i for i in pending if now - i.queued_at > stale_after]
            score -= min(30.0, len(stale) / len(pending) * 30)

        escalated = [i for i in items if i.escalation_level > 0]
        score -= min(20.0, len(escalated) / len(items) * 20)

        return max(0, round(score))

    @staticmethod
    def _generate_tags(
        parsed: ParsedTransaction,
        detection: DetectionResult,
        time_window: Optional[TimeWindowAnalysis],
    ) -> list[str]:
        tags = [
            f"symbol:{parsed.symbol}",
            f"type:{parsed.transaction_type.value}",
            f"account:{parsed.account_type}",
            f"risk:{detection.risk_level.value}",
        ]
        for match in detection.matches:
            tags.append(f"level-{match.level.level}:{match.confidence * 100:.0f}%")

        if time_window is not None:
            windows = time_window.windows
            if windows.same_second:
                tags.append("same-second")
            if windows.same_minute:
                tags.append("same-minute")
            if windows.rapid_trading:
                tags.append("rapid-trading")
            if windows.partial_fill:
                tags.append("partial-fill")
            if windows.split_order:
                tags.append("split-order")

        tags.append(f"confidence:{ConfidenceScorer.confidence_label(detection.overall_confidence)}")
        return tags


def _sort_value(item: ReviewQueueItem, field_name: str) -> Any:
    value = getattr(item, field_name)
    if isinstance(value, ReviewPriority):
        return value.rank
    if isinstance(value, Enum):
        return value.value
    return value
