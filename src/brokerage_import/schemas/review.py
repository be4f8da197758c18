"""
Manual review vocabulary.

Status lifecycle:
    pending -> in_review -> approved | rejected
    pending -> deferred -> pending (after the deferral expires)
    pending/in_review -> escalated review (level + 1, back to pending)
"""

from enum import Enum


class ReviewPriority(str, Enum):
    """Review urgency bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        """Numeric ordering (low=0 ... urgent=3)."""
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    ReviewPriority.LOW: 0,
    ReviewPriority.MEDIUM: 1,
    ReviewPriority.HIGH: 2,
    ReviewPriority.URGENT: 3,
}


class ReviewStatus(str, Enum):
    """Lifecycle state of a queue item."""

    PENDING = "pending"
    IN_REVIEW = "in_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    DEFERRED = "deferred"

    @property
    def is_terminal(self) -> bool:
        return self in (ReviewStatus.APPROVED, ReviewStatus.REJECTED)


class ReviewAction(str, Enum):
    """Action a reviewer applies to a queue item."""

    APPROVE = "approve"
    REJECT = "reject"
    ESCALATE = "escalate"
    DEFER = "defer"
    MERGE = "merge"
    SPLIT = "split"


class ReviewDecision(str, Enum):
    """Outcome recorded on a reviewed item."""

    ACCEPT = "accept"
    REJECT = "reject"
    MERGE = "merge"
    SPLIT = "split"
