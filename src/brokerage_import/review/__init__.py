"""
Review module.

Manual review queue for emails the duplicate detector could not decide.
"""

from ..schemas.review import ReviewAction, ReviewDecision, ReviewPriority, ReviewStatus
from .queue import (
    SYSTEM_REVIEWER,
    PotentialDuplicate,
    QueueOperationResult,
    ReviewQueue,
    ReviewQueueFilter,
    ReviewQueueItem,
    ReviewQueueStats,
)

__all__ = [
    "SYSTEM_REVIEWER",
    "PotentialDuplicate",
    "QueueOperationResult",
    "ReviewAction",
    "ReviewDecision",
    "ReviewPriority",
    "ReviewQueue",
    "ReviewQueueFilter",
    "ReviewQueueItem",
    "ReviewQueueStats",
    "ReviewStatus",
]
