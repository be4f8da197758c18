"""
Detection vocabulary shared by the detector, time-window analysis and the
review queue.
"""

from dataclasses import dataclass
from enum import Enum


class RiskLevel(str, Enum):
    """Duplicate risk bucket."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class Recommendation(str, Enum):
    """
    Final verdict of duplicate detection.

    ACCEPT: Unique, create the transaction
    REVIEW: Ambiguous, route to the manual review queue
    REJECT: Confirmed duplicate, do not create a transaction
    """

    ACCEPT = "accept"
    REVIEW = "review"
    REJECT = "reject"


@dataclass(frozen=True)
class DetectionLevel:
    """One independent detection strategy and its aggregation weight."""

    level: int
    name: str
    description: str
    weight: float


EMAIL_IDENTITY = DetectionLevel(
    level=1,
    name="Email Identity Detection",
    description="Message-ID and email hash comparison",
    weight=0.9,
)

ORDER_IDENTITY = DetectionLevel(
    level=2,
    name="Order Identity Detection",
    description="Order ID and confirmation number comparison",
    weight=0.8,
)

TRANSACTION_FINGERPRINT = DetectionLevel(
    level=3,
    name="Transaction Fingerprint Detection",
    description="Transaction details and timing pattern comparison",
    weight=0.6,
)

DETECTION_LEVELS = (EMAIL_IDENTITY, ORDER_IDENTITY, TRANSACTION_FINGERPRINT)
