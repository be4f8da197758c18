"""
Schema definitions.

Contains:
- ParsedTransaction: Structured record handed over by the email parser
- Identification: Stable identifiers derived from an email
- detection: Risk levels, recommendations and detection levels
- review: Queue priorities, statuses, actions and decisions
- dedupe: Deterministic hash generation
"""

from .detection import (
    DETECTION_LEVELS,
    EMAIL_IDENTITY,
    ORDER_IDENTITY,
    TRANSACTION_FINGERPRINT,
    DetectionLevel,
    Recommendation,
    RiskLevel,
)
from .dedupe import (
    compute_content_hash,
    compute_email_hash,
    compute_transaction_hash,
    normalize_text,
)
from .identification import Identification, StoredEmailRecord
from .review import ReviewAction, ReviewDecision, ReviewPriority, ReviewStatus
from .transaction import ParsedTransaction, PriorTransaction, TransactionKind, parse_timestamp

__all__ = [
    "DETECTION_LEVELS",
    "EMAIL_IDENTITY",
    "ORDER_IDENTITY",
    "TRANSACTION_FINGERPRINT",
    "DetectionLevel",
    "Recommendation",
    "RiskLevel",
    "ReviewAction",
    "ReviewDecision",
    "ReviewPriority",
    "ReviewStatus",
    "Identification",
    "ParsedTransaction",
    "PriorTransaction",
    "StoredEmailRecord",
    "TransactionKind",
    "compute_content_hash",
    "compute_email_hash",
    "compute_transaction_hash",
    "normalize_text",
    "parse_timestamp",
]
