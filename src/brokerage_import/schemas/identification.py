"""
Email identification records.

An Identification is derived once from an email and never changes
afterwards. Stored records pair it with the parsed transaction it came
from so later emails can be compared field by field.
"""

from dataclasses import dataclass, field
from typing import Any, Optional

from .transaction import ParsedTransaction


@dataclass(frozen=True)
class Identification:
    """Stable identifiers derived from one brokerage email."""

    email_hash: str
    content_hash: str
    transaction_hash: str
    from_email: str
    subject: str
    timestamp: str  # ISO timestamp of the email
    extracted_at: str  # ISO timestamp of extraction
    extraction_method: str
    message_id: Optional[str] = None
    order_ids: tuple[str, ...] = ()
    confirmation_numbers: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "message_id": self.message_id,
            "email_hash": self.email_hash,
            "content_hash": self.content_hash,
            "transaction_hash": self.transaction_hash,
            "order_ids": list(self.order_ids),
            "confirmation_numbers": list(self.confirmation_numbers),
            "from_email": self.from_email,
            "subject": self.subject,
            "timestamp": self.timestamp,
            "extracted_at": self.extracted_at,
            "extraction_method": self.extraction_method,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Identification":
        """Create from dictionary."""
        return cls(
            message_id=data.get("message_id"),
            email_hash=data["email_hash"],
            content_hash=data["content_hash"],
            transaction_hash=data["transaction_hash"],
            order_ids=tuple(data.get("order_ids", [])),
            confirmation_numbers=tuple(data.get("confirmation_numbers", [])),
            from_email=data.get("from_email", ""),
            subject=data.get("subject", ""),
            timestamp=data.get("timestamp", ""),
            extracted_at=data.get("extracted_at", ""),
            extraction_method=data.get("extraction_method", ""),
        )


@dataclass
class StoredEmailRecord:
    """A previously processed email kept in the detection corpus."""

    id: int
    identification: Identification
    transaction: ParsedTransaction
    scope: str
    created_at: str
    transaction_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
