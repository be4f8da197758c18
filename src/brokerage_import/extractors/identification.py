"""
Email identification extractor.

Derives the stable identifiers used for duplicate detection from a raw
brokerage email:
- Message-ID (from headers or, failing that, the HTML body)
- Email, content and transaction fingerprint hashes
- Order IDs and confirmation numbers

Extraction never fails. Missing data simply leaves the corresponding field
empty; validate() reports what is missing.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from email.utils import parsedate_to_datetime
from typing import Optional

from ..schemas.dedupe import (
    compute_content_hash,
    compute_email_hash,
    compute_transaction_hash,
)
from ..schemas.detection import RiskLevel
from ..schemas.identification import Identification

logger = logging.getLogger(__name__)

EXTRACTION_METHOD = "IdentificationExtractor.v1"


@dataclass
class ValidationReport:
    """Outcome of identification validation."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """Warnings never invalidate an identification."""
        return not self.errors


@dataclass
class IdentificationComparison:
    """Pairwise evidence that two identifications describe the same email."""

    confidence: float
    matched_fields: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)

    @property
    def is_duplicate(self) -> bool:
        return self.confidence >= IdentificationExtractor.DUPLICATE_THRESHOLD


class IdentificationExtractor:
    """
    Extracts identification data from brokerage emails.

    Order-ID candidates come from a fixed set of pattern rules and are
    validated against shape rules before inclusion; invalid candidates are
    discarded silently.
    """

    ORDER_ID_PATTERNS = [
        re.compile(
            r"(?:order[:\s#]*|id[:\s#]*|confirmation[:\s#]*|reference[:\s#]*)\s*([A-Z]{2,3}\d{6,12})",
            re.IGNORECASE,
        ),
        re.compile(r"WS\d{6,12}", re.IGNORECASE),
        re.compile(r"\b[A-Z]{2}\d{8,10}\b"),
        re.compile(r"\b\d{10,15}\b"),  # Generic numeric IDs
    ]

    CONFIRMATION_PATTERNS = [
        re.compile(r"(?:confirmation[:\s#]*|conf[:\s#]*|ref[:\s#]*)\s*([A-Z0-9]{6,20})", re.IGNORECASE),
        re.compile(r"(?:transaction[:\s#]*|txn[:\s#]*)\s*([A-Z0-9]{6,20})", re.IGNORECASE),
    ]

    MESSAGE_ID_PATTERNS = [
        re.compile(r"message-id:\s*<([^>]+)>", re.IGNORECASE),
        re.compile(r'messageId:\s*"([^"]+)"', re.IGNORECASE),
    ]

    # A bare "<id>" line only counts in raw headers (folded Message-ID header)
    HEADER_MESSAGE_ID_PATTERN = re.compile(r"^\s*<([^>]+)>\s*$", re.MULTILINE)

    # local@domain, no whitespace
    MESSAGE_ID_SHAPE = re.compile(r"^[^\s@<>]+@[^\s@<>]+$")

    DATE_HEADER_PATTERN = re.compile(r"^date:\s*(.+)$", re.IGNORECASE | re.MULTILINE)

    SYMBOL_PATTERNS = [
        re.compile(r"\b[A-Z]{1,5}(?:\.[A-Z]{2})?\b"),  # AAPL, CNR.TO
        re.compile(r"\b[A-Z]{2,5}\b"),
    ]

    QUANTITY_PATTERNS = [
        re.compile(r"(\d+(?:,\d{3})*(?:\.\d{1,8})?)\s*(?:shares?|units?|contracts?)", re.IGNORECASE),
        re.compile(r"(?:bought|sold|purchased)\s+(\d+(?:,\d{3})*(?:\.\d{1,8})?)", re.IGNORECASE),
    ]

    PRICE_PATTERNS = [
        re.compile(r"[$€£¥](\d+(?:,\d{3})*(?:\.\d{2,4})?)"),
        re.compile(r"(\d+(?:,\d{3})*(?:\.\d{2,4}))\s*(?:per\s+share|each|USD|CAD|EUR)", re.IGNORECASE),
    ]

    DATE_PATTERNS = [
        re.compile(r"\d{4}-\d{2}-\d{2}"),
        re.compile(r"\d{2}/\d{2}/\d{4}"),
        re.compile(
            r"(?:January|February|March|April|May|June|July|August|September|October|November|December)"
            r"\s+\d{1,2},?\s+\d{4}",
            re.IGNORECASE,
        ),
    ]

    # Shape rules applied to every order-ID candidate
    _VALID_ORDER_ID_SHAPES = [
        re.compile(r"WS\d{6,12}"),
        re.compile(r"^[A-Z]{2,3}\d{6,12}$"),
        re.compile(r"^\d{10,15}$"),
    ]
    _VALID_CONFIRMATION = re.compile(r"^[A-Z0-9]{6,20}$")

    MAX_PRICE = Decimal("1000000")
    DUPLICATE_THRESHOLD = 0.7

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the extractor.

        Args:
            clock: Returns the current time (defaults to UTC now)
        """
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def extract(
        self,
        subject: str,
        from_email: str,
        html_content: str,
        text_content: Optional[str] = None,
        raw_headers: Optional[str] = None,
    ) -> Identification:
        """
        Extract identification data from an email.

        Args:
            subject: Email subject line
            from_email: Sender address
            html_content: HTML body
            text_content: Plain-text body (optional)
            raw_headers: Raw RFC 822 headers (optional)

        Returns:
            Identification with all derivable fields populated
        """
        extracted_at = self._clock().isoformat()
        combined = f"{subject} {html_content} {text_content or ''}"

        message_id = self._extract_message_id(raw_headers, html_content)
        order_ids = self._extract_order_ids(combined)
        confirmation_numbers = self._extract_confirmation_numbers(combined)

        transaction_hash = compute_transaction_hash(
            from_email=from_email,
            order_ids=order_ids,
            confirmation_numbers=confirmation_numbers,
            symbols=self._extract_symbols(combined),
            quantities=self._extract_quantities(combined),
            prices=self._extract_prices(combined),
            dates=self._extract_dates(combined),
        )

        identification = Identification(
            message_id=message_id,
            email_hash=compute_email_hash(subject, from_email, html_content, text_content),
            content_hash=compute_content_hash(combined),
            transaction_hash=transaction_hash,
            order_ids=tuple(sorted(order_ids)),
            confirmation_numbers=tuple(sorted(confirmation_numbers)),
            from_email=from_email,
            subject=subject,
            timestamp=self._extract_email_date(raw_headers) or extracted_at,
            extracted_at=extracted_at,
            extraction_method=EXTRACTION_METHOD,
        )

        logger.debug(
            "Extracted identification %s (message_id=%s, orders=%d, confirmations=%d)",
            identification.email_hash,
            "yes" if message_id else "no",
            len(order_ids),
            len(confirmation_numbers),
        )
        return identification

    def validate(self, identification: Identification) -> ValidationReport:
        """
        Validate identification completeness.

        Missing required fields are errors. Missing but useful fields are
        warnings: they never block processing, they only make duplicate
        detection less reliable.
        """
        report = ValidationReport()

        if not identification.email_hash:
            report.errors.append("Email hash is required")
        if not identification.transaction_hash:
            report.errors.append("Transaction hash is required")
        if not identification.from_email:
            report.errors.append("From email is required")
        if not identification.subject:
            report.errors.append("Subject is required")

        if not identification.message_id:
            report.warnings.append(
                "Message-ID not found - duplicate detection may be less reliable"
            )
        if not identification.order_ids:
            report.warnings.append("No order IDs found - duplicate detection may be less reliable")
        if not identification.confirmation_numbers:
            report.warnings.append("No confirmation numbers found")

        return report

    @staticmethod
    def identification_confidence(identification: Identification) -> float:
        """How strongly this identification can pin down its email (0-1)."""
        confidence = 0.3
        if identification.message_id:
            confidence += 0.3
        if identification.order_ids:
            confidence += 0.3
        if identification.confirmation_numbers:
            confidence += 0.1
        return min(confidence, 1.0)

    @staticmethod
    def identification_risk(identification: Identification) -> RiskLevel:
        """Risk that a duplicate of this email slips through undetected."""
        has_message_id = bool(identification.message_id)
        has_order_ids = bool(identification.order_ids)
        if not has_message_id and not has_order_ids:
            return RiskLevel.HIGH
        if not has_message_id or not has_order_ids:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    @staticmethod
    def compare_identifications(
        first: Identification,
        second: Identification,
    ) -> IdentificationComparison:
        """Compare two identifications field by field."""
        comparison = IdentificationComparison(confidence=0.0)

        if first.message_id and second.message_id and first.message_id == second.message_id:
            comparison.matched_fields.append("message_id")
            comparison.confidence += 0.9
            comparison.reasons.append("Identical Message-ID")

        if first.email_hash == second.email_hash:
            comparison.matched_fields.append("email_hash")
            comparison.confidence += 0.8
            comparison.reasons.append("Identical email hash")

        if first.transaction_hash == second.transaction_hash:
            comparison.matched_fields.append("transaction_hash")
            comparison.confidence += 0.7
            comparison.reasons.append("Identical transaction hash")

        order_overlap = sorted(set(first.order_ids) & set(second.order_ids))
        if order_overlap:
            comparison.matched_fields.append("order_ids")
            comparison.confidence += 0.6 * overlap_ratio(first.order_ids, second.order_ids)
            comparison.reasons.append(f"Shared order IDs: {', '.join(order_overlap)}")

        confirmation_overlap = sorted(
            set(first.confirmation_numbers) & set(second.confirmation_numbers)
        )
        if confirmation_overlap:
            comparison.matched_fields.append("confirmation_numbers")
            comparison.confidence += 0.5 * overlap_ratio(
                first.confirmation_numbers, second.confirmation_numbers
            )
            comparison.reasons.append(
                f"Shared confirmation numbers: {', '.join(confirmation_overlap)}"
            )

        if first.content_hash == second.content_hash:
            comparison.matched_fields.append("content_hash")
            comparison.confidence += 0.4
            comparison.reasons.append("Identical content hash")

        comparison.confidence = min(comparison.confidence, 1.0)
        return comparison

    def _extract_message_id(
        self,
        raw_headers: Optional[str],
        html_content: Optional[str],
    ) -> Optional[str]:
        header_patterns = self.MESSAGE_ID_PATTERNS + [self.HEADER_MESSAGE_ID_PATTERN]
        for source, patterns in (
            (raw_headers, header_patterns),
            (html_content, self.MESSAGE_ID_PATTERNS),
        ):
            if not source:
                continue
            for pattern in patterns:
                for match in pattern.finditer(source):
                    candidate = match.group(1).strip()
                    if self.MESSAGE_ID_SHAPE.match(candidate):
                        return candidate
        return None

    def _extract_email_date(self, raw_headers: Optional[str]) -> Optional[str]:
        if not raw_headers:
            return None
        match = self.DATE_HEADER_PATTERN.search(raw_headers)
        if not match:
            return None
        try:
            sent = parsedate_to_datetime(match.group(1).strip())
        except (TypeError, ValueError):
            return None
        if sent.tzinfo is None:
            sent = sent.replace(tzinfo=timezone.utc)
        return sent.astimezone(timezone.utc).isoformat()

    def _extract_order_ids(self, content: str) -> list[str]:
        order_ids: set[str] = set()
        for pattern in self.ORDER_ID_PATTERNS:
            for match in pattern.finditer(content):
                candidate = (match.group(1) if pattern.groups else match.group(0)).strip()
                if self._is_valid_order_id(candidate):
                    order_ids.add(candidate.upper())
        return sorted(order_ids)

    def _extract_confirmation_numbers(self, content: str) -> list[str]:
        numbers: set[str] = set()
        for pattern in self.CONFIRMATION_PATTERNS:
            for match in pattern.finditer(content):
                candidate = match.group(1).strip().upper()
                if self._is_valid_confirmation_number(candidate):
                    numbers.add(candidate)
        return sorted(numbers)

    def _is_valid_order_id(self, order_id: str) -> bool:
        if not order_id or len(order_id) < 6 or len(order_id) > 20:
            return False
        return any(shape.search(order_id) for shape in self._VALID_ORDER_ID_SHAPES)

    def _is_valid_confirmation_number(self, number: str) -> bool:
        if not number or len(number) < 6 or len(number) > 20:
            return False
        return bool(self._VALID_CONFIRMATION.match(number))

    def _extract_symbols(self, content: str) -> list[str]:
        symbols: set[str] = set()
        for pattern in self.SYMBOL_PATTERNS:
            for match in pattern.finditer(content):
                symbol = match.group(0)
                if 1 <= len(symbol) <= 6:
                    symbols.add(symbol)
        return sorted(symbols)

    def _extract_quantities(self, content: str) -> list[Decimal]:
        quantities: set[Decimal] = set()
        for pattern in self.QUANTITY_PATTERNS:
            for match in pattern.finditer(content):
                quantity = _parse_number(match.group(1))
                if quantity is not None and quantity > 0:
                    quantities.add(quantity.normalize())
        return sorted(quantities)

    def _extract_prices(self, content: str) -> list[Decimal]:
        prices: set[Decimal] = set()
        for pattern in self.PRICE_PATTERNS:
            for match in pattern.finditer(content):
                price = _parse_number(match.group(1))
                if price is not None and 0 < price < self.MAX_PRICE:
                    prices.add(price.quantize(Decimal("0.01")))
        return sorted(prices)

    def _extract_dates(self, content: str) -> list[str]:
        dates: set[str] = set()
        for pattern in self.DATE_PATTERNS:
            for match in pattern.finditer(content):
                dates.add(match.group(0))
        return sorted(dates)


def overlap_ratio(first: tuple[str, ...] | list[str], second: tuple[str, ...] | list[str]) -> float:
    """Shared items divided by the size of the larger set (0 when either is empty)."""
    left, right = set(first), set(second)
    if not left or not right:
        return 0.0
    return len(left & right) / max(len(left), len(right))


def _parse_number(text: str) -> Optional[Decimal]:
    try:
        return Decimal(text.replace(",", ""))
    except InvalidOperation:
        return None
