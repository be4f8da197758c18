"""
Dedupe hash generation (CRITICAL).

This module defines THE deterministic hash functions used to identify
brokerage emails. This is the ONLY way to generate identity hashes in the
system.

Hash Formats:
1. Email hash: SHA256(subject|sender|html|text)[:16]
   - All parts normalized (markup stripped, whitespace collapsed, lowercased)
   - Identifies the same email content regardless of formatting noise

2. Content hash: MD5(normalized combined content)[:12]
   - Short hash for quick content comparison

3. Transaction hash: SHA256(sender|sorted ids|sorted details)[:20]
   - Order ids, confirmation numbers, symbols, quantities, prices and dates
     are each sorted before joining
   - Two emails describing the same fill in a different order still match

The hashes must be:
- Stable: Same inputs always produce same output
- Order-independent: Transaction hash inputs are sorted before hashing
- Normalized: Trivial formatting differences never change identity
"""

import hashlib
import re
from decimal import Decimal, InvalidOperation

# ============================================================================
# SSOT Constants for Hash Generation
# ============================================================================

# Separator between hashed components
HASH_SEPARATOR = "|"

# Length of the email hash prefix
EMAIL_HASH_LENGTH = 16

# Length of the content hash prefix
CONTENT_HASH_LENGTH = 12

# Length of the transaction fingerprint prefix
TRANSACTION_HASH_LENGTH = 20

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")
_DISALLOWED_RE = re.compile(r"[^\w\s.@-]")


def normalize_text(text: str | None) -> str:
    """
    Normalize text for consistent hashing.

    Removes HTML tags, collapses whitespace, drops punctuation other than
    dots, @ and hyphens, and lowercases.

    Args:
        text: Raw text or HTML

    Returns:
        Normalized text (empty string for None)
    """
    if not text:
        return ""
    text = _TAG_RE.sub(" ", text)
    text = _WHITESPACE_RE.sub(" ", text)
    text = _DISALLOWED_RE.sub("", text)
    return text.lower().strip()


def normalize_email_address(address: str | None) -> str:
    """Normalize a sender address (lowercase, strip whitespace)."""
    if not address:
        return ""
    return address.strip().lower()


def format_quantity(value: Decimal | float | str) -> str:
    """
    Format a quantity for fingerprinting.

    Trailing zeros are dropped so "100", "100.0" and 100 hash identically.
    """
    try:
        quantity = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"quantity must be numeric, got: {value!r}") from e
    normalized = quantity.normalize()
    # normalize() turns 100 into 1E+2
    return f"{normalized:f}"


def format_price(value: Decimal | float | str) -> str:
    """Format a price to 2 decimal places for fingerprinting."""
    try:
        price = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"price must be numeric, got: {value!r}") from e
    return f"{price:.2f}"


def compute_email_hash(
    subject: str,
    from_email: str,
    html_content: str,
    text_content: str | None = None,
) -> str:
    """
    Compute the email hash over normalized subject, sender and bodies.

    Args:
        subject: Email subject line
        from_email: Sender address
        html_content: HTML body
        text_content: Plain-text body (optional)

    Returns:
        16-character lowercase hex prefix of SHA256

    Examples:
        >>> compute_email_hash("Order filled", "notify@broker.com", "<p>Bought 10 AAPL</p>")
        '3f1c...'  # Deterministic hash
    """
    canonical = HASH_SEPARATOR.join(
        [
            normalize_text(subject),
            normalize_email_address(from_email),
            normalize_text(html_content),
            normalize_text(text_content),
        ]
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:EMAIL_HASH_LENGTH]


def compute_content_hash(content: str) -> str:
    """
    Compute the short content hash used for content comparison.

    Returns:
        12-character lowercase hex prefix of MD5
    """
    normalized = normalize_text(content)
    return hashlib.md5(normalized.encode("utf-8")).hexdigest()[:CONTENT_HASH_LENGTH]


def compute_transaction_hash(
    from_email: str,
    order_ids: list[str] | tuple[str, ...],
    confirmation_numbers: list[str] | tuple[str, ...],
    symbols: list[str] | tuple[str, ...] = (),
    quantities: list[Decimal] | tuple[Decimal, ...] = (),
    prices: list[Decimal] | tuple[Decimal, ...] = (),
    dates: list[str] | tuple[str, ...] = (),
) -> str:
    """
    Compute the order-independent transaction fingerprint.

    Every component list is sorted before joining, so the fingerprint does
    not depend on the order in which values appeared in the email.

    Hash components (in order):
    - from_email: Sender address (normalized)
    - order_ids: Sorted
    - confirmation_numbers: Sorted
    - symbols: Sorted
    - quantities: Formatted then sorted
    - prices: Formatted to 2 decimals then sorted
    - dates: Sorted

    Returns:
        20-character lowercase hex prefix of SHA256
    """
    parts = [
        normalize_email_address(from_email),
        *sorted(order_ids),
        *sorted(confirmation_numbers),
        *sorted(symbols),
        *sorted(format_quantity(q) for q in quantities),
        *sorted(format_price(p) for p in prices),
        *sorted(dates),
    ]
    fingerprint = HASH_SEPARATOR.join(parts)
    return hashlib.sha256(fingerprint.encode("utf-8")).hexdigest()[:TRANSACTION_HASH_LENGTH]
