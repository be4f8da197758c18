"""
Email identification extractors.

Derives Message-IDs, order IDs, confirmation numbers and fingerprint hashes
from raw brokerage emails.
"""

from .identification import (
    EXTRACTION_METHOD,
    IdentificationComparison,
    IdentificationExtractor,
    ValidationReport,
)

__all__ = [
    "EXTRACTION_METHOD",
    "IdentificationComparison",
    "IdentificationExtractor",
    "ValidationReport",
]
