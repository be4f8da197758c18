"""
Services module for pipeline orchestration.
"""

from .ingestion import (
    BatchResult,
    IncomingEmail,
    IngestionDecision,
    IngestionOutcome,
    IngestionService,
)

__all__ = [
    "BatchResult",
    "IncomingEmail",
    "IngestionDecision",
    "IngestionOutcome",
    "IngestionService",
]
