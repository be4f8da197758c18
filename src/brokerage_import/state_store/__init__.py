"""
State Store (SQLite-based).

Lightweight persistent DB for tracking:
- Identifications of processed emails (duplicate detection corpus)
- Transactions created from accepted emails
"""

from .base import CorpusProvider
from .sqlite_store import StateStore

__all__ = [
    "CorpusProvider",
    "StateStore",
]
