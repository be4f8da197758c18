"""
Corpus provider interface.

The duplicate detector compares every new email against a corpus of
previously processed emails and persisted transactions. Lookups must be
bounded: callers pass a lookback cutoff and a record cap.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

from ..schemas.identification import Identification, StoredEmailRecord
from ..schemas.transaction import ParsedTransaction, PriorTransaction


class CorpusProvider(ABC):
    """Persistence boundary consumed by the duplicate detector."""

    @abstractmethod
    def find_prior_identifications(
        self,
        scope: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[StoredEmailRecord]:
        """
        Find previously processed emails in a scope, newest first.

        Args:
            scope: Corpus scope (account or portfolio)
            since: Only records created at or after this time
            limit: Maximum number of records returned
        """

    @abstractmethod
    def find_prior_transactions(
        self,
        scope: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[PriorTransaction]:
        """Find persisted transactions in a scope, newest first."""

    @abstractmethod
    def persist_identification(
        self,
        identification: Identification,
        parsed: ParsedTransaction,
        scope: str,
        transaction_id: Optional[str] = None,
    ) -> int:
        """
        Store an identification for future comparisons.

        Returns:
            Record ID
        """
