"""
SQLite-based state store implementation.

Tables:
- email_identifications: Identifications of processed emails (the corpus)
- transactions: Transactions created from accepted emails
"""

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Optional

from ..schemas.identification import Identification, StoredEmailRecord
from ..schemas.transaction import ParsedTransaction, PriorTransaction
from .base import CorpusProvider


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _record_from_row(row: sqlite3.Row) -> StoredEmailRecord:
    """Create a corpus record from a database row."""
    return StoredEmailRecord(
        id=row["id"],
        identification=Identification.from_dict(json.loads(row["identification_json"])),
        transaction=ParsedTransaction.from_dict(json.loads(row["transaction_json"])),
        scope=row["scope"],
        created_at=row["created_at"],
        transaction_id=row["transaction_id"],
    )


def _transaction_from_row(row: sqlite3.Row) -> PriorTransaction:
    return PriorTransaction(
        id=row["id"],
        symbol=row["symbol"],
        transaction_type=row["transaction_type"],
        quantity=Decimal(row["quantity"]),
        price=Decimal(row["price"]),
        transaction_date=row["transaction_date"],
        scope=row["scope"],
    )


class StateStore(CorpusProvider):
    """
    SQLite-based state store for the pipeline.

    Provides persistent tracking of:
    - Processed email identifications (duplicate detection corpus)
    - Transactions created from accepted emails

    Opens one connection per operation, so it is safe to share between
    ingestion worker threads.
    """

    SCHEMA_VERSION = 1

    def __init__(self, db_path: Path | str):
        """
        Initialize state store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schema_version (
                    version INTEGER PRIMARY KEY
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS email_identifications (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    scope TEXT NOT NULL,
                    email_hash TEXT NOT NULL,
                    content_hash TEXT NOT NULL,
                    transaction_hash TEXT NOT NULL,
                    message_id TEXT,
                    order_ids TEXT,  -- JSON array
                    confirmation_numbers TEXT,  -- JSON array
                    identification_json TEXT NOT NULL,
                    transaction_json TEXT NOT NULL,
                    transaction_id TEXT,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS transactions (
                    id TEXT PRIMARY KEY,
                    scope TEXT NOT NULL,
                    symbol TEXT NOT NULL,
                    transaction_type TEXT NOT NULL,
                    quantity TEXT NOT NULL,
                    price TEXT NOT NULL,
                    transaction_date TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """
            )

            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_identifications_scope "
                "ON email_identifications(scope, created_at)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_identifications_email_hash "
                "ON email_identifications(email_hash)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_identifications_message_id "
                "ON email_identifications(message_id)"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_transactions_scope "
                "ON transactions(scope, created_at)"
            )

            conn.execute(
                "INSERT OR REPLACE INTO schema_version (version) VALUES (?)", (self.SCHEMA_VERSION,)
            )

    # Corpus methods

    def persist_identification(
        self,
        identification: Identification,
        parsed: ParsedTransaction,
        scope: str,
        transaction_id: Optional[str] = None,
    ) -> int:
        """Store an identification and its parsed transaction in the corpus."""
        with self._transaction() as conn:
            cursor = conn.execute(
                """
                INSERT INTO email_identifications
                (scope, email_hash, content_hash, transaction_hash, message_id, order_ids,
                 confirmation_numbers, identification_json, transaction_json,
                 transaction_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    scope,
                    identification.email_hash,
                    identification.content_hash,
                    identification.transaction_hash,
                    identification.message_id,
                    json.dumps(list(identification.order_ids)),
                    json.dumps(list(identification.confirmation_numbers)),
                    json.dumps(identification.to_dict()),
                    json.dumps(parsed.to_dict()),
                    transaction_id,
                    _now(),
                ),
            )
            return cursor.lastrowid or 0

    def find_prior_identifications(
        self,
        scope: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[StoredEmailRecord]:
        """Find previously processed emails in a scope, newest first."""
        query = "SELECT * FROM email_identifications WHERE scope = ?"
        params: list[Any] = [scope]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(since.astimezone(timezone.utc).isoformat())
        query += " ORDER BY created_at DESC, id DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_record_from_row(row) for row in rows]

    def find_prior_transactions(
        self,
        scope: str,
        since: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[PriorTransaction]:
        """Find persisted transactions in a scope, newest first."""
        query = "SELECT * FROM transactions WHERE scope = ?"
        params: list[Any] = [scope]
        if since is not None:
            query += " AND created_at >= ?"
            params.append(since.astimezone(timezone.utc).isoformat())
        query += " ORDER BY created_at DESC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._transaction() as conn:
            rows = conn.execute(query, params).fetchall()
            return [_transaction_from_row(row) for row in rows]

    def get_identification(self, record_id: int) -> StoredEmailRecord | None:
        """Get a corpus record by ID."""
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT * FROM email_identifications WHERE id = ?", (record_id,)
            ).fetchone()
            return _record_from_row(row) if row else None

    # Transaction methods

    def record_transaction(
        self,
        parsed: ParsedTransaction,
        scope: str,
        transaction_id: Optional[str] = None,
    ) -> str:
        """
        Persist a transaction created from an accepted email.

        Returns:
            Transaction ID (generated when not given)
        """
        transaction_id = transaction_id or f"txn-{uuid.uuid4().hex}"
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO transactions
                (id, scope, symbol, transaction_type, quantity, price, transaction_date, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    transaction_id,
                    scope,
                    parsed.symbol,
                    parsed.transaction_type.value,
                    str(parsed.quantity),
                    str(parsed.price),
                    parsed.executed_at.isoformat(),
                    _now(),
                ),
            )
        return transaction_id

    # Statistics

    def get_stats(self) -> dict[str, Any]:
        """Get corpus statistics."""
        with self._transaction() as conn:
            identifications = conn.execute(
                "SELECT COUNT(*) as count FROM email_identifications"
            ).fetchone()
            linked = conn.execute(
                "SELECT COUNT(*) as count FROM email_identifications WHERE transaction_id IS NOT NULL"
            ).fetchone()
            transactions = conn.execute("SELECT COUNT(*) as count FROM transactions").fetchone()
            scopes = conn.execute(
                "SELECT COUNT(DISTINCT scope) as count FROM email_identifications"
            ).fetchone()

            return {
                "identifications_total": identifications["count"] if identifications else 0,
                "identifications_linked": linked["count"] if linked else 0,
                "transactions_total": transactions["count"] if transactions else 0,
                "scopes": scopes["count"] if scopes else 0,
            }
