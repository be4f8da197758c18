"""
Parsed brokerage transaction (SSOT).

This is THE record the external email parser hands to the pipeline.
The duplicate detection core never mutates it.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional


class TransactionKind(str, Enum):
    """Kind of brokerage transaction."""

    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    OPTION_EXPIRY = "option_expiry"

    @classmethod
    def parse(cls, value: "TransactionKind | str") -> "TransactionKind":
        """Parse a kind from its value, tolerating case and hyphens."""
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().lower().replace("-", "_").replace(" ", "_")
        try:
            return cls(normalized)
        except ValueError as e:
            raise ValueError(f"Unknown transaction kind: {value!r}") from e


# Fixed UTC offsets for the timezone labels brokerage emails carry
TIMEZONE_OFFSETS = {
    "UTC": timedelta(0),
    "GMT": timedelta(0),
    "EST": timedelta(hours=-5),
    "EDT": timedelta(hours=-4),
}

_EXECUTION_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})(?::(\d{2}))?\s*(AM|PM)", re.IGNORECASE)

# Parser output uses camelCase keys
_FIELD_ALIASES = {
    "transactionType": "transaction_type",
    "totalAmount": "total_amount",
    "accountType": "account_type",
    "transactionDate": "transaction_date",
    "fromEmail": "from_email",
    "rawContent": "raw_content",
    "executionTime": "execution_time",
}


def _parse_iso(value: datetime | str) -> datetime:
    """Parse an ISO-8601 value, keeping it naive if it carries no offset."""
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if not text:
        raise ValueError("timestamp cannot be empty")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def parse_timestamp(value: datetime | str) -> datetime:
    """
    Parse an ISO-8601 timestamp into an aware UTC datetime.

    Naive values are taken to be UTC. A trailing "Z" is accepted.

    Raises:
        ValueError: If the value cannot be parsed
    """
    parsed = _parse_iso(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, Decimal):
        number = value
    else:
        try:
            number = Decimal(str(value).replace(",", "").strip())
        except (InvalidOperation, AttributeError) as e:
            raise ValueError(f"{field_name} must be numeric, got: {value!r}") from e
    if not number.is_finite():
        raise ValueError(f"{field_name} must be a finite number, got: {value!r}")
    return number


@dataclass(frozen=True)
class ParsedTransaction:
    """
    Structured transaction parsed from a trade confirmation email.

    Produced by the external parser. Quantities and prices are Decimals;
    transaction_date is an ISO-8601 string.
    """

    symbol: str
    transaction_type: TransactionKind
    quantity: Decimal
    price: Decimal
    total_amount: Decimal
    account_type: str
    currency: str
    transaction_date: str
    subject: str
    from_email: str
    raw_content: str = ""

    # Optional execution detail some brokers send separately from the date
    execution_time: Optional[str] = None  # e.g. "10:30 AM"
    timezone: Optional[str] = None  # e.g. "EST", "EDT"

    @property
    def executed_at(self) -> datetime:
        """
        Execution timestamp as an aware UTC datetime.

        When execution_time is present it replaces the time of day. Naive
        timestamps are interpreted in the labelled timezone (UTC if none).
        """
        parsed = _parse_iso(self.transaction_date)
        naive = parsed.tzinfo is None

        if self.execution_time:
            match = _EXECUTION_TIME_RE.search(self.execution_time)
            if match:
                hours = int(match.group(1))
                minutes = int(match.group(2))
                seconds = int(match.group(3) or 0)
                meridiem = match.group(4).upper()
                if meridiem == "PM" and hours != 12:
                    hours += 12
                if meridiem == "AM" and hours == 12:
                    hours = 0
                parsed = parsed.replace(hour=hours, minute=minutes, second=seconds, microsecond=0)
                naive = True

        if naive:
            # Wall-clock time in the labelled zone
            offset = TIMEZONE_OFFSETS.get((self.timezone or "").upper(), timedelta(0))
            parsed = parsed.replace(tzinfo=timezone(offset))

        return parsed.astimezone(timezone.utc)

    def validate(self) -> list[str]:
        """
        Validate required fields.

        Returns:
            List of problems (empty if valid)
        """
        errors: list[str] = []

        if not self.symbol or not self.symbol.strip():
            errors.append("symbol is required")
        if not isinstance(self.transaction_type, TransactionKind):
            errors.append(f"transaction_type is invalid: {self.transaction_type!r}")
        for name in ("quantity", "price"):
            value = getattr(self, name)
            if value is None or not value.is_finite() or value < 0:
                errors.append(f"{name} must be a non-negative number")
        if not self.currency:
            errors.append("currency is required")
        if not self.from_email:
            errors.append("from_email is required")
        if not self.subject:
            errors.append("subject is required")
        if not self.transaction_date:
            errors.append("transaction_date is required")
        else:
            try:
                parse_timestamp(self.transaction_date)
            except ValueError:
                errors.append(f"transaction_date is not ISO-8601: {self.transaction_date}")

        return errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "symbol": self.symbol,
            "transaction_type": self.transaction_type.value,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "total_amount": str(self.total_amount),
            "account_type": self.account_type,
            "currency": self.currency,
            "transaction_date": self.transaction_date,
            "subject": self.subject,
            "from_email": self.from_email,
            "raw_content": self.raw_content,
            "execution_time": self.execution_time,
            "timezone": self.timezone,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedTransaction":
        """
        Create from dictionary (snake_case or the parser's camelCase keys).

        Raises:
            ValueError: If a required field is missing or malformed
        """
        fields = {_FIELD_ALIASES.get(key, key): value for key, value in data.items()}

        missing = [
            name
            for name in ("symbol", "transaction_type", "quantity", "price", "transaction_date")
            if fields.get(name) in (None, "")
        ]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        quantity = _to_decimal(fields["quantity"], "quantity")
        price = _to_decimal(fields["price"], "price")
        total = fields.get("total_amount")
        total_amount = (
            _to_decimal(total, "total_amount") if total not in (None, "") else quantity * price
        )

        return cls(
            symbol=str(fields["symbol"]).strip().upper(),
            transaction_type=TransactionKind.parse(fields["transaction_type"]),
            quantity=quantity,
            price=price,
            total_amount=total_amount,
            account_type=fields.get("account_type") or "",
            currency=(fields.get("currency") or "USD").upper(),
            transaction_date=str(fields["transaction_date"]),
            subject=fields.get("subject") or "",
            from_email=fields.get("from_email") or "",
            raw_content=fields.get("raw_content") or "",
            execution_time=fields.get("execution_time"),
            timezone=fields.get("timezone"),
        )


@dataclass(frozen=True)
class PriorTransaction:
    """A transaction already persisted in the portfolio."""

    id: str
    symbol: str
    transaction_type: str
    quantity: Decimal
    price: Decimal
    transaction_date: str
    scope: str

    @property
    def executed_at(self) -> datetime:
        """Transaction timestamp as an aware UTC datetime."""
        return parse_timestamp(self.transaction_date)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "symbol": self.symbol,
            "transaction_type": self.transaction_type,
            "quantity": str(self.quantity),
            "price": str(self.price),
            "transaction_date": self.transaction_date,
            "scope": self.scope,
        }
