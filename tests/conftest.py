"""Test fixtures and utilities."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path

import pytest

from brokerage_import.config import Config, ReviewQueueConfig
from brokerage_import.confidence import ConfidenceScorer
from brokerage_import.extractors import IdentificationExtractor
from brokerage_import.matching import DetectionResult
from brokerage_import.schemas import ParsedTransaction, TransactionKind
from brokerage_import.state_store import StateStore

SENDER = "notifications@broker.example.com"

SAMPLE_HTML = (
    "<html>\n"
    "<body>\n"
    "<p>Your order has been filled.</p>\n"
    "<p>Bought 100 shares of AAPL at $150.50 per share</p>\n"
    "<p>Order #WS1234567 executed 2025-03-10</p>\n"
    "</body>\n"
    "</html>"
)

SAMPLE_HEADERS = (
    "Message-ID: <20250310143005.abc123@broker.example.com>\n"
    "Date: Mon, 10 Mar 2025 14:30:05 +0000\n"
    f"From: Broker <{SENDER}>\n"
    "Subject: Order filled: AAPL\n"
)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def build_parsed(**overrides) -> ParsedTransaction:
    """ParsedTransaction for a 100 share AAPL buy, with overrides."""
    fields = {
        "symbol": "AAPL",
        "transaction_type": TransactionKind.BUY,
        "quantity": Decimal("100"),
        "price": Decimal("150.50"),
        "total_amount": Decimal("15050.00"),
        "account_type": "TFSA",
        "currency": "USD",
        "transaction_date": "2025-03-10T14:30:00Z",
        "subject": "Order filled: AAPL",
        "from_email": SENDER,
        "raw_content": SAMPLE_HTML,
    }
    fields.update(overrides)
    return ParsedTransaction(**fields)


def build_detection(confidence: float = 0.7, time_window=None, matches=None) -> DetectionResult:
    """DetectionResult scored with the default thresholds."""
    scorer = ConfidenceScorer()
    return DetectionResult(
        overall_confidence=confidence,
        risk_level=scorer.risk_level(confidence),
        recommendation=scorer.recommendation(confidence),
        summary="test detection",
        processing_time_ms=1.0,
        processed_at="2025-03-10T15:00:00+00:00",
        matches=matches or [],
        time_window=time_window,
    )


@pytest.fixture
def temp_db(tmp_path) -> Path:
    """Temporary database path for testing."""
    return tmp_path / "test_state.db"


@pytest.fixture
def store(temp_db) -> StateStore:
    """Fresh SQLite corpus store."""
    return StateStore(temp_db)


@pytest.fixture
def config(temp_db) -> Config:
    """Default configuration pointing at the temporary database."""
    return Config(state_db_path=temp_db)


@pytest.fixture
def clock() -> FakeClock:
    """Clock fixed at Monday 2025-03-10 15:00 UTC."""
    return FakeClock(datetime(2025, 3, 10, 15, 0, tzinfo=timezone.utc))


@pytest.fixture
def extractor(clock) -> IdentificationExtractor:
    return IdentificationExtractor(clock=clock)


@pytest.fixture
def make_parsed():
    """Factory for parsed transactions."""
    return build_parsed


@pytest.fixture
def queue_config() -> ReviewQueueConfig:
    """Small queue so capacity behaviour is easy to reach."""
    return ReviewQueueConfig(max_queue_size=3)


@pytest.fixture
def sample_email_dict() -> dict:
    """Parsed email as the parser hands it over (camelCase keys)."""
    return {
        "id": "uid-1001",
        "symbol": "AAPL",
        "transactionType": "buy",
        "quantity": "100",
        "price": "150.50",
        "totalAmount": "15050.00",
        "accountType": "TFSA",
        "currency": "USD",
        "transactionDate": "2025-03-10T14:30:00Z",
        "subject": "Order filled: AAPL",
        "fromEmail": SENDER,
        "rawContent": SAMPLE_HTML,
        "raw_headers": SAMPLE_HEADERS,
    }


@pytest.fixture
def sender() -> str:
    return SENDER


@pytest.fixture
def sample_html() -> str:
    """HTML body of a filled AAPL buy order."""
    return SAMPLE_HTML


@pytest.fixture
def sample_headers() -> str:
    """Raw headers carrying Message-ID and Date."""
    return SAMPLE_HEADERS


@pytest.fixture
def make_detection():
    """Factory for detection results."""
    return build_detection
