"""
Time window analysis for transaction differentiation.

Classifies how far apart two transactions happened and what that timing
implies: two fills in the same second are almost certainly the same email
seen twice, while fills minutes apart may be partial fills or a split order
that must stay separate.

All functions are pure. Transactions are anything with symbol,
transaction_type, quantity, price and an executed_at UTC datetime
(ParsedTransaction and PriorTransaction both qualify).
"""

import statistics
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo

from ..config import TimeWindowConfig
from ..schemas.detection import RiskLevel
from ..schemas.transaction import ParsedTransaction, PriorTransaction

TimedTransaction = Union[ParsedTransaction, PriorTransaction]

# Two amounts closer than this are the same amount
AMOUNT_TOLERANCE = Decimal("0.01")

# Market session boundaries in exchange-local hours
PRE_MARKET_START = 4.0
REGULAR_START = 9.5
REGULAR_END = 16.0
AFTER_HOURS_END = 20.0

US_MARKET_HOLIDAYS = frozenset(
    {
        date(2025, 1, 1),  # New Year's Day
        date(2025, 1, 20),  # MLK Day
        date(2025, 2, 17),  # Presidents Day
        date(2025, 4, 18),  # Good Friday
        date(2025, 5, 26),  # Memorial Day
        date(2025, 7, 3),  # Independence Day (observed)
        date(2025, 9, 1),  # Labor Day
        date(2025, 11, 27),  # Thanksgiving
        date(2025, 12, 25),  # Christmas
    }
)


class TimeBucket(str, Enum):
    """Smallest standard window containing an elapsed time."""

    SAME_SECOND = "same_second"
    SAME_MINUTE = "same_minute"
    SAME_HOUR = "same_hour"
    SAME_DAY = "same_day"
    SAME_WEEK = "same_week"
    BEYOND = "beyond"


class MarketSession(str, Enum):
    PRE_MARKET = "pre-market"
    REGULAR = "regular"
    AFTER_HOURS = "after-hours"
    CLOSED = "closed"


class TradingPattern(str, Enum):
    """Shape of a sequence of same-symbol trades."""

    BURST = "burst"  # Every interval rapid
    SYSTEMATIC = "systematic"  # Very regular intervals
    RANDOM = "random"
    NONE = "none"


class FillAction(str, Enum):
    """Suggested handling of a potential partial-fill group."""

    GROUP = "group"
    SEPARATE = "separate"
    REVIEW = "review"


@dataclass
class WindowFlags:
    """Which windows contain the elapsed time between two transactions."""

    same_second: bool = False
    same_minute: bool = False
    same_hour: bool = False
    same_day: bool = False
    same_week: bool = False
    rapid_trading: bool = False
    partial_fill: bool = False
    split_order: bool = False
    settlement: bool = False


@dataclass
class WindowConfidence:
    """Duplicate confidence implied by each window (0 when outside it)."""

    same_second: float = 0.0
    same_minute: float = 0.0
    same_hour: float = 0.0
    same_day: float = 0.0
    rapid_trading: float = 0.0
    partial_fill: float = 0.0
    split_order: float = 0.0

    def values(self) -> dict[str, float]:
        return asdict(self)


@dataclass
class MarketContext:
    """Exchange session of a transaction timestamp."""

    session: MarketSession
    is_market_hours: bool
    is_weekend: bool
    is_holiday: bool


@dataclass
class TimezoneInfo:
    """Timezone labels carried by the two transactions."""

    first_timezone: str
    second_timezone: str
    # Offset between the two labels (EDT vs EST is one hour)
    offset_seconds: int = 0


@dataclass
class TimeWindowAnalysis:
    """Result of comparing the timing of two transactions."""

    elapsed_ms: int
    elapsed_formatted: str
    bucket: TimeBucket
    windows: WindowFlags
    confidence_scores: WindowConfidence
    duplicate_risk: RiskLevel
    market_context: MarketContext
    timezone_info: TimezoneInfo
    risk_factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "elapsed_ms": self.elapsed_ms,
            "elapsed_formatted": self.elapsed_formatted,
            "bucket": self.bucket.value,
            "windows": asdict(self.windows),
            "confidence_scores": self.confidence_scores.values(),
            "duplicate_risk": self.duplicate_risk.value,
            "risk_factors": list(self.risk_factors),
            "market_context": {
                "session": self.market_context.session.value,
                "is_market_hours": self.market_context.is_market_hours,
                "is_weekend": self.market_context.is_weekend,
                "is_holiday": self.market_context.is_holiday,
            },
            "timezone_info": asdict(self.timezone_info),
        }


@dataclass
class RapidTradingPattern:
    is_rapid_trading: bool
    transaction_count: int
    average_interval_seconds: float
    pattern: TradingPattern
    confidence: float
    risk_level: RiskLevel


@dataclass
class PartialFillAnalysis:
    is_potential_partial_fill: bool
    quantities: list[Decimal]
    price_consistency: bool
    time_spread_seconds: float
    confidence: float
    suggested_action: FillAction


@dataclass
class SplitOrderAnalysis:
    is_potential_split_order: bool
    quantities: list[Decimal]
    execution_times: list[datetime]
    price_variation: Decimal
    confidence: float
    suggested_grouping: list[str] = field(default_factory=list)


def classify_elapsed(
    seconds: float,
    config: Optional[TimeWindowConfig] = None,
) -> TimeBucket:
    """
    Classify an elapsed time into the smallest containing window.

    Args:
        seconds: Absolute elapsed time in seconds
        config: Window sizes (defaults apply when omitted)
    """
    config = config or TimeWindowConfig()
    seconds = abs(seconds)
    if seconds <= config.same_second:
        return TimeBucket.SAME_SECOND
    if seconds <= config.same_minute:
        return TimeBucket.SAME_MINUTE
    if seconds <= config.same_hour:
        return TimeBucket.SAME_HOUR
    if seconds <= config.same_day:
        return TimeBucket.SAME_DAY
    if seconds <= config.same_week:
        return TimeBucket.SAME_WEEK
    return TimeBucket.BEYOND


def format_elapsed(elapsed_ms: float) -> str:
    """Human readable elapsed time in its largest whole unit ("2 hours")."""
    seconds = int(elapsed_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24
    weeks = days // 7

    for value, unit in ((weeks, "week"), (days, "day"), (hours, "hour"), (minutes, "minute")):
        if value > 0:
            return f"{value} {unit}{'s' if value > 1 else ''}"
    return f"{seconds} second{'s' if seconds > 1 else ''}"


def same_amount(first: Decimal, second: Decimal) -> bool:
    return abs(Decimal(first) - Decimal(second)) < AMOUNT_TOLERANCE


def analyze_time_windows(
    first: TimedTransaction,
    second: TimedTransaction,
    config: Optional[TimeWindowConfig] = None,
) -> TimeWindowAnalysis:
    """
    Analyze the timing relationship between two transactions.

    Args:
        first: Transaction whose timestamp anchors the market context
        second: Transaction compared against it
        config: Window sizes (defaults apply when omitted)

    Returns:
        TimeWindowAnalysis
    """
    config = config or TimeWindowConfig()
    first_at = first.executed_at
    second_at = second.executed_at

    elapsed = abs((first_at - second_at).total_seconds())

    windows = WindowFlags(
        same_second=elapsed <= config.same_second,
        same_minute=elapsed <= config.same_minute,
        same_hour=elapsed <= config.same_hour,
        same_day=elapsed <= config.same_day,
        same_week=elapsed <= config.same_week,
        rapid_trading=elapsed <= config.rapid_trading,
        partial_fill=elapsed <= config.partial_fill,
        split_order=elapsed <= config.split_order,
        settlement=elapsed <= config.settlement,
    )

    duplicate_risk, risk_factors = _assess_time_risk(windows, first, second)

    return TimeWindowAnalysis(
        elapsed_ms=int(round(elapsed * 1000)),
        elapsed_formatted=format_elapsed(elapsed * 1000),
        bucket=classify_elapsed(elapsed, config),
        windows=windows,
        confidence_scores=_window_confidence(elapsed, config),
        duplicate_risk=duplicate_risk,
        risk_factors=risk_factors,
        market_context=market_context(first_at, config.market_timezone),
        timezone_info=_timezone_info(first, second),
    )


def validate_analysis(analysis: TimeWindowAnalysis) -> tuple[list[str], list[str]]:
    """
    Check an analysis for internal consistency.

    Returns:
        (errors, warnings)
    """
    errors: list[str] = []
    warnings: list[str] = []

    if analysis.elapsed_ms < 0:
        errors.append("Time difference cannot be negative")

    for name, score in analysis.confidence_scores.values().items():
        if score < 0 or score > 1:
            errors.append(f"Invalid confidence score for {name}: {score}")

    if analysis.windows.same_second and analysis.duplicate_risk != RiskLevel.CRITICAL:
        warnings.append("Same second timing should result in critical risk")

    if analysis.bucket == TimeBucket.BEYOND:
        warnings.append("Time difference exceeds one week")

    return errors, warnings


def market_context(moment: datetime, market_timezone: str = "America/New_York") -> MarketContext:
    """Classify a timestamp into the exchange session it falls in."""
    local = moment.astimezone(ZoneInfo(market_timezone))
    hours = local.hour + local.minute / 60

    is_weekend = local.weekday() >= 5
    is_holiday = local.date() in US_MARKET_HOLIDAYS

    if is_weekend or is_holiday:
        session = MarketSession.CLOSED
    elif PRE_MARKET_START <= hours < REGULAR_START:
        session = MarketSession.PRE_MARKET
    elif REGULAR_START <= hours < REGULAR_END:
        session = MarketSession.REGULAR
    elif REGULAR_END <= hours < AFTER_HOURS_END:
        session = MarketSession.AFTER_HOURS
    else:
        session = MarketSession.CLOSED

    return MarketContext(
        session=session,
        is_market_hours=session != MarketSession.CLOSED,
        is_weekend=is_weekend,
        is_holiday=is_holiday,
    )


def detect_rapid_trading(
    transactions: list[TimedTransaction],
    symbol: Optional[str] = None,
    window_seconds: float = 30 * 60,
) -> RapidTradingPattern:
    """
    Detect rapid trading in a sequence of transactions.

    Trading is rapid when at least two consecutive intervals fall within
    window_seconds.
    """
    selected = [t for t in transactions if symbol is None or t.symbol == symbol]
    if len(selected) < 2:
        return RapidTradingPattern(
            is_rapid_trading=False,
            transaction_count=len(selected),
            average_interval_seconds=0.0,
            pattern=TradingPattern.NONE,
            confidence=0.0,
            risk_level=RiskLevel.LOW,
        )

    intervals = _intervals(sorted(t.executed_at for t in selected))
    rapid = [interval for interval in intervals if interval <= window_seconds]
    is_rapid = len(rapid) >= 2
    average = statistics.fmean(intervals)

    pattern = TradingPattern.NONE
    if is_rapid:
        cv = _coefficient_of_variation(intervals)
        if cv is not None and cv < 0.2:
            pattern = TradingPattern.SYSTEMATIC
        elif len(rapid) >= 3 and len(rapid) == len(intervals):
            pattern = TradingPattern.BURST
        else:
            pattern = TradingPattern.RANDOM

    confidence = min(0.9, len(rapid) / len(intervals) * 0.8 + 0.2) if is_rapid else 0.0

    risk_level = RiskLevel.LOW
    if is_rapid:
        if pattern == TradingPattern.BURST and len(rapid) >= 5:
            risk_level = RiskLevel.HIGH
        elif pattern == TradingPattern.SYSTEMATIC or len(rapid) >= 3:
            risk_level = RiskLevel.MEDIUM

    return RapidTradingPattern(
        is_rapid_trading=is_rapid,
        transaction_count=len(selected),
        average_interval_seconds=average,
        pattern=pattern,
        confidence=confidence,
        risk_level=risk_level,
    )


def analyze_partial_fills(
    transactions: list[TimedTransaction],
    symbol: str,
    target_quantity: Optional[Decimal] = None,
    partial_fill_seconds: float = 30 * 60,
) -> PartialFillAnalysis:
    """
    Decide whether same-symbol buys/sells look like fills of one order.

    Partial fills trade at nearly the same price (std/mean below 5%) within
    the partial-fill window.
    """
    selected = sorted(
        (
            t
            for t in transactions
            if t.symbol == symbol and t.transaction_type in ("buy", "sell")
        ),
        key=lambda t: t.executed_at,
    )
    quantities = [Decimal(t.quantity) for t in selected]

    if len(selected) < 2:
        return PartialFillAnalysis(
            is_potential_partial_fill=False,
            quantities=quantities,
            price_consistency=True,
            time_spread_seconds=0.0,
            confidence=0.0,
            suggested_action=FillAction.SEPARATE,
        )

    prices = [float(t.price) for t in selected]
    cv = _coefficient_of_variation(prices)
    price_consistency = cv is not None and cv < 0.05
    time_spread = (selected[-1].executed_at - selected[0].executed_at).total_seconds()

    is_partial = price_consistency and time_spread <= partial_fill_seconds
    confidence = 0.0
    if is_partial:
        confidence = 0.7
        if target_quantity is not None and same_amount(sum(quantities), target_quantity):
            confidence = 0.9
        # Round lots rarely come from partial fills
        if any(quantity % 10 != 0 for quantity in quantities):
            confidence += 0.1

    action = FillAction.SEPARATE
    if is_partial:
        action = FillAction.GROUP if confidence >= 0.8 else FillAction.REVIEW

    return PartialFillAnalysis(
        is_potential_partial_fill=is_partial,
        quantities=quantities,
        price_consistency=price_consistency,
        time_spread_seconds=time_spread,
        confidence=min(confidence, 1.0),
        suggested_action=action,
    )


def analyze_split_orders(
    transactions: list[TimedTransaction],
    symbol: str,
    split_order_seconds: float = 2 * 60 * 60,
) -> SplitOrderAnalysis:
    """
    Decide whether same-symbol transactions look like one order split up.

    Every gap must fit the split-order window and prices must vary by less
    than 10%. Consistent sizes and regular timing raise confidence.
    """
    selected = sorted((t for t in transactions if t.symbol == symbol), key=lambda t: t.executed_at)
    quantities = [Decimal(t.quantity) for t in selected]

    if len(selected) < 2:
        return SplitOrderAnalysis(
            is_potential_split_order=False,
            quantities=quantities,
            execution_times=[],
            price_variation=Decimal("0"),
            confidence=0.0,
        )

    execution_times = [t.executed_at for t in selected]
    prices = [Decimal(t.price) for t in selected]
    average_price = sum(prices) / len(prices)
    price_variation = max(prices) - min(prices)
    variation_ratio = price_variation / average_price if average_price else Decimal("0")

    intervals = _intervals(execution_times)
    within_window = all(interval <= split_order_seconds for interval in intervals)

    is_split = within_window and variation_ratio < Decimal("0.1")
    confidence = 0.0
    if is_split:
        confidence = 0.6
        quantity_cv = _coefficient_of_variation([float(q) for q in quantities])
        if quantity_cv is not None and quantity_cv < 0.3:
            confidence += 0.2
        interval_cv = _coefficient_of_variation(intervals)
        if interval_cv is not None and interval_cv < 0.5:
            confidence += 0.2

    grouping = []
    if is_split:
        grouping.append(f"split-order-{symbol}-{int(execution_times[0].timestamp())}")

    return SplitOrderAnalysis(
        is_potential_split_order=is_split,
        quantities=quantities,
        execution_times=execution_times,
        price_variation=price_variation,
        confidence=min(confidence, 1.0),
        suggested_grouping=grouping,
    )


def _window_confidence(elapsed: float, config: TimeWindowConfig) -> WindowConfidence:
    scores = WindowConfidence()
    if elapsed <= config.same_second:
        scores.same_second = 0.95
    if elapsed <= config.same_minute:
        scores.same_minute = max(0.8, 0.9 - elapsed / config.same_minute * 0.1)
    if elapsed <= config.same_hour:
        scores.same_hour = max(0.6, 0.8 - elapsed / config.same_hour * 0.2)
    if elapsed <= config.same_day:
        scores.same_day = max(0.3, 0.6 - elapsed / config.same_day * 0.3)
    if elapsed <= config.rapid_trading:
        scores.rapid_trading = 0.85
    if elapsed <= config.partial_fill:
        scores.partial_fill = max(0.4, 0.7 - elapsed / config.partial_fill * 0.3)
    if elapsed <= config.split_order:
        scores.split_order = max(0.3, 0.6 - elapsed / config.split_order * 0.3)
    return scores


def _assess_time_risk(
    windows: WindowFlags,
    first: TimedTransaction,
    second: TimedTransaction,
) -> tuple[RiskLevel, list[str]]:
    factors: list[str] = []
    score = 0.0

    if windows.same_second:
        score += 0.9
        factors.append("Transactions within same second")
    if windows.same_minute:
        score += 0.7
        factors.append("Transactions within same minute")
    if windows.rapid_trading:
        score += 0.6
        factors.append("Rapid trading pattern detected")
    if first.symbol == second.symbol:
        score += 0.3
        factors.append("Same symbol")
    if same_amount(first.quantity, second.quantity):
        score += 0.3
        factors.append("Same quantity")
    if same_amount(first.price, second.price):
        score += 0.3
        factors.append("Same price")

    if score >= 1.5:
        risk = RiskLevel.CRITICAL
    elif score >= 1.0:
        risk = RiskLevel.HIGH
    elif score >= 0.6:
        risk = RiskLevel.MEDIUM
    else:
        risk = RiskLevel.LOW
    return risk, factors


def _timezone_info(first: TimedTransaction, second: TimedTransaction) -> TimezoneInfo:
    first_tz = (getattr(first, "timezone", None) or "EST").upper()
    second_tz = (getattr(second, "timezone", None) or first_tz).upper()

    offset = 0
    if first_tz == "EDT" and second_tz == "EST":
        offset = 3600
    elif first_tz == "EST" and second_tz == "EDT":
        offset = -3600
    return TimezoneInfo(first_timezone=first_tz, second_timezone=second_tz, offset_seconds=offset)


def _intervals(moments: list[datetime]) -> list[float]:
    return [(later - earlier).total_seconds() for earlier, later in zip(moments, moments[1:])]


def _coefficient_of_variation(values: list[float]) -> Optional[float]:
    """Population std / mean, or None when the mean is zero."""
    mean = statistics.fmean(values)
    if mean == 0:
        return None
    return statistics.pstdev(values) / mean
