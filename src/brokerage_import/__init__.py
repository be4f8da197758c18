"""
Brokerage email → Duplicate detection → Human-in-the-loop → Transaction import

A deterministic, testable pipeline that turns parsed brokerage trade
confirmation emails into portfolio transactions with multi-level duplicate
detection, confidence scoring, and a prioritized manual review queue.
"""

__version__ = "0.1.0"
