"""
Invoice matching engine.

Provides tolerance-band comparison of quantities and amounts and the
three-way match of invoices against purchase orders and goods receipts.
"""

from .tolerance_matcher import ToleranceMatcher, ToleranceMatchResult
from .three_way_matcher import ThreeWayMatcher

__all__ = [
    "ToleranceMatcher",
    "ToleranceMatchResult",
    "ThreeWayMatcher"
]
