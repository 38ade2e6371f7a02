"""
Tolerance-based comparison of quantities and amounts.

Provides matching with configurable absolute and percentage tolerance bands.
All arithmetic is done in Decimal so that rounding noise never produces a
spurious mismatch.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from invoice_lifecycle.models import parse_decimal

import logging
logger = logging.getLogger(__name__)


Number = Union[Decimal, float, int, str]

HUNDRED = Decimal("100")


@dataclass
class ToleranceMatchResult:
    """Result of a tolerance-based comparison."""
    field_name: str
    matches: bool
    expected_value: Decimal
    actual_value: Decimal
    tolerance_type: str  # 'absolute', 'percentage', 'band'
    actual_variance: Decimal
    variance_percentage: Optional[Decimal] = None  # None when expected is zero

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'field_name': self.field_name,
            'matches': self.matches,
            'expected_value': str(self.expected_value),
            'actual_value': str(self.actual_value),
            'tolerance_type': self.tolerance_type,
            'actual_variance': str(self.actual_variance),
            'variance_percentage': str(self.variance_percentage) if self.variance_percentage is not None else None
        }


class ToleranceMatcher:
    """
    Compares numeric values within absolute and/or percentage bands.

    A value passes a band when |expected - actual| is no larger than the band.
    The percentage band is measured against the expected value; a zero
    expected value only passes it on an exact match.
    """

    def __init__(self):
        """Initialize tolerance matcher."""
        self.logger = logging.getLogger(f"{__name__}.ToleranceMatcher")

    @staticmethod
    def _variance(expected: Decimal, actual: Decimal):
        difference = abs(expected - actual)
        if expected == 0:
            return difference, None
        return difference, difference / abs(expected) * HUNDRED

    def match_with_percentage_tolerance(self, expected: Number, actual: Number,
                                        tolerance_percentage: Number = Decimal("0"),
                                        field_name: str = 'amount') -> ToleranceMatchResult:
        """
        Match values with percentage-based tolerance.

        Args:
            expected: Expected value (from the purchase order or receipt)
            actual: Actual value (from the invoice)
            tolerance_percentage: Percentage tolerance (e.g. 5 for ±5%)
            field_name: Name reported on the result

        Returns:
            ToleranceMatchResult with match details
        """
        expected_decimal = parse_decimal(expected)
        actual_decimal = parse_decimal(actual)
        tolerance = parse_decimal(tolerance_percentage)

        difference, variance_percentage = self._variance(expected_decimal, actual_decimal)
        if variance_percentage is None:
            matches = difference == 0
        else:
            matches = variance_percentage <= tolerance

        self.logger.debug(f"Percentage tolerance match on {field_name}: {expected_decimal} vs {actual_decimal} "
                          f"(±{tolerance}%) = {matches}")
        return ToleranceMatchResult(
            field_name=field_name,
            matches=matches,
            expected_value=expected_decimal,
            actual_value=actual_decimal,
            tolerance_type='percentage',
            actual_variance=difference,
            variance_percentage=variance_percentage
        )

    def match_with_absolute_tolerance(self, expected: Number, actual: Number,
                                      tolerance_amount: Number = Decimal("0"),
                                      field_name: str = 'amount') -> ToleranceMatchResult:
        """
        Match values with absolute tolerance.

        Args:
            expected: Expected value
            actual: Actual value
            tolerance_amount: Absolute tolerance (e.g. 10 for ±10.00)
            field_name: Name reported on the result

        Returns:
            ToleranceMatchResult with match details
        """
        expected_decimal = parse_decimal(expected)
        actual_decimal = parse_decimal(actual)
        tolerance = parse_decimal(tolerance_amount)

        difference, variance_percentage = self._variance(expected_decimal, actual_decimal)
        matches = difference <= tolerance

        self.logger.debug(f"Absolute tolerance match on {field_name}: {expected_decimal} vs {actual_decimal} "
                          f"(±{tolerance}) = {matches}")
        return ToleranceMatchResult(
            field_name=field_name,
            matches=matches,
            expected_value=expected_decimal,
            actual_value=actual_decimal,
            tolerance_type='absolute',
            actual_variance=difference,
            variance_percentage=variance_percentage
        )

    def match_within_band(self, expected: Number, actual: Number,
                          tolerance_amount: Number = Decimal("0"),
                          tolerance_percentage: Number = Decimal("0"),
                          field_name: str = 'amount') -> ToleranceMatchResult:
        """
        Match values against a combined band: passes if either the absolute
        or the percentage tolerance is satisfied.
        """
        absolute = self.match_with_absolute_tolerance(expected, actual, tolerance_amount, field_name)
        if absolute.matches:
            absolute.tolerance_type = 'band'
            return absolute

        percentage = self.match_with_percentage_tolerance(expected, actual, tolerance_percentage, field_name)
        percentage.tolerance_type = 'band'
        return percentage
