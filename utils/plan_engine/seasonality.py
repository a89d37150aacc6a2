"""
Seasonality Distributor
=======================
Spreads an annual event target across twelve months.

Percentages are stored with two decimals and must sum to exactly 100; they
are never rescaled. Largest-remainder rounding: floor every month's exact
share, then hand the leftover units to the months with the largest
fractional remainders (lowest month index first on ties). The monthly
targets always sum to the annual total.
"""
import logging
from decimal import Decimal
from fractions import Fraction
from typing import List, Optional, Sequence, Union

from .exceptions import InvalidSeasonalityError

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal, str]

MONTHS_PER_YEAR = 12
FULL_YEAR = 100


class SeasonalityDistributor:
    """Monthly target calculation for one product/year"""

    def validate(self, percentages: Sequence[Number], product_id: Optional[int] = None,
                 year: Optional[int] = None) -> List[Fraction]:
        """Return exact percentages, raising when they do not sum to 100"""
        if len(percentages) != MONTHS_PER_YEAR:
            raise ValueError(f"Expected {MONTHS_PER_YEAR} monthly percentages, got {len(percentages)}")

        exact = [Fraction(Decimal(str(p))) for p in percentages]
        if any(p < 0 for p in exact):
            raise InvalidSeasonalityError(
                f"{float(sum(exact)):g} (negative month present)", product_id, year
            )

        total = sum(exact)
        if total != FULL_YEAR:
            raise InvalidSeasonalityError(f"{float(total):g}", product_id, year)
        return exact

    def monthly_targets(self, annual_total: int, percentages: Sequence[Number],
                        product_id: Optional[int] = None, year: Optional[int] = None) -> List[int]:
        """Split annual_total by percentages; the result sums to annual_total"""
        if annual_total < 0:
            raise ValueError(f"Annual total must be >= 0, got {annual_total}")

        exact = self.validate(percentages, product_id, year)
        raw = [annual_total * p / FULL_YEAR for p in exact]
        return self._largest_remainder(annual_total, raw)

    def uniform_targets(self, annual_total: int) -> List[int]:
        """Even split across the year, same rounding rule"""
        return self.distribute(annual_total, [Fraction(1)] * MONTHS_PER_YEAR)

    def distribute(self, total: int, weights: Sequence[Fraction]) -> List[int]:
        """
        Split total over twelve monthly weights in proportion.

        Used for plan periods shorter than the year, where only the months
        inside the period carry weight. Zero weights get zero units.
        """
        if total < 0:
            raise ValueError(f"Total must be >= 0, got {total}")
        if len(weights) != MONTHS_PER_YEAR:
            raise ValueError(f"Expected {MONTHS_PER_YEAR} monthly weights, got {len(weights)}")

        weight_total = sum(weights)
        if weight_total <= 0:
            if total:
                raise ValueError("Cannot distribute events over months that all weigh zero")
            return [0] * MONTHS_PER_YEAR

        raw = [total * Fraction(w) / weight_total for w in weights]
        return self._largest_remainder(total, raw)

    @staticmethod
    def _largest_remainder(annual_total: int, raw: List[Fraction]) -> List[int]:
        floors = [int(r) for r in raw]  # raw values are non-negative
        leftover = annual_total - sum(floors)

        # Equal remainders go to the earlier month
        order = sorted(range(MONTHS_PER_YEAR), key=lambda i: (-(raw[i] - floors[i]), i))
        for i in order[:leftover]:
            floors[i] += 1

        logger.debug(f"Distributed {annual_total} events: {floors}")
        return floors
