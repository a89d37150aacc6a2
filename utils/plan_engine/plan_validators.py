"""
Plan Engine Validators
======================
Input checks for plan generation and merge requests, run by the service
before any reference data is loaded or any row is written.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from .models import City, CityAllocationRequirement, GenerationOptions, MergeStrategy, ProductSeasonality

logger = logging.getLogger(__name__)

MIN_PLAN_YEAR = 2000
MAX_PLAN_YEAR = 2100


@dataclass
class ValidationResult:
    """Result of validation check"""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.errors.append(message)
        self.is_valid = False

    def add_warning(self, message: str):
        self.warnings.append(message)

    def merge(self, other: 'ValidationResult'):
        """Merge another validation result into this one"""
        if not other.is_valid:
            self.is_valid = False
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)


def _is_positive_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


class PlanValidator:
    """Validator for plan generation and merge"""

    # ================================================================
    # GENERATION REQUEST
    # ================================================================

    def validate_generation_request(
        self,
        client_id,
        product_id,
        year,
        options: GenerationOptions
    ) -> ValidationResult:
        result = ValidationResult(is_valid=True)

        if not _is_positive_int(client_id):
            result.add_error(f"Client id must be a positive integer, got {client_id!r}")
        if not _is_positive_int(product_id):
            result.add_error(f"Product id must be a positive integer, got {product_id!r}")
        if not isinstance(year, int) or not MIN_PLAN_YEAR <= year <= MAX_PLAN_YEAR:
            result.add_error(f"Year must be between {MIN_PLAN_YEAR} and {MAX_PLAN_YEAR}, got {year!r}")

        if options.total_events is not None and options.total_events < 0:
            result.add_error(f"Total events must be >= 0, got {options.total_events}")
        if options.max_events_per_week is not None:
            if options.max_events_per_week < 0:
                result.add_error(f"Max events per week must be >= 0, got {options.max_events_per_week}")
            elif options.max_events_per_week == 0:
                result.add_warning("Max events per week is 0: panelists without their own cap get no events")

        if result.is_valid and (options.start_date is not None or options.end_date is not None):
            result.merge(self.validate_plan_period(year, options))

        if not options.apply_seasonality:
            result.add_warning("Seasonality disabled: events are spread evenly across months")
        if not options.apply_city_weights:
            result.add_warning("City weights disabled: classification quotas are ignored")

        return result

    def validate_plan_period(self, year: int, options: GenerationOptions) -> ValidationResult:
        """Custom periods must lie inside the plan year"""
        result = ValidationResult(is_valid=True)
        start, end = options.period(year)

        if start > end:
            result.add_error(f"Plan period start {start.isoformat()} is after its end {end.isoformat()}")
        if start.year != year or end.year != year:
            result.add_error(f"Plan period {start.isoformat()} .. {end.isoformat()} must lie inside {year}")
        if result.is_valid and (start, end) != (date(year, 1, 1), date(year, 12, 31)):
            result.add_warning(
                f"Custom period {start.isoformat()} .. {end.isoformat()}: the annual total is "
                f"scaled to {(end - start).days + 1} days"
            )
        return result

    # ================================================================
    # REFERENCE DATA
    # ================================================================

    def validate_reference_data(
        self,
        cities: List[City],
        requirements: Dict[int, CityAllocationRequirement],
        seasonality: Optional[ProductSeasonality],
        options: GenerationOptions
    ) -> ValidationResult:
        """Warnings on loaded configuration; bad seasonality is raised by the distributor"""
        result = ValidationResult(is_valid=True)
        active = [c for c in cities if c.is_active]

        if not active:
            result.add_warning("No active cities: the plan will contain no events")
        elif options.apply_city_weights and not requirements:
            result.add_warning("No city allocation requirements configured: all quotas are zero")

        missing = [c.code for c in active if c.id not in requirements]
        if missing and requirements:
            result.add_warning(f"Cities without requirements (receive nothing): {', '.join(missing)}")

        if not options.apply_seasonality and seasonality is not None:
            result.add_warning(
                f"Configured seasonality for product {seasonality.product_id} / {seasonality.year} is ignored"
            )

        return result

    # ================================================================
    # MERGE
    # ================================================================

    def validate_merge_request(self, strategy, superseded_count: int = 0) -> ValidationResult:
        result = ValidationResult(is_valid=True)
        valid = [s.value for s in MergeStrategy]

        value = strategy.value if isinstance(strategy, MergeStrategy) else str(strategy).lower()
        if value not in valid:
            result.add_error(f"Merge strategy must be one of: {', '.join(valid)}")
            return result

        if value == MergeStrategy.REPLACE.value and superseded_count > 0:
            result.add_warning(f"This merge will cancel {superseded_count} live events")
        return result
