"""
Panelist Reassignment Validators
================================
Form-level checks run before the engine is called. Hard preconditions
(missing node, empty selection) are raised by the engine itself.
"""
import logging
from datetime import date
from typing import Optional

from utils.plan_engine.plan_validators import ValidationResult

logger = logging.getLogger(__name__)

# Ranges longer than this get a warning; they are still allowed
LONG_RANGE_DAYS = 366


class ReassignmentValidator:
    """Validator for bulk reassignment requests"""

    def validate_request(
        self,
        client_id,
        old_panelist_id,
        new_panelist_id: Optional[int],
        date_from: Optional[date],
        date_to: Optional[date]
    ) -> ValidationResult:
        result = ValidationResult(is_valid=True)

        if not client_id:
            result.add_error("Select a client")
        if not old_panelist_id:
            result.add_error("Select the current panelist")
        if date_from is None or date_to is None:
            result.add_error("Select both dates of the range")
        elif date_from > date_to:
            result.add_error(f"Start date {date_from} is after end date {date_to}")
        elif (date_to - date_from).days > LONG_RANGE_DAYS:
            result.add_warning(
                f"The range spans {(date_to - date_from).days + 1} days; check it covers only what you intend"
            )

        if old_panelist_id and new_panelist_id and old_panelist_id == new_panelist_id:
            result.add_error("The new panelist must differ from the current one")

        if new_panelist_id is None and result.is_valid:
            result.add_warning("No new panelist selected: matching events will be left without a node")

        return result
