"""
Panelist Reassignment Service
=============================
Wraps the reassignment engine for the console: validation, result
messages, cache invalidation. Results report ``changed`` so the page can
tell "nothing changed" apart from "partially changed".
"""
import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

from utils.plan_engine.exceptions import PreconditionError, ReassignmentPhaseError
from utils.plan_engine.plan_service import OperationResult, clear_console_cache
from .reassignment_data import ReassignmentData, filter_params
from .reassignment_engine import BulkReassignmentEngine
from .reassignment_validators import ReassignmentValidator

logger = logging.getLogger(__name__)

# Shown next to every preview
CONCURRENCY_NOTICE = (
    "Rows are not locked between preview and execute. Plan merges or other "
    "reassignments running at the same time can change the final count; the "
    "result reports any difference."
)


class PanelistReassignmentService:
    """Preview / execute bulk reassignment"""

    def __init__(self, engine=None):
        self.data = ReassignmentData(engine)
        self.engine = self.data.engine
        self.reassigner = BulkReassignmentEngine(self.data)
        self.validator = ReassignmentValidator()

    def preview(
        self,
        client_id: int,
        old_panelist_id: int,
        new_panelist_id: Optional[int],
        date_from: date,
        date_to: date
    ) -> OperationResult:
        validation = self.validator.validate_request(
            client_id, old_panelist_id, new_panelist_id, date_from, date_to
        )
        if not validation.is_valid:
            return OperationResult(
                success=False, message="Validation failed", errors=validation.errors, data={'changed': False}
            )

        try:
            preview = self.reassigner.preview(client_id, old_panelist_id, new_panelist_id, date_from, date_to)
            events = self.data.get_affected_events(
                filter_params(client_id, preview.old_node, date_from, date_to)
            )
            target = preview.new_node or 'no node (unassign)'
            return OperationResult(
                success=True,
                message=f"{preview.affected_count} events will move from {preview.old_node} to {target}",
                data={
                    'preview': preview,
                    'affected_count': preview.affected_count,
                    'affected_nodes': preview.affected_nodes,
                    'events': events,
                    'warnings': validation.warnings + [CONCURRENCY_NOTICE],
                    'changed': False,
                }
            )

        except PreconditionError as e:
            logger.warning(f"Reassignment preview rejected for client {client_id}: {e}")
            return OperationResult(
                success=False,
                message=str(e),
                errors=[str(e)],
                data={'changed': False, 'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(f"Error previewing reassignment: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to preview reassignment",
                errors=["An unexpected error occurred"],
                data={'changed': False, 'technical_error': str(e)}
            )

    def execute(
        self,
        client_id: int,
        old_panelist_id: int,
        new_panelist_id: Optional[int],
        date_from: date,
        date_to: date,
        previewed_count: Optional[int] = None
    ) -> OperationResult:
        validation = self.validator.validate_request(
            client_id, old_panelist_id, new_panelist_id, date_from, date_to
        )
        if not validation.is_valid:
            return OperationResult(
                success=False, message="Validation failed", errors=validation.errors, data={'changed': False}
            )

        try:
            result = self.reassigner.execute(
                client_id, old_panelist_id, new_panelist_id, date_from, date_to,
                previewed_count=previewed_count
            )
            clear_console_cache()

            message = f"{result.updated_count} events reassigned"
            if result.count_drift:
                message += (
                    f" (preview showed {result.previewed_count}; the data changed in between)"
                )
            return OperationResult(
                success=True,
                message=message,
                data={
                    **asdict(result),
                    'count_drift': result.count_drift,
                    'changed': True,
                }
            )

        except ReassignmentPhaseError as e:
            return OperationResult(
                success=False,
                message=str(e),
                errors=[str(e)],
                data={'changed': e.changed, 'phase': e.phase, 'rolled_back': e.rolled_back}
            )
        except PreconditionError as e:
            logger.warning(f"Reassignment rejected for client {client_id}: {e}")
            return OperationResult(
                success=False,
                message=str(e),
                errors=[str(e)],
                data={'changed': False, 'error_type': type(e).__name__}
            )
        except Exception as e:
            logger.error(f"Error executing reassignment: {e}", exc_info=True)
            return OperationResult(
                success=False,
                message="Failed to execute reassignment",
                errors=["An unexpected error occurred"],
                data={'changed': False, 'technical_error': str(e)}
            )

    def get_panelists(self, client_id: int):
        return self.data.get_panelists(client_id)
