"""
Bulk Reassignment Engine
========================
Re-points in-flight shipment events from one panelist's node to another
panelist's node, or unassigns them, over a date range.

Two phases:

- ``preview`` counts the rows the change would touch.
- ``execute`` recounts inside its own transaction, then runs two UPDATE
  statements (origin side, destination side). A row can match on either
  side, so the sides are updated independently.

No lock is held between preview and execute. If other writes land in
between, execute reports the difference as ``count_drift`` instead of
trusting the previewed number.
"""
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from utils.db import db_transaction
from utils.plan_engine.exceptions import (
    InvalidDateRangeError, NothingToReassignError, PanelistNotFoundError,
    PanelistWithoutNodeError, PreconditionError, ReassignmentPhaseError
)
from utils.plan_engine.models import Panelist
from .reassignment_data import ReassignmentData, filter_params

logger = logging.getLogger(__name__)


@dataclass
class ReassignmentPreview:
    client_id: int
    old_panelist_id: int
    new_panelist_id: Optional[int]
    old_node: str
    new_node: Optional[str]
    date_from: date
    date_to: date
    affected_count: int
    origin_matches: int
    destination_matches: int
    affected_nodes: List[str] = field(default_factory=list)
    counterpart_nodes: List[str] = field(default_factory=list)

    @property
    def is_unassign(self) -> bool:
        return self.new_node is None


@dataclass
class ReassignmentResult:
    old_node: str
    new_node: Optional[str]
    updated_count: int
    origin_updated: int
    destination_updated: int
    previewed_count: Optional[int] = None

    @property
    def count_drift(self) -> int:
        """Executed minus previewed rows; 0 when no preview count was given"""
        if self.previewed_count is None:
            return 0
        return self.updated_count - self.previewed_count


@dataclass
class _ResolvedRequest:
    old_panelist: Panelist
    new_panelist: Optional[Panelist]

    @property
    def old_node(self) -> str:
        return self.old_panelist.node_code

    @property
    def new_node(self) -> Optional[str]:
        return self.new_panelist.node_code if self.new_panelist else None


class BulkReassignmentEngine:
    """Two-phase bulk re-pointing of events between panelists' nodes"""

    def __init__(self, data: Optional[ReassignmentData] = None, engine=None):
        self.data = data or ReassignmentData(engine)

    # ==================== PUBLIC API ====================

    def preview(
        self,
        client_id: int,
        old_panelist_id: int,
        new_panelist_id: Optional[int],
        date_from: date,
        date_to: date
    ) -> ReassignmentPreview:
        """
        Count the events an execute with the same arguments would update.

        Raises:
            PreconditionError subclasses for invalid input and for an empty
            selection (NothingToReassignError)
        """
        request = self._resolve(client_id, old_panelist_id, new_panelist_id, date_from, date_to)
        params = filter_params(client_id, request.old_node, date_from, date_to)

        with self.data.engine.connect() as conn:
            affected = self.data.count_affected(conn, params)
            origin = self.data.count_side(conn, params, 'origin')
            destination = self.data.count_side(conn, params, 'destination')
            counterparts = self.data.get_counterpart_nodes(conn, params)

        if affected == 0:
            raise NothingToReassignError(request.old_node, date_from, date_to)

        affected_nodes = [request.old_node]
        if request.new_node:
            affected_nodes.append(request.new_node)

        logger.info(
            f"Reassignment preview client={client_id}: {request.old_node} -> "
            f"{request.new_node or 'unassigned'}, {affected} events "
            f"({origin} origin, {destination} destination)"
        )
        return ReassignmentPreview(
            client_id=client_id,
            old_panelist_id=old_panelist_id,
            new_panelist_id=new_panelist_id,
            old_node=request.old_node,
            new_node=request.new_node,
            date_from=date_from,
            date_to=date_to,
            affected_count=affected,
            origin_matches=origin,
            destination_matches=destination,
            affected_nodes=affected_nodes,
            counterpart_nodes=counterparts,
        )

    def execute(
        self,
        client_id: int,
        old_panelist_id: int,
        new_panelist_id: Optional[int],
        date_from: date,
        date_to: date,
        previewed_count: Optional[int] = None
    ) -> ReassignmentResult:
        """
        Apply the reassignment in one transaction.

        Raises:
            PreconditionError subclasses: same checks as preview
            ReassignmentPhaseError: an update failed; the error names the phase
        """
        request = self._resolve(client_id, old_panelist_id, new_panelist_id, date_from, date_to)
        params = filter_params(client_id, request.old_node, date_from, date_to)

        phase = 'count'
        try:
            with db_transaction(self.data.engine) as conn:
                affected = self.data.count_affected(conn, params)
                if affected == 0:
                    raise NothingToReassignError(request.old_node, date_from, date_to)

                phase = 'origin'
                origin_updated = self.data.update_side(conn, params, 'origin', request.new_node)

                phase = 'destination'
                destination_updated = self.data.update_side(conn, params, 'destination', request.new_node)

                phase = 'commit'
        except SQLAlchemyError as e:
            logger.error(f"Bulk reassignment failed in phase '{phase}': {e}", exc_info=True)
            raise ReassignmentPhaseError(phase, rolled_back=True, cause=e) from e

        result = ReassignmentResult(
            old_node=request.old_node,
            new_node=request.new_node,
            updated_count=affected,
            origin_updated=origin_updated,
            destination_updated=destination_updated,
            previewed_count=previewed_count,
        )

        if result.count_drift:
            logger.warning(
                f"Reassignment count drift for client {client_id}: previewed {previewed_count}, "
                f"updated {affected}"
            )
        logger.info(
            f"Reassigned {affected} events for client {client_id}: {request.old_node} -> "
            f"{request.new_node or 'unassigned'} ({origin_updated} origin, {destination_updated} destination)"
        )
        return result

    # ==================== VALIDATION ====================

    def _resolve(
        self,
        client_id: int,
        old_panelist_id: int,
        new_panelist_id: Optional[int],
        date_from: date,
        date_to: date
    ) -> _ResolvedRequest:
        if date_from > date_to:
            raise InvalidDateRangeError(date_from, date_to)
        if new_panelist_id is not None and new_panelist_id == old_panelist_id:
            raise PreconditionError("The current and the new panelist are the same; nothing to reassign")

        old_panelist = self.data.get_panelist(client_id, old_panelist_id)
        if old_panelist is None:
            raise PanelistNotFoundError(old_panelist_id, client_id)
        if not old_panelist.node_code:
            raise PanelistWithoutNodeError(old_panelist_id, role=f"current panelist {old_panelist.name}")

        new_panelist = None
        if new_panelist_id is not None:
            new_panelist = self.data.get_panelist(client_id, new_panelist_id)
            if new_panelist is None:
                raise PanelistNotFoundError(new_panelist_id, client_id)
            if not new_panelist.is_active:
                raise PreconditionError(
                    f"The new panelist {new_panelist.name} (#{new_panelist_id}) is inactive; "
                    f"choose an active panelist"
                )
            if not new_panelist.node_code:
                raise PanelistWithoutNodeError(new_panelist_id, role=f"new panelist {new_panelist.name}")
            if new_panelist.node_code == old_panelist.node_code:
                raise PreconditionError(
                    f"Both panelists are assigned to node {old_panelist.node_code}; nothing to reassign"
                )

        return _ResolvedRequest(old_panelist, new_panelist)
