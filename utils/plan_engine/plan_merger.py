"""
Plan Merger
===========
Moves a draft plan live. The only transition is draft -> merged.

- add: existing live events are untouched; the draft's rows go live.
- replace: live PENDING/NOTIFIED events for the same client and product in
  the draft's period are cancelled (or deleted, with REPLACE_MODE=delete)
  before the draft's rows go live.

Everything runs in one transaction. The status flip is the last statement
and is guarded by ``status = 'draft'``, so a second merge of the same plan,
sequential or concurrent, fails without touching any row.
"""
import logging
from datetime import datetime
from typing import Callable, Optional, Union

from utils.db import db_transaction
from .exceptions import AlreadyMergedError, CarrierNotLinkedError, PlanNotFoundError
from .models import GeneratedAllocationPlan, MergedPlan, MergeStrategy, PlanStatus
from .plan_data import PlanEngineData

logger = logging.getLogger(__name__)

REPLACE_MODES = ('cancel', 'delete')


def _strategy(value: Union[str, MergeStrategy]) -> MergeStrategy:
    if isinstance(value, MergeStrategy):
        return value
    try:
        return MergeStrategy(str(value).lower())
    except ValueError:
        raise ValueError(f"Unknown merge strategy '{value}'. Use 'add' or 'replace'")


class PlanMerger:
    """Draft -> merged transition with add/replace semantics"""

    def __init__(
        self,
        data: PlanEngineData,
        replace_mode: str = 'cancel',
        clock: Optional[Callable[[], datetime]] = None
    ):
        if replace_mode not in REPLACE_MODES:
            raise ValueError(f"replace_mode must be one of {REPLACE_MODES}, got '{replace_mode}'")
        self.data = data
        self.replace_mode = replace_mode
        self.clock = clock or datetime.now

    def count_superseded(self, plan: GeneratedAllocationPlan, strategy: Union[str, MergeStrategy]) -> int:
        """Live events a merge with this strategy would cancel/delete"""
        if _strategy(strategy) != MergeStrategy.REPLACE:
            return 0
        return self.data.count_supersedable(plan.client_id, plan.product_id, plan.start_date, plan.end_date)

    def merge(self, client_id: int, plan_id: int, strategy: Union[str, MergeStrategy]) -> MergedPlan:
        """
        Merge a draft plan.

        Raises:
            PlanNotFoundError: no such plan for this client
            AlreadyMergedError: the plan is (or just became) merged
            CarrierNotLinkedError: the carrier was unlinked from the product since generation
        """
        strategy = _strategy(strategy)

        with db_transaction(self.data.engine) as conn:
            plan = self.data.get_plan(client_id, plan_id, conn=conn)
            if plan is None:
                raise PlanNotFoundError(plan_id, client_id)
            if plan.is_merged:
                raise AlreadyMergedError(plan_id)
            if plan.carrier_id is not None and not self.data.carrier_serves_product(
                    plan.carrier_id, plan.product_id, conn=conn):
                raise CarrierNotLinkedError(plan.carrier_id, plan.product_id)

            superseded = 0
            if strategy == MergeStrategy.REPLACE:
                superseded = self.data.supersede_live_events(conn, plan, self.replace_mode)

            merged_at = self.clock()
            flipped = self.data.mark_plan_merged(
                conn, plan_id, client_id, strategy.value, superseded,
                merged_at.strftime('%Y-%m-%d %H:%M:%S')
            )
            if flipped == 0:
                # Raising rolls back the superseding above
                raise AlreadyMergedError(plan_id)

            inserted = self.data.count_plan_details(conn, plan_id)

        plan.status = PlanStatus.MERGED
        plan.merge_strategy = strategy
        plan.superseded_events = superseded
        plan.merged_at = merged_at.replace(microsecond=0)

        logger.info(
            f"Merged plan #{plan_id} (client {client_id}, {strategy.value}): "
            f"{inserted} events live, {superseded} superseded"
        )
        return MergedPlan(
            plan=plan,
            inserted_events=inserted,
            superseded_events=superseded,
            replace_mode=self.replace_mode if strategy == MergeStrategy.REPLACE else None,
        )

    def delete_draft(self, client_id: int, plan_id: int) -> int:
        """Delete a draft plan with its rows; merged plans are immutable"""
        with db_transaction(self.data.engine) as conn:
            plan = self.data.get_plan(client_id, plan_id, conn=conn)
            if plan is None:
                raise PlanNotFoundError(plan_id, client_id)
            if plan.is_merged:
                raise AlreadyMergedError(plan_id)

            deleted = self.data.delete_draft(conn, plan_id, client_id)
            if deleted < 0:
                raise AlreadyMergedError(plan_id)

        logger.info(f"Deleted draft plan #{plan_id} (client {client_id}) with {deleted} events")
        return deleted
