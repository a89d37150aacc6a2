"""
Capacity Constraint Checker
===========================
Weekly event caps per panelist and node availability.

A node's weekly load is the number of live, non-cancelled events in which it
is either origin or destination, plus whatever the current generation run
has already reserved. Weeks start on Monday.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, Optional, Tuple

from .models import DetailStatus, Panelist, PlanDetail, Topology

logger = logging.getLogger(__name__)


def week_start_of(day: date) -> date:
    """Monday of the week containing day"""
    return day - timedelta(days=day.weekday())


class CapacityConstraintChecker:
    """Answers 'can this node take one more event in this week?'"""

    def __init__(self, topology: Topology, default_cap: int, live_events: Iterable[PlanDetail] = ()):
        if default_cap is None or int(default_cap) < 0:
            raise ValueError(f"default_cap must be a non-negative integer, got {default_cap}")

        self.topology = topology
        self.default_cap = int(default_cap)
        self._existing: Dict[Tuple[str, date], int] = defaultdict(int)
        self._reserved: Dict[Tuple[str, date], int] = defaultdict(int)
        self.load_events(live_events)

    def load_events(self, events: Iterable[PlanDetail]):
        """Count persisted events against the weeks they fall in"""
        loaded = 0
        for event in events:
            if event.status == DetailStatus.CANCELLED:
                continue
            week = week_start_of(event.scheduled_date)
            for node_code in {event.origin_node, event.destination_node}:
                if node_code:
                    self._existing[(node_code, week)] += 1
            loaded += 1
        logger.debug(f"Capacity checker loaded {loaded} live events")

    # ==================== PANELIST VIEW ====================

    def cap_for(self, panelist: Panelist) -> int:
        if panelist.weekly_event_cap is not None:
            return panelist.weekly_event_cap
        return self.default_cap

    def event_count(self, node_code: str, week_start: date) -> int:
        key = (node_code, week_start_of(week_start))
        return self._existing.get(key, 0) + self._reserved.get(key, 0)

    def remaining_capacity(self, panelist: Panelist, week_start: date) -> int:
        if not panelist.node_code:
            return 0
        return max(self.cap_for(panelist) - self.event_count(panelist.node_code, week_start), 0)

    def can_assign(self, panelist: Panelist, week_start: date) -> bool:
        return self.remaining_capacity(panelist, week_start) > 0

    # ==================== NODE VIEW ====================

    def is_available(self, node_code: str) -> bool:
        """Node exists, is active, and is held by an active panelist"""
        node = self.topology.node(node_code)
        if node is None or not node.is_active:
            return False
        return self.topology.panelist_for_node(node_code) is not None

    def node_remaining(self, node_code: str, day: date) -> int:
        if not self.is_available(node_code):
            return 0
        return self.remaining_capacity(self.topology.panelist_for_node(node_code), day)

    def reserve(self, node_code: Optional[str], day: date):
        if node_code:
            self._reserved[(node_code, week_start_of(day))] += 1

    @property
    def reserved_total(self) -> int:
        return sum(self._reserved.values())
