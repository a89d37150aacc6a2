"""
Plan Generator
==============
Composes the classification matrix, the seasonality distributor and the
capacity checker into a draft calendar of shipment events for one
client / product / year.

The plan period defaults to the whole year. A shorter period scales the
annual total by period days / days in the year (half up) and only the
months it touches get events, each weighted by its seasonality share times
the fraction of its days inside the period.

Placement, per month and per unit of the monthly target:

1. Target day: unit k of n in a window of D in-period days starting at day
   f aims at day f + k*D//n.
2. Pair: the open (origin city, destination city) pair with the lowest fill
   ratio, then destination city code, then origin city code. With city
   weights off, every ordered pair of distinct cities is open and pairs are
   filled round-robin.
3. Date: for the chosen pair, the nearest date to the target day (earlier
   date wins ties) where an origin node and a destination node both have
   weekly capacity. Dates never leave the month or the period.
4. Nodes: least loaded in that week, then node code.

Units that cannot be placed are returned as ``DeferredEvent`` values with a
reason (``capacity``, ``quota_exhausted`` or ``no_topology``). Nothing here
reads the clock or iterates an unordered collection, so equal inputs always
give equal plans.
"""
import calendar
import logging
from dataclasses import dataclass
from datetime import date
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .capacity_checker import CapacityConstraintChecker, week_start_of
from .classification_matrix import ClassificationMatrix
from .exceptions import ConfigurationError, MissingSeasonalityError
from .models import (
    City, CityAllocationRequirement, DeferredEvent, DetailStatus,
    GeneratedAllocationPlan, GenerationOptions, GenerationResult, PlanDetail,
    PlanStatus, ProductSeasonality, Topology
)
from .seasonality import MONTHS_PER_YEAR, SeasonalityDistributor

logger = logging.getLogger(__name__)

ALGORITHM_VERSION = "2.0"

REASON_CAPACITY = 'capacity'
REASON_QUOTA_EXHAUSTED = 'quota_exhausted'
REASON_NO_TOPOLOGY = 'no_topology'

# (city id, week start) pairs where no node of the city has capacity left
ExhaustedWeeks = Set[Tuple[int, date]]


@dataclass
class _PairSlot:
    """Demand bucket for one ordered city pair"""
    origin: City
    destination: City
    quota: Optional[int]  # None = unbounded
    used: int = 0

    @property
    def is_open(self) -> bool:
        return self.quota is None or self.used < self.quota

    def sort_key(self) -> Tuple:
        fill = Fraction(self.used) if self.quota is None else Fraction(self.used, self.quota)
        return (fill, self.destination.code, self.origin.code)


def target_day(unit_index: int, units: int, days_in_window: int, first_day: int = 1) -> int:
    """Day of month unit_index (0-based) of units aims at"""
    return first_day + unit_index * days_in_window // units


def candidate_days(target: int, last_day: int, first_day: int = 1) -> List[int]:
    """Days first_day..last_day, nearest to target first, earlier first on ties"""
    return sorted(range(first_day, last_day + 1), key=lambda d: (abs(d - target), d))


def month_window(year: int, month: int, period_start: date, period_end: date) -> Optional[Tuple[int, int]]:
    """First and last day of the month inside the period, None when outside"""
    first = date(year, month, 1)
    last = date(year, month, calendar.monthrange(year, month)[1])
    if last < period_start or first > period_end:
        return None
    return max(first, period_start).day, min(last, period_end).day


class PlanGenerator:
    """Builds draft plans; persistence is the caller's concern"""

    def __init__(
        self,
        default_weekly_cap: int = 5,
        algorithm_version: str = ALGORITHM_VERSION,
        matrix: Optional[ClassificationMatrix] = None,
        distributor: Optional[SeasonalityDistributor] = None
    ):
        self.default_weekly_cap = default_weekly_cap
        self.algorithm_version = algorithm_version
        self.matrix = matrix or ClassificationMatrix()
        self.distributor = distributor or SeasonalityDistributor()

    # ==================== PUBLIC API ====================

    def annual_target(
        self,
        cities: List[City],
        requirements: Dict[int, CityAllocationRequirement],
        options: GenerationOptions
    ) -> int:
        if options.total_events is not None:
            return int(options.total_events)
        active = [c for c in cities if c.is_active]
        return sum(self.matrix.incoming_total(c, requirements.get(c.id), active) for c in active)

    @staticmethod
    def period_target(annual_total: int, period_start: date, period_end: date) -> int:
        """Annual total scaled to the period's share of the year, half up"""
        days_in_year = 366 if calendar.isleap(period_start.year) else 365
        days = (period_end - period_start).days + 1
        if days >= days_in_year:
            return annual_total
        return int(Fraction(annual_total * days, days_in_year) + Fraction(1, 2))

    def monthly_targets(
        self,
        total: int,
        product_id: int,
        year: int,
        seasonality: Optional[ProductSeasonality],
        options: GenerationOptions
    ) -> List[int]:
        """Split the period total over the months the plan period touches"""
        if options.apply_seasonality and seasonality is None:
            raise MissingSeasonalityError(product_id, year)

        period_start, period_end = options.period(year)
        if (period_start, period_end) == (date(year, 1, 1), date(year, 12, 31)):
            if options.apply_seasonality:
                return self.distributor.monthly_targets(
                    total, seasonality.percentages, product_id=product_id, year=year
                )
            return self.distributor.uniform_targets(total)

        if options.apply_seasonality:
            shares = self.distributor.validate(seasonality.percentages, product_id=product_id, year=year)
        else:
            shares = [Fraction(1)] * MONTHS_PER_YEAR

        weights = []
        for month, share in enumerate(shares, start=1):
            window = month_window(year, month, period_start, period_end)
            if window is None:
                weights.append(Fraction(0))
                continue
            covered = window[1] - window[0] + 1
            weights.append(share * Fraction(covered, calendar.monthrange(year, month)[1]))

        if total and not any(weights):
            raise ConfigurationError(
                f"Seasonality for product {product_id} / {year} gives no weight to "
                f"{period_start.isoformat()} .. {period_end.isoformat()}"
            )
        return self.distributor.distribute(total, weights)

    def generate(
        self,
        client_id: int,
        product_id: int,
        year: int,
        cities: List[City],
        requirements: Dict[int, CityAllocationRequirement],
        topology: Topology,
        seasonality: Optional[ProductSeasonality] = None,
        options: Optional[GenerationOptions] = None,
        live_events: Iterable[PlanDetail] = ()
    ) -> GenerationResult:
        """
        Generate a draft plan.

        Args:
            client_id: Tenant the plan belongs to
            product_id: Product the events ship
            year: Plan year
            cities: Client cities (inactive ones are ignored)
            requirements: Incoming requirements keyed by destination city id
            topology: Client nodes and panelists
            seasonality: Monthly percentages; required when seasonality applies
            options: Generation toggles, overrides and the optional plan period
            live_events: Already merged events, counted against weekly caps

        Returns:
            GenerationResult with the draft plan, its detail rows and the
            units that could not be placed

        Raises:
            InvalidSeasonalityError, MissingSeasonalityError: bad configuration
        """
        options = options or GenerationOptions()
        active = sorted((c for c in cities if c.is_active), key=lambda c: c.code)
        period_start, period_end = options.period(year)

        annual_total = self.annual_target(active, requirements, options)
        period_total = self.period_target(annual_total, period_start, period_end)
        targets = self.monthly_targets(period_total, product_id, year, seasonality, options)

        weekly_cap = options.max_events_per_week
        if weekly_cap is None:
            weekly_cap = self.default_weekly_cap
        checker = CapacityConstraintChecker(topology, weekly_cap, live_events)

        slots = self._build_slots(active, requirements, options)
        nodes_by_city = self._available_nodes(active, topology, checker)

        logger.info(
            f"Generating plan client={client_id} product={product_id} "
            f"period={period_start.isoformat()}..{period_end.isoformat()}: "
            f"{period_total} events, {len(slots)} city pairs, targets={targets}"
        )

        details: List[PlanDetail] = []
        deferred: List[DeferredEvent] = []
        exhausted: ExhaustedWeeks = set()

        for month, units in enumerate(targets, start=1):
            if not units:
                continue
            first_day, last_day = month_window(year, month, period_start, period_end)
            for k in range(units):
                day = target_day(k, units, last_day - first_day + 1, first_day)
                detail, miss = self._place_unit(
                    client_id, product_id, year, month, day, (first_day, last_day),
                    slots, nodes_by_city, checker, options, exhausted
                )
                if detail is not None:
                    details.append(detail)
                else:
                    deferred.append(miss)

        plan = GeneratedAllocationPlan(
            client_id=client_id,
            product_id=product_id,
            year=year,
            start_date=period_start,
            end_date=period_end,
            status=PlanStatus.DRAFT,
            merge_strategy=options.merge_strategy,
            carrier_id=options.carrier_id,
            total_events=period_total,
            calculated_events=len(details),
            unassigned_events=len(deferred),
            unassigned_breakdown=self.deferred_breakdown(deferred, active),
            generation_params={
                'algorithm_version': self.algorithm_version,
                'apply_seasonality': options.apply_seasonality,
                'apply_city_weights': options.apply_city_weights,
                'max_events_per_week': options.max_events_per_week,
                'weekly_cap_applied': weekly_cap,
                'requested_total_events': options.total_events,
                'annual_total_events': annual_total,
                'monthly_targets': targets,
            },
            created_by=options.created_by,
        )

        if deferred:
            logger.warning(
                f"Plan for client {client_id} is partial: {len(details)} placed, "
                f"{len(deferred)} deferred"
            )
        else:
            logger.info(f"Plan for client {client_id} fully placed: {len(details)} events")

        return GenerationResult(plan=plan, details=details, deferred=deferred)

    # ==================== BREAKDOWN ====================

    @staticmethod
    def deferred_breakdown(deferred: List[DeferredEvent], cities: List[City]) -> List[Dict]:
        """Deferred units grouped by destination city, by city code"""
        by_id = {c.id: c for c in cities}
        groups: Dict[Optional[int], Dict] = {}

        for event in deferred:
            group = groups.get(event.destination_city_id)
            if group is None:
                city = by_id.get(event.destination_city_id)
                group = {
                    'destination_city_id': event.destination_city_id,
                    'city_code': city.code if city else None,
                    'city_name': city.name if city else None,
                    'unassigned': 0,
                    'reasons': {},
                    'months': {},
                }
                groups[event.destination_city_id] = group
            group['unassigned'] += 1
            group['reasons'][event.reason] = group['reasons'].get(event.reason, 0) + 1
            month_key = str(event.month)
            group['months'][month_key] = group['months'].get(month_key, 0) + 1

        # Units without a destination city sort last
        return sorted(groups.values(), key=lambda g: (g['city_code'] is None, g['city_code'] or ''))

    # ==================== INTERNALS ====================

    def _build_slots(
        self,
        active: List[City],
        requirements: Dict[int, CityAllocationRequirement],
        options: GenerationOptions
    ) -> List[_PairSlot]:
        slots = []
        for destination in active:
            for origin in active:
                if origin.id == destination.id:
                    continue
                if options.apply_city_weights:
                    quota = self.matrix.pair_quota(origin, destination, requirements.get(destination.id))
                    if quota > 0:
                        slots.append(_PairSlot(origin, destination, quota))
                else:
                    slots.append(_PairSlot(origin, destination, None))
        return slots

    @staticmethod
    def _available_nodes(
        active: List[City],
        topology: Topology,
        checker: CapacityConstraintChecker
    ) -> Dict[int, List[str]]:
        return {
            city.id: [n.code for n in topology.nodes_in_city(city.id) if checker.is_available(n.code)]
            for city in active
        }

    @staticmethod
    def _pick_node(node_codes: List[str], day: date, checker: CapacityConstraintChecker) -> Optional[str]:
        candidates = [code for code in node_codes if checker.node_remaining(code, day) > 0]
        if not candidates:
            return None
        return min(candidates, key=lambda code: (checker.event_count(code, week_start_of(day)), code))

    @staticmethod
    def _open_weeks(
        city_id: int,
        weeks: List[date],
        nodes_by_city: Dict[int, List[str]],
        checker: CapacityConstraintChecker,
        exhausted: ExhaustedWeeks
    ) -> Set[date]:
        """Weeks where some node of the city still has capacity"""
        result = set()
        for week in weeks:
            if (city_id, week) in exhausted:
                continue
            if any(checker.node_remaining(code, week) > 0 for code in nodes_by_city[city_id]):
                result.add(week)
            else:
                # Loads only grow during a run
                exhausted.add((city_id, week))
        return result

    def _place_unit(
        self,
        client_id: int,
        product_id: int,
        year: int,
        month: int,
        day: int,
        window: Tuple[int, int],
        slots: List[_PairSlot],
        nodes_by_city: Dict[int, List[str]],
        checker: CapacityConstraintChecker,
        options: GenerationOptions,
        exhausted: ExhaustedWeeks
    ) -> Tuple[Optional[PlanDetail], Optional[DeferredEvent]]:
        target = date(year, month, day)
        open_slots = [s for s in slots if s.is_open]

        if not open_slots:
            reason = REASON_QUOTA_EXHAUSTED if slots else REASON_NO_TOPOLOGY
            return None, DeferredEvent(month, target, reason)

        placeable = [
            s for s in open_slots
            if nodes_by_city.get(s.origin.id) and nodes_by_city.get(s.destination.id)
        ]
        if not placeable:
            first = min(open_slots, key=_PairSlot.sort_key)
            return None, DeferredEvent(month, target, REASON_NO_TOPOLOGY, first.destination.id, first.origin.id)

        days = [date(year, month, d) for d in candidate_days(day, window[1], window[0])]
        weeks = sorted({week_start_of(d) for d in days})

        open_weeks: Dict[int, Set[date]] = {}
        for slot in placeable:
            for city_id in (slot.origin.id, slot.destination.id):
                if city_id not in open_weeks:
                    open_weeks[city_id] = self._open_weeks(city_id, weeks, nodes_by_city, checker, exhausted)

        candidates = sorted(
            (s for s in placeable if open_weeks[s.origin.id] & open_weeks[s.destination.id]),
            key=_PairSlot.sort_key
        )
        for slot in candidates:
            shared = open_weeks[slot.origin.id] & open_weeks[slot.destination.id]
            for when in days:
                if week_start_of(when) not in shared:
                    continue
                origin_node = self._pick_node(nodes_by_city[slot.origin.id], when, checker)
                if origin_node is None:
                    continue
                destination_node = self._pick_node(nodes_by_city[slot.destination.id], when, checker)
                if destination_node is None:
                    continue

                checker.reserve(origin_node, when)
                checker.reserve(destination_node, when)
                slot.used += 1
                return PlanDetail(
                    origin_node=origin_node,
                    destination_node=destination_node,
                    scheduled_date=when,
                    product_id=product_id,
                    client_id=client_id,
                    status=DetailStatus.PENDING,
                    carrier_id=options.carrier_id,
                ), None

        first = min(placeable, key=_PairSlot.sort_key)
        return None, DeferredEvent(month, target, REASON_CAPACITY, first.destination.id, first.origin.id)
