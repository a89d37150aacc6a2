"""
Plan Engine Models
==================
Typed records for the reference data the engine reads and the plan rows it
writes. Database rows are converted with ``from_row`` at the persistence
boundary, which is where enum values and quotas are validated.
"""
import json
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .exceptions import ConfigurationError

MONTH_COLUMNS = [
    'january', 'february', 'march', 'april', 'may', 'june',
    'july', 'august', 'september', 'october', 'november', 'december'
]


class Classification(Enum):
    """City tier by population / postal-traffic volume"""
    A = "A"
    B = "B"
    C = "C"


class PlanStatus(Enum):
    DRAFT = "draft"
    MERGED = "merged"


class MergeStrategy(Enum):
    ADD = "add"
    REPLACE = "replace"


class DetailStatus(Enum):
    """Shipment event lifecycle"""
    PENDING = "PENDING"
    NOTIFIED = "NOTIFIED"
    SENT = "SENT"
    RECEIVED = "RECEIVED"
    CANCELLED = "CANCELLED"


# Shipments still in flight; SENT/RECEIVED/CANCELLED rows are history
IN_FLIGHT_STATUSES = (DetailStatus.PENDING, DetailStatus.NOTIFIED)


# ==================== CONVERSION HELPERS ====================

def to_date(value: Any) -> Optional[date]:
    """Coerce a DB value (date, datetime or ISO string) to date"""
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def to_datetime(value: Any) -> Optional[datetime]:
    if value is None or value == '':
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return datetime.fromisoformat(str(value).replace('T', ' ')[:19])


def _enum_value(enum_cls, value: Any, what: str):
    raw = str(value).strip()
    if enum_cls is Classification:
        raw = raw.upper()
    try:
        return enum_cls(raw)
    except ValueError:
        valid = ', '.join(e.value for e in enum_cls)
        raise ConfigurationError(f"Invalid {what} '{value}'. Must be one of: {valid}")


def _non_negative_int(value: Any, what: str) -> int:
    if value is None or str(value).strip() == '':
        return 0
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        raise ConfigurationError(f"{what} must be a non-negative integer, got '{value}'")
    if not number.is_finite() or number != number.to_integral_value():
        raise ConfigurationError(f"{what} must be a non-negative integer, got '{value}'")
    if number < 0:
        raise ConfigurationError(f"{what} must be a non-negative integer, got {int(number)}")
    return int(number)


# ==================== REFERENCE DATA ====================

@dataclass(frozen=True)
class City:
    id: int
    code: str
    name: str
    classification: Classification
    population_volume: int = 0
    postal_traffic_volume: int = 0
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'City':
        return cls(
            id=int(row['id']),
            code=str(row['code']),
            name=str(row['name']),
            classification=_enum_value(Classification, row['classification'], f"classification for city {row['code']}"),
            population_volume=int(row.get('population_volume') or 0),
            postal_traffic_volume=int(row.get('postal_traffic_volume') or 0),
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class CityAllocationRequirement:
    """Incoming events required per origin city of each classification"""
    city_id: int
    from_classification_a: int = 0
    from_classification_b: int = 0
    from_classification_c: int = 0

    def quota_for(self, classification: Classification) -> int:
        return {
            Classification.A: self.from_classification_a,
            Classification.B: self.from_classification_b,
            Classification.C: self.from_classification_c,
        }[classification]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'CityAllocationRequirement':
        city = row['city_id']
        return cls(
            city_id=int(city),
            from_classification_a=_non_negative_int(row.get('from_classification_a'), f"from_classification_a (city {city})"),
            from_classification_b=_non_negative_int(row.get('from_classification_b'), f"from_classification_b (city {city})"),
            from_classification_c=_non_negative_int(row.get('from_classification_c'), f"from_classification_c (city {city})"),
        )


@dataclass(frozen=True)
class ProductSeasonality:
    client_id: int
    product_id: int
    year: int
    percentages: List[Decimal]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'ProductSeasonality':
        return cls(
            client_id=int(row['client_id']),
            product_id=int(row['product_id']),
            year=int(row['year']),
            percentages=[Decimal(str(row.get(month) or 0)) for month in MONTH_COLUMNS],
        )


@dataclass(frozen=True)
class Panelist:
    id: int
    name: str
    node_code: Optional[str] = None
    weekly_event_cap: Optional[int] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Panelist':
        cap = row.get('weekly_event_cap')
        return cls(
            id=int(row['id']),
            name=str(row['name']),
            node_code=row.get('node_code') or None,
            weekly_event_cap=_non_negative_int(cap, f"weekly_event_cap (panelist {row['id']})") if cap is not None else None,
            is_active=bool(row.get('is_active', True)),
        )


@dataclass(frozen=True)
class Node:
    code: str
    city_id: int
    country: Optional[str] = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'Node':
        return cls(
            code=str(row['code']),
            city_id=int(row['city_id']),
            country=row.get('country'),
            is_active=bool(row.get('is_active', True)),
        )


@dataclass
class Topology:
    """Nodes and panelists of one client, with the node <-> panelist link resolved"""
    nodes: List[Node]
    panelists: List[Panelist]

    def __post_init__(self):
        self._nodes_by_code = {n.code: n for n in self.nodes}
        self._panelists_by_id = {p.id: p for p in self.panelists}
        self._panelist_by_node: Dict[str, Panelist] = {}

        for panelist in sorted(self.panelists, key=lambda p: p.id):
            if not panelist.is_active or not panelist.node_code:
                continue
            holder = self._panelist_by_node.get(panelist.node_code)
            if holder is not None:
                raise ConfigurationError(
                    f"Node {panelist.node_code} has more than one active panelist "
                    f"({holder.name} #{holder.id}, {panelist.name} #{panelist.id})"
                )
            self._panelist_by_node[panelist.node_code] = panelist

    def node(self, code: str) -> Optional[Node]:
        return self._nodes_by_code.get(code)

    def panelist(self, panelist_id: int) -> Optional[Panelist]:
        return self._panelists_by_id.get(panelist_id)

    def panelist_for_node(self, code: str) -> Optional[Panelist]:
        return self._panelist_by_node.get(code)

    def nodes_in_city(self, city_id: int) -> List[Node]:
        return sorted((n for n in self.nodes if n.city_id == city_id), key=lambda n: n.code)


# ==================== PLANS ====================

@dataclass
class GeneratedAllocationPlan:
    client_id: int
    product_id: int
    year: int
    start_date: date
    end_date: date
    status: PlanStatus = PlanStatus.DRAFT
    merge_strategy: MergeStrategy = MergeStrategy.ADD
    carrier_id: Optional[int] = None
    total_events: int = 0
    calculated_events: int = 0
    unassigned_events: int = 0
    unassigned_breakdown: List[Dict] = field(default_factory=list)
    generation_params: Dict = field(default_factory=dict)
    superseded_events: int = 0
    created_by: Optional[int] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None

    @property
    def is_merged(self) -> bool:
        return self.status == PlanStatus.MERGED

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'GeneratedAllocationPlan':
        return cls(
            id=int(row['id']),
            client_id=int(row['client_id']),
            product_id=int(row['product_id']),
            carrier_id=int(row['carrier_id']) if row.get('carrier_id') is not None else None,
            year=int(row['year']),
            start_date=to_date(row['start_date']),
            end_date=to_date(row['end_date']),
            status=_enum_value(PlanStatus, row['status'], 'plan status'),
            merge_strategy=_enum_value(MergeStrategy, row['merge_strategy'], 'merge strategy'),
            total_events=int(row.get('total_events') or 0),
            calculated_events=int(row.get('calculated_events') or 0),
            unassigned_events=int(row.get('unassigned_events') or 0),
            unassigned_breakdown=json.loads(row['unassigned_breakdown']) if row.get('unassigned_breakdown') else [],
            generation_params=json.loads(row['generation_params']) if row.get('generation_params') else {},
            superseded_events=int(row.get('superseded_events') or 0),
            created_by=row.get('created_by'),
            created_at=to_datetime(row.get('created_at')),
            merged_at=to_datetime(row.get('merged_at')),
        )


@dataclass
class PlanDetail:
    """One shipment event: origin node -> destination node on a date"""
    origin_node: Optional[str]
    destination_node: Optional[str]
    scheduled_date: date
    product_id: int
    client_id: int
    status: DetailStatus = DetailStatus.PENDING
    carrier_id: Optional[int] = None
    label_number: Optional[str] = None
    plan_id: Optional[int] = None
    id: Optional[int] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> 'PlanDetail':
        return cls(
            id=int(row['id']) if row.get('id') is not None else None,
            plan_id=int(row['plan_id']) if row.get('plan_id') is not None else None,
            client_id=int(row['client_id']),
            product_id=int(row['product_id']),
            carrier_id=int(row['carrier_id']) if row.get('carrier_id') is not None else None,
            origin_node=row.get('nodo_origen'),
            destination_node=row.get('nodo_destino'),
            scheduled_date=to_date(row['scheduled_date']),
            status=_enum_value(DetailStatus, row['status'], 'event status'),
            label_number=row.get('label_number'),
        )


@dataclass(frozen=True)
class DeferredEvent:
    """A unit of demand that could not be placed in its month"""
    month: int
    target_date: date
    reason: str
    destination_city_id: Optional[int] = None
    origin_city_id: Optional[int] = None


@dataclass
class GenerationOptions:
    total_events: Optional[int] = None
    apply_seasonality: bool = True
    apply_city_weights: bool = True
    max_events_per_week: Optional[int] = None
    carrier_id: Optional[int] = None
    merge_strategy: MergeStrategy = MergeStrategy.ADD
    created_by: Optional[int] = None
    # Custom plan period inside the year; None means the year's first / last day
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def period(self, year: int) -> Tuple[date, date]:
        return (self.start_date or date(year, 1, 1), self.end_date or date(year, 12, 31))


@dataclass
class GenerationResult:
    plan: GeneratedAllocationPlan
    details: List[PlanDetail]
    deferred: List[DeferredEvent]

    @property
    def is_partial(self) -> bool:
        return len(self.deferred) > 0


@dataclass
class MergedPlan:
    plan: GeneratedAllocationPlan
    inserted_events: int
    superseded_events: int
    replace_mode: Optional[str] = None
