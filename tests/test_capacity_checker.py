"""Tests for weekly capacity and node availability."""

from datetime import date

import pytest

from utils.plan_engine.capacity_checker import CapacityConstraintChecker, week_start_of
from utils.plan_engine.exceptions import ConfigurationError
from utils.plan_engine.models import DetailStatus, Node, Panelist, PlanDetail, Topology


def event(origin, destination, day, status=DetailStatus.PENDING):
    return PlanDetail(
        origin_node=origin,
        destination_node=destination,
        scheduled_date=day,
        product_id=7,
        client_id=1,
        status=status,
    )


@pytest.fixture
def topology():
    return Topology(
        nodes=[
            Node(code='N1', city_id=1),
            Node(code='N2', city_id=2),
            Node(code='N3', city_id=3, is_active=False),
            Node(code='N4', city_id=4),
        ],
        panelists=[
            Panelist(id=1, name='Ana', node_code='N1', weekly_event_cap=2),
            Panelist(id=2, name='Ben', node_code='N2'),
            Panelist(id=3, name='Cai', node_code='N3'),
        ],
    )


def test_week_starts_on_monday():
    assert week_start_of(date(2025, 1, 1)) == date(2024, 12, 30)
    assert week_start_of(date(2025, 1, 6)) == date(2025, 1, 6)
    assert week_start_of(date(2025, 1, 12)) == date(2025, 1, 6)


def test_counts_origin_and_destination(topology):
    checker = CapacityConstraintChecker(topology, default_cap=5, live_events=[
        event('N1', 'N2', date(2025, 1, 6)),
        event('N2', 'N1', date(2025, 1, 8)),
    ])
    ana = topology.panelist(1)

    assert checker.event_count('N1', date(2025, 1, 6)) == 2
    assert checker.remaining_capacity(ana, date(2025, 1, 6)) == 0
    assert not checker.can_assign(ana, date(2025, 1, 6))
    assert checker.can_assign(ana, date(2025, 1, 13))


def test_cancelled_events_do_not_count(topology):
    checker = CapacityConstraintChecker(topology, default_cap=5, live_events=[
        event('N1', 'N2', date(2025, 1, 6), status=DetailStatus.CANCELLED),
    ])

    assert checker.event_count('N1', date(2025, 1, 6)) == 0


def test_default_cap_applies_without_panelist_cap(topology):
    checker = CapacityConstraintChecker(topology, default_cap=3)
    ben = topology.panelist(2)

    assert checker.cap_for(ben) == 3
    assert checker.remaining_capacity(ben, date(2025, 2, 3)) == 3


def test_reservations_consume_capacity(topology):
    checker = CapacityConstraintChecker(topology, default_cap=5)
    ana = topology.panelist(1)

    checker.reserve('N1', date(2025, 3, 3))
    checker.reserve('N1', date(2025, 3, 9))

    assert checker.remaining_capacity(ana, date(2025, 3, 5)) == 0
    assert checker.node_remaining('N1', date(2025, 3, 10)) == 2
    assert checker.reserved_total == 2


def test_availability(topology):
    checker = CapacityConstraintChecker(topology, default_cap=5)

    assert checker.is_available('N1')
    assert not checker.is_available('N3')  # inactive node
    assert not checker.is_available('N4')  # no panelist
    assert not checker.is_available('NX')  # unknown
    assert checker.node_remaining('N4', date(2025, 1, 6)) == 0


def test_rejects_negative_default_cap(topology):
    with pytest.raises(ValueError):
        CapacityConstraintChecker(topology, default_cap=-1)


def test_two_active_panelists_on_one_node_rejected():
    with pytest.raises(ConfigurationError):
        Topology(
            nodes=[Node(code='N1', city_id=1)],
            panelists=[
                Panelist(id=1, name='Ana', node_code='N1'),
                Panelist(id=2, name='Ben', node_code='N1'),
            ],
        )


def test_inactive_panelist_does_not_hold_node():
    topology = Topology(
        nodes=[Node(code='N1', city_id=1)],
        panelists=[
            Panelist(id=1, name='Ana', node_code='N1', is_active=False),
            Panelist(id=2, name='Ben', node_code='N1'),
        ],
    )

    assert topology.panelist_for_node('N1').id == 2
