"""Tests for row mapping of reference data."""

from datetime import date
from decimal import Decimal

import pytest

from utils.plan_engine.exceptions import ConfigurationError
from utils.plan_engine.models import (
    City, Classification, CityAllocationRequirement, GeneratedAllocationPlan, Panelist, PlanStatus
)


def city_row(**overrides):
    row = {'id': 1, 'code': 'MAD', 'name': 'Madrid', 'classification': 'A', 'is_active': 1}
    row.update(overrides)
    return row


def test_classification_is_case_insensitive():
    assert City.from_row(city_row(classification='b ')).classification == Classification.B


def test_unknown_classification_is_configuration_error():
    with pytest.raises(ConfigurationError) as exc_info:
        City.from_row(city_row(classification='D'))

    assert "MAD" in str(exc_info.value)


def test_negative_requirement_rejected():
    with pytest.raises(ConfigurationError):
        CityAllocationRequirement.from_row({'city_id': 3, 'from_classification_a': -1})


def test_plan_row_decodes_json_columns():
    plan = GeneratedAllocationPlan.from_row({
        'id': 4, 'client_id': 1, 'product_id': 7, 'carrier_id': None, 'year': 2025,
        'start_date': '2025-01-01', 'end_date': '2025-12-31', 'status': 'draft',
        'merge_strategy': 'add', 'total_events': 3, 'calculated_events': 2,
        'unassigned_events': 1, 'unassigned_breakdown': '[{"unassigned": 1}]',
        'generation_params': '{"apply_seasonality": false}', 'superseded_events': 0,
        'created_by': None, 'created_at': None, 'merged_at': None,
    })

    assert plan.status == PlanStatus.DRAFT
    assert plan.start_date == date(2025, 1, 1)
    assert plan.unassigned_breakdown == [{'unassigned': 1}]
    assert plan.generation_params == {'apply_seasonality': False}
    assert not plan.is_merged


@pytest.mark.parametrize("value", ['abc', 2.5, '1.5', 'nan'])
def test_non_integer_requirement_rejected(value):
    with pytest.raises(ConfigurationError) as exc_info:
        CityAllocationRequirement.from_row({'city_id': 3, 'from_classification_b': value})

    assert "from_classification_b" in str(exc_info.value)


def test_integral_values_accepted():
    requirement = CityAllocationRequirement.from_row({
        'city_id': 3, 'from_classification_a': '3', 'from_classification_b': Decimal('2.0'),
        'from_classification_c': None,
    })

    assert (requirement.from_classification_a, requirement.from_classification_b,
            requirement.from_classification_c) == (3, 2, 0)


def test_fractional_weekly_cap_rejected():
    with pytest.raises(ConfigurationError):
        Panelist.from_row({'id': 9, 'name': 'Ana', 'weekly_event_cap': 4.5})
