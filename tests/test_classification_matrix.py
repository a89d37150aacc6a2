"""Tests for incoming requirement arithmetic."""

import pytest

from utils.plan_engine.classification_matrix import ClassificationMatrix
from utils.plan_engine.models import City, CityAllocationRequirement, Classification


def make_city(city_id, code, classification, is_active=True):
    return City(
        id=city_id,
        code=code,
        name=code.title(),
        classification=Classification(classification),
        is_active=is_active,
    )


@pytest.fixture
def cities():
    return [
        make_city(1, 'MAD', 'A'),
        make_city(2, 'BCN', 'A'),
        make_city(3, 'GIR', 'B'),
        make_city(4, 'LPA', 'B'),
        make_city(5, 'BOA', 'C'),
    ]


@pytest.fixture
def matrix():
    return ClassificationMatrix()


def test_barcelona_incoming_total(matrix, cities):
    barcelona = cities[1]
    requirement = CityAllocationRequirement(city_id=2, from_classification_a=50,
                                            from_classification_b=20, from_classification_c=5)

    # One other A city, two B cities, one C city
    assert matrix.incoming_total(barcelona, requirement, cities) == 50 * 1 + 20 * 2 + 5 * 1 == 95


def test_origin_counts_exclude_destination(matrix, cities):
    counts = matrix.origin_counts(cities[2], cities)  # Girona, class B

    assert counts[Classification.A] == 2
    assert counts[Classification.B] == 1
    assert counts[Classification.C] == 1


def test_inactive_cities_are_not_origins(matrix, cities):
    cities[0] = make_city(1, 'MAD', 'A', is_active=False)
    requirement = CityAllocationRequirement(city_id=2, from_classification_a=50,
                                            from_classification_b=20, from_classification_c=5)

    assert matrix.incoming_total(cities[1], requirement, cities) == 45


def test_missing_requirement_is_zero(matrix, cities):
    assert matrix.incoming_total(cities[0], None, cities) == 0


def test_no_cities_is_zero(matrix):
    city = make_city(1, 'MAD', 'A', is_active=False)
    requirement = CityAllocationRequirement(city_id=1, from_classification_a=10)

    assert matrix.incoming_total(city, requirement, []) == 0


def test_pair_quotas_sum_to_incoming_total(matrix, cities):
    requirement = CityAllocationRequirement(city_id=2, from_classification_a=7,
                                            from_classification_b=3, from_classification_c=11)
    barcelona = cities[1]

    pair_sum = sum(matrix.pair_quota(origin, barcelona, requirement) for origin in cities)

    assert pair_sum == matrix.incoming_total(barcelona, requirement, cities)
    assert matrix.pair_quota(barcelona, barcelona, requirement) == 0


def test_incoming_table_sorted_with_adjusted_counts(matrix, cities):
    requirements = {
        2: CityAllocationRequirement(city_id=2, from_classification_a=50,
                                     from_classification_b=20, from_classification_c=5),
    }

    table = matrix.incoming_table(cities, requirements)

    assert [row['city_code'] for row in table] == ['BCN', 'BOA', 'GIR', 'LPA', 'MAD']
    bcn = table[0]
    assert (bcn['origin_cities_a'], bcn['origin_cities_b'], bcn['origin_cities_c']) == (1, 2, 1)
    assert bcn['total_incoming'] == 95
    assert all(row['total_incoming'] == 0 for row in table[1:])
