"""Tests for monthly target distribution."""

from decimal import Decimal

import pytest

from utils.plan_engine.exceptions import InvalidSeasonalityError
from utils.plan_engine.seasonality import SeasonalityDistributor


@pytest.fixture
def distributor():
    return SeasonalityDistributor()


def test_exact_split(distributor):
    percentages = [10] + [0] * 10 + [90]

    assert distributor.monthly_targets(10, percentages) == [1] + [0] * 10 + [9]


def test_tie_goes_to_earlier_month(distributor):
    percentages = [50, 50] + [0] * 10

    assert distributor.monthly_targets(7, percentages) == [4, 3] + [0] * 10


@pytest.mark.parametrize("total", [0, 1, 11, 12, 13, 95, 1000, 9999])
def test_targets_sum_to_annual_total(distributor, total):
    percentages = [Decimal('8.33')] * 11 + [Decimal('8.37')]

    targets = distributor.monthly_targets(total, percentages)

    assert sum(targets) == total
    assert all(t >= 0 for t in targets)


def test_two_decimal_strings_are_exact(distributor):
    percentages = ['8.33'] * 11 + ['8.37']

    assert sum(distributor.monthly_targets(100, percentages)) == 100


def test_rejects_sum_not_100(distributor):
    with pytest.raises(InvalidSeasonalityError) as exc_info:
        distributor.monthly_targets(100, [10] * 12, product_id=3, year=2025)

    assert "product 3 / 2025" in str(exc_info.value)
    assert "120" in str(exc_info.value)


def test_rejects_negative_month(distributor):
    with pytest.raises(InvalidSeasonalityError):
        distributor.monthly_targets(10, [-10, 110] + [0] * 10)


def test_rejects_wrong_length(distributor):
    with pytest.raises(ValueError):
        distributor.monthly_targets(10, [50, 50])


def test_rejects_negative_total(distributor):
    with pytest.raises(ValueError):
        distributor.monthly_targets(-1, [100] + [0] * 11)


def test_uniform_targets(distributor):
    assert distributor.uniform_targets(6) == [1] * 6 + [0] * 6
    assert distributor.uniform_targets(25) == [3] + [2] * 11
    assert sum(distributor.uniform_targets(1001)) == 1001


@pytest.mark.parametrize("last_month,shown", [('8.36', '99.99'), ('8.38', '100.01')])
def test_rejects_sum_one_hundredth_off(distributor, last_month, shown):
    percentages = ['8.33'] * 11 + [last_month]

    with pytest.raises(InvalidSeasonalityError) as exc_info:
        distributor.monthly_targets(100, percentages)

    assert shown in str(exc_info.value)


def test_distribute_skips_zero_weights(distributor):
    weights = [0, 0, 1] + [0] * 9

    assert distributor.distribute(5, weights) == [0, 0, 5] + [0] * 9


def test_distribute_rejects_all_zero_weights(distributor):
    with pytest.raises(ValueError):
        distributor.distribute(3, [0] * 12)

    assert distributor.distribute(0, [0] * 12) == [0] * 12
