"""Tests for plan generation, merge and draft lifecycle against SQLite."""

from datetime import date, datetime

import pytest
from sqlalchemy import text

from utils.plan_engine.exceptions import AlreadyMergedError
from utils.plan_engine.models import GenerationOptions, PlanStatus
from utils.plan_engine.plan_data import PlanEngineData
from utils.plan_engine.plan_merger import PlanMerger
from utils.plan_engine.plan_service import PlanGenerationService


@pytest.fixture
def service(engine):
    return PlanGenerationService(engine)


def count_plans(seed):
    return seed.scalar("SELECT COUNT(*) FROM generated_allocation_plans")


def count_details(seed, plan_id=None):
    if plan_id is None:
        return seed.scalar("SELECT COUNT(*) FROM generated_allocation_plan_details")
    return seed.scalar(
        "SELECT COUNT(*) FROM generated_allocation_plan_details WHERE plan_id = :p", {'p': plan_id}
    )


# ==================== GENERATE ====================

def test_generate_persists_draft(service, seed, triangle):
    result = service.generate(1, 7, 2025)

    assert result.success, result.errors
    assert result.data['changed'] is True
    plan_id = result.data['plan_id']

    plan = service.get_plan(1, plan_id)
    assert plan.status == PlanStatus.DRAFT
    assert plan.total_events == 6
    assert plan.calculated_events == 6
    assert plan.generation_params['apply_seasonality'] is True
    assert count_details(seed, plan_id) == 6

    details = service.get_plan_details(1, plan_id)
    assert all(d.scheduled_date.month == 1 for d in details)
    assert {d.origin_node for d in details} == {'N-BOA', 'N-GIR', 'N-MAD'}


def test_draft_rows_are_not_live(service, triangle):
    service.generate(1, 7, 2025)

    assert PlanEngineData(service.engine).get_live_events(1, date(2025, 1, 1), date(2025, 12, 31)) == []


def test_invalid_seasonality_writes_nothing(service, seed, triangle):
    seed.seasonality(1, 8, 2025, [10] * 12)

    result = service.generate(1, 8, 2025)

    assert not result.success
    assert result.data['error_type'] == 'InvalidSeasonalityError'
    assert result.data['changed'] is False
    assert count_plans(seed) == 0


def test_missing_seasonality(service, seed, triangle):
    result = service.generate(1, 99, 2025)

    assert not result.success
    assert result.data['error_type'] == 'MissingSeasonalityError'
    assert count_plans(seed) == 0

    result = service.generate(1, 99, 2025, GenerationOptions(apply_seasonality=False))
    assert result.success


def test_invalid_request_rejected(service, seed, triangle):
    result = service.generate(1, 7, 1800)

    assert not result.success
    assert result.message == "Validation failed"
    assert count_plans(seed) == 0


def test_partial_plan_is_flagged(service, triangle):
    result = service.generate(1, 7, 2025, GenerationOptions(max_events_per_week=0))

    assert result.success
    assert result.data['is_partial']
    assert result.data['calculated_events'] == 0
    assert len(result.data['deferred']) == 6
    plan = result.data['plan']
    assert plan.unassigned_events == 6
    assert sum(g['unassigned'] for g in plan.unassigned_breakdown) == 6


def test_merged_events_count_against_capacity(service, seed, triangle):
    live_plan = seed.plan(1, 3, 2025)
    # Fill N-MAD for the week of Monday 2024-12-30 at cap 1
    seed.event(live_plan, 1, 3, 'N-MAD', 'N-ZZZ', date(2025, 1, 2))

    result = service.generate(1, 7, 2025, GenerationOptions(max_events_per_week=1))

    details = service.get_plan_details(1, result.data['plan_id'])
    first_week = [d for d in details if d.scheduled_date <= date(2025, 1, 5)]
    assert all('N-MAD' not in (d.origin_node, d.destination_node) for d in first_week)


# ==================== MERGE ====================

def test_merge_add(service, seed, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']

    result = service.merge(1, plan_id, 'add')

    assert result.success, result.errors
    assert result.data['inserted_events'] == 6
    assert result.data['superseded_events'] == 0
    plan = service.get_plan(1, plan_id)
    assert plan.status == PlanStatus.MERGED
    assert plan.merged_at is not None
    assert len(PlanEngineData(service.engine).get_live_events(1, date(2025, 1, 1), date(2025, 12, 31))) == 6


def test_second_merge_rejected_without_duplicates(service, seed, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']
    service.merge(1, plan_id, 'add')
    before = count_details(seed)

    result = service.merge(1, plan_id, 'add')

    assert not result.success
    assert result.data['error_type'] == 'AlreadyMergedError'
    assert result.data['changed'] is False
    assert count_details(seed) == before


def test_merge_unknown_or_foreign_plan(service, seed, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']

    assert service.merge(1, 999, 'add').data['error_type'] == 'PlanNotFoundError'
    assert service.merge(2, plan_id, 'add').data['error_type'] == 'PlanNotFoundError'


def test_merge_rejects_unknown_strategy(service, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']

    result = service.merge(1, plan_id, 'overwrite')

    assert not result.success
    assert result.message == "Validation failed"


@pytest.fixture
def live_history(seed, triangle):
    """Merged events around the 2025 period for product 7"""
    plan = seed.plan(1, 7, 2025)
    return {
        'pending': seed.event(plan, 1, 7, 'N-MAD', 'N-GIR', date(2025, 3, 3), 'PENDING'),
        'notified': seed.event(plan, 1, 7, 'N-GIR', 'N-BOA', date(2025, 6, 10), 'NOTIFIED'),
        'sent': seed.event(plan, 1, 7, 'N-BOA', 'N-MAD', date(2025, 4, 1), 'SENT'),
        'other_product': seed.event(plan, 1, 8, 'N-MAD', 'N-BOA', date(2025, 5, 5), 'PENDING'),
        'next_year': seed.event(plan, 1, 7, 'N-MAD', 'N-BOA', date(2026, 1, 5), 'PENDING'),
    }


def test_replace_cancels_live_in_flight_events(service, seed, live_history):
    plan_id = service.generate(1, 7, 2025).data['plan_id']

    preview = service.preview_merge(1, plan_id, 'replace')
    assert preview.data['superseded_events'] == 2
    assert preview.data['warnings'] == ["This merge will cancel 2 live events"]
    assert service.count_superseded(1, plan_id, 'add') == 0

    result = service.merge(1, plan_id, 'replace')

    assert result.success
    assert result.data['superseded_events'] == 2
    assert seed.fetch_event(live_history['pending'])['status'] == 'CANCELLED'
    assert seed.fetch_event(live_history['notified'])['status'] == 'CANCELLED'
    assert seed.fetch_event(live_history['sent'])['status'] == 'SENT'
    assert seed.fetch_event(live_history['other_product'])['status'] == 'PENDING'
    assert seed.fetch_event(live_history['next_year'])['status'] == 'PENDING'
    assert service.get_plan(1, plan_id).superseded_events == 2
    # The merged plan's own rows stay in flight
    assert count_details(seed, plan_id) == 6


def test_replace_in_delete_mode(engine, seed, live_history):
    data = PlanEngineData(engine)
    service = PlanGenerationService(engine)
    plan_id = service.generate(1, 7, 2025).data['plan_id']
    merger = PlanMerger(data, replace_mode='delete', clock=lambda: datetime(2025, 1, 1, 9, 30))

    merged = merger.merge(1, plan_id, 'replace')

    assert merged.superseded_events == 2
    assert merged.replace_mode == 'delete'
    assert merged.plan.merged_at == datetime(2025, 1, 1, 9, 30)
    assert seed.fetch_event(live_history['pending']) is None
    assert seed.fetch_event(live_history['notified']) is None
    assert seed.fetch_event(live_history['sent']) is not None


def test_lost_status_race_rolls_back_superseding(engine, seed, live_history, monkeypatch):
    data = PlanEngineData(engine)
    plan_id = PlanGenerationService(engine).generate(1, 7, 2025).data['plan_id']
    merger = PlanMerger(data)

    # Another session flipped the plan between our read and our update
    monkeypatch.setattr(data, 'mark_plan_merged', lambda *args, **kwargs: 0)

    with pytest.raises(AlreadyMergedError):
        merger.merge(1, plan_id, 'replace')

    assert seed.fetch_event(live_history['pending'])['status'] == 'PENDING'
    assert seed.fetch_event(live_history['notified'])['status'] == 'NOTIFIED'


# ==================== DRAFTS ====================

def test_delete_draft(service, seed, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']

    result = service.delete_draft(1, plan_id)

    assert result.success
    assert result.data['deleted_events'] == 6
    assert count_plans(seed) == 0
    assert count_details(seed) == 0


def test_merged_plan_cannot_be_deleted(service, seed, triangle):
    plan_id = service.generate(1, 7, 2025).data['plan_id']
    service.merge(1, plan_id, 'add')

    result = service.delete_draft(1, plan_id)

    assert not result.success
    assert result.data['error_type'] == 'AlreadyMergedError'
    assert count_details(seed, plan_id) == 6


def test_list_plans(service, triangle):
    first = service.generate(1, 7, 2025).data['plan_id']
    second = service.generate(1, 7, 2025).data['plan_id']
    service.merge(1, first, 'add')

    plans = service.list_plans(1, 2025)

    assert plans['id'].tolist() == [second, first]
    assert plans.set_index('id').loc[first, 'status'] == 'merged'
    assert service.list_plans(2).empty


# ==================== PLAN PERIOD ====================

MARCH = {'start_date': date(2025, 3, 1), 'end_date': date(2025, 3, 31)}


def test_replace_over_custom_period_supersedes_only_inside_it(service, seed, live_history):
    result = service.generate(1, 7, 2025, GenerationOptions(apply_seasonality=False, **MARCH))
    plan_id = result.data['plan_id']

    plan = service.get_plan(1, plan_id)
    assert (plan.start_date, plan.end_date) == (MARCH['start_date'], MARCH['end_date'])
    assert plan.total_events == 1
    assert all(d.scheduled_date.month == 3 for d in service.get_plan_details(1, plan_id))
    assert service.preview_merge(1, plan_id, 'replace').data['superseded_events'] == 1

    merged = service.merge(1, plan_id, 'replace')

    assert merged.data['superseded_events'] == 1
    assert seed.fetch_event(live_history['pending'])['status'] == 'CANCELLED'
    assert seed.fetch_event(live_history['notified'])['status'] == 'NOTIFIED'


@pytest.mark.parametrize("period", [
    {'start_date': date(2025, 3, 31), 'end_date': date(2025, 3, 1)},
    {'start_date': date(2024, 12, 1), 'end_date': date(2025, 1, 31)},
])
def test_period_outside_year_or_reversed_rejected(service, seed, triangle, period):
    result = service.generate(1, 7, 2025, GenerationOptions(apply_seasonality=False, **period))

    assert not result.success
    assert result.message == "Validation failed"
    assert count_plans(seed) == 0


def test_custom_period_is_reported_as_warning(service, triangle):
    result = service.generate(1, 7, 2025, GenerationOptions(apply_seasonality=False, **MARCH))

    assert any(w.startswith("Custom period 2025-03-01 .. 2025-03-31") for w in result.data['warnings'])


# ==================== CARRIER ====================

def test_carrier_must_serve_product(service, seed, triangle):
    result = service.generate(1, 7, 2025, GenerationOptions(carrier_id=4))

    assert not result.success
    assert result.data['error_type'] == 'CarrierNotLinkedError'
    assert "Carrier #4" in result.message
    assert count_plans(seed) == 0

    seed.carrier_product(4, 7)
    result = service.generate(1, 7, 2025, GenerationOptions(carrier_id=4))

    assert result.success
    assert all(d.carrier_id == 4 for d in service.get_plan_details(1, result.data['plan_id']))


def test_merge_rechecks_carrier_link(service, seed, triangle):
    link = seed.carrier_product(4, 7)
    plan_id = service.generate(1, 7, 2025, GenerationOptions(carrier_id=4)).data['plan_id']
    with service.engine.begin() as conn:
        conn.execute(text("DELETE FROM carrier_products WHERE id = :id"), {'id': link})

    result = service.merge(1, plan_id, 'add')

    assert not result.success
    assert result.data['error_type'] == 'CarrierNotLinkedError'
    assert result.data['changed'] is False
    assert service.get_plan(1, plan_id).status == PlanStatus.DRAFT
