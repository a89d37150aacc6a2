"""Tests for operator CSV exports and import template validation."""

from datetime import date

import pandas as pd
import pytest

from utils.plan_engine.plan_exports import (
    IMPORT_OPTIONAL_COLUMNS, IMPORT_REQUIRED_COLUMNS, PlanExporter, to_csv_bytes, validate_import_frame
)


@pytest.fixture
def exporter(engine):
    return PlanExporter(engine=engine)


def test_city_requirements_table(exporter, spain):
    table = exporter.city_requirements(1)

    assert table['city_code'].tolist() == ['BCN', 'BOA', 'GIR', 'LPA', 'MAD']
    bcn = table.set_index('city_code').loc['BCN']
    assert (bcn['origin_cities_a'], bcn['origin_cities_b'], bcn['origin_cities_c']) == (1, 2, 1)
    assert bcn['total_incoming'] == 95
    assert bcn['city_name'] == 'Barcelona'


def test_seasonality_table_has_total(exporter, seed):
    seed.seasonality(1, 7, 2025, ['8.33'] * 11 + ['8.37'])
    seed.seasonality(1, 7, 2026, [100] + [0] * 11)

    table = exporter.product_seasonality(1, 2025)

    assert len(table) == 1
    assert table.loc[0, 'january'] == pytest.approx(8.33)
    assert table.loc[0, 'total'] == pytest.approx(100.0)
    assert len(exporter.product_seasonality(1)) == 2


def test_topology_summary(exporter, triangle):
    summary = exporter.topology_summary(1)

    assert summary['node_code'].tolist() == ['N-BOA', 'N-GIR', 'N-MAD']
    assert summary['panelist_name'].tolist() == ['Panelist BOA', 'Panelist GIR', 'Panelist MAD']
    assert summary['classification'].tolist() == ['C', 'B', 'A']


def test_live_events_exclude_drafts(exporter, seed):
    merged = seed.plan(1, 7, 2025)
    draft = seed.plan(1, 7, 2025, status='draft')
    seed.event(merged, 1, 7, 'N1', 'N2', date(2025, 2, 3))
    seed.event(merged, 1, 7, 'N1', 'N2', date(2025, 2, 4), 'CANCELLED')
    seed.event(draft, 1, 7, 'N1', 'N2', date(2025, 2, 5))

    events = exporter.live_events(1, date(2025, 1, 1), date(2025, 12, 31))

    assert events['scheduled_date'].tolist() == ['2025-02-03', '2025-02-04']
    assert events['status'].tolist() == ['PENDING', 'CANCELLED']
    assert set(events['plan_id']) == {merged}


def test_import_template_columns():
    template = PlanExporter.import_template()

    assert list(template.columns) == IMPORT_REQUIRED_COLUMNS + IMPORT_OPTIONAL_COLUMNS
    assert template.empty
    assert to_csv_bytes(template).decode('utf-8').startswith('client_id,origin_node')


def test_validate_import_frame():
    uploaded = pd.DataFrame([
        {'client_id': '1', 'origin_node': 'N1', 'destination_node': 'N2',
         'scheduled_date': '2025-03-04', 'creation_reason': 'manual', 'status': 'sent', 'carrier_id': '4'},
        {'client_id': 'x', 'origin_node': '', 'destination_node': 'N2',
         'scheduled_date': '04/03/2025', 'creation_reason': 'manual', 'status': '', 'carrier_id': ''},
    ])

    clean, errors = validate_import_frame(uploaded)

    assert errors == [
        "Row 2: origin_node is required",
        "Row 2: scheduled_date '04/03/2025' must be YYYY-MM-DD",
        "Row 2: client_id 'x' must be an integer",
    ]
    assert len(clean) == 1
    assert list(clean.columns) == IMPORT_REQUIRED_COLUMNS + IMPORT_OPTIONAL_COLUMNS
    row = clean.iloc[0]
    assert row['status'] == 'SENT'
    assert row['client_id'] == 1
    assert row['carrier_id'] == 4
    assert row['scheduled_date'] == '2025-03-04'


def test_import_defaults_status_to_pending():
    uploaded = pd.DataFrame([{'client_id': '2', 'origin_node': 'N1', 'destination_node': 'N2',
                              'scheduled_date': '2025-05-01', 'creation_reason': 'backfill'}])

    clean, errors = validate_import_frame(uploaded)

    assert errors == []
    assert clean.loc[0, 'status'] == 'PENDING'


def test_import_rejects_unknown_status():
    uploaded = pd.DataFrame([{'client_id': '2', 'origin_node': 'N1', 'destination_node': 'N2',
                              'scheduled_date': '2025-05-01', 'creation_reason': 'backfill',
                              'status': 'LOST'}])

    clean, errors = validate_import_frame(uploaded)

    assert clean.empty
    assert errors[0].startswith("Row 1: status 'LOST' must be one of:")


def test_import_missing_columns():
    clean, errors = validate_import_frame(pd.DataFrame([{'client_id': 1}]))

    assert clean.empty
    assert errors == [
        "Missing required columns: origin_node, destination_node, scheduled_date, creation_reason"
    ]
