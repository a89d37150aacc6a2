"""
Plan Engine Exports
===================
CSV artifacts for operators:

1. City incoming-requirement table (same arithmetic as the generator)
2. Product seasonality table
3. Topology summary
4. Live event snapshot
5. Import template, plus validation of filled-in templates
"""
import logging
from datetime import date
from typing import List, Optional, Tuple

import pandas as pd

from .classification_matrix import ClassificationMatrix
from .models import MONTH_COLUMNS, DetailStatus
from .plan_data import PlanEngineData

logger = logging.getLogger(__name__)

IMPORT_REQUIRED_COLUMNS = [
    'client_id', 'origin_node', 'destination_node', 'scheduled_date', 'creation_reason'
]
IMPORT_OPTIONAL_COLUMNS = [
    'origin_panelist_id', 'destination_panelist_id', 'carrier_id', 'product_id',
    'product_type', 'status', 'label_number'
]
IMPORT_INTEGER_COLUMNS = [
    'client_id', 'origin_panelist_id', 'destination_panelist_id', 'carrier_id', 'product_id'
]
DATE_FORMAT = '%Y-%m-%d'


def to_csv_bytes(df: pd.DataFrame) -> bytes:
    return df.to_csv(index=False).encode('utf-8')


class PlanExporter:
    """Builds the export DataFrames for one client"""

    def __init__(self, data: Optional[PlanEngineData] = None, engine=None):
        self.data = data or PlanEngineData(engine)
        self.matrix = ClassificationMatrix()

    def city_requirements(self, client_id: int) -> pd.DataFrame:
        cities = self.data.get_cities(client_id)
        requirements = self.data.get_requirements(client_id)
        rows = self.matrix.incoming_table(cities, requirements)

        columns = [
            'city_code', 'city_name', 'classification',
            'from_classification_a', 'from_classification_b', 'from_classification_c',
            'origin_cities_a', 'origin_cities_b', 'origin_cities_c', 'total_incoming'
        ]
        return pd.DataFrame(rows, columns=columns)

    def product_seasonality(self, client_id: int, year: Optional[int] = None) -> pd.DataFrame:
        rows = []
        for season in self.data.get_seasonality_table(client_id, year):
            row = {'product_id': season.product_id, 'year': season.year}
            for month, pct in zip(MONTH_COLUMNS, season.percentages):
                row[month] = float(pct)
            row['total'] = float(sum(season.percentages))
            rows.append(row)
        return pd.DataFrame(rows, columns=['product_id', 'year'] + MONTH_COLUMNS + ['total'])

    def topology_summary(self, client_id: int) -> pd.DataFrame:
        cities = {c.id: c for c in self.data.get_cities(client_id, active_only=False)}
        topology = self.data.get_topology(client_id)

        rows = []
        for node in sorted(topology.nodes, key=lambda n: n.code):
            city = cities.get(node.city_id)
            panelist = topology.panelist_for_node(node.code)
            rows.append({
                'node_code': node.code,
                'city_code': city.code if city else None,
                'city_name': city.name if city else None,
                'classification': city.classification.value if city else None,
                'country': node.country,
                'panelist_id': panelist.id if panelist else None,
                'panelist_name': panelist.name if panelist else None,
                'weekly_event_cap': panelist.weekly_event_cap if panelist else None,
            })
        return pd.DataFrame(rows, columns=[
            'node_code', 'city_code', 'city_name', 'classification', 'country',
            'panelist_id', 'panelist_name', 'weekly_event_cap'
        ])

    def live_events(self, client_id: int, date_from: date, date_to: date,
                    product_id: Optional[int] = None) -> pd.DataFrame:
        events = self.data.get_live_events(
            client_id, date_from, date_to, product_id=product_id, include_cancelled=True
        )
        return pd.DataFrame(
            [{
                'id': e.id,
                'plan_id': e.plan_id,
                'nodo_origen': e.origin_node,
                'nodo_destino': e.destination_node,
                'scheduled_date': e.scheduled_date.strftime(DATE_FORMAT),
                'status': e.status.value,
                'product_id': e.product_id,
                'carrier_id': e.carrier_id,
                'label_number': e.label_number,
            } for e in events],
            columns=[
                'id', 'plan_id', 'nodo_origen', 'nodo_destino', 'scheduled_date',
                'status', 'product_id', 'carrier_id', 'label_number'
            ]
        )

    @staticmethod
    def import_template() -> pd.DataFrame:
        """Empty frame carrying the import columns, required ones first"""
        return pd.DataFrame(columns=IMPORT_REQUIRED_COLUMNS + IMPORT_OPTIONAL_COLUMNS)


# ==================== IMPORT VALIDATION ====================

def validate_import_frame(df: pd.DataFrame) -> Tuple[pd.DataFrame, List[str]]:
    """
    Validate a filled-in import template.

    Returns:
        (clean, errors): clean holds the valid rows with every template
        column present and status defaulted to PENDING; errors are
        "Row N: ..." messages with N counted from 1 over data rows.
    """
    errors: List[str] = []

    missing = [c for c in IMPORT_REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        return PlanExporter.import_template(), [f"Missing required columns: {', '.join(missing)}"]

    frame = df.copy().astype(object)
    for column in IMPORT_OPTIONAL_COLUMNS:
        if column not in frame.columns:
            frame[column] = None

    valid_statuses = {s.value for s in DetailStatus}
    keep = []
    for position, (index, row) in enumerate(frame.iterrows(), start=1):
        row_errors = []

        for column in IMPORT_REQUIRED_COLUMNS:
            value = row[column]
            if value is None or pd.isna(value) or str(value).strip() == '':
                row_errors.append(f"{column} is required")

        raw_date = row['scheduled_date']
        if raw_date is not None and not pd.isna(raw_date) and str(raw_date).strip():
            parsed = pd.to_datetime(str(raw_date).strip(), format=DATE_FORMAT, errors='coerce')
            if pd.isna(parsed):
                row_errors.append(f"scheduled_date '{raw_date}' must be YYYY-MM-DD")
            else:
                frame.at[index, 'scheduled_date'] = parsed.strftime(DATE_FORMAT)

        for column in IMPORT_INTEGER_COLUMNS:
            value = row[column]
            if value is None or pd.isna(value) or str(value).strip() == '':
                continue
            try:
                number = float(value)
            except (TypeError, ValueError):
                row_errors.append(f"{column} '{value}' must be an integer")
                continue
            if not number.is_integer():
                row_errors.append(f"{column} '{value}' must be an integer")
            else:
                frame.at[index, column] = int(number)

        status = row['status']
        if status is None or pd.isna(status) or str(status).strip() == '':
            frame.at[index, 'status'] = DetailStatus.PENDING.value
        elif str(status).strip().upper() not in valid_statuses:
            row_errors.append(f"status '{status}' must be one of: {', '.join(s.value for s in DetailStatus)}")
        else:
            frame.at[index, 'status'] = str(status).strip().upper()

        if row_errors:
            errors.extend(f"Row {position}: {message}" for message in row_errors)
        else:
            keep.append(index)

    clean = frame.loc[keep, IMPORT_REQUIRED_COLUMNS + IMPORT_OPTIONAL_COLUMNS].reset_index(drop=True)
    if errors:
        logger.warning(f"Import validation: {len(keep)} valid rows, {len(errors)} errors")
    return clean, errors
